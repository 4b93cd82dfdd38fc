import base64
import binascii
import logging

import httpx
from openai import AsyncOpenAI, OpenAIError

from ..exceptions import ProviderError
from ..generator.prompt_builders import build_cinematic_prompt, build_identity_lock_prompt, build_identity_prompt
from ..storage.blob_store import BlobStore
from ..storage.image_download import download_image, short_url
from .image_chain import ImageRequest, ImageResult
from .provider_chain import Provider

logger = logging.getLogger(__name__)


class OpenAIImageProvider(Provider):
    """Shared plumbing for OpenAI image endpoints: call, then persist the output."""

    def __init__(self, client: AsyncOpenAI, http: httpx.AsyncClient, blob_store: BlobStore,
                 model: str, size: str = "1024x1024", cost: float = 0.04):
        self.client = client
        self.http = http
        self.blob_store = blob_store
        self.model = model
        self.size = size
        self.cost = cost

    async def _call(self, request: ImageRequest):
        raise NotImplementedError

    async def generate(self, request: ImageRequest) -> ImageResult:
        try:
            response = await self._call(request)
            if not response.data:
                raise ProviderError(self.name, "response contained no images")
            url = await self._persist(response.data[0], request.key_hint or self.name)
        except OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"HTTP error: {e}") from e
        except (ValueError, OSError) as e:
            # empty download or unwritable blob store
            raise ProviderError(self.name, f"could not store image: {e}") from e
        logger.info("%s image stored at %s", self.name, short_url(url))
        return ImageResult(url=url, cost=self.cost)

    async def _persist(self, image, key_hint: str) -> str:
        # gpt-image-1 answers with base64, dall-e with a short-lived URL
        if getattr(image, "b64_json", None):
            try:
                data = base64.b64decode(image.b64_json)
            except (binascii.Error, ValueError) as e:
                raise ProviderError(self.name, f"undecodable image payload: {e}") from e
            return await self.blob_store.save(data, "image/png", key_hint=key_hint)
        if getattr(image, "url", None):
            data, content_type = await download_image(self.http, image.url)
            return await self.blob_store.save(data, content_type, key_hint=key_hint)
        raise ProviderError(self.name, "image carried neither b64_json nor url")


class OpenAIIdentityImageProvider(OpenAIImageProvider):
    """
    Identity-preserving secondary.

    With a reference photo it edits that photo under the identity-lock prompt;
    without one it generates from the identity prompt alone.
    """

    name = "openai"

    async def _call(self, request: ImageRequest):
        if request.reference_photo_url:
            reference, content_type = await download_image(self.http, request.reference_photo_url)
            prompt = build_identity_lock_prompt(request.scene, request.gender)
            logger.info("Editing reference photo with %s: %s...", self.model, prompt[:150])
            return await self.client.images.edit(
                model=self.model,
                image=("reference.png", reference, content_type),
                prompt=prompt,
                size=self.size,
                n=1,
            )

        prompt = build_identity_prompt(request.scene, request.gender)
        logger.info("Generating identity image with %s (no reference photo)", self.model)
        return await self.client.images.generate(model=self.model, prompt=prompt, size=self.size, n=1)


class CinematicImageProvider(OpenAIImageProvider):
    """Non-identity fallback: a stylistically matching image without the user's face."""

    name = "dalle"

    async def _call(self, request: ImageRequest):
        prompt = build_cinematic_prompt(request.scene, request.style, request.day_number)
        logger.info("Generating cinematic image with %s", self.model)
        return await self.client.images.generate(
            model=self.model,
            prompt=prompt,
            size=self.size,
            quality="standard",
            n=1,
        )


class PlaceholderImageProvider(Provider):
    """Static placeholder; no network call, never fails."""

    name = "placeholder"

    def __init__(self, url_template: str):
        self.url_template = url_template

    async def generate(self, request: ImageRequest) -> ImageResult:
        return ImageResult(url=self.url_template.format(day=request.day_number), cost=0.0)
