import asyncio
import logging
from typing import Any, Dict

import httpx

from ..exceptions import ProviderError, ProviderTimeoutError
from ..generator.prompt_builders import NEGATIVE_PROMPT, build_photomaker_prompt
from ..storage.blob_store import BlobStore
from ..storage.image_download import download_image, short_url
from .image_chain import ImageRequest, ImageResult
from .provider_chain import Provider

logger = logging.getLogger(__name__)


class PhotoMakerProvider(Provider):
    """
    Identity-preserving generation with PhotoMaker on Replicate.

    Creates a prediction, polls it until it settles, then copies the output
    into the blob store. The whole round trip is bounded by ``timeout_seconds``.
    """

    name = "replicate"

    def __init__(
        self,
        http: httpx.AsyncClient,
        blob_store: BlobStore,
        api_key: str,
        version: str,
        api_url: str = "https://api.replicate.com/v1/predictions",
        num_steps: int = 50,
        style_strength_ratio: int = 20,
        guidance_scale: float = 7.5,
        timeout_seconds: float = 300.0,
        poll_interval_seconds: float = 2.0,
        cost: float = 0.025,
        sleep=asyncio.sleep,
    ):
        self.http = http
        self.blob_store = blob_store
        self.api_key = api_key
        self.version = version
        self.api_url = api_url
        self.num_steps = num_steps
        self.style_strength_ratio = style_strength_ratio
        self.guidance_scale = guidance_scale
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.cost = cost
        self._sleep = sleep

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def supports(self, request: ImageRequest) -> bool:
        return bool(request.reference_photo_url)

    async def generate(self, request: ImageRequest) -> ImageResult:
        try:
            url = await asyncio.wait_for(self._generate(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(self.name, f"timed out after {self.timeout_seconds:.0f}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"HTTP error: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(self.name, f"malformed response: {e}") from e
        except OSError as e:
            raise ProviderError(self.name, f"could not store image: {e}") from e
        return ImageResult(url=url, cost=self.cost)

    async def _generate(self, request: ImageRequest) -> str:
        prompt = build_photomaker_prompt(request.scene, request.gender)
        logger.info("PhotoMaker prompt: %s...", prompt[:100])
        logger.info("Face image: %s", short_url(request.reference_photo_url, 50))

        response = await self.http.post(
            self.api_url,
            headers=self._headers,
            json={
                "version": self.version,
                "input": {
                    "input_image": request.reference_photo_url,
                    "prompt": prompt,
                    "negative_prompt": NEGATIVE_PROMPT,
                    "num_steps": self.num_steps,
                    "style_strength_ratio": self.style_strength_ratio,
                    "guidance_scale": self.guidance_scale,
                    "num_outputs": 1,
                },
            },
        )
        if response.status_code >= 400:
            raise ProviderError(self.name, f"create prediction returned {response.status_code}: {response.text[:200]}")

        prediction = response.json()
        logger.info("Prediction created: %s", prediction.get("id"))
        result = await self._poll(prediction["urls"]["get"])

        output_url = self._output_url(result.get("output"))
        data, content_type = await download_image(self.http, output_url)
        return await self.blob_store.save(data, content_type, key_hint=request.key_hint or "photomaker")

    async def _poll(self, url: str) -> Dict[str, Any]:
        polls = 0
        while True:
            await self._sleep(self.poll_interval_seconds)
            polls += 1
            response = await self.http.get(url, headers=self._headers)
            if response.status_code >= 400:
                raise ProviderError(self.name, f"poll returned {response.status_code}")

            result = response.json()
            status = result.get("status")
            if status == "succeeded":
                logger.info("Prediction succeeded after %d polls", polls)
                return result
            if status in ("failed", "canceled"):
                raise ProviderError(self.name, f"prediction {status}: {result.get('error') or 'unknown error'}")
            if polls % 10 == 0:
                logger.info("Prediction status: %s (%d polls)", status, polls)

    def _output_url(self, output) -> str:
        if isinstance(output, list) and output:
            output = output[0]
        if isinstance(output, str) and output:
            return output
        raise ProviderError(self.name, f"unexpected output format: {str(output)[:200]}")
