"""
Explicit construction of the provider chains.

Everything is built once at process start and injected; nothing here caches
clients behind module-level state.
"""
import asyncio
import logging

import httpx
from openai import AsyncOpenAI

from ..config.settings import Settings
from ..exceptions import ConfigurationError
from ..metrics import MetricsRecorder
from ..storage.blob_store import BlobStore
from .image_chain import ImageGenerationChain
from .image_providers import CinematicImageProvider, OpenAIIdentityImageProvider, PlaceholderImageProvider
from .photomaker_client import PhotoMakerProvider
from .text_chain import TextGenerationChain
from .text_providers import RichPromptTextProvider, SimplePromptTextProvider

logger = logging.getLogger(__name__)

PRIMARY_TEXT_PROVIDER = "claude"
SECONDARY_TEXT_PROVIDER = "openai-text"


def _require(value: str, env_var: str) -> str:
    if not value:
        raise ConfigurationError(f"{env_var} environment variable is not set")
    return value


def build_text_chain(settings: Settings, metrics: MetricsRecorder) -> TextGenerationChain:
    """
    Rich-prompt primary and simplified-prompt secondary, both OpenAI-compatible.

    Raises:
        ConfigurationError: a text provider API key is missing
    """
    primary = RichPromptTextProvider(
        PRIMARY_TEXT_PROVIDER,
        AsyncOpenAI(
            api_key=_require(settings.text_primary_api_key, "TEXT_PRIMARY_API_KEY"),
            base_url=settings.text_primary_base_url,
        ),
        model=settings.text_primary_model,
        temperature=settings.text_primary_temperature,
        max_tokens=settings.text_primary_max_tokens,
    )
    secondary = SimplePromptTextProvider(
        SECONDARY_TEXT_PROVIDER,
        AsyncOpenAI(
            api_key=_require(settings.text_secondary_api_key, "TEXT_SECONDARY_API_KEY"),
            base_url=settings.text_secondary_base_url,
        ),
        model=settings.text_secondary_model,
        temperature=settings.text_secondary_temperature,
        max_tokens=settings.text_secondary_max_tokens,
    )
    logger.info("Text chain: %s (%s) -> %s (%s)",
                primary.name, primary.model, secondary.name, secondary.model)
    return TextGenerationChain(primary, secondary, metrics)


def build_image_chain(
    settings: Settings,
    metrics: MetricsRecorder,
    blob_store: BlobStore,
    http: httpx.AsyncClient,
    sleep=asyncio.sleep,
) -> ImageGenerationChain:
    """
    PhotoMaker, OpenAI identity, cinematic fallback, placeholder.

    Raises:
        ConfigurationError: REPLICATE_API_KEY or IMAGE_API_KEY is missing
    """
    photomaker = PhotoMakerProvider(
        http,
        blob_store,
        api_key=_require(settings.replicate_api_key, "REPLICATE_API_KEY"),
        version=settings.photomaker_version,
        api_url=settings.replicate_api_url,
        num_steps=settings.photomaker_num_steps,
        style_strength_ratio=settings.photomaker_style_strength_ratio,
        guidance_scale=settings.photomaker_guidance_scale,
        timeout_seconds=settings.photomaker_timeout_seconds,
        poll_interval_seconds=settings.photomaker_poll_interval_seconds,
        cost=settings.cost_replicate,
        sleep=sleep,
    )
    images_client = AsyncOpenAI(
        api_key=_require(settings.image_api_key, "IMAGE_API_KEY"),
        base_url=settings.image_api_base_url,
    )
    identity = OpenAIIdentityImageProvider(
        images_client, http, blob_store,
        model=settings.identity_image_model,
        size=settings.identity_image_size,
        cost=settings.cost_openai,
    )
    cinematic = CinematicImageProvider(
        images_client, http, blob_store,
        model=settings.cinematic_image_model,
        size=settings.cinematic_image_size,
        cost=settings.cost_dalle,
    )
    placeholder = PlaceholderImageProvider(settings.placeholder_image_url)
    return ImageGenerationChain(
        photomaker,
        identity,
        cinematic,
        placeholder,
        metrics,
        retry_attempts=settings.image_retry_attempts,
        retry_delay_seconds=settings.image_retry_delay_seconds,
        sleep=sleep,
    )
