import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..analyzer.scene_models import Scene
from ..metrics import MetricsRecorder
from ..storage.image_download import short_url
from ..templates.models import VisualStyleGuide
from .provider_chain import Provider, ProviderChain, ProviderSlot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageRequest:
    scene: Scene
    gender: str = "male"
    reference_photo_url: Optional[str] = None
    style: Optional[VisualStyleGuide] = None
    day_number: int = 1
    key_hint: Optional[str] = None


@dataclass(frozen=True)
class ImageResult:
    url: str
    cost: float = 0.0


@dataclass(frozen=True)
class ImageGeneration:
    url: str
    provider_name: str
    cost_estimate: float
    duration_ms: int


class ImageGenerationChain:
    """
    Identity-preserving primary (retried), identity-preserving secondary,
    non-identity cinematic fallback, then a static placeholder.

    The primary only runs when a reference photo exists.
    """

    name = "image"

    def __init__(
        self,
        primary: Provider,
        secondary: Provider,
        fallback: Provider,
        placeholder: Provider,
        metrics: MetricsRecorder,
        retry_attempts: int = 2,
        retry_delay_seconds: float = 1.0,
        sleep=asyncio.sleep,
    ):
        self.chain = ProviderChain(
            self.name,
            [
                ProviderSlot(primary, max_attempts=retry_attempts, backoff_seconds=retry_delay_seconds),
                ProviderSlot(secondary),
                ProviderSlot(fallback),
                ProviderSlot(placeholder),
            ],
            metrics,
            sleep=sleep,
        )

    async def generate(
        self,
        scene: Scene,
        gender: Optional[str] = None,
        reference_photo_url: Optional[str] = None,
        style: Optional[VisualStyleGuide] = None,
        day_number: int = 1,
        key_hint: Optional[str] = None,
    ) -> ImageGeneration:
        request = ImageRequest(
            scene=scene,
            gender=gender if gender in ("male", "female") else "male",
            reference_photo_url=reference_photo_url,
            style=style,
            day_number=day_number,
            key_hint=key_hint,
        )
        logger.info(
            "Generating image for day %d (reference photo: %s, scene: %s)",
            day_number,
            short_url(reference_photo_url, 50) if reference_photo_url else "none",
            scene.description,
        )
        outcome = await self.chain.run(request)
        return ImageGeneration(
            url=outcome.value.url,
            provider_name=outcome.provider,
            cost_estimate=outcome.value.cost,
            duration_ms=outcome.duration_ms,
        )
