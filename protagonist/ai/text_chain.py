import asyncio
from dataclasses import dataclass

from ..generator.continuity import ContinuityContext
from ..metrics import MetricsRecorder
from .provider_chain import Provider, ProviderChain, ProviderSlot


@dataclass(frozen=True)
class TextGeneration:
    title: str
    text: str
    scene_description: str
    provider_name: str
    duration_ms: int
    cost: float


class TextGenerationChain:
    """
    Primary rich-prompt provider, then the simplified-prompt fallback.

    Each provider gets a single attempt; when both fail the chain raises
    GenerationFailed.
    """

    name = "text"

    def __init__(self, primary: Provider, secondary: Provider,
                 metrics: MetricsRecorder, sleep=asyncio.sleep):
        self.chain = ProviderChain(
            self.name,
            [ProviderSlot(primary), ProviderSlot(secondary)],
            metrics,
            sleep=sleep,
        )

    async def generate(self, context: ContinuityContext) -> TextGeneration:
        outcome = await self.chain.run(context)
        result = outcome.value
        return TextGeneration(
            title=result.title,
            text=result.text,
            scene_description=result.scene_description,
            provider_name=outcome.provider,
            duration_ms=outcome.duration_ms,
            cost=result.cost,
        )
