import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Sequence, Tuple, TypeVar

from ..exceptions import GenerationFailed, ProviderError
from ..metrics import MetricsRecorder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Provider:
    """One interchangeable backend of a provider chain."""

    name = "provider"

    def supports(self, request) -> bool:
        """Whether this provider can serve the request at all (skipped otherwise)."""
        return True

    async def generate(self, request):
        raise NotImplementedError


@dataclass
class ProviderSlot:
    provider: Provider
    max_attempts: int = 1
    backoff_seconds: float = 0.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"{self.provider.name}: max_attempts must be at least 1")

    def delay_before(self, attempt: int) -> float:
        # attempt is the 1-based number of the attempt about to run
        return self.backoff_seconds * (2 ** (attempt - 2))


@dataclass
class ChainOutcome(Generic[T]):
    value: T
    provider: str
    duration_ms: int


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ProviderChain:
    """
    Try providers in order until one succeeds.

    Each slot is retried up to its max_attempts with exponential backoff before
    the chain moves on. Successes and exhausted providers are recorded to the
    MetricsRecorder once per provider; only a fully exhausted chain raises.
    """

    def __init__(
        self,
        name: str,
        slots: Sequence[ProviderSlot],
        metrics: MetricsRecorder,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not slots:
            raise ValueError(f"provider chain {name} needs at least one provider")
        self.name = name
        self.slots = list(slots)
        self.metrics = metrics
        self._sleep = sleep

    @property
    def provider_names(self) -> List[str]:
        return [slot.provider.name for slot in self.slots]

    async def run(self, request) -> ChainOutcome:
        errors: List[Tuple[str, Exception]] = []

        for slot in self.slots:
            provider = slot.provider
            if not provider.supports(request):
                logger.info("[%s] skipping %s: request not supported", self.name, provider.name)
                continue

            start = time.perf_counter()
            last_error: Exception = None
            for attempt in range(1, slot.max_attempts + 1):
                if attempt > 1:
                    delay = slot.delay_before(attempt)
                    logger.info("[%s] waiting %.1fs before retrying %s", self.name, delay, provider.name)
                    await self._sleep(delay)

                logger.info("[%s] attempt %d/%d with %s", self.name, attempt, slot.max_attempts, provider.name)
                attempt_start = time.perf_counter()
                try:
                    value = await provider.generate(request)
                except ProviderError as e:
                    logger.warning("[%s] %s attempt %d failed: %s", self.name, provider.name, attempt, e)
                    last_error = e
                    continue

                duration_ms = _elapsed_ms(attempt_start)
                cost = getattr(value, "cost", 0.0)
                self.metrics.record_success(provider.name, duration_ms, cost, chain=self.name)
                return ChainOutcome(value=value, provider=provider.name, duration_ms=duration_ms)

            self.metrics.record_failure(provider.name, _elapsed_ms(start), chain=self.name)
            errors.append((provider.name, last_error))

        logger.error("[%s] all providers failed: %s", self.name, [name for name, _ in errors])
        raise GenerationFailed(self.name, errors)
