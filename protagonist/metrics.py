import logging
from dataclasses import asdict, dataclass, replace
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ProviderMetrics:
    provider: str
    chain: str = ""
    success_count: int = 0
    failure_count: int = 0
    total_cost: float = 0.0
    avg_duration_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        total = self.success_count + self.failure_count
        return self.success_count / total if total else 0.0

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["success_rate"] = self.success_rate
        return data


class MetricsRecorder:
    """
    Per-provider counters and timers.

    One instance is created at process start and handed to every provider
    chain. Updates are plain synchronous increments, safe on a single event
    loop.
    """

    def __init__(self):
        self._metrics: Dict[str, ProviderMetrics] = {}

    def _entry(self, provider: str, chain: Optional[str]) -> ProviderMetrics:
        if provider not in self._metrics:
            self._metrics[provider] = ProviderMetrics(provider=provider)
        entry = self._metrics[provider]
        if chain:
            entry.chain = chain
        return entry

    def record_success(self, provider: str, duration_ms: float, cost: float = 0.0, chain: Optional[str] = None):
        entry = self._entry(provider, chain)
        entry.success_count += 1
        entry.total_cost += cost
        # running mean over successful calls
        n = entry.success_count
        entry.avg_duration_ms = (entry.avg_duration_ms * (n - 1) + duration_ms) / n
        logger.debug("Metrics [%s]: %s", provider, entry.to_dict())

    def record_failure(self, provider: str, duration_ms: float, chain: Optional[str] = None):
        entry = self._entry(provider, chain)
        entry.failure_count += 1
        logger.debug("Metrics [%s]: failure after %.0fms, %s", provider, duration_ms, entry.to_dict())

    def snapshot(self) -> Dict[str, ProviderMetrics]:
        """Return copies of the current per-provider metrics."""
        return {name: replace(entry) for name, entry in self._metrics.items()}

    def reset(self):
        self._metrics.clear()

    def cost_summary(self) -> Dict:
        """
        Aggregate cost across providers.

        Returns:
            {"total_cost": float, "total_generations": int,
             "total_texts": int, "total_images": int,
             "by_provider": {name: {"count", "cost", "avg_time_ms"}}}

            total_texts and total_images count successes recorded through the
            text and image chains; total_generations counts every success.
        """
        summary = {"total_cost": 0.0, "total_generations": 0, "total_texts": 0, "total_images": 0,
                   "by_provider": {}}
        for name, entry in self._metrics.items():
            summary["total_cost"] += entry.total_cost
            summary["total_generations"] += entry.success_count
            if entry.chain == "text":
                summary["total_texts"] += entry.success_count
            elif entry.chain == "image":
                summary["total_images"] += entry.success_count
            summary["by_provider"][name] = {
                "count": entry.success_count,
                "cost": entry.total_cost,
                "avg_time_ms": entry.avg_duration_ms,
            }
        return summary

    def check_budget(self, daily_budget: float) -> Dict:
        current = self.cost_summary()["total_cost"]
        return {
            "exceeded": current > daily_budget,
            "current_cost": current,
            "remaining": max(0.0, daily_budget - current),
            "percentage": (current / daily_budget * 100) if daily_budget > 0 else 0.0,
        }
