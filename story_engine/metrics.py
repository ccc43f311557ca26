"""In-process usage metrics aggregated from generation results."""

from __future__ import annotations

from datetime import datetime, timezone

from story_engine.models import DailyUsage, GenerationResult, UsageMetrics


class UsageTracker:
    """Accumulates per-request counters.

    `record` only mutates plain counters between await points, so it is safe
    to call from concurrent tasks on one event loop.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._tokens = 0
        self._cost = 0.0
        self._time = 0.0
        self._by_type: dict[str, int] = {}
        self._by_provider: dict[str, int] = {}
        self._daily: dict[str, DailyUsage] = {}

    def record(self, kind: str, result: GenerationResult, when: datetime | None = None) -> None:
        self._total += 1
        if result.success:
            self._successful += 1
        else:
            self._failed += 1
        self._tokens += result.tokens_used
        self._cost += result.cost
        self._time += result.generation_time
        self._by_type[kind] = self._by_type.get(kind, 0) + 1
        provider = result.provider or "unknown"
        self._by_provider[provider] = self._by_provider.get(provider, 0) + 1

        day = (when or datetime.now(timezone.utc)).date().isoformat()
        usage = self._daily.setdefault(day, DailyUsage(date=day))
        usage.requests += 1
        usage.tokens += result.tokens_used
        usage.cost += result.cost

    def snapshot(self) -> UsageMetrics:
        return UsageMetrics(
            total_requests=self._total,
            successful_requests=self._successful,
            failed_requests=self._failed,
            total_tokens=self._tokens,
            total_cost=self._cost,
            average_response_time=self._time / self._total if self._total else 0.0,
            requests_by_type=dict(self._by_type),
            requests_by_provider=dict(self._by_provider),
            daily_usage=[self._daily[d].model_copy() for d in sorted(self._daily)],
        )
