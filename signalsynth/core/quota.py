"""
Usage tracking for provider API calls.

Counts calls per provider over rolling minute/day windows and optionally
enforces limits configured in config.yaml under `usage.quotas`. Constructed
explicitly and passed to adapters; there is no process-wide instance.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from cachetools import TTLCache


@dataclass
class QuotaCheckResult:
    allowed: bool
    reason: str = ""


class UsageTracker:
    """
    In-memory call counter with optional per-provider limits.

    Example config:
        usage:
          enabled: true
          quotas:
            finnhub: {per_minute: 60}
            fmp: {per_day: 250}
    """

    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        usage = (config or {}).get("usage", {})
        self.enabled = usage.get("enabled", True)
        self.quotas: dict[str, dict[str, int]] = usage.get("quotas", {}) or {}

        # Counters reset by TTL.
        self._per_minute = TTLCache(maxsize=512, ttl=60, timer=clock)
        self._per_day = TTLCache(maxsize=512, ttl=86400, timer=clock)
        self._totals: dict[str, int] = {}

    def check_and_consume(self, provider: str, cost: int = 1) -> QuotaCheckResult:
        """
        Check quota and record the call if allowed.

        Args:
            provider: Provider name
            cost: Cost units to consume
        """
        limits = self.quotas.get(provider, {}) if self.enabled else {}
        per_minute = limits.get("per_minute")
        per_day = limits.get("per_day")

        if per_minute is not None and self._per_minute.get(provider, 0) + cost > per_minute:
            return QuotaCheckResult(False, "per_minute quota exceeded")
        if per_day is not None and self._per_day.get(provider, 0) + cost > per_day:
            return QuotaCheckResult(False, "per_day quota exceeded")

        # TTLCache resets the window on every write; counters are approximate.
        self._per_minute[provider] = self._per_minute.get(provider, 0) + cost
        self._per_day[provider] = self._per_day.get(provider, 0) + cost
        self._totals[provider] = self._totals.get(provider, 0) + cost
        return QuotaCheckResult(True)

    def get_usage(self, provider: str) -> dict[str, int]:
        """Current usage counters for a provider."""
        return {
            "per_minute": self._per_minute.get(provider, 0),
            "per_day": self._per_day.get(provider, 0),
            "total": self._totals.get(provider, 0),
        }

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {name: self.get_usage(name) for name in sorted(self._totals)}
