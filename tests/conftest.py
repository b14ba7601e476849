"""Shared fixtures: fake clocks, scripted adapters, scripted LLM runners."""

from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from signalsynth.core.health import ProviderHealthRegistry
from signalsynth.core.retry import RetryConfig, RetryPolicy
from signalsynth.domain.models import Quote
from signalsynth.providers.bundle import ProviderBundle
from signalsynth.services.gateway import MarketDataGateway

FIXED_NOW = datetime(2025, 3, 10, 14, 30, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedAdapter:
    """
    Adapter double answering every kind from canned data.

    `errors` maps a method name to an exception raised on each call.
    """

    def __init__(
        self,
        name: str,
        *,
        prices: Optional[dict[str, float]] = None,
        errors: Optional[dict[str, Exception]] = None,
        screen: Optional[list[str]] = None,
    ):
        self.name = name
        self.prices = prices or {}
        self.errors = errors or {}
        self.screen = screen or []
        self.calls: list[tuple[str, Any]] = []

    def _enter(self, method: str, arg: Any = None) -> None:
        self.calls.append((method, arg))
        if method in self.errors:
            raise self.errors[method]

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        self._enter("get_quotes", list(symbols))
        return {
            s: Quote(symbol=s, price=self.prices[s], volume=1_000_000, timestamp=FIXED_NOW)
            for s in symbols if s in self.prices
        }

    async def get_intraday(self, symbol: str, days: int):
        self._enter("get_intraday", symbol)
        return []

    async def get_daily(self, symbol: str, days: int):
        self._enter("get_daily", symbol)
        return []

    async def get_profile(self, symbol: str):
        self._enter("get_profile", symbol)
        return None

    async def get_metrics(self, symbol: str):
        self._enter("get_metrics", symbol)
        return None

    async def get_sentiment(self, symbol: str):
        self._enter("get_sentiment", symbol)
        return None

    async def screen_stocks(self, **kwargs) -> list[str]:
        self._enter("screen_stocks", kwargs)
        return list(self.screen)

    async def get_top_gainers(self, limit: int = 10) -> list[str]:
        self._enter("get_top_gainers", limit)
        return []

    async def get_top_losers(self, limit: int = 10) -> list[str]:
        self._enter("get_top_losers", limit)
        return []

    async def get_most_active(self, limit: int = 10) -> list[str]:
        self._enter("get_most_active", limit)
        return []


async def _no_sleep(delay: float) -> None:
    return None


def make_gateway(*adapters, clock=None, health=None, max_attempts: int = 1) -> MarketDataGateway:
    """Gateway over the given adapters, same order for every kind."""
    adapters = list(adapters)
    bundle = ProviderBundle(
        quotes=adapters, intraday=adapters, daily=adapters, profile=adapters,
        metrics=adapters, sentiment=adapters, screener=adapters, search=adapters,
    )
    clock = clock or FakeClock()
    return MarketDataGateway(
        bundle,
        health=health or ProviderHealthRegistry(clock=clock),
        retry=RetryPolicy(RetryConfig(max_attempts=max_attempts), sleep=_no_sleep),
        clock=clock,
    )


@pytest.fixture
def clock():
    return FakeClock()


class ScriptedLlm:
    """
    Runner factory double.

    `responses` maps AnalysisStage -> raw text, a ready LlmStageResponse, an
    exception to raise, or a
    callable taking the request. Each created runner records its request.
    """

    def __init__(self, responses: Optional[dict] = None, delay: float = 0.0):
        self.responses = responses or {}
        self.delay = delay
        self.requests = []
        self.created = []

    def __call__(self, provider, model, api_key):
        self.created.append((provider, model, api_key))
        return _ScriptedRunner(self)


class _ScriptedRunner:
    def __init__(self, owner: ScriptedLlm):
        self.owner = owner

    async def run(self, request):
        import asyncio

        from signalsynth.llm.models import LlmStageResponse

        self.owner.requests.append(request)
        if self.owner.delay:
            await asyncio.sleep(self.owner.delay)
        answer = self.owner.responses.get(request.stage, "{}")
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            answer = answer(request)
        if isinstance(answer, LlmStageResponse):
            return answer
        return LlmStageResponse(raw_text=answer)


class DictKeys:
    def __init__(self, keys: Optional[dict[str, str]] = None):
        self.keys = keys if keys is not None else {"openai": "sk-test"}

    def llm_key(self, provider: str) -> Optional[str]:
        return self.keys.get(provider)
