"""Tests for the HTTP layer and data adapters."""

import asyncio
from unittest.mock import Mock

import httpx
import pytest

from signalsynth.core.errors import (
    AuthenticationError,
    DataNotAvailableError,
    ProviderError,
    QuotaExceededError,
    RateLimitError,
)
from signalsynth.core.http import HttpClient, parse_retry_after
from signalsynth.core.quota import UsageTracker
from signalsynth.providers.base import HealthCheckResult, ProviderStatus
from signalsynth.providers.finnhub import FinnhubProvider


def _response(status: int, headers=None) -> httpx.Response:
    request = httpx.Request("GET", "https://example.test/x")
    return httpx.Response(status, headers=headers, request=request, text="err")


class TestRaiseForStatus:
    def test_success_passes(self):
        HttpClient.raise_for_status(_response(200), "p")

    def test_429_carries_retry_after(self):
        with pytest.raises(RateLimitError) as exc:
            HttpClient.raise_for_status(_response(429, {"Retry-After": "7"}), "p")
        assert exc.value.retry_after == 7.0

    @pytest.mark.parametrize("status,error", [
        (401, AuthenticationError),
        (402, QuotaExceededError),
        (403, QuotaExceededError),
        (404, DataNotAvailableError),
    ])
    def test_status_mapping(self, status, error):
        with pytest.raises(error):
            HttpClient.raise_for_status(_response(status), "p")

    def test_server_error_is_recoverable(self):
        with pytest.raises(ProviderError) as exc:
            HttpClient.raise_for_status(_response(503), "p")
        assert exc.value.recoverable is True

    def test_other_client_error_is_not(self):
        with pytest.raises(ProviderError) as exc:
            HttpClient.raise_for_status(_response(418), "p")
        assert exc.value.recoverable is False

    def test_parse_retry_after(self):
        assert parse_retry_after("3") == 3.0
        assert parse_retry_after(None) is None


class TestUsageTracker:
    def test_per_minute_limit(self):
        tracker = UsageTracker({"usage": {"quotas": {"finnhub": {"per_minute": 2}}}})
        assert tracker.check_and_consume("finnhub").allowed
        assert tracker.check_and_consume("finnhub").allowed
        assert not tracker.check_and_consume("finnhub").allowed
        assert tracker.get_usage("finnhub")["total"] == 2

    def test_unlimited_provider(self):
        tracker = UsageTracker()
        for _ in range(10):
            assert tracker.check_and_consume("fmp").allowed


class TestFinnhubProvider:
    @pytest.fixture
    def mock_settings(self):
        settings = Mock()
        settings.finnhub_api_key = "test_api_key"
        settings.http_timeout = 30
        return settings

    def _provider(self, mock_settings, handler, usage=None):
        http = HttpClient(transport=httpx.MockTransport(handler))
        return FinnhubProvider(settings=mock_settings, http_client=http, usage=usage)

    def test_quotes_skip_unknown_symbols(self, mock_settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(dict(request.url.params))
            if request.url.params["symbol"] == "AAPL":
                return httpx.Response(200, json={"c": 190.5, "t": 1741617000, "dp": 1.2})
            return httpx.Response(200, json={"c": 0, "t": 0})

        provider = self._provider(mock_settings, handler)
        quotes = asyncio.run(provider.get_quotes(["AAPL", "ZZZZ"]))

        assert list(quotes) == ["AAPL"]
        assert quotes["AAPL"].price == 190.5
        assert quotes["AAPL"].change_percent == 1.2
        assert all(p["token"] == "test_api_key" for p in seen)

    def test_auth_failure_propagates(self, mock_settings):
        provider = self._provider(mock_settings, lambda r: httpx.Response(401))
        with pytest.raises(AuthenticationError):
            asyncio.run(provider.get_quotes(["AAPL"]))

    def test_exhausted_quota_raises_before_request(self, mock_settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"c": 1.0, "t": 1741617000})

        usage = UsageTracker({"usage": {"quotas": {"finnhub": {"per_minute": 0}}}})
        provider = self._provider(mock_settings, handler, usage=usage)

        with pytest.raises(QuotaExceededError):
            asyncio.run(provider.get_quotes(["AAPL"]))
        assert calls == []

    def test_healthcheck_unconfigured(self, mock_settings):
        mock_settings.finnhub_api_key = None
        provider = self._provider(mock_settings, lambda r: httpx.Response(200, json={}))

        result = asyncio.run(provider.healthcheck())

        assert isinstance(result, HealthCheckResult)
        assert result.status == ProviderStatus.UNAVAILABLE
