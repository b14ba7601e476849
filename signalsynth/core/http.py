"""
Async HTTP client wrapper with timeout and uniform error mapping.

Provides a single HTTP interface for all market data adapters and the RSS
client. Retries are NOT done here; callers go through RetryPolicy so that
rate limits, transient failures and fatal errors are treated consistently.
"""

from typing import Any, Optional

import httpx

from signalsynth.core.errors import (
    AuthenticationError,
    DataNotAvailableError,
    ProviderError,
    QuotaExceededError,
    RateLimitError,
)
from signalsynth.core.logging import get_logger

logger = get_logger("http")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds. HTTP-date values are ignored."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class HttpClient:
    """
    HTTP client with built-in timeout and error handling.

    Features:
    - Configurable timeout
    - Lazy AsyncClient creation
    - Status code -> exception mapping (429, 401, 402/403, 5xx)
    - Request/response logging
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.default_headers = headers or {}
        self._transport = transport
        self._async_client: Optional[httpx.AsyncClient] = None

    @property
    def async_client(self) -> httpx.AsyncClient:
        """Lazy-initialized async HTTP client."""
        if self._async_client is None:
            client_kwargs: dict[str, Any] = {
                "timeout": self.timeout,
                "headers": self.default_headers,
                "follow_redirects": True,
            }
            if self.base_url:
                client_kwargs["base_url"] = self.base_url
            if self._transport is not None:
                client_kwargs["transport"] = self._transport
            self._async_client = httpx.AsyncClient(**client_kwargs)
        return self._async_client

    async def aclose(self) -> None:
        """Close the underlying client."""
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None

    async def aget(
        self,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        provider_name: str = "unknown",
    ) -> Any:
        """
        Async GET returning decoded JSON.

        Raises:
            ProviderError: On network failure or error status
            RateLimitError: On 429 status
            AuthenticationError: On 401 status
            QuotaExceededError: On 402/403 status
        """
        response = await self.aget_response(
            url, params=params, headers=headers, provider_name=provider_name
        )
        self.raise_for_status(response, provider_name)
        try:
            return response.json()
        except ValueError:
            return {"_raw": response.text}

    async def aget_response(
        self,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        provider_name: str = "unknown",
    ) -> httpx.Response:
        """Async GET returning the raw response, status unchecked (RSS needs 304)."""
        try:
            logger.debug(f"GET {url} params={_redact(params)}")
            return await self.async_client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout on GET {url}: {e}")
            raise ProviderError(
                f"Request timeout: {url}",
                provider=provider_name,
                recoverable=True,
            ) from e
        except httpx.TransportError as e:
            logger.warning(f"Network error on GET {url}: {e}")
            raise ProviderError(
                f"Network error: {e}",
                provider=provider_name,
                recoverable=True,
            ) from e

    async def apost(
        self,
        url: str,
        *,
        json: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        provider_name: str = "unknown",
    ) -> Any:
        """Async POST returning decoded JSON."""
        try:
            logger.debug(f"POST {url}")
            response = await self.async_client.post(url, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Request timeout: {url}",
                provider=provider_name,
                recoverable=True,
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                f"Network error: {e}",
                provider=provider_name,
                recoverable=True,
            ) from e
        self.raise_for_status(response, provider_name)
        try:
            return response.json()
        except ValueError:
            return {"_raw": response.text}

    @staticmethod
    def raise_for_status(response: httpx.Response, provider_name: str) -> None:
        """Convert an error status into the matching SignalSynth exception."""
        status = response.status_code
        if status < 400:
            return

        if status == 429:
            raise RateLimitError(
                "Rate limit exceeded",
                provider=provider_name,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        logger.error(f"HTTP {status} from {provider_name}: {response.text[:200]}")

        if status == 401:
            raise AuthenticationError(
                f"HTTP 401: {response.reason_phrase}",
                provider=provider_name,
            )
        if status in (402, 403):
            raise QuotaExceededError(
                f"HTTP {status}: {response.reason_phrase}",
                provider=provider_name,
            )
        if status == 404:
            raise DataNotAvailableError(
                f"HTTP 404: {response.url}",
                provider=provider_name,
            )
        raise ProviderError(
            f"HTTP {status}: {response.reason_phrase}",
            provider=provider_name,
            recoverable=status >= 500,
        )


def _redact(params: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Hide credentials from debug logs."""
    if not params:
        return params
    secret_keys = {"apikey", "apiKey", "token", "api_key"}
    return {k: ("***" if k in secret_keys else v) for k, v in params.items()}
