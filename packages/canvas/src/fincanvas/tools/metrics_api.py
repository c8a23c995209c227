"""Metrics API client: the data provider behind analysis tools.

The service owns the business formulas; this client only fetches payload
fragments (``chart``, ``metrics``, ``summary``, ...) for a team and period.
"""

import asyncio
from typing import Any, Protocol, cast

import httpx
import structlog

from fincanvas.config import get_settings

logger = structlog.get_logger(__name__)


class MetricsAPIError(Exception):
    """Base exception for metrics API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthenticationError(MetricsAPIError):
    """API key rejected."""

    pass


class RateLimitError(MetricsAPIError):
    """Rate limit exceeded."""

    pass


class MetricsProvider(Protocol):
    """Anything that can produce a payload fragment for a metric kind."""

    async def fetch_metrics(self, kind: str, params: dict[str, Any]) -> dict[str, Any]: ...


class MetricsAPIClient:
    """Async client for the metrics API with retry logic."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.metrics_api_url).rstrip("/")
        self._api_key = api_key or settings.metrics_api_key.get_secret_value()
        self._timeout = timeout or settings.metrics_timeout
        self._max_retries = settings.metrics_max_retries if max_retries is None else max_retries

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MetricsAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> dict[str, Any]:
        """Make an authenticated request, retrying transport errors with backoff."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params={k: v for k, v in (params or {}).items() if v is not None},
                headers=self._get_headers(),
            )

            if response.status_code == 401:
                raise AuthenticationError("Invalid API key", status_code=401)

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                raise RateLimitError(
                    f"Rate limited, retry after {retry_after}s",
                    status_code=429,
                    details={"retry_after": retry_after},
                )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except Exception:
                    error_detail = {
                        "raw": response.text[:500] if response.text else "empty response"
                    }
                raise MetricsAPIError(
                    f"API error: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            data = response.json() if response.content else {}
            if not isinstance(data, dict):
                raise MetricsAPIError("Invalid metrics response format", details=data)
            return cast(dict[str, Any], data)

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, retry_count + 1)
            raise MetricsAPIError(f"Request failed: {e}") from e

    async def fetch_metrics(self, kind: str, params: dict[str, Any]) -> dict[str, Any]:
        """Fetch the payload fragment for one metric kind.

        Args:
            kind: Metric endpoint name, e.g. "burn-rate" or "tax-summary".
            params: Query parameters (team_id, from, to, currency, ...).
        """
        logger.debug("fetching_metrics", kind=kind, team_id=params.get("team_id"))
        return await self._request("GET", f"/api/v1/metrics/{kind}", params=params)
