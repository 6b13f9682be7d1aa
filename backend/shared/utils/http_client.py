"""
Async HTTP client wrapper for provider requests.
Includes retry logic, timeout management, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_LATENCY, PROVIDER_REQUESTS

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 10.0


class ProviderHTTPClient:
    """
    Async HTTP client tailored for sports data provider APIs.

    Server errors and timeouts are retried with a linear backoff. A 429 is
    raised on the first attempt: throttling is handled by the caller's
    cooldown, not by waiting here. Other 4xx responses are raised as-is.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        max_retries: int = 2,
        backoff_s: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._provider = provider_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s
        self._max_retries = max(1, max_retries)
        self._backoff_s = backoff_s
        self._default_headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def started(self) -> bool:
        return self._client is not None

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        extra_headers: dict[str, str] | None = None,
        operation: str = "unknown",
    ) -> httpx.Response:
        return await self.request(
            "GET", path, params=params, extra_headers=extra_headers, operation=operation
        )

    async def post(
        self,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        extra_headers: dict[str, str] | None = None,
        operation: str = "unknown",
    ) -> httpx.Response:
        return await self.request(
            "POST", path, params=params, json=json, extra_headers=extra_headers,
            operation=operation,
        )

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        extra_headers: dict[str, str] | None = None,
        operation: str = "unknown",
    ) -> httpx.Response:
        """
        Perform a request with retry, metrics, and structured logging.

        Args:
            method: HTTP verb.
            path: API path relative to base_url.
            params: Query parameters. Values are never logged.
            json: Request body for POST.
            extra_headers: Request-specific headers.
            operation: Operation label for metrics (live, schedule, ...).

        Returns:
            httpx.Response with a 2xx/3xx status.

        Raises:
            httpx.HTTPStatusError: On 4xx, or on 5xx once retries are exhausted.
            httpx.TimeoutException: If all retries time out.
            httpx.TransportError: On connection failures after retries.
        """
        if not self._client:
            raise RuntimeError("ProviderHTTPClient not started. Call start() first.")

        merged_headers = {**self._default_headers}
        if extra_headers:
            merged_headers.update(extra_headers)

        last_exc: Optional[Exception] = None
        for attempt in range(1, self._max_retries + 1):
            start_time = time.perf_counter()
            status = "unknown"
            try:
                resp = await self._client.request(
                    method, path, params=params, json=json, headers=merged_headers
                )
                status = str(resp.status_code)

                if resp.status_code >= 500 and attempt < self._max_retries:
                    logger.warning(
                        "provider_server_error",
                        provider=self._provider,
                        path=path,
                        status=resp.status_code,
                        attempt=attempt,
                    )
                    await asyncio.sleep(self._backoff_s * attempt)
                    continue

                if resp.status_code == 429:
                    logger.warning(
                        "provider_rate_limited",
                        provider=self._provider,
                        path=path,
                        retry_after=resp.headers.get("Retry-After"),
                    )

                resp.raise_for_status()

                logger.debug(
                    "provider_request_success",
                    provider=self._provider,
                    path=path,
                    status=resp.status_code,
                    latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                return resp

            except httpx.HTTPStatusError:
                raise

            except httpx.TimeoutException as exc:
                status = "timeout"
                last_exc = exc
                logger.warning(
                    "provider_timeout",
                    provider=self._provider,
                    path=path,
                    attempt=attempt,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff_s * attempt)
                    continue

            except httpx.TransportError as exc:
                status = "error"
                last_exc = exc
                logger.warning(
                    "provider_transport_error",
                    provider=self._provider,
                    path=path,
                    error=str(exc),
                    attempt=attempt,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff_s * attempt)
                    continue

            finally:
                PROVIDER_REQUESTS.labels(
                    provider=self._provider, operation=operation, status=status
                ).inc()
                PROVIDER_LATENCY.labels(provider=self._provider).observe(
                    time.perf_counter() - start_time
                )

        if last_exc:
            raise last_exc
        raise RuntimeError(f"Provider request failed after {self._max_retries} attempts")
