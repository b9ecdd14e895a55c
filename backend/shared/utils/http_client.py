"""
Async HTTP client wrapper for the live-scoring feed and the switcher API.
Includes retry logic, timeout management, and latency metrics.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.utils.logging import get_logger

logger = get_logger(__name__)


class RetryingHTTPClient:
    """
    Thin httpx.AsyncClient wrapper.
    Retries timeouts, transport errors and 5xx responses with linear backoff;
    4xx responses are returned to the caller untouched.
    """

    def __init__(
        self,
        name: str,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout_s: float = 10.0,
        max_retries: int = 2,
        backoff_s: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._name = name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s
        self._max_retries = max(1, max_retries)
        self._backoff_s = backoff_s
        self._default_headers = headers or {"accept": "application/json"}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def started(self) -> bool:
        return self._client is not None

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """
        GET with retry.

        Returns:
            The last response received; may carry a 4xx/5xx status.

        Raises:
            httpx.TimeoutException / httpx.TransportError: If every attempt failed
            without a response.
        """
        if not self._client:
            raise RuntimeError(f"{self._name} HTTP client not started. Call start() first.")

        last_exc: Optional[Exception] = None
        for attempt in range(1, self._max_retries + 1):
            start_time = time.perf_counter()
            try:
                resp = await self._client.get(path, params=params)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
                logger.warning(
                    "http_request_failed",
                    client=self._name,
                    path=path,
                    attempt=attempt,
                    error=str(exc) or type(exc).__name__,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff_s * attempt)
                continue

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            if resp.status_code >= 500 and attempt < self._max_retries:
                logger.warning(
                    "http_server_error",
                    client=self._name,
                    path=path,
                    status=resp.status_code,
                    attempt=attempt,
                )
                await asyncio.sleep(self._backoff_s * attempt)
                continue

            logger.debug(
                "http_request_done",
                client=self._name,
                path=path,
                status=resp.status_code,
                latency_ms=round(elapsed_ms, 2),
            )
            return resp

        if last_exc:
            raise last_exc
        raise RuntimeError(f"{self._name} request failed after {self._max_retries} attempts")
