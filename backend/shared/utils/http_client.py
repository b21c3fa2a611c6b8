"""
Async HTTP client wrapper for upstream requests.
Includes retry logic, timeout management, error classification and metrics.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from shared.errors import (
    ClientError,
    NetworkError,
    NotFound,
    ParseError,
    RateLimited,
    ServerError,
    UpstreamError,
)
from shared.utils.logging import get_logger
from shared.utils.metrics import UPSTREAM_LATENCY, UPSTREAM_REQUESTS
from shared.utils.retry import RetryPolicy

logger = get_logger(__name__)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in seconds; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def classify_response(resp: httpx.Response, url: str) -> Optional[UpstreamError]:
    """Map a non-2xx response to the error taxonomy. Returns None on success."""
    status = resp.status_code
    if status < 400:
        return None
    if status == 429:
        return RateLimited(url, retry_after=_parse_retry_after(resp.headers.get("Retry-After")))
    if status >= 500:
        return ServerError(status, url, retry_after=_parse_retry_after(resp.headers.get("Retry-After")))
    if status == 404:
        return NotFound(url)
    return ClientError(status, url)


def decode_json(resp: httpx.Response, url: str) -> Any:
    """Decode a JSON body, raising ParseError for empty or non-JSON payloads."""
    text = resp.text
    if not text.strip():
        raise ParseError("Response body is empty", url)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("upstream_malformed_json", url=url, preview=text[:200], error=str(exc))
        raise ParseError(f"Response is not valid JSON: {exc.msg}", url) from exc


class UpstreamHTTPClient:
    """
    Async HTTP client for the schedule/game API.
    Handles timeouts, retries with a RetryPolicy, and records metrics per request.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 30.0,
        connect_timeout_s: float = 5.0,
        retry_policy: RetryPolicy | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s
        self._connect_timeout = min(connect_timeout_s, timeout_s)
        self._retry = retry_policy or RetryPolicy()
        self._default_headers = headers or {}
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None
        self.request_count = 0

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=self._connect_timeout),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "UpstreamHTTPClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _attempt(self, path: str, params: dict[str, Any] | None, endpoint: str) -> Any:
        """One request. Raises a classified UpstreamError on any failure."""
        assert self._client is not None
        url = f"{self._base_url}/{path.lstrip('/')}"
        start_time = time.perf_counter()
        status = "unknown"
        self.request_count += 1
        try:
            resp = await self._client.get(path, params=params)
            status = str(resp.status_code)
            error = classify_response(resp, str(resp.request.url))
            if error is not None:
                raise error
            return decode_json(resp, str(resp.request.url))
        except httpx.TimeoutException as exc:
            status = "timeout"
            raise NetworkError(f"Request timed out: {exc.__class__.__name__}", url, timeout=True) from exc
        except httpx.TransportError as exc:
            status = "connection_error"
            raise NetworkError(f"Connection failed: {exc}", url) from exc
        finally:
            elapsed_s = time.perf_counter() - start_time
            UPSTREAM_REQUESTS.labels(endpoint=endpoint, status=status).inc()
            UPSTREAM_LATENCY.labels(endpoint=endpoint).observe(elapsed_s)

    async def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        endpoint: str = "unknown",
    ) -> Any:
        """
        Perform a GET request with retry, metrics, and structured logging.

        Args:
            path: API path relative to base_url.
            params: Query parameters.
            endpoint: Endpoint label for metrics and logs.

        Returns:
            The decoded JSON payload.

        Raises:
            UpstreamError: The classified error of the last attempt once the
                retry policy gives up, or immediately for non-retryable errors.
        """
        if not self._client:
            raise RuntimeError("UpstreamHTTPClient not started. Call start() first.")

        attempt = 0
        while True:
            attempt += 1
            try:
                payload = await self._attempt(path, params, endpoint)
            except UpstreamError as exc:
                if not self._retry.should_retry(exc, attempt):
                    logger.warning(
                        "upstream_request_failed",
                        endpoint=endpoint,
                        path=path,
                        error=str(exc),
                        error_type=type(exc).__name__,
                        attempt=attempt,
                    )
                    raise
                delay = self._retry.delay_for(attempt, exc)
                logger.warning(
                    "upstream_retrying",
                    endpoint=endpoint,
                    path=path,
                    error_type=type(exc).__name__,
                    attempt=attempt,
                    max_attempts=self._retry.max_attempts,
                    delay_s=round(delay, 2),
                )
                await self._sleep(delay)
                continue

            logger.debug("upstream_request_success", endpoint=endpoint, path=path, attempt=attempt)
            return payload
