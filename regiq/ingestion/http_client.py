"""
HTTP infrastructure layer with retry logic and API key rotation.

Provides:
- APIKeyRotator: Round-robin rotation for comma-separated API keys
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async HTTP client with hard per-attempt deadlines and retry

This layer separates HTTP concerns (retries, backoff, deadlines) from
domain logic (request building and normalization) in the adapters.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from regiq.ingestion.schemas import APIRequest, APIResponse
from regiq.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.RemoteProtocolError,
)


@dataclass
class APIKeyRotator:
    """
    Round-robin API key rotation from comma-separated environment variable.

    Supports multiple API keys for the same service, rotating through them
    to distribute load and avoid rate limits hitting a single key.

    Example:
        rotator = APIKeyRotator.from_env_var("key1,key2,key3")
        rotator.peek_key()      # "key1", does not rotate
        rotator.get_key_sync()  # "key1", next call returns "key2"
    """

    keys: list[str]
    _current_index: int = field(default=0, repr=False)

    @classmethod
    def from_env_var(cls, value: str | None) -> "APIKeyRotator | None":
        """
        Create rotator from comma-separated environment variable value.

        Args:
            value: Comma-separated API keys or single key, or None

        Returns:
            APIKeyRotator instance or None if no keys provided
        """
        if not value:
            return None

        keys = [k.strip() for k in value.split(",") if k.strip()]

        if not keys:
            return None

        return cls(keys=keys)

    def peek_key(self) -> str:
        """Key the next get_key_sync() call will return, without rotating."""
        return self.keys[self._current_index]

    def get_key_sync(self) -> str:
        """
        Get the next API key synchronously.

        Safe on a single event loop since there is no await between the
        read and the index update.
        """
        key = self.keys[self._current_index]
        self._current_index = (self._current_index + 1) % len(self.keys)
        return key

    @property
    def key_count(self) -> int:
        """Return the number of available keys."""
        return len(self.keys)


@dataclass(frozen=True)
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    ``max_attempts`` counts every attempt, including the first one.

    Formula (attempt is 1-indexed):
        min(max_delay_ms, base_delay_ms * exponential_base^(attempt-1))
    scaled by a uniform factor in [0.5, 1.0] when jitter is on.
    """

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10_000
    exponential_base: float = 2.0
    jitter: bool = True

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration after a failed attempt.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Backoff duration in seconds
        """
        delay_ms = self.base_delay_ms * (self.exponential_base ** max(attempt - 1, 0))
        delay_ms = min(delay_ms, self.max_delay_ms)

        if self.jitter:
            delay_ms *= 0.5 + random.random() * 0.5

        return delay_ms / 1000.0

    def is_retryable_status(self, status_code: int) -> bool:
        """429 and every 5xx are retried; other 4xx are final."""
        return status_code == 429 or status_code >= 500

    def is_retryable_exception(self, exc: Exception) -> bool:
        """Timeouts (including the hard deadline) and connection failures are retried."""
        return isinstance(exc, (*RETRYABLE_EXCEPTIONS, RequestTimeoutError))


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when rate limit is hit and all retries exhausted."""

    pass


class RequestTimeoutError(HTTPClientError):
    """Raised when an attempt exceeds its hard deadline."""

    pass


class HTTPClient:
    """
    Async HTTP client with per-attempt deadlines and retry logic.

    Features:
    - Exponential backoff on retryable errors
    - Automatic retry on 429, 5xx status codes
    - Automatic retry on timeout/connection errors
    - Each attempt is cancelled once ``timeout`` seconds elapse
    - Optional ``before_attempt`` hook (used for rate limiting) awaited
      before every outbound attempt, retries included

    Example:
        async with HTTPClient(RetryConfig(max_attempts=3), timeout=30.0) as client:
            response = await client.send(request)
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        name: str = "http",
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Hard per-attempt deadline in seconds.
            client: Shared httpx client. When None one is created lazily and
                owned (closed) by this instance.
            name: Label used in logs and metrics (usually the source type).
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.name = name
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HTTPClient":
        self._get_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send(
        self,
        request: APIRequest,
        before_attempt: Callable[[], Awaitable[None]] | None = None,
    ) -> APIResponse:
        """
        Execute an APIRequest with retry logic.

        Returns:
            APIResponse on 2xx or 304

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
            RequestTimeoutError: When the final attempt hit its deadline
        """
        client = self._get_client()
        max_attempts = max(1, self.retry_config.max_attempts)
        last_status_code: int | None = None
        last_response_body: str | None = None

        for attempt in range(1, max_attempts + 1):
            if before_attempt is not None:
                await before_attempt()

            try:
                try:
                    async with asyncio.timeout(self.timeout):
                        response = await client.request(
                            request.method,
                            request.url,
                            headers=request.headers or None,
                            json=request.body,
                        )
                except TimeoutError as e:
                    raise RequestTimeoutError(
                        f"Request to {request.endpoint} exceeded {self.timeout:.1f}s deadline"
                    ) from e

            except Exception as e:
                if not self.retry_config.is_retryable_exception(e):
                    raise
                if attempt < max_attempts:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable error {type(e).__name__} for {request.endpoint}, "
                        f"attempt {attempt}/{max_attempts}, "
                        f"backing off {backoff:.2f}s"
                    )
                    get_metrics().record_http_retry(self.name, type(e).__name__)
                    await asyncio.sleep(backoff)
                    continue

                if isinstance(e, RequestTimeoutError):
                    raise
                if isinstance(e, httpx.TimeoutException):
                    raise RequestTimeoutError(
                        f"Request timed out after {attempt} attempts: {e}",
                        status_code=last_status_code,
                    ) from e
                raise HTTPClientError(
                    f"Network error after {attempt} attempts: {type(e).__name__}: {e}",
                    status_code=last_status_code,
                ) from e

            if self.retry_config.is_retryable_status(response.status_code):
                last_status_code = response.status_code
                last_response_body = response.text

                if attempt < max_attempts:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable status {response.status_code} from {request.endpoint}, "
                        f"attempt {attempt}/{max_attempts}, "
                        f"backing off {backoff:.2f}s"
                    )
                    get_metrics().record_http_retry(self.name, str(response.status_code))
                    await asyncio.sleep(backoff)
                    continue

                if response.status_code == 429:
                    raise RateLimitError(
                        f"HTTP 429: rate limit exceeded for {request.endpoint} after {attempt} attempts",
                        status_code=response.status_code,
                        response_body=last_response_body,
                    )
                raise HTTPClientError(
                    f"HTTP {response.status_code}: request failed after {attempt} attempts",
                    status_code=response.status_code,
                    response_body=last_response_body,
                )

            if response.status_code == 304:
                return APIResponse(status=304, headers=dict(response.headers), data=None)

            if response.status_code >= 400:
                raise HTTPClientError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            return APIResponse(
                status=response.status_code,
                headers=dict(response.headers),
                data=_decode_body(response),
            )

        # Should not reach here, but just in case
        raise HTTPClientError(
            f"Request failed after {max_attempts} attempts",
            status_code=last_status_code,
            response_body=last_response_body,
        )


def _decode_body(response: httpx.Response) -> Any:
    """Decode JSON bodies; anything else is handed to the adapter as text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
