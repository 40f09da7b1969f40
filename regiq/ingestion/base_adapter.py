"""
Base adapter interface and shared execution policy for regulatory sources.

Each source adapter must implement request building and item
transformation. The base class provides:
- Authentication per the adapter's AuthConfig
- Rate limiting (minute and hour token buckets)
- Hard per-attempt deadlines and retry with backoff (via HTTPClient)
- Response caching with ETag / If-Modified-Since revalidation
- Error classification into SourceResult failures
"""

import asyncio
import base64
import hashlib
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from regiq.config.settings import get_settings
from regiq.ingestion.cache import CacheEntry, ResponseCache
from regiq.ingestion.credentials import APIKeyProvider
from regiq.ingestion.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RequestTimeoutError,
)
from regiq.ingestion.policy import AdapterConfig, AuthType, RateLimitConfig
from regiq.ingestion.schemas import (
    APIRequest,
    APIResponse,
    CacheInfo,
    DateRange,
    NormalizedResult,
    SourceErrorType,
    SourceFilter,
    SourceResult,
)
from regiq.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class RateLimiter:
    """
    Simple token bucket rate limiter.

    Allows `rate` requests per `per_seconds` window, holding at most
    `capacity` tokens (defaults to `rate`).
    """

    rate: int
    per_seconds: float = 60.0
    capacity: int | None = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.capacity is None:
            self.capacity = self.rate
        self._tokens = float(self.capacity)
        self._last_update = self.clock()

    async def acquire(self) -> float:
        """
        Wait until a token is available, then consume it.

        Tokens refill continuously rather than in bursts.

        Returns:
            Seconds spent waiting (0.0 when a token was available)
        """
        async with self._lock:
            now = self.clock()
            elapsed = now - self._last_update
            self._last_update = now

            self._tokens = min(
                float(self.capacity),
                self._tokens + elapsed * (self.rate / self.per_seconds),
            )

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * self.per_seconds / self.rate
                logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._tokens = 0
                self._last_update = self.clock()
                return wait_time

            self._tokens -= 1
            return 0.0


class AdapterRateLimiter:
    """
    Gates outbound calls on both a per-minute and a per-hour bucket.

    The minute bucket holds ``burst_limit`` tokens when set, otherwise
    ``requests_per_minute`` (or 60 when the source declares no minute limit).
    """

    def __init__(
        self,
        config: RateLimitConfig,
        name: str = "adapter",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        per_minute = config.requests_per_minute or 60
        self.minute = RateLimiter(
            rate=per_minute,
            per_seconds=60.0,
            capacity=config.burst_limit or per_minute,
            clock=clock,
        )
        self.hour = RateLimiter(
            rate=config.requests_per_hour,
            per_seconds=3600.0,
            clock=clock,
        )

    async def acquire(self) -> None:
        waited = await self.hour.acquire()
        waited += await self.minute.acquire()
        if waited > 0:
            get_metrics().record_rate_limit_wait(self.name)


class BaseSourceAdapter(ABC):
    """
    Abstract base class for regulatory source adapters.

    Subclasses must implement:
        - get_source_type(): canonical source identifier (e.g. "FDA")
        - _build_request(): translate a SourceFilter into an APIRequest
        - _transform(): map one raw item onto NormalizedResult

    and may override:
        - results_keys: payload keys holding the item array, tried in order
        - default_config: the source's AdapterConfig

    The base class handles:
        - Authentication (build_request calls add_auth when a key exists)
        - Caching, rate limiting, deadlines and retries (execute_with_policy)
        - Defensive normalization (normalize never raises)
    """

    default_config: ClassVar[AdapterConfig]
    results_keys: ClassVar[tuple[str, ...]] = ("results",)

    def __init__(
        self,
        config: AdapterConfig | None = None,
        *,
        credentials: APIKeyProvider | None = None,
        client: httpx.AsyncClient | None = None,
        user_agent: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize adapter with its execution policy.

        Args:
            config: Policy override (defaults to the class's default_config)
            credentials: Source of API keys; None sends requests unauthenticated
            client: Shared httpx client (the adapter will not close it)
            user_agent: User-Agent header value (defaults from settings)
            clock: Monotonic clock for cache and rate limiter (tests inject one)
        """
        settings = get_settings()
        config = config or self.default_config
        self.config = config.with_timeout(settings.http_timeout_override_ms)
        self.user_agent = user_agent or settings.user_agent
        self._credentials = credentials

        self._http = HTTPClient(
            retry_config=self.config.retry,
            timeout=self.config.timeout_seconds,
            client=client,
            name=self.get_source_type(),
        )
        self._rate_limiter = AdapterRateLimiter(
            self.config.rate_limit, name=self.get_source_type(), clock=clock
        )
        self._cache = ResponseCache(ttl_seconds=self.config.cache.ttl_seconds, clock=clock)

    @abstractmethod
    def get_source_type(self) -> str:
        """Return the canonical source identifier."""
        ...

    @property
    def source_type(self) -> str:
        return self.get_source_type()

    @property
    def name(self) -> str:
        return f"{self.get_source_type().lower()}_adapter"

    @property
    def is_placeholder(self) -> bool:
        return False

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @abstractmethod
    def _build_request(self, source_filter: SourceFilter) -> APIRequest:
        """
        Build the unauthenticated request for a filter.

        Unknown or empty filters are omitted, never rejected. Must be pure:
        the same filter always yields the same request.
        """
        ...

    @abstractmethod
    def _transform(self, item: Mapping[str, Any]) -> NormalizedResult:
        """
        Map one raw item to NormalizedResult.

        Missing fields get defaults; this method should not raise.
        """
        ...

    def build_request(self, source_filter: SourceFilter) -> APIRequest:
        """Build the outbound request, authenticated when a key is available."""
        return self._with_credentials(self._build_request(source_filter))

    def _with_credentials(self, request: APIRequest, advance: bool = False) -> APIRequest:
        api_key = self.get_api_key(advance=advance)
        if api_key:
            return self.add_auth(request, api_key)
        return request

    def get_api_key(self, *, advance: bool = False) -> str | None:
        """Current key for this source; ``advance`` rotates to the next one."""
        if self._credentials is None:
            return None
        return self._credentials.get_api_key(self.get_source_type(), advance=advance)

    def add_auth(self, request: APIRequest, api_key: str) -> APIRequest:
        """
        Return a copy of ``request`` carrying ``api_key`` per the auth policy.

        api_key goes into the ``key_param`` query parameter when set, else the
        ``header_name`` header. bearer and oauth use an Authorization bearer
        token; basic encodes ``key:``.
        """
        auth = self.config.auth
        headers = dict(request.headers)
        url = request.url

        if auth.type == AuthType.API_KEY:
            if auth.key_param:
                url = _set_query_param(url, auth.key_param, api_key)
            elif auth.header_name:
                headers[auth.header_name] = api_key
        elif auth.type in (AuthType.BEARER, AuthType.OAUTH):
            headers["Authorization"] = f"Bearer {api_key}"
        elif auth.type == AuthType.BASIC:
            encoded = base64.b64encode(f"{api_key}:".encode()).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"

        return request.model_copy(update={"url": url, "headers": headers})

    def normalize(self, response: APIResponse | Mapping[str, Any] | None) -> list[NormalizedResult]:
        """
        Normalize a raw payload into results.

        Returns [] when the expected item array is absent or not a list.
        """
        data = response.data if isinstance(response, APIResponse) else response
        items = self._extract_items(data)

        results: list[NormalizedResult] = []
        for item in items:
            if not isinstance(item, Mapping):
                item = {}
            try:
                results.append(self._transform(item))
            except Exception as e:
                logger.error(f"Error transforming item in {self.name}: {e}", exc_info=True)
                results.append(self._fallback_result(item, e))
        return results

    def _fallback_result(self, item: Mapping[str, Any], error: Exception) -> NormalizedResult:
        """Record with defaults for an item that _transform could not map."""
        source = self.get_source_type()
        return NormalizedResult(
            id=f"{source.lower()}_{item_fingerprint(item)}",
            source=source,
            title=first_text(item, "title", "product_description", "product_name", default=f"{source} notice"),
            published_date=to_iso_datetime(None),
            metadata={"normalization_error": type(error).__name__},
        )

    def _extract_items(self, data: Any) -> list[Any]:
        if not isinstance(data, Mapping):
            return []
        for key in self.results_keys:
            items = data.get(key)
            if isinstance(items, list):
                return items
        return []

    async def execute_with_policy(self, source_filter: SourceFilter) -> SourceResult:
        """
        Run one query under the adapter's policy.

        Never raises: every failure becomes a SourceResult with
        success=False, an error message and an error_type.
        """
        source = self.get_source_type()
        metrics = get_metrics()

        # Cache entries are keyed on the unauthenticated request so key rotation
        # does not fragment the cache.
        try:
            request = self._build_request(source_filter)
        except Exception as e:
            logger.warning(f"{self.name} could not build request: {e}")
            return SourceResult.failure(source, str(e), SourceErrorType.INVALID_REQUEST)

        cache_cfg = self.config.cache
        entry: CacheEntry | None = None
        if cache_cfg.enabled:
            entry = self._cache.get(request)
            if entry is not None and self._cache.is_fresh(entry):
                metrics.record_cache(source, "hit")
                return SourceResult(
                    source=source,
                    success=True,
                    data=entry.snapshot(),
                    cache_info=CacheInfo(hit=True, ttl=cache_cfg.ttl_seconds),
                )
            metrics.record_cache(source, "miss")

        # One key per outbound send; build_request only peeks
        outbound = self._with_credentials(request, advance=True)
        if entry is not None and entry.has_validator:
            outbound = self._conditional_request(outbound, entry)

        try:
            response = await self._http.send(outbound, before_attempt=self._rate_limiter.acquire)
        except Exception as e:
            error_type = classify_error(e)
            logger.warning(
                f"{self.name} query failed: {error_type.value}: {e} "
                f"(endpoint={request.endpoint})"
            )
            return SourceResult.failure(source, str(e) or error_type.value, error_type)

        if response.not_modified:
            if entry is not None:
                self._cache.touch(request)
                metrics.record_cache(source, "revalidated")
                return SourceResult(
                    source=source,
                    success=True,
                    data=entry.snapshot(),
                    cache_info=CacheInfo(hit=True, ttl=cache_cfg.ttl_seconds, revalidated=True),
                )
            return SourceResult(source=source, success=True, data=[], cache_info=CacheInfo(hit=False))

        results = self.normalize(response)

        if cache_cfg.enabled:
            self._cache.put(
                request,
                results,
                etag=_header(response.headers, "etag") if cache_cfg.use_etag else None,
                last_modified=(
                    _header(response.headers, "last-modified")
                    if cache_cfg.use_if_modified_since
                    else None
                ),
            )

        logger.info(f"{self.name} returned {len(results)} results")
        return SourceResult(
            source=source,
            success=True,
            data=results,
            cache_info=CacheInfo(
                hit=False, ttl=cache_cfg.ttl_seconds if cache_cfg.enabled else None
            ),
        )

    def _conditional_request(self, request: APIRequest, entry: CacheEntry) -> APIRequest:
        headers = dict(request.headers)
        if entry.etag:
            headers["If-None-Match"] = entry.etag
        if entry.last_modified:
            headers["If-Modified-Since"] = entry.last_modified
        return request.model_copy(update={"headers": headers})

    async def aclose(self) -> None:
        """Release the adapter's HTTP client."""
        await self._http.aclose()


def classify_error(exc: BaseException) -> SourceErrorType:
    """
    Map an exception from the transport layer onto a SourceErrorType.

    Uses the exception class and HTTP status, never the message text.
    """
    if isinstance(exc, (RequestTimeoutError, httpx.TimeoutException, TimeoutError)):
        return SourceErrorType.TIMEOUT
    if isinstance(exc, RateLimitError):
        return SourceErrorType.RATE_LIMIT
    if isinstance(exc, HTTPClientError):
        status = exc.status_code
        if status is None:
            if isinstance(exc.__cause__, httpx.TransportError):
                return SourceErrorType.NETWORK_ERROR
            return SourceErrorType.UNKNOWN_ERROR
        if status in (401, 403):
            return SourceErrorType.AUTH_ERROR
        if status == 429:
            return SourceErrorType.RATE_LIMIT
        if status >= 500:
            return SourceErrorType.SERVER_ERROR
        if status >= 400:
            return SourceErrorType.INVALID_REQUEST
        return SourceErrorType.UNKNOWN_ERROR
    if isinstance(exc, httpx.TransportError):
        return SourceErrorType.NETWORK_ERROR
    return SourceErrorType.UNKNOWN_ERROR


def _set_query_param(url: str, name: str, value: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != name]
    query.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


# Common normalization utilities used across adapters


def build_url(base_url: str, params: list[tuple[str, str]]) -> str:
    """Append query parameters to a base URL, preserving their order."""
    if not params:
        return base_url
    return f"{base_url}?{urlencode(params)}"


def date_range_params(value: Any, min_param: str, max_param: str) -> list[tuple[str, str]]:
    """Expand a DateRange filter into its (optional) lower and upper query params."""
    if not isinstance(value, DateRange):
        return []
    params: list[tuple[str, str]] = []
    if value.min:
        params.append((min_param, value.min))
    if value.max:
        params.append((max_param, value.max))
    return params


def clean_text(text: str) -> str:
    """
    Clean text content by removing excessive whitespace and control characters.

    Args:
        text: Raw text content

    Returns:
        Cleaned text
    """
    text = " ".join(text.split())
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    return text.strip()


def stable_hash(value: str) -> str:
    """
    Generate a stable, deterministic hash from a string.

    Uses SHA256 truncated to 16 hex characters (64 bits). Unlike Python's
    built-in hash(), this is deterministic across process restarts.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def item_fingerprint(item: Mapping[str, Any]) -> str:
    """Stable id for items that carry no native identifier."""
    return stable_hash(repr(sorted((str(k), repr(v)) for k, v in item.items())))


def first_text(item: Mapping[str, Any], *keys: str, default: str = "") -> str:
    """Return the first non-empty value among ``keys`` as cleaned text."""
    for key in keys:
        value = item.get(key)
        if value is None or value == "" or isinstance(value, (dict, list)):
            continue
        text = clean_text(str(value))
        if text:
            return text
    return default


def as_list(value: Any) -> list[str]:
    """Coerce a filter value (string, list, or None) into a list of strings."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(v) for v in value if v not in (None, "")]
    return [str(value)]


_DATE_FORMATS = ("%Y%m%d", "%m/%d/%Y", "%Y-%m-%d")


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse a source date into an aware UTC datetime, or None.

    Accepts ISO strings, compact YYYYMMDD (openFDA) and MM/DD/YYYY.
    """
    parsed: datetime | None = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        # Offsets that push year 1 or 9999 out of range
        return None


def to_iso_datetime(value: Any, default: Any = None) -> str:
    """
    Parse a source date into an ISO-8601 UTC timestamp.

    Unparseable or missing values fall back to ``default`` (current UTC time
    when None).
    """
    parsed = parse_datetime(value) or parse_datetime(default) or datetime.now(timezone.utc)
    return parsed.isoformat()
