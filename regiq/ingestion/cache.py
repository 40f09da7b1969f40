"""
In-memory response cache for source adapters.

Stores the normalized results of a request together with the validators the
source returned (ETag, Last-Modified) so a stale entry can be revalidated with
a conditional request instead of being refetched in full.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from regiq.ingestion.schemas import APIRequest, NormalizedResult


@dataclass
class CacheEntry:
    results: list[NormalizedResult]
    stored_at: float
    etag: str | None = None
    last_modified: str | None = None

    @property
    def has_validator(self) -> bool:
        return bool(self.etag or self.last_modified)

    def snapshot(self) -> list[NormalizedResult]:
        """Copies of the cached records; callers may mutate them freely."""
        return [r.model_copy(deep=True) for r in self.results]


@dataclass
class ResponseCache:
    """
    TTL cache keyed by ``"METHOD url"``.

    One instance belongs to one adapter; it is never shared across sources.

    Example:
        cache = ResponseCache(ttl_seconds=300)
        entry = cache.get(request)
        if entry and cache.is_fresh(entry):
            return entry.results
    """

    ttl_seconds: int = 300
    max_entries: int = 256
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    _entries: dict[str, CacheEntry] = field(default_factory=dict, repr=False)

    def get(self, request: APIRequest) -> CacheEntry | None:
        return self._entries.get(request.cache_key)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.stored_at < self.ttl_seconds

    def put(
        self,
        request: APIRequest,
        results: list[NormalizedResult],
        etag: str | None = None,
        last_modified: str | None = None,
    ) -> CacheEntry:
        """Store results for a request, evicting the oldest entry when full."""
        key = request.cache_key
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
            del self._entries[oldest]

        entry = CacheEntry(
            results=[r.model_copy(deep=True) for r in results],
            stored_at=self.clock(),
            etag=etag,
            last_modified=last_modified,
        )
        self._entries[key] = entry
        return entry

    def touch(self, request: APIRequest) -> CacheEntry | None:
        """Mark an entry fresh again after a 304 Not Modified."""
        entry = self._entries.get(request.cache_key)
        if entry is not None:
            entry.stored_at = self.clock()
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
