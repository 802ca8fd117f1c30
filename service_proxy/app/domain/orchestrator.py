"""
Request orchestration for the caching proxy.

One call to :meth:`ProxyOrchestrator.handle` walks a request through
validate -> derive key -> cache lookup -> (hit: respond cached) or
(miss: fetch upstream -> store -> respond fetched). The cache is
best-effort: unreadable entries count as misses and failed writes never
fail the request.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple, TYPE_CHECKING

from starlette.concurrency import run_in_threadpool

from shared.logging import get_logger
from shared.errors import BadRequestError, InternalError
from ..adapters.upstream_client import UpstreamClient, UpstreamResponse
from ..cache.expiry import ExpiryPolicy
from ..cache.keys import derive_key
from ..cache.store import CacheCorruptionError, CacheEntry, CacheStore, CacheStoreError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CACHE_STATUS_HEADER = "X-Cache"
CACHE_HIT = "HIT"
CACHE_MISS = "MISS"

# Entries written without a recorded content type
DEFAULT_CACHED_CONTENT_TYPE = "application/json"


@dataclass
class ProxyResult:
    """What the route writes back to the client."""
    status_code: int
    body: bytes
    cache_status: str
    headers: List[Tuple[str, str]] = field(default_factory=list)


class ProxyOrchestrator:
    """Serves proxied requests from the disk cache or the upstream."""

    def __init__(
        self,
        store: CacheStore,
        policy: ExpiryPolicy,
        upstream: UpstreamClient,
        *,
        vary_headers: Iterable[str] = (),
        cache_error_responses: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.policy = policy
        self.upstream = upstream
        self.vary_headers = tuple(vary_headers)
        self.cache_error_responses = cache_error_responses
        self.clock = clock or store.clock
        self.metrics = metrics
        self.logger = get_logger("proxy.orchestrator")

    async def handle(
        self,
        method: str,
        url: Optional[str],
        headers: Iterable[Tuple[str, str]] = (),
    ) -> ProxyResult:
        if not url:
            raise BadRequestError("missing url parameter")

        headers = list(headers)
        key = derive_key(method, url, dict(headers), self.vary_headers)

        entry = await self._lookup(key, url)
        if entry is not None:
            return self._respond_cached(entry)

        response = await self.upstream.fetch(method, url, headers)

        if self._is_cacheable(response):
            await self._store(key, url, response)

        return self._respond_fetched(response)

    async def _lookup(self, key: str, url: str) -> Optional[CacheEntry]:
        try:
            entry = await run_in_threadpool(self.store.get, key)
        except CacheCorruptionError as exc:
            self.logger.warning("Unreadable cache entry, treating as miss", key=key, url=url, error=str(exc))
            self._record_lookup("corrupt")
            return None
        except CacheStoreError as exc:
            self.logger.error("Cache read failed", key=key, url=url, error=str(exc))
            self._record_lookup("error")
            raise InternalError(f"cache error: {exc}", {"key": key})

        if entry is None:
            self._record_lookup("miss")
            return None

        if self.policy.is_stale(entry.stored_at, self.clock()):
            self._record_lookup("stale")
            await self._discard_stale(key)
            return None

        self._record_lookup("hit")
        return entry

    async def _discard_stale(self, key: str):
        now = self.clock()
        try:
            removed = await run_in_threadpool(
                self.store.evict_if, key, lambda entry: self.policy.is_stale(entry.stored_at, now)
            )
        except CacheStoreError as exc:
            self.logger.warning("Failed to remove stale cache entry", key=key, error=str(exc))
            return
        if removed and self.metrics:
            self.metrics.record_evictions(1, reason="lazy")

    def _is_cacheable(self, response: UpstreamResponse) -> bool:
        return self.cache_error_responses or 200 <= response.status_code < 300

    async def _store(self, key: str, url: str, response: UpstreamResponse):
        try:
            await run_in_threadpool(
                self.store.set, key, response.body, response.content_type, response.status_code
            )
        except CacheStoreError as exc:
            self.logger.error("Error caching response", key=key, url=url, error=str(exc))
            if self.metrics:
                self.metrics.record_cache_store_failure()

    def _respond_cached(self, entry: CacheEntry) -> ProxyResult:
        return ProxyResult(
            status_code=entry.status_code,
            body=entry.payload,
            cache_status=CACHE_HIT,
            headers=[
                ("Content-Type", entry.content_type or DEFAULT_CACHED_CONTENT_TYPE),
                (CACHE_STATUS_HEADER, CACHE_HIT),
            ],
        )

    def _respond_fetched(self, response: UpstreamResponse) -> ProxyResult:
        headers = [
            (name, value) for name, value in response.headers
            if name.lower() != CACHE_STATUS_HEADER.lower()
        ]
        headers.append((CACHE_STATUS_HEADER, CACHE_MISS))
        return ProxyResult(
            status_code=response.status_code,
            body=response.body,
            cache_status=CACHE_MISS,
            headers=headers,
        )

    def _record_lookup(self, result: str):
        if self.metrics:
            self.metrics.record_cache_lookup(result)
