"""
Background eviction of stale cache entries.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from starlette.concurrency import run_in_threadpool

from shared.logging import get_logger
from .expiry import ExpiryPolicy
from .store import CacheCorruptionError, CacheStore, CacheStoreError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


@dataclass
class SweepResult:
    """Outcome of one sweep cycle."""
    scanned: int = 0
    evicted: int = 0
    errors: int = 0
    skipped: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EvictionSweeper:
    """Periodically removes entries the expiry policy marks stale.

    The interval is independent of the TTL. Cycles never overlap: the
    timer loop runs them one after another, and :meth:`sweep_once` skips
    when another cycle (e.g. a manual one) is still in progress.
    """

    def __init__(
        self,
        store: CacheStore,
        policy: ExpiryPolicy,
        interval_seconds: float = 600,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.policy = policy
        self.interval_seconds = interval_seconds
        self.clock = clock or store.clock
        self.metrics = metrics
        self.logger = get_logger("proxy.sweeper")

        self._cycle_lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None
        self.running = False
        self.last_result: Optional[SweepResult] = None

    def sweep_once(self, dry_run: bool = False) -> SweepResult:
        """Run one cycle. With ``dry_run`` stale entries are counted, not removed."""
        if not self._cycle_lock.acquire(blocking=False):
            self.logger.warning("Sweep cycle already in progress, skipping")
            return SweepResult(skipped=True)

        started = time.monotonic()
        result = SweepResult()
        try:
            now = self.clock()
            try:
                keys = self.store.list_keys()
            except CacheStoreError as exc:
                self.logger.error("Failed to list cache entries", error=str(exc))
                result.errors += 1
                keys = []

            for key in keys:
                result.scanned += 1
                try:
                    if self._sweep_entry(key, now, dry_run):
                        result.evicted += 1
                except CacheCorruptionError as exc:
                    self.logger.warning("Skipping unreadable cache entry", key=key, error=str(exc))
                    result.errors += 1
                except CacheStoreError as exc:
                    self.logger.error("Failed to evict cache entry", key=key, error=str(exc))
                    result.errors += 1
        finally:
            result.duration_seconds = time.monotonic() - started
            self._cycle_lock.release()

        self.last_result = result
        if self.metrics and not dry_run:
            self.metrics.record_evictions(result.evicted)
            self.metrics.get_metric("cache_sweep_duration_seconds").observe(result.duration_seconds)

        self.logger.info(
            "Cache sweep completed",
            scanned=result.scanned,
            evicted=result.evicted,
            errors=result.errors,
            dry_run=dry_run,
            duration_ms=round(result.duration_seconds * 1000, 2),
        )
        return result

    def _sweep_entry(self, key: str, now: datetime, dry_run: bool) -> bool:
        if dry_run:
            entry = self.store.get(key)
            return entry is not None and self.policy.is_stale(entry.stored_at, now)

        evicted = self.store.evict_if(key, lambda entry: self.policy.is_stale(entry.stored_at, now))
        if evicted:
            self.logger.debug("Removed expired cache entry", key=key)
        return evicted

    async def start(self):
        """Start the sweep timer."""
        if self._task and not self._task.done():
            return
        self.running = True
        self._task = asyncio.create_task(self._sweep_loop())
        self.logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Cancel the sweep timer and wait for it to exit."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self.logger.info("Cache sweeper stopped")

    async def _sweep_loop(self):
        """Main sweep loop."""
        while self.running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await run_in_threadpool(self.sweep_once)
            except Exception as e:
                self.logger.error("Cache sweep error", error=str(e), exc_info=True)
