"""
Proxy caching package.

Disk cache primitives used by the proxy: keys are derived from method and
URL, entries are gzip-compressed on disk, and a background sweeper removes
what the expiry policy marks stale.
"""

from .keys import derive_key
from .expiry import ExpiryPolicy, is_stale
from .store import CacheEntry, CacheStore, CacheStoreError, CacheCorruptionError
from .sweeper import EvictionSweeper, SweepResult

__all__ = [
    "derive_key",
    "ExpiryPolicy",
    "is_stale",
    "CacheEntry",
    "CacheStore",
    "CacheStoreError",
    "CacheCorruptionError",
    "EvictionSweeper",
    "SweepResult",
]
