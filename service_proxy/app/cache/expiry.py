"""
Time-based expiry for cache entries.
"""

from datetime import datetime, timedelta


def is_stale(stored_at: datetime, now: datetime, ttl: timedelta) -> bool:
    """An entry is stale once its age strictly exceeds ``ttl``."""
    return now - stored_at > ttl


class ExpiryPolicy:
    """Process-wide TTL, fixed at startup."""

    def __init__(self, ttl: timedelta):
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        self.ttl = ttl

    def is_stale(self, stored_at: datetime, now: datetime) -> bool:
        return is_stale(stored_at, now, self.ttl)

    def expires_at(self, stored_at: datetime) -> datetime:
        return stored_at + self.ttl
