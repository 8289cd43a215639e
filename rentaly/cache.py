"""
In-memory blocked-dates cache with TTL.

Blocked-date lookups are read far more often than intervals change, and their
freshness is not safety-critical: the authoritative conflict check happens at
approval time. Entries live for a few seconds and are dropped explicitly when
an approval or cancellation changes a listing's intervals in this process.

For distributed deployments with multiple instances, the TTL bounds staleness.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Optional

from rentaly.config import BLOCKED_DATES_CACHE_SECONDS
from rentaly.utils.datetime import utc_now

CacheKey = tuple[str, str, Optional[str], Optional[str]]


class BlockedDatesCache:
    """
    In-memory cache with time-to-live (TTL) expiration.

    Keys are (listing_type, listing_id, range_from, range_to) so that every
    window of a listing can be invalidated together.

    Attributes:
        ttl: Time-to-live for cached entries
        _cache: Internal storage mapping key to (value, expires_at) tuples

    Example:
        >>> cache = BlockedDatesCache(ttl_seconds=5)
        >>> cache.set(("property", "p1", None, None), {"intervals": [], "dates": []})
        >>> cache.get(("property", "p1", None, None))
        {'intervals': [], 'dates': []}
        >>> cache.invalidate_listing("property", "p1")
    """

    def __init__(self, ttl_seconds: int = 5):
        """
        Initialize cache with specified TTL.

        Args:
            ttl_seconds: Time-to-live in seconds for cached entries (0 disables caching)
        """
        self.ttl = timedelta(seconds=ttl_seconds)
        self._cache: dict[CacheKey, tuple[Any, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[Any]:
        """
        Get cached value if not expired.

        Returns:
            Cached value if found and not expired, None otherwise
        """
        with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if utc_now() < expires_at:
                    return value
                # Expired - remove from cache
                del self._cache[key]
        return None

    def set(self, key: CacheKey, value: Any) -> None:
        if self.ttl.total_seconds() <= 0:
            return
        with self._lock:
            self._cache[key] = (value, utc_now() + self.ttl)

    def invalidate_listing(self, listing_type: str, listing_id: str) -> None:
        """
        Drop every cached window of one listing.

        Args:
            listing_type: "property" or "vehicle"
            listing_id: Listing id
        """
        with self._lock:
            for key in [k for k in self._cache if k[0] == listing_type and k[1] == listing_id]:
                del self._cache[key]

    def clear(self) -> None:
        """
        Clear all cached entries.

        Useful for testing or emergency cache invalidation.
        """
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        return len(self._cache)


# Global cache instance
blocked_dates_cache = BlockedDatesCache(ttl_seconds=BLOCKED_DATES_CACHE_SECONDS)
