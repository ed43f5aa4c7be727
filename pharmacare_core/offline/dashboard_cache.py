# =============================================================================
# pharmacare_core/offline/dashboard_cache.py
# Short-Lived Cache for Dashboard Data
# =============================================================================
"""
DashboardCache - keeps derived dashboard data for a fixed window.

The entry is stored in the Local Store's key-value partition as
``{"data": ..., "timestamp": <epoch ms>}`` and is dropped as soon as one of
the watched collections changes.
"""

from __future__ import annotations
import time
from typing import Any, Callable, Iterable, List, Optional
import logging

from pharmacare_core.errors import error_boundary
from pharmacare_core.offline.event_bus import ChangeNotificationBus, Unsubscribe, collection_topic
from pharmacare_core.offline.local_store import LocalStore

logger = logging.getLogger(__name__)

DASHBOARD_COLLECTIONS = ("medicines", "patients", "prescriptions", "sales")


def _epoch_ms() -> float:
    return time.time() * 1000


class DashboardCache:
    """
    Usage:
        cache = DashboardCache(local_store)
        cache.invalidate_on(bus)
        data = cache.get()
        if data is None:
            data = build_dashboard()
            cache.save(data)
    """

    CACHE_KEY = "dashboard_cache"
    DEFAULT_TTL = 60.0  # seconds

    def __init__(
        self,
        store: LocalStore,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = _epoch_ms,
    ):
        self._store = store
        self.ttl = ttl
        self._clock = clock

    def _load_entry(self) -> Optional[dict]:
        entry = self._store.read_json(self.CACHE_KEY)
        if not isinstance(entry, dict) or not isinstance(entry.get("timestamp"), (int, float)):
            if entry is not None:
                logger.warning("Dashboard cache entry is malformed, ignoring it")
            return None
        return entry

    @error_boundary(default_return=None)
    def save(self, data: Any) -> None:
        self._store.write_json(self.CACHE_KEY, {"data": data, "timestamp": self._clock()})
        logger.debug("Dashboard data cached")

    def age_seconds(self) -> Optional[float]:
        """Age of the cached entry, or None when there is none."""
        entry = self._load_entry()
        if entry is None:
            return None
        return (self._clock() - entry["timestamp"]) / 1000

    def is_valid(self) -> bool:
        age = self.age_seconds()
        return age is not None and age <= self.ttl

    def get(self) -> Optional[Any]:
        """Cached data if present and fresh, otherwise None."""
        entry = self._load_entry()
        if entry is None:
            return None
        age = (self._clock() - entry["timestamp"]) / 1000
        if age > self.ttl:
            logger.debug(f"Dashboard cache expired ({age:.0f}s old)")
            return None
        return entry.get("data")

    @error_boundary(default_return=None)
    def invalidate(self, *_: Any) -> None:
        """Drop the cached entry. Accepts and ignores a bus payload."""
        self._store.remove_json(self.CACHE_KEY)
        logger.debug("Dashboard cache invalidated")

    def invalidate_on(
        self,
        bus: ChangeNotificationBus,
        collections: Iterable[str] = DASHBOARD_COLLECTIONS,
    ) -> List[Unsubscribe]:
        """Invalidate whenever one of the collections is mutated."""
        return [bus.subscribe(collection_topic(c), self.invalidate) for c in collections]
