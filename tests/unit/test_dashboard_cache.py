# =============================================================================
# tests/unit/test_dashboard_cache.py
# Unit Tests for DashboardCache
# =============================================================================

import pytest

from pharmacare_core.offline.dashboard_cache import DashboardCache


class MillisClock:
    def __init__(self, now: float = 1_700_000_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds * 1000


@pytest.fixture
def ms_clock():
    return MillisClock()


@pytest.fixture
def cache(local_store, ms_clock):
    return DashboardCache(local_store, clock=ms_clock)


class TestDashboardCache:
    """Sixty-second cache for dashboard data"""

    def test_empty(self, cache):
        assert cache.get() is None
        assert cache.age_seconds() is None
        assert cache.is_valid() is False

    def test_fresh_hit(self, cache, ms_clock):
        cache.save({"total_sales": 12})
        ms_clock.advance(59)

        assert cache.get() == {"total_sales": 12}
        assert cache.age_seconds() == pytest.approx(59)
        assert cache.is_valid()

    def test_expired(self, cache, ms_clock):
        cache.save({"total_sales": 12})
        ms_clock.advance(61)

        assert cache.get() is None
        assert not cache.is_valid()

    def test_corrupt_entry(self, cache, backend):
        backend.set("pharmacare_dashboard_cache", '{"data": 1}')
        assert cache.get() is None

    def test_invalidate(self, cache):
        cache.save([1, 2])
        cache.invalidate()
        assert cache.get() is None

    def test_invalidated_by_collection_mutation(self, cache, bus):
        cache.invalidate_on(bus, ["sales"])
        cache.save({"total_sales": 1})

        bus.publish("medicinesUpdated", {})
        assert cache.get() == {"total_sales": 1}

        bus.publish("salesUpdated", {"id": "9"})
        assert cache.get() is None

    def test_stop_invalidating(self, cache, bus):
        [unsubscribe] = cache.invalidate_on(bus, ["sales"])
        unsubscribe()
        cache.save(1)
        bus.publish("salesUpdated", {})
        assert cache.get() == 1

    def test_cache_does_not_mark_pending(self, cache, local_store):
        cache.save({"x": 1})
        assert local_store.get_pending_sync() == []
