"""Tests for the TTL cache."""

import pytest

from office_ingest.services.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    """Tests for TTLCache."""

    def test_get_before_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl=60, clock=clock)
        cache.set(1, "asst_1")

        clock.now += 59
        assert cache.get(1) == "asst_1"

    def test_expired_entry_evicted(self):
        clock = FakeClock()
        cache = TTLCache(ttl=60, clock=clock)
        cache.set(1, "asst_1")

        clock.now += 60
        assert cache.get(1) is None
        assert len(cache) == 0

    def test_invalidate_and_clear(self):
        cache = TTLCache(ttl=60)
        cache.set(1, "a")
        cache.set(2, "b")

        cache.invalidate(1)
        cache.invalidate(404)
        assert cache.get(1) is None
        assert cache.get(2) == "b"

        cache.clear()
        assert len(cache) == 0

    def test_purge_expired(self):
        clock = FakeClock()
        cache = TTLCache(ttl=10, clock=clock)
        cache.set(1, "a")
        clock.now += 5
        cache.set(2, "b")
        clock.now += 6

        assert cache.purge_expired() == 1
        assert cache.get(2) == "b"

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            TTLCache(ttl=0)
