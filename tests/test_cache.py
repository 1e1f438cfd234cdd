"""
Tests for the TTL read cache.
"""

from cache import TTLCache, summary_key, week_key


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


class TestTTLCache:

    def test_set_and_get(self):
        cache = TTLCache(ttl_seconds=60)
        cache.set("week:a:b", [1, 2])
        assert cache.get("week:a:b") == [1, 2]
        assert cache.get("missing") is None

    def test_entries_expire(self):
        clock = FakeMonotonic()
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("k", "v")

        clock.value += 59
        assert cache.get("k") == "v"

        clock.value += 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_invalidate_pattern(self):
        cache = TTLCache()
        cache.set(week_key("2024-01-01", "2024-01-05"), 1)
        cache.set(summary_key("2024-01-01", "2024-01-05"), 2)
        cache.set(week_key("2024-01-08", "2024-01-12"), 3)

        removed = cache.invalidate("2024-01-01:2024-01-05")

        assert removed == 2
        assert cache.get("week:2024-01-08:2024-01-12") == 3

    def test_invalidate_all(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.invalidate() == 2
        assert len(cache) == 0
