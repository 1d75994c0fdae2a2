from datetime import timedelta

from logistics.utils.cache import TTLCache


def _cache(clock, seconds=60):
    return TTLCache(ttl=timedelta(seconds=seconds), clock=clock, name="test")


class TestTTLCache:
    def test_get_before_expiry(self, clock):
        cache = _cache(clock)
        cache.set("k", 1)
        clock.advance(seconds=59)
        assert cache.get("k") == 1
        assert cache.stats.hits == 1

    def test_expired_entry_is_never_returned(self, clock):
        cache = _cache(clock)
        cache.set("k", 1)
        clock.advance(seconds=60)
        assert cache.get("k") is None
        assert cache.stats.expirations == 1
        assert "k" not in cache

    def test_per_entry_ttl(self, clock):
        cache = _cache(clock)
        cache.set("short", 1, ttl=timedelta(seconds=5))
        clock.advance(seconds=10)
        assert cache.get("short") is None

    def test_get_or_compute_runs_factory_once(self, clock):
        cache = _cache(clock)
        calls = []

        def factory():
            calls.append(1)
            return "value"

        assert cache.get_or_compute("k", factory) == "value"
        assert cache.get_or_compute("k", factory) == "value"
        assert len(calls) == 1

    def test_sweep_drops_only_expired(self, clock):
        cache = _cache(clock)
        cache.set("old", 1)
        clock.advance(seconds=30)
        cache.set("new", 2)
        clock.advance(seconds=31)

        assert cache.sweep() == 1
        assert len(cache) == 1
        assert cache.get("new") == 2

    def test_refreshed_key_survives_its_old_expiry(self, clock):
        cache = _cache(clock)
        cache.set("k", 1)
        clock.advance(seconds=30)
        cache.set("k", 2)
        clock.advance(seconds=31)

        assert cache.sweep() == 0
        assert cache.get("k") == 2

    def test_invalidate_and_clear(self, clock):
        cache = _cache(clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_hit_rate(self, clock):
        cache = _cache(clock)
        assert cache.stats.hit_rate() == 0.0
        cache.set("k", 1)
        cache.get("k")
        cache.get("missing")
        assert cache.stats.hit_rate() == 0.5
