"""
Query cache tests.

Verifies:
- fixed TTL from store time, checked lazily
- bypass still refreshes the slot
- producer failures propagate and cache nothing
- the dependency table maps store keys to the right cache keys
"""

import pytest

from prodtrack.services.cache import (
    CacheInvalidator,
    QueryCache,
    entries_cache_key,
    projects_cache_key,
    stale_cache_patterns,
)


class Producer:
    def __init__(self, value="v"):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return f"{self.value}{self.calls}"


class TestTtl:

    def test_producer_runs_once_within_ttl(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        producer = Producer()

        assert cache.fetch("projects_all", producer) == "v1"
        clock.advance(299)
        assert cache.fetch("projects_all", producer) == "v1"
        assert producer.calls == 1

    def test_producer_runs_again_after_expiry(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        producer = Producer()

        cache.fetch("projects_all", producer)
        clock.advance(300)
        assert cache.fetch("projects_all", producer) == "v2"
        assert producer.calls == 2

    def test_ttl_is_not_sliding(self, clock):
        cache = QueryCache(ttl_seconds=10, clock=clock)
        producer = Producer()
        cache.fetch("k", producer)
        for _ in range(3):
            clock.advance(4)
            cache.fetch("k", producer)
        # stored at t=0, read at 4 and 8 (hit), 12 (expired)
        assert producer.calls == 2

    def test_contains_reports_expiry(self, clock):
        cache = QueryCache(ttl_seconds=5, clock=clock)
        cache.fetch("k", Producer())
        assert cache.contains("k")
        clock.advance(5)
        assert not cache.contains("k")


class TestFetch:

    def test_bypass_refreshes_slot(self, clock):
        cache = QueryCache(clock=clock)
        producer = Producer()
        cache.fetch("clients", producer)
        assert cache.fetch("clients", producer, use_cache=False) == "v2"
        assert cache.fetch("clients", producer) == "v2"
        assert producer.calls == 2

    def test_producer_error_propagates_and_caches_nothing(self, clock):
        cache = QueryCache(clock=clock)

        def boom():
            raise RuntimeError("store offline")

        with pytest.raises(RuntimeError):
            cache.fetch("dashboard", boom)
        assert not cache.contains("dashboard")

    def test_invalidate(self, clock):
        cache = QueryCache(clock=clock)
        producer = Producer()
        cache.fetch("clients", producer)
        assert cache.invalidate("clients") is True
        assert cache.invalidate("clients") is False
        cache.fetch("clients", producer)
        assert producer.calls == 2

    def test_invalidate_all(self, clock):
        cache = QueryCache(clock=clock)
        for key in ("a", "b", "c"):
            cache.fetch(key, Producer())
        cache.invalidate_all()
        assert cache.keys() == []


class TestDependencies:

    def test_entry_partition_patterns(self):
        patterns = stale_cache_patterns("entries_Mahape")
        assert "production_entries_Mahape" in patterns
        assert "production_entries_all" in patterns
        assert "production_entry_*" in patterns
        assert "projects_*" in patterns
        assert "dashboard" in patterns
        assert "production_entries_Taloja" not in patterns

    def test_unrelated_key_has_no_dependents(self):
        assert stale_cache_patterns("activity_log") == []
        assert stale_cache_patterns("current_user") == []

    def test_partition_write_leaves_other_factory_slot(self, clock):
        cache = QueryCache(clock=clock)
        for key in (
            entries_cache_key("Mahape"),
            entries_cache_key("Taloja"),
            entries_cache_key(None),
            projects_cache_key("Taloja"),
            projects_cache_key(None),
            "production_entry_17",
            "clients",
        ):
            cache.fetch(key, Producer())

        dropped = CacheInvalidator(cache).store_key_changed("entries_Mahape")

        assert dropped == 5
        assert cache.keys() == ["clients", "production_entries_Taloja"]

    def test_clients_write(self, clock):
        cache = QueryCache(clock=clock)
        for key in ("clients", "dashboard", "projects_all"):
            cache.fetch(key, Producer())
        CacheInvalidator(cache).store_key_changed("clients")
        assert cache.keys() == ["projects_all"]
