"""
Unit tests for the read cache in front of the ledger.

Keys follow the shapes the services use, e.g.
``investments:{profile}:summary`` and ``movements:profile:{profile}:0:50``.
"""

import time

from vaultflow.core.cache import INVESTMENTS_PREFIX, MOVEMENTS_PREFIX, CacheEntry, TTLCache

SUMMARY_KEY = f"{INVESTMENTS_PREFIX}p1:summary"
LIST_KEY = f"{INVESTMENTS_PREFIX}p1:all:0:100"
HISTORY_KEY = f"{MOVEMENTS_PREFIX}profile:p1:0:50"


class TestCacheEntry:
    def test_fresh_entry_is_live(self):
        assert not CacheEntry(["position"]).is_expired(ttl=10.0)

    def test_entry_expires_after_ttl(self):
        entry = CacheEntry(["position"])
        entry.created_at = time.monotonic() - 10.5
        assert entry.is_expired(ttl=10.0)


class TestGetSet:
    def test_round_trip(self, test_cache: TTLCache):
        positions = [{"vault": "0xbeef", "total_value": "152.5"}]
        test_cache.set(SUMMARY_KEY, positions)
        assert test_cache.get(SUMMARY_KEY) is positions

    def test_miss_returns_none(self, test_cache: TTLCache):
        assert test_cache.get(LIST_KEY) is None

    def test_later_set_wins(self, test_cache: TTLCache):
        test_cache.set(LIST_KEY, ["old"])
        test_cache.set(LIST_KEY, ["new"])
        assert test_cache.get(LIST_KEY) == ["new"]

    def test_expired_entry_is_dropped(self, test_cache: TTLCache):
        test_cache.set(HISTORY_KEY, [])
        test_cache._store[HISTORY_KEY].created_at = time.monotonic() - 60.0

        assert test_cache.get(HISTORY_KEY) is None
        assert HISTORY_KEY not in test_cache._store


class TestEviction:
    def test_oldest_entry_goes_first(self):
        cache = TTLCache(ttl=30.0, max_size=2, enabled=True)
        cache.set(LIST_KEY, 1)
        cache.set(SUMMARY_KEY, 2)
        cache.set(HISTORY_KEY, 3)

        assert cache.get(LIST_KEY) is None
        assert cache.get(SUMMARY_KEY) == 2
        assert cache.get(HISTORY_KEY) == 3

    def test_overwrite_does_not_evict(self):
        cache = TTLCache(ttl=30.0, max_size=2, enabled=True)
        cache.set(LIST_KEY, 1)
        cache.set(SUMMARY_KEY, 2)
        cache.set(LIST_KEY, 10)

        assert cache.get(LIST_KEY) == 10
        assert cache.get(SUMMARY_KEY) == 2


class TestInvalidation:
    def test_deposit_clears_both_ledger_prefixes(self, test_cache: TTLCache):
        test_cache.set(LIST_KEY, [])
        test_cache.set(SUMMARY_KEY, {})
        test_cache.set(HISTORY_KEY, [])
        test_cache.set("health:last", "ok")

        assert test_cache.invalidate(INVESTMENTS_PREFIX, MOVEMENTS_PREFIX) == 3
        assert test_cache.get(SUMMARY_KEY) is None
        assert test_cache.get("health:last") == "ok"

    def test_single_prefix_leaves_the_other(self, test_cache: TTLCache):
        test_cache.set(SUMMARY_KEY, {})
        test_cache.set(HISTORY_KEY, [])

        assert test_cache.invalidate(MOVEMENTS_PREFIX) == 1
        assert test_cache.get(SUMMARY_KEY) == {}

    def test_clear(self, test_cache: TTLCache):
        test_cache.set(LIST_KEY, [])
        test_cache.clear()
        assert test_cache.get_stats()["size"] == 0


class TestDisabled:
    def test_everything_is_a_noop(self, disabled_cache: TTLCache):
        disabled_cache.set(SUMMARY_KEY, {})
        assert disabled_cache.get(SUMMARY_KEY) is None
        assert disabled_cache.invalidate(INVESTMENTS_PREFIX) == 0
        assert disabled_cache.get_stats()["enabled"] is False


class TestStats:
    def test_initial_stats(self, test_cache: TTLCache):
        stats = test_cache.get_stats()
        assert stats["size"] == 0
        assert stats["max_size"] == 100
        assert stats["hit_rate"] == "N/A"

    def test_hit_rate(self, test_cache: TTLCache):
        test_cache.set(SUMMARY_KEY, {})
        test_cache.get(SUMMARY_KEY)
        test_cache.get(LIST_KEY)

        stats = test_cache.get_stats()
        assert (stats["hits"], stats["misses"]) == (1, 1)
        assert stats["hit_rate"] == "50.0%"
