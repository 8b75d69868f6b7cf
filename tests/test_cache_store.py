"""
Tests for a single TTL/capacity bounded tier.
"""
from dataclasses import fields

import pytest

from app.cache import CacheEntry, TierStore


@pytest.fixture
def store(clock):
    return TierStore("memory", default_ttl=300, max_keys=3, timer=clock)


class TestTierStore:
    """get/set/delete/keys and TTL behaviour."""

    def test_set_and_get(self, store):
        assert store.set("a", {"v": 1})
        assert store.get("a") == {"v": 1}
        assert store.has("a")

    def test_missing_key_returns_none(self, store):
        assert store.get("nope") is None
        assert not store.has("nope")

    def test_default_ttl_expiry(self, store, clock):
        store.set("a", 1)
        clock.advance(299)
        assert store.get("a") == 1
        clock.advance(2)
        assert store.get("a") is None

    def test_per_entry_ttl(self, store, clock):
        store.set("short", 1, ttl=10)
        store.set("long", 2, ttl=100)
        clock.advance(11)
        assert store.get("short") is None
        assert store.get("long") == 2

    def test_zero_ttl_never_expires(self, store, clock):
        assert store.set("pinned", 1, ttl=0)
        clock.advance(10 ** 6)
        assert store.get("pinned") == 1
        assert store.keys() == ["pinned"]

    def test_zero_ttl_overwrites_existing_entry(self, store, clock):
        store.set("a", 1)
        assert store.set("a", 2, ttl=0)
        clock.advance(301)
        assert store.get("a") == 2

    def test_delete(self, store):
        store.set("a", 1)
        assert store.delete("a") == 1
        assert store.delete("a") == 0
        assert store.get("a") is None

    def test_keys_skip_expired(self, store, clock):
        store.set("a", 1, ttl=10)
        store.set("b", 2, ttl=100)
        clock.advance(50)
        assert store.keys() == ["b"]
        assert len(store) == 1

    def test_capacity_evicts_oldest(self, store):
        for key in ("a", "b", "c", "d"):
            store.set(key, key)
        assert len(store) == 3
        assert store.get("a") is None
        assert store.get("d") == "d"

    def test_flush_all(self, store):
        store.set("a", 1)
        store.get("a")
        store.flush_all()
        assert store.keys() == []
        assert store.get_stats()["hits"] == 0

    def test_stats(self, store):
        store.set("ab", 1)
        store.get("ab")
        store.get("missing")
        stats = store.get_stats()
        assert stats["keys"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["ksize"] == 2
        assert stats["max_keys"] == 3


class TestTierStoreEvents:
    """Change notifications."""

    def test_set_and_del_events(self, store):
        events = []
        store.on("set", lambda key, value: events.append(("set", key, value)))
        store.on("del", lambda key, value: events.append(("del", key, value)))
        store.set("a", 1)
        store.delete("a")
        assert events == [("set", "a", 1), ("del", "a", 1)]

    def test_expired_event(self, store, clock):
        expired = []
        store.on("expired", lambda key, value: expired.append(key))
        store.set("a", 1, ttl=5)
        clock.advance(10)
        store.keys()
        assert expired == ["a"]

    def test_evicted_event(self, store):
        evicted = []
        store.on("evicted", lambda key, value: evicted.append(key))
        for key in ("a", "b", "c", "d"):
            store.set(key, key)
        assert evicted == ["a"]

    def test_failing_listener_does_not_break_store(self, store):
        def boom(key, value):
            raise RuntimeError("listener failed")

        store.on("set", boom)
        assert store.set("a", 1)
        assert store.get("a") == 1

    def test_unknown_event_rejected(self, store):
        with pytest.raises(ValueError):
            store.on("touched", lambda key, value: None)


class TestCacheEntry:

    def test_entry_holds_value_and_ttl(self):
        assert [f.name for f in fields(CacheEntry)] == ["value", "ttl_seconds"]
        assert CacheEntry(value={"v": 1}, ttl_seconds=0).ttl_seconds == 0
