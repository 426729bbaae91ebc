"""Tests for the bounded LRU caches."""

import pytest

from gitkv.cache import ByteLRUCache, LRUCache


class TestLRUCache:
    def test_evicts_least_recently_used(self):
        cache = LRUCache(2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)
        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache

    def test_hit_and_miss_counters(self):
        cache = LRUCache(4)
        cache.put("a", 1)
        assert cache.get("a") == 1
        assert cache.get("missing") is None
        assert (cache.hits, cache.misses) == (1, 1)

    def test_zero_capacity_stores_nothing(self):
        cache = LRUCache(0)
        cache.put("a", 1)
        assert len(cache) == 0

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            LRUCache(-1)

    def test_clear(self):
        cache = LRUCache(4)
        cache.put("a", 1)
        cache.clear()
        assert len(cache) == 0


class TestByteLRUCache:
    def test_oversized_entries_are_skipped(self):
        cache = ByteLRUCache(10, max_bytes=100, max_entry_bytes=4)
        cache.put("big", b"12345")
        cache.put("small", b"1234")
        assert "big" not in cache
        assert cache.get("small") == b"1234"

    def test_evicts_by_total_bytes(self):
        cache = ByteLRUCache(10, max_bytes=10, max_entry_bytes=8)
        cache.put("a", b"x" * 6)
        cache.put("b", b"y" * 6)
        assert "a" not in cache
        assert cache.total_bytes == 6

    def test_evicts_by_entry_count(self):
        cache = ByteLRUCache(2, max_bytes=100, max_entry_bytes=10)
        for key in "abc":
            cache.put(key, b"1")
        assert len(cache) == 2
        assert cache.total_bytes == 2

    def test_replacing_entry_updates_size(self):
        cache = ByteLRUCache(10, max_bytes=100, max_entry_bytes=10)
        cache.put("a", b"123")
        cache.put("a", b"1")
        assert cache.total_bytes == 1

    def test_stores_immutable_copy(self):
        cache = ByteLRUCache(10, max_bytes=100, max_entry_bytes=10)
        data = bytearray(b"abc")
        cache.put("a", data)
        data[0] = 0
        assert cache.get("a") == b"abc"
