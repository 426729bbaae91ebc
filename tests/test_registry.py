"""Tests for the bidirectional map and the type registry."""

import threading

import pytest

from gitkv.registry import Bimap, TypeRegistry
from gitkv.types import TYPES, ValueType


class TestBimap:
    def test_forward_and_inverse(self):
        bimap = Bimap([("a", 1), ("b", 2)])
        assert bimap["a"] == 1
        assert bimap.inv[2] == "b"
        assert len(bimap) == 2
        assert dict(bimap) == {"a": 1, "b": 2}

    def test_reinserting_same_pair_is_noop(self):
        bimap = Bimap([("a", 1)])
        bimap.set("a", 1)
        assert len(bimap) == 1

    def test_duplicate_value_rejected(self):
        bimap = Bimap([("a", 1)])
        with pytest.raises(ValueError):
            bimap.set("b", 1)

    def test_remapping_key_rejected(self):
        bimap = Bimap([("a", 1)])
        with pytest.raises(ValueError):
            bimap.set("a", 2)

    def test_merged_mode(self):
        bimap = Bimap([("a", 1)], merge=True)
        assert bimap.inv is bimap
        assert bimap["a"] == 1
        assert bimap[1] == "a"

    def test_merged_mode_rejects_key_that_is_a_value(self):
        bimap = Bimap([("a", "b")], merge=True)
        with pytest.raises(ValueError, match="must not be a value"):
            bimap.set("b", "c")


class TestTypeRegistry:
    def test_populates_every_type_once(self):
        calls = []

        def commit_for(value_type):
            calls.append(value_type)
            return f"commit-{value_type.value}"

        registry = TypeRegistry()
        registry.ensure_populated(commit_for)
        registry.ensure_populated(commit_for)
        assert calls == list(TYPES)
        assert registry.populated
        assert registry.commit_for(ValueType.JSON) == "commit-JSON"
        assert registry.type_for("commit-Blob") is ValueType.BLOB

    def test_untagged_and_unknown(self):
        registry = TypeRegistry()
        registry.ensure_populated(lambda t: t.value)
        assert registry.commit_for(None) is None
        assert registry.type_for(None) is None
        assert registry.type_for("unknown") is None

    def test_bijection_break_raises(self):
        registry = TypeRegistry()
        with pytest.raises(ValueError):
            registry.ensure_populated(lambda t: "same-commit")
        assert not registry.populated

    def test_concurrent_population_converges(self):
        calls = []
        lock = threading.Lock()

        def commit_for(value_type):
            with lock:
                calls.append(value_type)
            return f"commit-{value_type.value}"

        registry = TypeRegistry()
        threads = [
            threading.Thread(target=registry.ensure_populated, args=(commit_for,))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(calls) == len(TYPES)
        assert len(registry.items()) == len(TYPES)
