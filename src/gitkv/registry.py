"""Bidirectional map and the type registry built on it."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from typing import Mapping, TypeVar

from gitkv.types import TYPES, ValueType

K = TypeVar("K")
V = TypeVar("V")


class Bimap(Mapping[K, V]):
    """Mapping with an inverse view in `.inv`.

    With `merge=True` keys and values share one mapping (and `.inv` is the map
    itself); this requires that no key is also a value.
    """

    def __init__(self, entries: Iterable[tuple[K, V]] = (), *, merge: bool = False) -> None:
        self._merge = merge
        self._forward: dict = {}
        self._inverse: dict = self._forward if merge else {}
        for key, value in entries:
            self.set(key, value)

    @property
    def inv(self) -> Mapping:
        return self if self._merge else _InverseView(self._inverse)

    def set(self, key: K, value: V) -> None:
        """Insert a pair. Re-inserting an identical pair is a no-op; any other clash raises."""
        current = self._forward.get(key)
        if self._merge:
            if key in self._forward and current != value:
                raise ValueError(f"Any key must not be a value if merging: {key!r}")
            if value in self._forward and self._forward[value] != key:
                raise ValueError(f"Any key must not be a value if merging: {value!r}")
            self._forward[key] = value
            self._forward[value] = key
            return
        if key in self._forward and current != value:
            raise ValueError(f"{key!r} is already mapped to {current!r}, not {value!r}")
        if value in self._inverse and self._inverse[value] != key:
            raise ValueError(f"{value!r} is already mapped from {self._inverse[value]!r}")
        self._forward[key] = value
        self._inverse[value] = key

    def __getitem__(self, key: K) -> V:
        return self._forward[key]

    def __iter__(self) -> Iterator[K]:
        return iter(self._forward)

    def __len__(self) -> int:
        return len(self._forward)


class _InverseView(Mapping):
    def __init__(self, data: dict) -> None:
        self._data = data

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


class TypeRegistry:
    """Bijection between type tags and their canonical commit ids in one store.

    Populated once; concurrent first use is serialized and converges because
    the commit ids are deterministic.
    """

    def __init__(self) -> None:
        self._map: Bimap[ValueType, str] = Bimap()
        self._lock = threading.Lock()
        self._populated = False

    @property
    def populated(self) -> bool:
        return self._populated

    def ensure_populated(self, commit_for: Callable[[ValueType], str]) -> None:
        if self._populated:
            return
        with self._lock:
            if self._populated:
                return
            for value_type in TYPES:
                self._map.set(value_type, commit_for(value_type))
            self._populated = True

    def commit_for(self, value_type: ValueType | None) -> str | None:
        """Canonical commit for a tag; None for untagged raw bytes."""
        if value_type is None:
            return None
        return self._map.get(value_type)

    def type_for(self, commit: str | None) -> ValueType | None:
        if commit is None:
            return None
        return self._map.inv.get(commit)

    def items(self) -> list[tuple[ValueType, str]]:
        return list(self._map.items())
