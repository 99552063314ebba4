"""Bounded drop-oldest cache shared by concurrent callers."""

from __future__ import annotations

from collections import OrderedDict
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class BoundedCache(Generic[K, V]):
    """Insertion-ordered cache that evicts the oldest entry on overflow.

    Reads do not refresh recency, so this is FIFO rather than LRU.
    All operations are synchronous and never await, so concurrent
    coroutines on one event loop cannot interleave inside them.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Cache capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: OrderedDict[K, V] = OrderedDict()

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def put(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries[key] = value
            return
        while len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
        self._entries[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
