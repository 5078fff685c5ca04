"""
Key-value store — the persistence seam for sessions and recovery states.

Orchestration code never holds shared mutable maps itself; it reads and
writes through a KeyValueStore. The in-memory implementation copies values
in and out, so a caller mutating a returned object never changes stored
state, and a persistent backend can be substituted without changing
behavior.

Mutations that depend on the current value go through ``update`` (atomic
read-modify-write) or ``add`` (atomic create), never get-then-set.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Generic, TypeVar

V = TypeVar("V")


class KeyValueStore(ABC, Generic[V]):
    """Async key-value store contract."""

    @abstractmethod
    async def get(self, key: str) -> V | None:
        """Return a copy of the value, or None."""

    @abstractmethod
    async def set(self, key: str, value: V) -> None:
        """Create or overwrite."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key. Returns whether it existed."""

    @abstractmethod
    async def add(self, key: str, value: V) -> bool:
        """Create only if absent. Returns False when the key already exists."""

    @abstractmethod
    async def update(self, key: str, fn: Callable[[V], V | None]) -> V | None:
        """Apply ``fn`` to the current value atomically.

        ``fn`` receives a private copy and may mutate it in place (returning
        None) or return a replacement. Returns a copy of the stored result,
        or None when the key does not exist (``fn`` is not called).
        """

    @abstractmethod
    async def values(self) -> list[V]:
        """Copies of all values, in insertion order."""


class InMemoryStore(KeyValueStore[V]):
    """Dict-backed store guarded by one asyncio lock."""

    def __init__(self) -> None:
        self._data: dict[str, V] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> V | None:
        async with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: V) -> None:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def add(self, key: str, value: V) -> bool:
        async with self._lock:
            if key in self._data:
                return False
            self._data[key] = copy.deepcopy(value)
            return True

    async def update(self, key: str, fn: Callable[[V], V | None]) -> V | None:
        async with self._lock:
            if key not in self._data:
                return None
            working = copy.deepcopy(self._data[key])
            result = fn(working)
            new_value = working if result is None else result
            self._data[key] = new_value
            return copy.deepcopy(new_value)

    async def values(self) -> list[V]:
        async with self._lock:
            return [copy.deepcopy(v) for v in self._data.values()]

    def __len__(self) -> int:
        return len(self._data)
