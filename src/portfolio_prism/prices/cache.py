"""In-memory TTL price cache shared by the source adapters.

Each adapter owns one ``TTLCache``. Entries share a single expiry instant
that is pushed forward on every write, matching the sources' all-at-once
refresh pattern. Readers run concurrently; writers are exclusive.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from typing import Generic, TypeVar

V = TypeVar("V")


class ReadWriteLock:
    """asyncio lock allowing many concurrent readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue
    behind it so a steady read load cannot starve a cache refresh.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._waiting_writers == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class TTLCache(Generic[V]):
    """Key-value cache with one shared expiry.

    Parameters
    ----------
    ttl : float
        Seconds a write keeps the cache fresh.
    clock : Callable[[], float]
        Monotonic time source. Injectable for tests.
    """

    def __init__(
        self, ttl: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, V] = {}
        self._expires_at: float = 0.0
        self._lock = ReadWriteLock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def _is_fresh(self) -> bool:
        return self._clock() < self._expires_at and bool(self._entries)

    async def get(self, key: str) -> V | None:
        """Return the entry for ``key`` regardless of expiry."""
        async with self._lock.read():
            return self._entries.get(key)

    async def get_fresh(self, keys: Iterable[str]) -> list[V] | None:
        """Return entries for all ``keys`` if unexpired and complete, else None."""
        async with self._lock.read():
            if not self._is_fresh():
                return None
            values: list[V] = []
            for key in keys:
                value = self._entries.get(key)
                if value is None:
                    return None
                values.append(value)
            return values

    async def get_many(self, keys: Iterable[str]) -> dict[str, V]:
        """Return whatever entries exist for ``keys``, regardless of expiry."""
        async with self._lock.read():
            return {k: self._entries[k] for k in keys if k in self._entries}

    async def update(self, entries: dict[str, V]) -> None:
        """Write entries and push the expiry ``ttl`` seconds forward."""
        async with self._lock.write():
            self._entries.update(entries)
            self._expires_at = self._clock() + self._ttl

    async def clear(self) -> None:
        async with self._lock.write():
            self._entries.clear()
            self._expires_at = 0.0
