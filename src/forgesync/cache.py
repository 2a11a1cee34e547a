"""Session-scoped list caches.

A ``ListCache`` memoises one remote collection (pull requests, issues or
labels) for the lifetime of a repository session. It moves through three
states::

    unpopulated --get()--> populating --loader done--> populated
         ^                                                 |
         +------------------- invalidate() ----------------+

While ``populating`` every caller awaits the same task, so concurrent first
accesses share a single fetch. ``invalidate()`` during population bumps the
generation counter: waiters that already hold the task still receive its
result, but the stale result is never stored and the next ``get()`` starts a
fresh fetch.

All reads and writes of the cache happen on the event loop thread between
suspension points; no locks are involved.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from enum import Enum
from typing import Generic, TypeVar

from .logging import get_logger

T = TypeVar("T")


class CacheState(str, Enum):
    UNPOPULATED = "unpopulated"
    POPULATING = "populating"
    POPULATED = "populated"


class ListCache(Generic[T]):
    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[list[T]]],
        key: Callable[[T], Hashable],
    ) -> None:
        self.name = name
        self._loader = loader
        self._key = key
        self._items: list[T] | None = None
        self._pending: asyncio.Task[list[T]] | None = None
        self._generation = 0
        self.fetch_count = 0

    @property
    def state(self) -> CacheState:
        if self._items is not None:
            return CacheState.POPULATED
        if self._pending is not None:
            return CacheState.POPULATING
        return CacheState.UNPOPULATED

    @property
    def items(self) -> list[T] | None:
        """Snapshot of the populated collection, ``None`` when not populated."""
        return list(self._items) if self._items is not None else None

    async def get(self) -> list[T]:
        if self._items is not None:
            return list(self._items)
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._populate(self._generation))
        return list(await asyncio.shield(self._pending))

    async def _populate(self, generation: int) -> list[T]:
        self.fetch_count += 1
        try:
            with get_logger().timed_operation("cache_populate", cache=self.name):
                items = list(await self._loader())
        except BaseException:
            if generation == self._generation:
                self._pending = None
            raise
        if generation == self._generation:
            self._items = items
            self._pending = None
            get_logger().debug(f"Retrieved {len(items)} {self.name}", cache=self.name)
        return items

    async def append(self, item: T) -> bool:
        """Add a locally created item to the cache if it holds (or is loading) data.

        An item whose key is already cached replaces the cached entry. Returns
        ``True`` when the item was recorded, ``False`` when the cache is
        unpopulated (the next fetch will pick it up anyway).
        """
        if self._items is None and self._pending is not None:
            try:
                await asyncio.shield(self._pending)
            except Exception:  # population failure is reported to its own awaiters
                return False
        if self._items is None:
            return False
        item_key = self._key(item)
        for idx, existing in enumerate(self._items):
            if self._key(existing) == item_key:
                self._items[idx] = item
                return True
        self._items.append(item)
        return True

    def find(self, predicate: Callable[[T], bool]) -> T | None:
        if self._items is None:
            return None
        for item in self._items:
            if predicate(item):
                return item
        return None

    def invalidate(self) -> None:
        self._generation += 1
        self._items = None
        self._pending = None


__all__ = ["CacheState", "ListCache"]
