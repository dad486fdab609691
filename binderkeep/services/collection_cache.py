"""
Collection read cache and per-key mutation serialization.

The cache holds one user's grouped collections with a single freshness
timestamp. Invalidation is coarse: any mutation marks the whole cache
stale (forcing a full reload on the next fetch) while the mutated item
itself is updated in place right away.

Every invalidation also bumps a generation counter. A reload records the
generation it started under and may only install its result if no newer
reload or mutation happened meanwhile, so superseded fetches never
overwrite fresher state.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from binderkeep.models.collection import (
    CollectionItem,
    CollectionType,
    GroupCollections,
    GroupedCollections,
    ItemKey,
)
from binderkeep.models.failure import CacheMiss

logger = logging.getLogger(__name__)


class CollectionCache:
    """
    TTL read cache for a single user session.

    Only the collection store mutates it; callers get the structure back
    from `get()` and must treat it as read-only.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._groups: GroupedCollections = {}
        self._last_fetched: float | None = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def is_valid(self) -> bool:
        """True while the last full load is younger than the TTL."""
        if self._last_fetched is None:
            return False
        return (self._clock() - self._last_fetched) < self.ttl_seconds

    def invalidate(self) -> None:
        """Mark the whole cache stale and supersede in-flight reloads."""
        self._last_fetched = None
        self._generation += 1

    def begin_reload(self) -> int:
        """Start a reload; returns the token `replace` must be called with."""
        self._generation += 1
        return self._generation

    def replace(self, groups: GroupedCollections, token: int) -> bool:
        """
        Install a freshly loaded structure and stamp freshness.

        Returns False (and installs nothing) if the reload was superseded.
        """
        if token != self._generation:
            logger.info(
                "COLLECTION_RELOAD_SUPERSEDED",
                extra={"token": token, "generation": self._generation},
            )
            return False
        self._groups = groups
        self._last_fetched = self._clock()
        return True

    def get(self) -> GroupedCollections:
        """The cached structure, fresh or not."""
        return self._groups

    def has_group(self, group_name: str) -> bool:
        return group_name in self._groups

    def lookup(
        self, group_name: str, collection_type: CollectionType, card_id: str
    ) -> CollectionItem | None:
        """
        Read one item from a valid cache.

        Raises:
            CacheMiss: If the cache is stale and cannot answer
        """
        if not self.is_valid():
            raise CacheMiss(f"{group_name}/{collection_type.value}/{card_id}")
        group = self._groups.get(group_name)
        if group is None:
            return None
        return group.side(collection_type).get(card_id)

    def peek(self, key: ItemKey) -> CollectionItem | None:
        """Read one item regardless of freshness."""
        group_name, collection_type, card_id = key
        group = self._groups.get(group_name)
        if group is None:
            return None
        return group.side(collection_type).get(card_id)

    def put_item(self, item: CollectionItem) -> None:
        """Insert or replace an item in place."""
        group = self._groups.setdefault(item.group_name, GroupCollections())
        group.side(item.collection_type)[item.card_id] = item

    def drop_item(self, key: ItemKey) -> CollectionItem | None:
        """Remove an item in place; returns what was removed."""
        group_name, collection_type, card_id = key
        group = self._groups.get(group_name)
        if group is None:
            return None
        return group.side(collection_type).pop(card_id, None)

    def put_group(self, group_name: str) -> None:
        self._groups.setdefault(group_name, GroupCollections())

    def rename_group(self, old_name: str, new_name: str) -> None:
        group = self._groups.pop(old_name, None)
        if group is None:
            return
        for item in group.all_items():
            item.group_name = new_name
        self._groups[new_name] = group

    def drop_group(self, group_name: str) -> None:
        self._groups.pop(group_name, None)

    def clear(self) -> None:
        self._groups = {}
        self.invalidate()


class KeyedMutationQueue:
    """
    Serializes mutations per item key.

    At most one mutation per (group, type, card_id) is in flight; later
    mutations on the same key wait their turn and see the earlier result.
    Mutations on different keys do not block each other.

    `min_interval` additionally spaces consecutive backend calls on the
    same key (debounce). It never replaces the per-key lock.
    """

    def __init__(
        self,
        min_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._locks: dict[ItemKey, asyncio.Lock] = {}
        self._waiters: dict[ItemKey, int] = {}
        self._last_run: dict[ItemKey, float] = {}

    def is_busy(self, key: ItemKey) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: ItemKey) -> AsyncIterator[None]:
        """Hold the key for the duration of one mutation."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                await self._debounce(key)
                try:
                    yield
                finally:
                    self._last_run[key] = self._clock()
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Nobody else queued on this key; drop its bookkeeping
                del self._waiters[key]
                self._locks.pop(key, None)

    @asynccontextmanager
    async def hold_many(self, keys: list[ItemKey]) -> AsyncIterator[None]:
        """Hold several keys, acquired in sorted order to avoid deadlock."""
        ordered = sorted(set(keys), key=lambda k: (k[0], k[1].value, k[2]))
        async with _stacked(self, ordered):
            yield

    async def _debounce(self, key: ItemKey) -> None:
        if self.min_interval <= 0:
            return
        last = self._last_run.get(key)
        if last is None:
            return
        remaining = self.min_interval - (self._clock() - last)
        if remaining > 0:
            await asyncio.sleep(remaining)


@asynccontextmanager
async def _stacked(queue: KeyedMutationQueue, keys: list[ItemKey]) -> AsyncIterator[None]:
    if not keys:
        yield
        return
    async with queue.hold(keys[0]), _stacked(queue, keys[1:]):
        yield
