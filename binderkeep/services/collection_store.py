"""
Collection Store: one user's grouped have/want collections.

Mediates every mutation against the persistent backend, keeps a TTL read
cache of group -> type -> card_id, and applies optimistic in-place updates
so the mutated item is current immediately.

INVARIANTS:
- Quantities are never stored below 1; reaching 0 deletes the item
- The "Default" group always exists and is never renamed or deleted
- Mutations on the same (group, type, card_id) key are serialized
- A failed backend write rolls the optimistic cache change back
- Public operations never raise: failures become typed results

Optimistic concurrency with eventual reconciliation: each mutation writes
the cache first, then the backend, then replaces the cached item with the
row the backend confirmed. Every mutation also marks the whole cache
stale so the next fetch_all reloads.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binderkeep.config import (
    DEFAULT_GROUP_DESCRIPTION,
    DEFAULT_GROUP_NAME,
    MAX_ITEM_QUANTITY,
    settings,
)
from binderkeep.db.database import async_session_factory, session_scope
from binderkeep.db.operations import (
    create_group,
    delete_group,
    delete_item,
    get_group,
    get_item,
    get_or_create_group,
    group_to_model,
    insert_item,
    item_to_model,
    list_groups,
    list_items,
    rename_group,
    set_market_price,
    store_group_value,
    update_item_quantity,
)
from binderkeep.models.card import CardRecord
from binderkeep.models.collection import (
    CollectionItem,
    CollectionType,
    Group,
    GroupCollections,
    GroupedCollections,
    GroupValue,
    ItemKey,
    empty_grouped_collections,
)
from binderkeep.models.db import CollectionGroupDB
from binderkeep.models.failure import (
    GROUP_EXISTS_MESSAGE,
    GROUP_NOT_FOUND_MESSAGE,
    AuthenticationRequiredError,
    BackendError,
    CacheMiss,
    KnownError,
    NotFoundError,
    ValidationError,
)
from binderkeep.models.results import (
    AddItemResult,
    MoveItemResult,
    OperationResult,
    RemoveItemResult,
)
from binderkeep.services.collection_cache import CollectionCache, KeyedMutationQueue
from binderkeep.services.price_resolver import PriceResolver, PriceSource

logger = logging.getLogger(__name__)


def coerce_collection_type(value: CollectionType | str) -> CollectionType:
    """Parse a collection type, raising ValidationError for unknown values."""
    if isinstance(value, CollectionType):
        return value
    try:
        return CollectionType(str(value).strip().lower())
    except ValueError as e:
        raise ValidationError(
            "Collection type must be 'have' or 'want'", detail=f"got {value!r}"
        ) from e


def _clean_name(name: str | None, label: str = "Group name") -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} cannot be empty")
    return cleaned


class CollectionStore:
    """
    Collection state for one authenticated user session.

    `user_id=None` represents an unauthenticated caller: reads return an
    empty Default group and mutations return an authentication error.
    """

    def __init__(
        self,
        user_id: str | None,
        prices: PriceResolver,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        ttl_seconds: float | None = None,
        debounce_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.user_id = user_id
        self.prices = prices
        self.session_factory = session_factory or async_session_factory
        self.cache = CollectionCache(
            settings.collection_cache_ttl_seconds if ttl_seconds is None else ttl_seconds,
            clock=clock,
        )
        self._mutations = KeyedMutationQueue(
            settings.mutation_debounce_seconds if debounce_seconds is None else debounce_seconds,
            clock=clock,
        )
        self._groups_lock = asyncio.Lock()
        self._default_lock = asyncio.Lock()
        self._default_ready = False
        self._inflight: asyncio.Task[GroupedCollections] | None = None
        self._now = now or (lambda: datetime.now(UTC))

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def _require_user(self) -> str:
        if self.user_id is None:
            raise AuthenticationRequiredError()
        return self.user_id

    # =========================================================================
    # READS
    # =========================================================================

    async def fetch_all(self, force: bool = False) -> GroupedCollections:
        """
        Get every group with its have and want items.

        Returns the cached structure while it is fresh. Otherwise reloads
        everything for the user from the backend. Concurrent callers share
        one reload. Unauthenticated callers get a single empty Default group.
        """
        if self.user_id is None:
            return empty_grouped_collections()

        if not force and self.cache.is_valid():
            return self.cache.get()

        task = self._inflight
        if force or task is None or task.done():
            task = asyncio.ensure_future(self._reload())
            self._inflight = task

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            logger.info("COLLECTION_RELOAD_CANCELLED", extra={"user_id": self.user_id})
            return self.cache.get() or empty_grouped_collections()

    def cancel_pending_fetch(self) -> bool:
        """
        Cancel an in-flight reload (e.g., the active group changed).

        Returns True if a reload was cancelled.
        """
        task = self._inflight
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _reload(self) -> GroupedCollections:
        user_id = self._require_user()
        token = self.cache.begin_reload()

        try:
            async with session_scope(self.session_factory) as session:
                await self._ensure_default_group(session)
                group_rows = await list_groups(session, user_id)
                item_rows = await list_items(session, user_id)
        except SQLAlchemyError as e:
            logger.error("Failed to reload collections for %s: %s", user_id, e)
            return self.cache.get() or empty_grouped_collections()

        groups: GroupedCollections = {row.name: GroupCollections() for row in group_rows}
        for row in item_rows:
            item = item_to_model(row)
            groups.setdefault(item.group_name, GroupCollections()).side(item.collection_type)[
                item.card_id
            ] = item
            # Stored item prices keep the legacy tier warm for list views
            self.prices.observe(item.card_id, item.market_price, overwrite=False)

        if not self.cache.replace(groups, token):
            return self.cache.get()

        logger.info(
            "COLLECTION_RELOADED",
            extra={"user_id": user_id, "groups": len(groups), "items": len(item_rows)},
        )
        return groups

    async def get_quantity(
        self,
        group_name: str,
        collection_type: CollectionType | str,
        card_id: str,
    ) -> int:
        """
        Quantity of a card in one side of a group (0 if absent).

        Reads the cache. When the cache is stale it is refreshed first; a
        scoped backend query is used only if that refresh fails.
        """
        if self.user_id is None:
            return 0
        try:
            ctype = coerce_collection_type(collection_type)
        except ValidationError:
            return 0

        try:
            item = self.cache.lookup(group_name, ctype, card_id)
        except CacheMiss:
            await self.fetch_all()
            try:
                item = self.cache.lookup(group_name, ctype, card_id)
            except CacheMiss:
                return await self._query_quantity(group_name, ctype, card_id)
        return item.quantity if item else 0

    async def is_in_collection(
        self,
        group_name: str,
        collection_type: CollectionType | str,
        card_id: str,
    ) -> bool:
        """True if the card has at least one copy in that side of the group."""
        return await self.get_quantity(group_name, collection_type, card_id) > 0

    async def _query_quantity(
        self, group_name: str, collection_type: CollectionType, card_id: str
    ) -> int:
        user_id = self._require_user()
        try:
            async with session_scope(self.session_factory) as session:
                row = await get_item(session, user_id, group_name, collection_type, card_id)
        except SQLAlchemyError as e:
            logger.warning("Quantity lookup failed for %s: %s", card_id, e)
            return 0
        return row.quantity if row else 0

    async def list_groups(self) -> list[Group]:
        """
        All groups with their stored values, ordered by name.

        Creates the Default group on first use.
        """
        if self.user_id is None:
            return [Group(name=DEFAULT_GROUP_NAME, description=DEFAULT_GROUP_DESCRIPTION)]

        try:
            async with session_scope(self.session_factory) as session:
                await self._ensure_default_group(session)
                rows = await list_groups(session, self.user_id)
        except SQLAlchemyError as e:
            logger.error("Failed to list groups for %s: %s", self.user_id, e)
            return []
        return [group_to_model(row) for row in rows]

    async def load_group_items(
        self,
        group_name: str,
        collection_type: CollectionType | None = None,
    ) -> list[CollectionItem]:
        """
        Current backend items of one group, for snapshots and exports.

        Unlike the public store operations this raises, so companion
        services can propagate the failure in their own terms.

        Raises:
            AuthenticationRequiredError: If unauthenticated
            NotFoundError: If the group does not exist
            BackendError: If the backend read fails
        """
        user_id = self._require_user()
        try:
            async with session_scope(self.session_factory) as session:
                await self._require_group(session, group_name)
                rows = await list_items(session, user_id, group_name, collection_type)
        except SQLAlchemyError as e:
            raise BackendError(str(e)) from e
        return [item_to_model(row) for row in rows]

    async def has_group(self, group_name: str) -> bool:
        """
        True if the user has a group with this name.

        Raises:
            AuthenticationRequiredError: If unauthenticated
            BackendError: If the backend read fails
        """
        user_id = self._require_user()
        if group_name == DEFAULT_GROUP_NAME:
            return True
        try:
            async with session_scope(self.session_factory) as session:
                return await get_group(session, user_id, group_name) is not None
        except SQLAlchemyError as e:
            raise BackendError(str(e)) from e

    # =========================================================================
    # ITEM MUTATIONS
    # =========================================================================

    async def add_item(
        self,
        group_name: str,
        collection_type: CollectionType | str,
        card: CardRecord,
        quantity: int = 1,
        market_price: float | None = None,
    ) -> AddItemResult:
        """
        Add copies of a card to one side of a group.

        Inserts the item when absent, otherwise increments its quantity and
        refreshes last_modified_at. When the card carries live prices (or an
        explicit `market_price` is given) the resolved price is stored too.
        """
        try:
            self._require_user()
            ctype = coerce_collection_type(collection_type)
            group_name = _clean_name(group_name)
            if not card.id:
                raise ValidationError("Invalid card data: Card ID is missing")
            if quantity < 1 or quantity > MAX_ITEM_QUANTITY:
                raise ValidationError(
                    f"Quantity must be between 1 and {MAX_ITEM_QUANTITY}",
                    detail=f"got {quantity}",
                )
        except KnownError as e:
            return AddItemResult.failed(e)

        key: ItemKey = (group_name, ctype, card.id)
        price = self._price_for(card, market_price)

        async with self._mutations.hold(key):
            previous = self._snapshot([key])
            try:
                async with session_scope(self.session_factory) as session:
                    await self._require_group(session, group_name)
                    status, item = await self._add_in_session(
                        session, key, card.name, card.image_small, quantity, price
                    )
            except KnownError as e:
                self._rollback(previous, e)
                return AddItemResult.failed(e)
            except SQLAlchemyError as e:
                error = BackendError(str(e))
                self._rollback(previous, error)
                return AddItemResult.failed(error)

            self._confirm([item])
            await self.prices.flush_robust()
            return AddItemResult(status=status, new_quantity=item.quantity)

    async def remove_item(
        self,
        group_name: str,
        collection_type: CollectionType | str,
        card_id: str,
        decrement_only: bool = True,
    ) -> RemoveItemResult:
        """
        Decrement or remove a card from one side of a group.

        With `decrement_only` and more than one copy, removes one copy.
        Otherwise deletes the item entirely (new_quantity 0).
        """
        try:
            self._require_user()
            ctype = coerce_collection_type(collection_type)
            group_name = _clean_name(group_name)
        except KnownError as e:
            return RemoveItemResult.failed(e)

        key: ItemKey = (group_name, ctype, card_id)

        async with self._mutations.hold(key):
            previous = self._snapshot([key])
            try:
                async with session_scope(self.session_factory) as session:
                    status, remaining = await self._remove_in_session(
                        session, key, amount=1 if decrement_only else None
                    )
            except SQLAlchemyError as e:
                error = BackendError(str(e))
                self._rollback(previous, error)
                return RemoveItemResult.failed(error)

            if status == "not_found":
                self.cache.drop_item(key)
                return RemoveItemResult(status="not_found")

            self._confirm([remaining] if remaining else [])
            if status == "removed":
                return RemoveItemResult(status="removed", new_quantity=0)
            return RemoveItemResult(
                status="decremented", new_quantity=remaining.quantity if remaining else 0
            )

    async def move_item(
        self,
        source_group: str,
        target_group: str,
        collection_type: CollectionType | str,
        card_id: str,
        quantity: int | None = None,
    ) -> MoveItemResult:
        """
        Move copies of a card from one group to another.

        Moving the whole stack (the default) force-removes the source item
        regardless of its quantity. Both sides commit in one transaction.
        """
        try:
            self._require_user()
            ctype = coerce_collection_type(collection_type)
            source_group = _clean_name(source_group)
            target_group = _clean_name(target_group)
            if source_group == target_group:
                raise ValidationError("Source and target groups must differ")
            if quantity is not None and quantity < 1:
                raise ValidationError("Quantity to move must be positive")
        except KnownError as e:
            return MoveItemResult.failed(e)

        source_key: ItemKey = (source_group, ctype, card_id)
        target_key: ItemKey = (target_group, ctype, card_id)

        async with self._mutations.hold_many([source_key, target_key]):
            previous = self._snapshot([source_key, target_key])
            try:
                async with session_scope(self.session_factory) as session:
                    user_id = self._require_user()
                    row = await get_item(session, user_id, source_group, ctype, card_id)
                    if row is None:
                        return MoveItemResult(status="not_found")

                    moving = row.quantity if quantity is None else quantity
                    if moving > row.quantity:
                        raise ValidationError(
                            f"Only {row.quantity} copies available to move",
                            detail=f"requested {moving}",
                        )

                    await self._require_group(session, target_group)
                    source = item_to_model(row)
                    _, moved = await self._add_in_session(
                        session,
                        target_key,
                        source.card_name,
                        source.card_image_small,
                        moving,
                        source.market_price or None,
                    )
                    full_move = moving == row.quantity
                    _, remaining = await self._remove_in_session(
                        session, source_key, amount=None if full_move else moving
                    )
            except KnownError as e:
                self._rollback(previous, e)
                return MoveItemResult.failed(e)
            except SQLAlchemyError as e:
                error = BackendError(str(e))
                self._rollback(previous, error)
                return MoveItemResult.failed(error)

            self._confirm([moved] + ([remaining] if remaining else []))
            logger.info(
                "ITEM_MOVED",
                extra={"card_id": card_id, "source": source_group, "target": target_group},
            )
            return MoveItemResult(
                status="moved",
                moved_quantity=moving,
                source_quantity=remaining.quantity if remaining else 0,
                target_quantity=moved.quantity,
            )

    async def _add_in_session(
        self,
        session: AsyncSession,
        key: ItemKey,
        card_name: str,
        card_image_small: str,
        quantity: int,
        price: float | None,
    ) -> tuple[str, CollectionItem]:
        """Insert or increment one item; the cache is written before the backend."""
        user_id = self._require_user()
        group_name, ctype, card_id = key
        now = self._now()

        row = await get_item(session, user_id, group_name, ctype, card_id)
        if row is None:
            item = CollectionItem(
                group_name=group_name,
                collection_type=ctype,
                card_id=card_id,
                card_name=card_name or "Unknown Card",
                card_image_small=card_image_small or "",
                quantity=quantity,
                last_modified_at=now,
                market_price=price or 0.0,
            )
            self.cache.put_item(item)
            row = await insert_item(session, user_id, item)
            return "added", item_to_model(row)

        new_quantity = row.quantity + quantity
        if new_quantity > MAX_ITEM_QUANTITY:
            raise ValidationError(
                f"Quantity cannot exceed {MAX_ITEM_QUANTITY}",
                detail=f"{card_id} would reach {new_quantity}",
            )
        current = item_to_model(row)
        self.cache.put_item(
            replace(
                current,
                quantity=new_quantity,
                last_modified_at=now,
                market_price=price or current.market_price,
            )
        )
        await update_item_quantity(session, row, new_quantity, now, price)
        return "updated", item_to_model(row)

    async def _remove_in_session(
        self,
        session: AsyncSession,
        key: ItemKey,
        amount: int | None,
    ) -> tuple[str, CollectionItem | None]:
        """
        Reduce one item by `amount` copies, or delete it when `amount` is None.

        Reaching zero always deletes. Returns (status, remaining item).
        """
        user_id = self._require_user()
        group_name, ctype, card_id = key

        row = await get_item(session, user_id, group_name, ctype, card_id)
        if row is None:
            return "not_found", None

        if amount is not None and row.quantity > amount:
            now = self._now()
            new_quantity = row.quantity - amount
            self.cache.put_item(
                replace(item_to_model(row), quantity=new_quantity, last_modified_at=now)
            )
            await update_item_quantity(session, row, new_quantity, now)
            return "decremented", item_to_model(row)

        self.cache.drop_item(key)
        await delete_item(session, row)
        return "removed", None

    def _price_for(self, card: CardRecord, market_price: float | None) -> float | None:
        if card.prices is None and market_price is not None:
            self.prices.observe(card.id, market_price, source=PriceSource.LEGACY, overwrite=False)
        return self.prices.resolve_price(card.id, card.prices)

    def _snapshot(self, keys: list[ItemKey]) -> dict[ItemKey, CollectionItem | None]:
        return {key: self.cache.peek(key) for key in keys}

    def _rollback(self, previous: dict[ItemKey, CollectionItem | None], error: KnownError) -> None:
        """Undo optimistic cache writes after a failed mutation."""
        for key, item in previous.items():
            if item is None:
                self.cache.drop_item(key)
            else:
                self.cache.put_item(item)
        logger.warning(
            "MUTATION_ROLLED_BACK",
            extra={"keys": [f"{g}/{t.value}/{c}" for g, t, c in previous], "kind": error.kind},
        )

    def _confirm(self, items: list[CollectionItem]) -> None:
        """Reconcile cached items with the backend's rows and mark the cache stale."""
        for item in items:
            self.cache.put_item(item)
        self.cache.invalidate()

    # =========================================================================
    # GROUPS
    # =========================================================================

    async def create_group(self, name: str, description: str | None = None) -> OperationResult:
        """Create a new, empty group. Fails if the name is blank or taken."""
        try:
            user_id = self._require_user()
            name = _clean_name(name)
            async with self._groups_lock:
                async with session_scope(self.session_factory) as session:
                    await self._ensure_default_group(session)
                    if await get_group(session, user_id, name) is not None:
                        raise ValidationError(GROUP_EXISTS_MESSAGE, detail=name)
                    await create_group(session, user_id, name, description)
        except KnownError as e:
            return OperationResult.failed(e)
        except SQLAlchemyError as e:
            return OperationResult.failed(BackendError(str(e)))

        self.cache.put_group(name)
        self.cache.invalidate()
        logger.info("GROUP_CREATED", extra={"user_id": user_id, "group": name})
        return OperationResult.success(group_name=name)

    async def rename_group(
        self, old_name: str, new_name: str, description: str | None = None
    ) -> OperationResult:
        """
        Rename a group and re-key all of its items.

        Fails for the Default group, a taken new name, or a missing group.
        """
        try:
            user_id = self._require_user()
            old_name = _clean_name(old_name)
            new_name = _clean_name(new_name)
            if old_name == DEFAULT_GROUP_NAME:
                raise ValidationError("Cannot rename the Default collection group")
            async with self._groups_lock:
                async with session_scope(self.session_factory) as session:
                    await self._ensure_default_group(session)
                    if await get_group(session, user_id, new_name) is not None:
                        raise ValidationError(GROUP_EXISTS_MESSAGE, detail=new_name)
                    group = await get_group(session, user_id, old_name)
                    if group is None:
                        raise NotFoundError(GROUP_NOT_FOUND_MESSAGE, detail=old_name)
                    moved = await rename_group(session, group, new_name, description)
        except KnownError as e:
            return OperationResult.failed(e)
        except SQLAlchemyError as e:
            return OperationResult.failed(BackendError(str(e)))

        self.cache.rename_group(old_name, new_name)
        self.cache.invalidate()
        logger.info(
            "GROUP_RENAMED",
            extra={"user_id": user_id, "old": old_name, "new": new_name, "items": moved},
        )
        return OperationResult.success(group_name=new_name)

    async def delete_group(self, name: str) -> OperationResult:
        """Delete a group and every item in it. The Default group is protected."""
        try:
            user_id = self._require_user()
            name = _clean_name(name)
            if name == DEFAULT_GROUP_NAME:
                raise ValidationError("Cannot delete the Default collection group")
            async with self._groups_lock:
                async with session_scope(self.session_factory) as session:
                    if not await delete_group(session, user_id, name):
                        raise NotFoundError(GROUP_NOT_FOUND_MESSAGE, detail=name)
        except KnownError as e:
            return OperationResult.failed(e)
        except SQLAlchemyError as e:
            return OperationResult.failed(BackendError(str(e)))

        self.cache.drop_group(name)
        self.cache.invalidate()
        logger.info("GROUP_DELETED", extra={"user_id": user_id, "group": name})
        return OperationResult.success(group_name=name)

    async def compute_group_value(self, name: str) -> OperationResult:
        """
        Sum quantity x market price over a group and persist the totals.

        Prices come from the price resolver; cards with no price count as 0.
        """
        try:
            user_id = self._require_user()
            async with session_scope(self.session_factory) as session:
                group = await self._require_group(session, name)
                value = await self._compute_and_store(session, user_id, group)
                await self.prices.flush_legacy(session)
        except KnownError as e:
            return OperationResult.failed(e)
        except SQLAlchemyError as e:
            return OperationResult.failed(BackendError(str(e)))

        await self.prices.flush_robust()
        return OperationResult.success(group_name=name, value=value)

    async def refresh_group_values(self) -> dict[str, GroupValue]:
        """Recompute and persist the value of every group."""
        if self.user_id is None:
            return {}

        values: dict[str, GroupValue] = {}
        for group in await self.list_groups():
            result = await self.compute_group_value(group.name)
            if result.ok and result.value is not None:
                values[group.name] = result.value
        return values

    async def update_market_price(self, card_id: str, price: float) -> OperationResult:
        """
        Record a new market price for a card across the whole collection.

        Updates every stored item of the card, the price tiers, and all
        group values.
        """
        try:
            user_id = self._require_user()
            if not card_id:
                raise ValidationError("Card ID is required")
            if price < 0:
                raise ValidationError("Market price cannot be negative")
            async with session_scope(self.session_factory) as session:
                updated = await set_market_price(session, user_id, card_id, price)
        except KnownError as e:
            return OperationResult.failed(e)
        except SQLAlchemyError as e:
            return OperationResult.failed(BackendError(str(e)))

        self.prices.observe(card_id, price, source=PriceSource.LIVE)
        for group in self.cache.get().values():
            for ctype in CollectionType:
                side = group.side(ctype)
                if card_id in side:
                    side[card_id] = replace(side[card_id], market_price=price)
        self.cache.invalidate()

        await self.refresh_group_values()
        logger.info("MARKET_PRICE_UPDATED", extra={"card_id": card_id, "items": updated})
        return OperationResult.success()

    async def _compute_and_store(
        self, session: AsyncSession, user_id: str, group: CollectionGroupDB
    ) -> GroupValue:
        rows = await list_items(session, user_id, group.name)
        have_value = 0.0
        want_value = 0.0

        with self.prices.render_pass():
            for row in rows:
                self.prices.observe(row.card_id, row.market_price, overwrite=False)
                price = self.prices.resolve_price(row.card_id) or 0.0
                subtotal = row.quantity * price
                if row.collection_type == CollectionType.HAVE.value:
                    have_value += subtotal
                else:
                    want_value += subtotal

        value = GroupValue(
            have_value=round(have_value, 2),
            want_value=round(want_value, 2),
            total_value=round(have_value + want_value, 2),
        )
        await store_group_value(session, group, value)
        return value

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _ensure_default_group(self, session: AsyncSession) -> CollectionGroupDB:
        """
        Get the Default group inside `session`, creating it on first use.

        Creation happens once per store, in its own committed session, so
        concurrent first mutations never race on the insert.
        """
        user_id = self._require_user()
        if not self._default_ready:
            async with self._default_lock:
                if not self._default_ready:
                    await self._create_default_group(user_id)
                    self._default_ready = True

        group = await get_group(session, user_id, DEFAULT_GROUP_NAME)
        if group is None:
            # Removed behind the store's back; recreate in this session
            group, _ = await get_or_create_group(
                session, user_id, DEFAULT_GROUP_NAME, DEFAULT_GROUP_DESCRIPTION
            )
        return group

    async def _create_default_group(self, user_id: str) -> None:
        try:
            async with session_scope(self.session_factory) as session:
                _, created = await get_or_create_group(
                    session, user_id, DEFAULT_GROUP_NAME, DEFAULT_GROUP_DESCRIPTION
                )
        except IntegrityError:
            # Another process inserted it first
            logger.info("DEFAULT_GROUP_EXISTS", extra={"user_id": user_id})
            return
        if created:
            logger.info("DEFAULT_GROUP_CREATED", extra={"user_id": user_id})

    async def _require_group(self, session: AsyncSession, name: str) -> CollectionGroupDB:
        """Get a group, creating Default on demand; other missing groups raise NotFound."""
        user_id = self._require_user()
        if name == DEFAULT_GROUP_NAME:
            return await self._ensure_default_group(session)
        group = await get_group(session, user_id, name)
        if group is None:
            raise NotFoundError(GROUP_NOT_FOUND_MESSAGE, detail=name)
        return group
