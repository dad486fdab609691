"""
Database CRUD operations.

Provides async functions for reading and writing collection groups,
collection items, shared snapshots, and persisted card prices. Every
collection query is scoped by user_id.
"""

from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from binderkeep.models.collection import CollectionItem, CollectionType, Group, GroupValue
from binderkeep.models.db import (
    CardPriceDB,
    CollectionGroupDB,
    CollectionItemDB,
    SharedCollectionDB,
)
from binderkeep.models.share import SharePermission, ShareScope, ShareSnapshot


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# --- Group Operations ---


async def get_group(session: AsyncSession, user_id: str, name: str) -> CollectionGroupDB | None:
    """
    Get a user's group by name.

    Returns None if the group does not exist.
    """
    result = await session.execute(
        select(CollectionGroupDB).where(
            CollectionGroupDB.user_id == user_id,
            CollectionGroupDB.name == name,
        )
    )
    return result.scalar_one_or_none()


async def list_groups(session: AsyncSession, user_id: str) -> list[CollectionGroupDB]:
    """Get all groups for a user, ordered by name."""
    result = await session.execute(
        select(CollectionGroupDB)
        .where(CollectionGroupDB.user_id == user_id)
        .order_by(CollectionGroupDB.name)
    )
    return list(result.scalars().all())


async def create_group(
    session: AsyncSession,
    user_id: str,
    name: str,
    description: str | None = None,
) -> CollectionGroupDB:
    """
    Create a new group for a user.

    Raises IntegrityError if the name is already taken.
    """
    group = CollectionGroupDB(
        user_id=user_id,
        name=name,
        description=description,
        have_value=0.0,
        want_value=0.0,
        total_value=0.0,
    )
    session.add(group)
    await session.flush()
    return group


async def get_or_create_group(
    session: AsyncSession,
    user_id: str,
    name: str,
    description: str | None = None,
) -> tuple[CollectionGroupDB, bool]:
    """
    Get existing group or create a new one.

    Returns:
        Tuple of (group, created) where created is True if new.
    """
    group = await get_group(session, user_id, name)
    if group:
        return group, False

    group = await create_group(session, user_id, name, description)
    return group, True


async def rename_group(
    session: AsyncSession,
    group: CollectionGroupDB,
    new_name: str,
    description: str | None = None,
) -> int:
    """
    Rename a group and re-key every item stored under the old name.

    Returns the number of items moved to the new name.
    """
    old_name = group.name
    group.name = new_name
    if description is not None:
        group.description = description

    result = await session.execute(
        update(CollectionItemDB)
        .where(
            CollectionItemDB.user_id == group.user_id,
            CollectionItemDB.group_name == old_name,
        )
        .values(group_name=new_name)
    )
    await session.flush()
    # rowcount is available on UPDATE results; type stubs incomplete for async
    return int(result.rowcount)  # type: ignore[attr-defined]


async def delete_group(session: AsyncSession, user_id: str, name: str) -> bool:
    """
    Delete a group and every item in it.

    Returns True if deleted, False if not found.
    """
    group = await get_group(session, user_id, name)
    if not group:
        return False

    await session.execute(
        delete(CollectionItemDB).where(
            CollectionItemDB.user_id == user_id,
            CollectionItemDB.group_name == name,
        )
    )
    await session.delete(group)
    await session.flush()
    return True


async def store_group_value(
    session: AsyncSession, group: CollectionGroupDB, value: GroupValue
) -> None:
    """Persist aggregate values onto a group row."""
    group.have_value = value.have_value
    group.want_value = value.want_value
    group.total_value = value.total_value
    await session.flush()


def group_to_model(group: CollectionGroupDB) -> Group:
    """Convert a database group to a domain model."""
    return Group(
        name=group.name,
        description=group.description,
        have_value=group.have_value or 0.0,
        want_value=group.want_value or 0.0,
        total_value=group.total_value or 0.0,
    )


# --- Item Operations ---


async def get_item(
    session: AsyncSession,
    user_id: str,
    group_name: str,
    collection_type: CollectionType,
    card_id: str,
) -> CollectionItemDB | None:
    """Select one item by its full key."""
    result = await session.execute(
        select(CollectionItemDB).where(
            CollectionItemDB.user_id == user_id,
            CollectionItemDB.group_name == group_name,
            CollectionItemDB.collection_type == collection_type.value,
            CollectionItemDB.card_id == card_id,
        )
    )
    return result.scalar_one_or_none()


async def list_items(
    session: AsyncSession,
    user_id: str,
    group_name: str | None = None,
    collection_type: CollectionType | None = None,
) -> list[CollectionItemDB]:
    """
    Bulk select a user's items.

    Optionally narrowed to one group and/or one collection type.
    Ordered by (group, type, card_id) so exports are deterministic.
    """
    query = select(CollectionItemDB).where(CollectionItemDB.user_id == user_id)
    if group_name is not None:
        query = query.where(CollectionItemDB.group_name == group_name)
    if collection_type is not None:
        query = query.where(CollectionItemDB.collection_type == collection_type.value)

    result = await session.execute(
        query.order_by(
            CollectionItemDB.group_name,
            CollectionItemDB.collection_type,
            CollectionItemDB.card_id,
        )
    )
    return list(result.scalars().all())


async def insert_item(session: AsyncSession, user_id: str, item: CollectionItem) -> CollectionItemDB:
    """Insert a new item row from a domain item."""
    row = CollectionItemDB(
        user_id=user_id,
        group_name=item.group_name,
        collection_type=item.collection_type.value,
        card_id=item.card_id,
        card_name=item.card_name,
        card_image_small=item.card_image_small,
        quantity=item.quantity,
        market_price=item.market_price,
        last_modified_at=item.last_modified_at,
    )
    session.add(row)
    await session.flush()
    return row


async def update_item_quantity(
    session: AsyncSession,
    row: CollectionItemDB,
    quantity: int,
    modified_at: datetime,
    market_price: float | None = None,
) -> CollectionItemDB:
    """
    Update an item's quantity by key.

    Quantities below 1 must go through delete_item instead.
    """
    if quantity < 1:
        msg = f"Quantity for '{row.card_id}' must be positive, got {quantity}"
        raise ValueError(msg)

    row.quantity = quantity
    row.last_modified_at = modified_at
    if market_price is not None:
        row.market_price = market_price
    await session.flush()
    return row


async def delete_item(session: AsyncSession, row: CollectionItemDB) -> None:
    """Delete an item row."""
    await session.delete(row)
    await session.flush()


async def set_market_price(
    session: AsyncSession, user_id: str | None, card_id: str, price: float
) -> int:
    """
    Write a market price onto every item of a card.

    Scoped to one user, or to every user when user_id is None.

    Returns the number of updated items.
    """
    query = update(CollectionItemDB).where(CollectionItemDB.card_id == card_id)
    if user_id is not None:
        query = query.where(CollectionItemDB.user_id == user_id)
    result = await session.execute(query.values(market_price=price))
    return int(result.rowcount)  # type: ignore[attr-defined]


async def list_card_ids(session: AsyncSession) -> list[str]:
    """Distinct card ids held by any user, sorted."""
    result = await session.execute(
        select(CollectionItemDB.card_id).distinct().order_by(CollectionItemDB.card_id)
    )
    return list(result.scalars().all())


async def list_user_ids(session: AsyncSession) -> list[str]:
    """Distinct users that own at least one group, sorted."""
    result = await session.execute(
        select(CollectionGroupDB.user_id).distinct().order_by(CollectionGroupDB.user_id)
    )
    return list(result.scalars().all())


def item_to_model(row: CollectionItemDB) -> CollectionItem:
    """Convert a database item to a domain model."""
    return CollectionItem(
        group_name=row.group_name,
        collection_type=CollectionType(row.collection_type),
        card_id=row.card_id,
        card_name=row.card_name,
        card_image_small=row.card_image_small or "",
        quantity=row.quantity,
        last_modified_at=as_utc(row.last_modified_at),
        market_price=row.market_price or 0.0,
    )


# --- Share Operations ---


async def insert_share(
    session: AsyncSession, user_id: str, snapshot: ShareSnapshot
) -> SharedCollectionDB:
    """Store a snapshot."""
    row = SharedCollectionDB(
        share_id=snapshot.share_id,
        user_id=user_id,
        group_name=snapshot.group_name,
        collection_name=snapshot.collection_name,
        sharing_level=snapshot.scope.value,
        data=snapshot.items,
        permission=snapshot.permission.value,
        password_hash=snapshot.password_hash,
        is_collaborative=snapshot.collaborative,
        created_at=snapshot.created_at,
        expires_at=snapshot.expires_at,
    )
    session.add(row)
    await session.flush()
    return row


async def get_share(session: AsyncSession, share_id: str) -> SharedCollectionDB | None:
    """Get a snapshot by its share id, regardless of owner or expiry."""
    result = await session.execute(
        select(SharedCollectionDB).where(SharedCollectionDB.share_id == share_id)
    )
    return result.scalar_one_or_none()


async def record_share_view(session: AsyncSession, share_id: str) -> int:
    """
    Count one view of a snapshot with a single UPDATE.

    Returns the new view count, or 0 if the share does not exist.
    """
    await session.execute(
        update(SharedCollectionDB)
        .where(SharedCollectionDB.share_id == share_id)
        .values(view_count=SharedCollectionDB.view_count + 1)
    )
    result = await session.execute(
        select(SharedCollectionDB.view_count).where(SharedCollectionDB.share_id == share_id)
    )
    return result.scalar_one_or_none() or 0


async def list_shares(session: AsyncSession, user_id: str) -> list[SharedCollectionDB]:
    """Get a user's snapshots, newest first."""
    result = await session.execute(
        select(SharedCollectionDB)
        .where(SharedCollectionDB.user_id == user_id)
        .order_by(SharedCollectionDB.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_share(session: AsyncSession, user_id: str, share_id: str) -> bool:
    """
    Delete one of a user's snapshots.

    Returns True if deleted, False if not found or owned by someone else.
    """
    result = await session.execute(
        delete(SharedCollectionDB).where(
            SharedCollectionDB.user_id == user_id,
            SharedCollectionDB.share_id == share_id,
        )
    )
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


def share_to_model(row: SharedCollectionDB) -> ShareSnapshot:
    """Convert a database snapshot to a domain model."""
    return ShareSnapshot(
        share_id=row.share_id,
        group_name=row.group_name,
        collection_name=row.collection_name,
        scope=ShareScope(row.sharing_level),
        items=list(row.data or []),
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
        permission=SharePermission(row.permission),
        password_hash=row.password_hash,
        collaborative=row.is_collaborative,
        view_count=row.view_count or 0,
    )


# --- Price Operations ---


async def load_prices(session: AsyncSession) -> list[CardPriceDB]:
    """Get every persisted card price."""
    result = await session.execute(select(CardPriceDB))
    return list(result.scalars().all())


async def upsert_prices(
    session: AsyncSession, records: Iterable[tuple[str, float, datetime]]
) -> int:
    """
    Insert or update persisted card prices.

    Args:
        records: (card_id, price, observed_at) tuples

    Returns:
        Number of prices written.
    """
    count = 0
    for card_id, price, observed_at in records:
        existing = await session.get(CardPriceDB, card_id)
        if existing:
            existing.price = price
            existing.observed_at = observed_at
        else:
            session.add(CardPriceDB(card_id=card_id, price=price, observed_at=observed_at))
        count += 1

    await session.flush()
    return count
