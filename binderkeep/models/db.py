"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence. Every
row is scoped by user_id.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CollectionGroupDB(Base):
    """
    A named collection group with its aggregated market values.

    Group names are unique per user.
    """

    __tablename__ = "collection_groups"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_user_group_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    have_value: Mapped[float] = mapped_column(Float, default=0.0)
    want_value: Mapped[float] = mapped_column(Float, default=0.0)
    total_value: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<CollectionGroupDB(user={self.user_id}, name={self.name})>"


class CollectionItemDB(Base):
    """
    Individual card quantity within one side of a group.

    Tracks how many copies of a card a user has (or wants) in a group.
    """

    __tablename__ = "collection_items"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "group_name",
            "collection_type",
            "card_id",
            name="uq_user_group_type_card",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    group_name: Mapped[str] = mapped_column(String(255), index=True)
    collection_type: Mapped[str] = mapped_column(String(10))
    card_id: Mapped[str] = mapped_column(String(64), index=True)
    card_name: Mapped[str] = mapped_column(String(255))
    card_image_small: Mapped[str] = mapped_column(Text, default="")
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    market_price: Mapped[float] = mapped_column(Float, default=0.0)
    last_modified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<CollectionItemDB(card={self.card_id}, type={self.collection_type}, qty={self.quantity})>"


class SharedCollectionDB(Base):
    """
    A shared snapshot of a group's collection.

    Items are copied into `data` at creation time and never change.
    """

    __tablename__ = "shared_collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    share_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    group_name: Mapped[str] = mapped_column(String(255))
    collection_name: Mapped[str] = mapped_column(String(255))
    sharing_level: Mapped[str] = mapped_column(String(10))
    data: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    permission: Mapped[str] = mapped_column(String(10), default="read")
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_collaborative: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    view_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    def __repr__(self) -> str:
        return f"<SharedCollectionDB(share_id={self.share_id}, group={self.group_name})>"


class CardPriceDB(Base):
    """
    Last known market price for a card.

    Backs the legacy price tier; one row per card.
    """

    __tablename__ = "card_prices"

    card_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    price: Mapped[float] = mapped_column(Float)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<CardPriceDB(card={self.card_id}, price={self.price})>"
