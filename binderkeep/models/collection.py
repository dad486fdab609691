from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from binderkeep.config import DEFAULT_GROUP_NAME


class CollectionType(str, Enum):
    """Which side of a group an item belongs to."""

    HAVE = "have"
    WANT = "want"


ItemKey = tuple[str, CollectionType, str]


@dataclass
class CollectionItem:
    """
    One card in one side of one group.

    Uniquely keyed by (group_name, collection_type, card_id). An item with
    quantity 0 is absent and is never stored.
    """

    group_name: str
    collection_type: CollectionType
    card_id: str
    card_name: str
    card_image_small: str
    quantity: int
    last_modified_at: datetime
    market_price: float = 0.0

    @property
    def key(self) -> ItemKey:
        return (self.group_name, self.collection_type, self.card_id)


@dataclass
class GroupCollections:
    """The have and want sides of a single group, keyed by card_id."""

    have: dict[str, CollectionItem] = field(default_factory=dict)
    want: dict[str, CollectionItem] = field(default_factory=dict)

    def side(self, collection_type: CollectionType) -> dict[str, CollectionItem]:
        """Get the items for one collection type."""
        if collection_type == CollectionType.HAVE:
            return self.have
        return self.want

    def all_items(self) -> list[CollectionItem]:
        return [*self.have.values(), *self.want.values()]

    def total_cards(self) -> int:
        """Total number of cards across both sides."""
        return sum(item.quantity for item in self.all_items())


# group name -> collections
GroupedCollections = dict[str, GroupCollections]


def empty_grouped_collections() -> GroupedCollections:
    """A single empty Default group."""
    return {DEFAULT_GROUP_NAME: GroupCollections()}


@dataclass
class Group:
    """A named partition of a user's collection with its aggregate value."""

    name: str
    description: str | None = None
    have_value: float = 0.0
    want_value: float = 0.0
    total_value: float = 0.0


@dataclass(frozen=True)
class GroupValue:
    have_value: float
    want_value: float
    total_value: float
