from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class CardRecord:
    """
    An immutable card record supplied by the card catalog.

    Attributes:
        id: Catalog card id (e.g., "sv5-123")
        name: Card name
        image_small: Small image URL
        image_large: Large image URL
        supertype: Pokemon, Trainer, or Energy
        set_id: Set identifier (e.g., "sv5")
        number: Collector number within the set
        rarity: Printed rarity, if known
        prices: TCGplayer price payload accompanying this fetch, keyed by finish
    """

    id: str
    name: str
    image_small: str = ""
    image_large: str = ""
    supertype: str | None = None
    set_id: str | None = None
    number: str | None = None
    rarity: str | None = None
    prices: dict[str, Any] | None = field(default=None, compare=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "CardRecord":
        """Build a record from a Pokemon TCG API card payload."""
        images = data.get("images") or {}
        card_set = data.get("set") or {}
        tcgplayer = data.get("tcgplayer") or {}
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or "Unknown Card"),
            image_small=str(images.get("small") or ""),
            image_large=str(images.get("large") or ""),
            supertype=data.get("supertype"),
            set_id=card_set.get("id"),
            number=data.get("number"),
            rarity=data.get("rarity"),
            prices=tcgplayer.get("prices"),
        )
