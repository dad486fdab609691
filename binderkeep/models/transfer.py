"""
Portable export document and import targets.

The export document is the JSON format users download and re-import:

    {
      "version": 1,
      "collection_type": "have" | "want" | "all",
      "group_name": "Trade Binder",
      "collection_name": "Trade Binder",
      "exported_at": "2026-01-01T00:00:00+00:00",
      "items": [{"card_id": ..., "card_name": ..., "card_image_small": ...,
                 "quantity": 2, "market_price": 4.5}]
    }
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from binderkeep.models.collection import CollectionType

EXPORT_FORMAT_VERSION = 1

DocumentType = Literal["have", "want", "all"]


class ExportItem(BaseModel):
    """One card line of an export document."""

    card_id: str = Field(..., min_length=1)
    card_name: str | None = None
    card_image_small: str | None = None
    quantity: int = Field(default=1, ge=1)
    market_price: float = Field(default=0.0, ge=0)
    collection_type: CollectionType | None = Field(
        default=None,
        description="Per-item type, required when the document type is 'all'",
    )


class ExportDocument(BaseModel):
    """A deterministic, versioned snapshot of one group's collection."""

    version: int = EXPORT_FORMAT_VERSION
    collection_type: DocumentType
    group_name: str
    collection_name: str | None = None
    exported_at: datetime
    items: list[ExportItem] = Field(default_factory=list)


@dataclass(frozen=True)
class ExistingGroup:
    """Import into a group that must already exist."""

    name: str


@dataclass(frozen=True)
class NewGroup:
    """Import into a group, creating it first when missing."""

    name: str


ImportTarget = ExistingGroup | NewGroup


@dataclass(frozen=True)
class ImportFailure:
    card_id: str | None
    reason: str


@dataclass
class ImportResult:
    """Per-item outcome of an import; successful items are committed."""

    group_name: str
    created_group: bool = False
    inserted: int = 0
    merged: int = 0
    failures: list[ImportFailure] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return self.inserted + self.merged

    @property
    def failed(self) -> int:
        return len(self.failures)
