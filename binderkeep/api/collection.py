"""
Collection API endpoints.

Grouped have/want collections for the calling user: add, remove and move
cards, read quantities, and move whole groups in and out as export
documents.
"""

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from binderkeep.api.deps import ImportExportDep, StoreDep, check_result
from binderkeep.config import DEFAULT_GROUP_NAME, MAX_ITEM_QUANTITY
from binderkeep.models.card import CardRecord
from binderkeep.models.collection import CollectionItem, CollectionType, GroupedCollections
from binderkeep.models.failure import ValidationError
from binderkeep.models.results import AddItemResult, MoveItemResult, RemoveItemResult
from binderkeep.models.transfer import ExistingGroup, ExportDocument, ImportTarget, NewGroup

router = APIRouter(prefix="/collection", tags=["collection"])


class ItemResponse(BaseModel):
    """One card in one side of a group."""

    card_id: str
    card_name: str
    card_image_small: str
    quantity: int
    market_price: float
    last_modified_at: datetime

    @classmethod
    def from_item(cls, item: CollectionItem) -> "ItemResponse":
        return cls(
            card_id=item.card_id,
            card_name=item.card_name,
            card_image_small=item.card_image_small,
            quantity=item.quantity,
            market_price=item.market_price,
            last_modified_at=item.last_modified_at,
        )


class GroupItemsResponse(BaseModel):
    have: list[ItemResponse] = Field(default_factory=list)
    want: list[ItemResponse] = Field(default_factory=list)


class CollectionResponse(BaseModel):
    """Response model for the caller's grouped collections."""

    user_id: str | None
    groups: dict[str, GroupItemsResponse] = Field(default_factory=dict)
    total_cards: int = 0


class AddItemRequest(BaseModel):
    """Request model for adding copies of a card."""

    group_name: str = Field(default=DEFAULT_GROUP_NAME)
    collection_type: CollectionType
    card_id: str = Field(..., min_length=1, examples=["sv5-123"])
    card_name: str = Field(default="Unknown Card")
    card_image_small: str = Field(default="")
    quantity: int = Field(default=1, ge=1, le=MAX_ITEM_QUANTITY)
    prices: dict[str, Any] | None = Field(
        default=None,
        description="TCGplayer price payload from the current card fetch, keyed by finish",
    )


class QuantityResponse(BaseModel):
    group_name: str
    collection_type: CollectionType
    card_id: str
    quantity: int
    in_collection: bool


class MoveItemRequest(BaseModel):
    """Request model for moving copies of a card between groups."""

    source_group: str
    target_group: str
    collection_type: CollectionType
    card_id: str = Field(..., min_length=1)
    quantity: int | None = Field(
        default=None,
        ge=1,
        description="Copies to move; omit to move the whole stack",
    )


class ImportRequest(BaseModel):
    """Request model for importing an export document."""

    document: dict[str, Any] = Field(..., description="A previously exported document")
    target_mode: Literal["existing", "new"] = Field(
        ...,
        description="'existing' to merge into a group that must exist, "
        "'new' to create the group when missing",
    )
    group_name: str = Field(..., min_length=1)

    def target(self) -> ImportTarget:
        if self.target_mode == "existing":
            return ExistingGroup(self.group_name)
        return NewGroup(self.group_name)


class ImportFailureResponse(BaseModel):
    card_id: str | None
    reason: str


class ImportResponse(BaseModel):
    """Response model for an import."""

    group_name: str
    created_group: bool
    imported: int
    inserted: int
    merged: int
    failures: list[ImportFailureResponse] = Field(default_factory=list)


def _collection_response(user_id: str | None, groups: GroupedCollections) -> CollectionResponse:
    return CollectionResponse(
        user_id=user_id,
        groups={
            name: GroupItemsResponse(
                have=[ItemResponse.from_item(i) for i in sorted(g.have.values(), key=_by_id)],
                want=[ItemResponse.from_item(i) for i in sorted(g.want.values(), key=_by_id)],
            )
            for name, g in sorted(groups.items())
        },
        total_cards=sum(g.total_cards() for g in groups.values()),
    )


def _by_id(item: CollectionItem) -> str:
    return item.card_id


@router.get("", response_model=CollectionResponse)
async def get_collections(store: StoreDep, refresh: bool = False) -> CollectionResponse:
    """
    Get every group with its have and want items.

    Served from the read cache while it is fresh; `refresh=true` forces a
    reload from the database.
    """
    groups = await store.fetch_all(force=refresh)
    return _collection_response(store.user_id, groups)


@router.post("/items", response_model=AddItemResult)
async def add_item(request: AddItemRequest, store: StoreDep) -> AddItemResult:
    """Add copies of a card to one side of a group."""
    card = CardRecord(
        id=request.card_id,
        name=request.card_name,
        image_small=request.card_image_small,
        prices=request.prices,
    )
    result = await store.add_item(
        request.group_name, request.collection_type, card, quantity=request.quantity
    )
    return check_result(result)


@router.get(
    "/items/{group_name}/{collection_type}/{card_id}",
    response_model=QuantityResponse,
)
async def get_quantity(
    group_name: str,
    collection_type: CollectionType,
    card_id: str,
    store: StoreDep,
) -> QuantityResponse:
    """Quantity of a card in one side of a group (0 when absent)."""
    quantity = await store.get_quantity(group_name, collection_type, card_id)
    return QuantityResponse(
        group_name=group_name,
        collection_type=collection_type,
        card_id=card_id,
        quantity=quantity,
        in_collection=quantity > 0,
    )


@router.delete(
    "/items/{group_name}/{collection_type}/{card_id}",
    response_model=RemoveItemResult,
)
async def remove_item(
    group_name: str,
    collection_type: CollectionType,
    card_id: str,
    store: StoreDep,
    decrement_only: bool = True,
    confirm: bool = False,
) -> RemoveItemResult:
    """
    Remove one copy of a card, or the whole item.

    Any call that would delete the item (decrement_only=false, or the last
    copy) must pass confirm=true.
    """
    if not confirm:
        would_delete = not decrement_only
        if decrement_only:
            would_delete = await store.get_quantity(group_name, collection_type, card_id) == 1
        if would_delete:
            raise ValidationError(
                "Removing this card entirely requires confirmation",
                detail="pass confirm=true",
            )

    result = await store.remove_item(
        group_name, collection_type, card_id, decrement_only=decrement_only
    )
    return check_result(result)


@router.post("/move", response_model=MoveItemResult)
async def move_item(request: MoveItemRequest, store: StoreDep) -> MoveItemResult:
    """Move copies of a card from one group to another."""
    result = await store.move_item(
        request.source_group,
        request.target_group,
        request.collection_type,
        request.card_id,
        quantity=request.quantity,
    )
    return check_result(result)


@router.get("/export/{group_name}", response_model=ExportDocument)
async def export_group(
    group_name: str,
    transfer: ImportExportDep,
    collection_type: CollectionType | None = None,
) -> ExportDocument:
    """Export one group (one side, or both when collection_type is omitted)."""
    return await transfer.export_group(group_name, collection_type)


@router.post("/import", response_model=ImportResponse, status_code=status.HTTP_201_CREATED)
async def import_document(request: ImportRequest, transfer: ImportExportDep) -> ImportResponse:
    """
    Merge an export document into a group.

    Items already present have their quantities added. Each item commits
    on its own; failures are listed per item.
    """
    result = await transfer.import_document(request.document, request.target())
    return ImportResponse(
        group_name=result.group_name,
        created_group=result.created_group,
        imported=result.imported,
        inserted=result.inserted,
        merged=result.merged,
        failures=[
            ImportFailureResponse(card_id=f.card_id, reason=f.reason) for f in result.failures
        ],
    )
