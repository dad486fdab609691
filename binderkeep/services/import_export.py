"""
Export a group to a portable JSON document and import documents back.

Imports are merge-additive: a card already in the target side has the
document's quantity added to it. Each item is committed on its own, so a
bad line never discards the good ones; failures are reported per item.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from binderkeep.models.card import CardRecord
from binderkeep.models.collection import CollectionType
from binderkeep.models.failure import (
    GROUP_NOT_FOUND_MESSAGE,
    BackendError,
    FailureKind,
    NotFoundError,
    ValidationError,
)
from binderkeep.models.transfer import (
    ExistingGroup,
    ExportDocument,
    ExportItem,
    ImportFailure,
    ImportResult,
    ImportTarget,
    NewGroup,
)
from binderkeep.services.collection_store import CollectionStore, coerce_collection_type

logger = logging.getLogger(__name__)


def parse_document(
    raw: Mapping[str, Any] | ExportDocument,
) -> tuple[ExportDocument, list[ImportFailure]]:
    """
    Validate a decoded JSON document.

    Returns the document holding only well-formed items, plus one failure
    per malformed item.

    Raises:
        ValidationError: Missing collection_type, non-list items, or bad fields
    """
    if isinstance(raw, ExportDocument):
        return raw, []
    if not isinstance(raw, Mapping):
        raise ValidationError("Invalid file format", detail="document must be a JSON object")
    if not raw.get("collection_type") or not isinstance(raw.get("items"), list):
        raise ValidationError(
            "Invalid file format", detail="collection_type and an items list are required"
        )

    # Bad items are reported per item on import, not rejected here
    header = {**raw, "items": []}
    try:
        document = ExportDocument.model_validate(header)
    except PydanticValidationError as e:
        raise ValidationError("Invalid file format", detail=str(e)) from e

    failures: list[ImportFailure] = []
    for entry in raw["items"]:
        try:
            document.items.append(ExportItem.model_validate(entry))
        except PydanticValidationError:
            card_id = entry.get("card_id") if isinstance(entry, Mapping) else None
            failures.append(
                ImportFailure(card_id=str(card_id) if card_id else None, reason="Invalid item")
            )
    return document, failures


class ImportExport:
    """Portable documents for the groups of one store's user."""

    def __init__(self, store: CollectionStore, now: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self._now = now or (lambda: datetime.now(UTC))

    async def export_group(
        self,
        group_name: str,
        collection_type: CollectionType | str | None = None,
    ) -> ExportDocument:
        """
        Export one group, one side or both.

        Items are sorted by (collection_type, card_id) so the same
        collection always yields the same items.

        Raises:
            AuthenticationRequiredError: If unauthenticated
            NotFoundError: If the group does not exist
            BackendError: If the backend read fails
        """
        ctype = coerce_collection_type(collection_type) if collection_type else None
        items = await self.store.load_group_items(group_name, ctype)
        items.sort(key=lambda item: (item.collection_type.value, item.card_id))

        document = ExportDocument(
            collection_type=ctype.value if ctype else "all",
            group_name=group_name,
            collection_name=group_name,
            exported_at=self._now(),
            items=[
                ExportItem(
                    card_id=item.card_id,
                    card_name=item.card_name,
                    card_image_small=item.card_image_small,
                    quantity=item.quantity,
                    market_price=item.market_price,
                    collection_type=item.collection_type,
                )
                for item in items
            ],
        )
        logger.info(
            "GROUP_EXPORTED",
            extra={"group": group_name, "type": document.collection_type, "items": len(items)},
        )
        return document

    async def import_document(
        self,
        document: Mapping[str, Any] | ExportDocument,
        target: ImportTarget,
    ) -> ImportResult:
        """
        Merge a document's items into a target group.

        Args:
            document: Parsed export document or its decoded JSON
            target: ExistingGroup (must exist) or NewGroup (created if missing)

        Returns:
            Per-item outcome; successful items are committed even when
            others fail. Group values are recomputed afterwards.

        Raises:
            AuthenticationRequiredError: If unauthenticated
            ValidationError: Malformed document or blank group name
            NotFoundError: ExistingGroup target that does not exist
            BackendError: If the target group cannot be checked or created
        """
        doc, invalid = parse_document(document)
        group_name = (target.name or "").strip()
        if not group_name:
            raise ValidationError("Group name cannot be empty")

        result = ImportResult(group_name=group_name, failures=invalid)
        exists = await self.store.has_group(group_name)

        if isinstance(target, ExistingGroup):
            if not exists:
                raise NotFoundError(GROUP_NOT_FOUND_MESSAGE, detail=group_name)
        elif isinstance(target, NewGroup):
            if not exists:
                created = await self.store.create_group(group_name)
                if not created.ok:
                    if created.kind == FailureKind.BACKEND_ERROR:
                        raise BackendError(created.message)
                    raise ValidationError(created.message or "Could not create group")
                result.created_group = True
        else:
            raise ValidationError("Import target must be an existing or new group")

        default_type = None if doc.collection_type == "all" else CollectionType(doc.collection_type)
        for entry in doc.items:
            await self._import_item(entry, default_type, group_name, result)

        await self.store.compute_group_value(group_name)
        logger.info(
            "COLLECTION_IMPORTED",
            extra={
                "group": group_name,
                "inserted": result.inserted,
                "merged": result.merged,
                "failed": result.failed,
            },
        )
        return result

    async def _import_item(
        self,
        entry: ExportItem,
        default_type: CollectionType | None,
        group_name: str,
        result: ImportResult,
    ) -> None:
        ctype = entry.collection_type or default_type
        if ctype is None:
            result.failures.append(
                ImportFailure(card_id=entry.card_id, reason="Missing collection type")
            )
            return

        card = CardRecord(
            id=entry.card_id,
            name=entry.card_name or "Unknown Card",
            image_small=entry.card_image_small or "",
        )
        outcome = await self.store.add_item(
            group_name,
            ctype,
            card,
            quantity=entry.quantity,
            market_price=entry.market_price or None,
        )

        if outcome.status == "added":
            result.inserted += 1
        elif outcome.status == "updated":
            result.merged += 1
        else:
            logger.warning("Import of %s failed: %s", entry.card_id, outcome.message)
            result.failures.append(
                ImportFailure(card_id=entry.card_id, reason=outcome.message or "Unknown error")
            )
