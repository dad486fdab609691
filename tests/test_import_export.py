"""Tests for group export and import."""

from typing import Any

import pytest

from binderkeep.models.collection import CollectionType
from binderkeep.models.failure import (
    AuthenticationRequiredError,
    NotFoundError,
    ValidationError,
)
from binderkeep.models.transfer import ExistingGroup, ExportDocument, NewGroup
from binderkeep.services.import_export import ImportExport, parse_document

HAVE = CollectionType.HAVE
WANT = CollectionType.WANT


def _document(items: list[Any], collection_type: str = "have") -> dict[str, Any]:
    return {
        "version": 1,
        "collection_type": collection_type,
        "group_name": "Trade Binder",
        "exported_at": "2026-01-01T00:00:00+00:00",
        "items": items,
    }


@pytest.fixture
def transfer(store, now) -> ImportExport:
    return ImportExport(store, now=now)


class TestParseDocument:
    def test_valid(self) -> None:
        doc, failures = parse_document(
            _document([{"card_id": "sv5-001", "quantity": 2, "market_price": 1.5}])
        )

        assert failures == []
        assert doc.items[0].card_id == "sv5-001"
        assert doc.items[0].quantity == 2

    @pytest.mark.parametrize(
        "raw",
        [
            {"items": []},
            {"collection_type": "have", "items": "sv5-001"},
            {"collection_type": "have"},
            {"collection_type": "owned", "items": [], "group_name": "x", "exported_at": "2026-01-01"},
            ["not", "an", "object"],
        ],
    )
    def test_invalid_format(self, raw: Any) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_document(raw)

        assert exc_info.value.message == "Invalid file format"

    def test_bad_items_reported(self) -> None:
        """Malformed items become failures instead of rejecting the document."""
        doc, failures = parse_document(
            _document(
                [
                    {"card_id": "sv5-001"},
                    {"card_id": "sv5-002", "quantity": 0},
                    {"quantity": 1},
                    "junk",
                ]
            )
        )

        assert [item.card_id for item in doc.items] == ["sv5-001"]
        assert [(f.card_id, f.reason) for f in failures] == [
            ("sv5-002", "Invalid item"),
            (None, "Invalid item"),
            (None, "Invalid item"),
        ]


class TestExport:
    async def test_sorted_both_sides(self, store, transfer: ImportExport, card_factory, now) -> None:
        await store.add_item("Default", WANT, card_factory("sv5-001"))
        await store.add_item("Default", HAVE, card_factory("sv5-300"), 2)
        await store.add_item("Default", HAVE, card_factory("sv5-010"))

        doc = await transfer.export_group("Default")

        assert doc.collection_type == "all"
        assert doc.exported_at == now()
        assert [(i.collection_type, i.card_id) for i in doc.items] == [
            (HAVE, "sv5-010"),
            (HAVE, "sv5-300"),
            (WANT, "sv5-001"),
        ]

    async def test_one_side(self, store, transfer: ImportExport, card_factory) -> None:
        await store.add_item("Default", WANT, card_factory("sv5-001"))
        await store.add_item("Default", HAVE, card_factory("sv5-300"))

        doc = await transfer.export_group("Default", "want")

        assert doc.collection_type == "want"
        assert [i.card_id for i in doc.items] == ["sv5-001"]

    async def test_missing_group(self, transfer: ImportExport) -> None:
        with pytest.raises(NotFoundError):
            await transfer.export_group("Nowhere")

    async def test_unauthenticated(self, store_factory) -> None:
        with pytest.raises(AuthenticationRequiredError):
            await ImportExport(store_factory(None)).export_group("Default")


class TestImport:
    async def test_new_group_created(self, store, transfer: ImportExport) -> None:
        result = await transfer.import_document(
            _document([{"card_id": "sv5-001", "quantity": 2}]), NewGroup("Trade Binder")
        )

        assert result.created_group is True
        assert (result.inserted, result.merged, result.failed) == (1, 0, 0)
        assert await store.get_quantity("Trade Binder", HAVE, "sv5-001") == 2

    async def test_new_group_that_exists_is_reused(self, store, transfer: ImportExport) -> None:
        await store.create_group("Trade Binder")

        result = await transfer.import_document(
            _document([{"card_id": "sv5-001"}]), NewGroup("Trade Binder")
        )

        assert result.created_group is False
        assert result.inserted == 1

    async def test_existing_group_must_exist(self, store, transfer: ImportExport) -> None:
        with pytest.raises(NotFoundError):
            await transfer.import_document(
                _document([{"card_id": "sv5-001"}]), ExistingGroup("Trade Binder")
            )

        assert "Trade Binder" not in [g.name for g in await store.list_groups()]

    async def test_import_is_additive(self, store, transfer: ImportExport) -> None:
        """Importing the same document twice doubles every quantity."""
        doc = _document([{"card_id": "sv5-001", "quantity": 2}, {"card_id": "sv5-002"}])

        await transfer.import_document(doc, ExistingGroup("Default"))
        second = await transfer.import_document(doc, ExistingGroup("Default"))

        assert (second.inserted, second.merged) == (0, 2)
        assert await store.get_quantity("Default", HAVE, "sv5-001") == 4
        assert await store.get_quantity("Default", HAVE, "sv5-002") == 2

    async def test_export_then_import_preserves_items(
        self, store, transfer: ImportExport, card_factory
    ) -> None:
        await store.add_item("Default", HAVE, card_factory("sv5-001"), 3)
        await store.add_item("Default", WANT, card_factory("sv5-002"), market_price=2.5)

        doc = await transfer.export_group("Default")
        result = await transfer.import_document(doc, NewGroup("Copy"))

        assert result.imported == 2
        exported = await transfer.export_group("Copy")
        assert [(i.card_id, i.collection_type, i.quantity, i.market_price) for i in exported.items] == [
            ("sv5-001", HAVE, 3, 0.0),
            ("sv5-002", WANT, 1, 2.5),
        ]

    async def test_partial_failure_keeps_good_items(self, store, transfer: ImportExport) -> None:
        doc = _document(
            [
                {"card_id": "sv5-001"},
                {"card_id": "sv5-002", "quantity": -3},
                {"card_id": "sv5-003", "quantity": 10_000},
            ]
        )

        result = await transfer.import_document(doc, ExistingGroup("Default"))

        assert result.inserted == 1
        assert [f.card_id for f in result.failures] == ["sv5-002", "sv5-003"]
        assert await store.get_quantity("Default", HAVE, "sv5-001") == 1
        assert await store.get_quantity("Default", HAVE, "sv5-003") == 0

    async def test_all_document_needs_item_types(self, store, transfer: ImportExport) -> None:
        doc = _document(
            [{"card_id": "sv5-001", "collection_type": "want"}, {"card_id": "sv5-002"}],
            collection_type="all",
        )

        result = await transfer.import_document(doc, ExistingGroup("Default"))

        assert result.inserted == 1
        assert [(f.card_id, f.reason) for f in result.failures] == [
            ("sv5-002", "Missing collection type")
        ]
        assert await store.get_quantity("Default", WANT, "sv5-001") == 1

    async def test_updates_group_value(self, store, transfer: ImportExport) -> None:
        doc = _document([{"card_id": "sv5-001", "quantity": 2, "market_price": 1.5}])

        await transfer.import_document(doc, NewGroup("Trade Binder"))

        groups = {g.name: g for g in await store.list_groups()}
        assert groups["Trade Binder"].have_value == 3.0

    async def test_blank_group_name(self, transfer: ImportExport) -> None:
        with pytest.raises(ValidationError):
            await transfer.import_document(_document([]), NewGroup("  "))

    async def test_accepts_parsed_document(self, store, transfer: ImportExport) -> None:
        doc, _ = parse_document(_document([{"card_id": "sv5-001"}]))
        assert isinstance(doc, ExportDocument)

        result = await transfer.import_document(doc, ExistingGroup("Default"))

        assert result.inserted == 1

    async def test_unauthenticated(self, store_factory) -> None:
        with pytest.raises(AuthenticationRequiredError):
            await ImportExport(store_factory(None)).import_document(
                _document([]), ExistingGroup("Default")
            )
