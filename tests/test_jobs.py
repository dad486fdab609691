"""Tests for scheduled jobs."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from binderkeep.jobs.refresh_prices import fetch_live_prices, run_price_refresh
from binderkeep.models.collection import CollectionType
from binderkeep.services.price_resolver import PriceResolver

HAVE = CollectionType.HAVE


def _catalog(cards: dict | None = None, error: Exception | None = None) -> MagicMock:
    catalog = MagicMock()
    catalog.get_many = AsyncMock(return_value=cards or {}, side_effect=error)
    return catalog


class TestFetchLivePrices:
    async def test_resolves_priced_cards(self, card_factory) -> None:
        catalog = _catalog(
            {
                "sv5-001": card_factory("sv5-001", prices={"normal": {"market": 2.0}}),
                "sv5-002": card_factory("sv5-002"),
                "sv5-003": card_factory("sv5-003", prices={"normal": {"market": 0}}),
            }
        )
        resolver = PriceResolver()

        prices = await fetch_live_prices(catalog, ["sv5-001", "sv5-002", "sv5-003"], resolver)

        assert prices == {"sv5-001": 2.0}
        assert resolver.resolve_price("sv5-001") == 2.0

    async def test_no_cards(self) -> None:
        catalog = _catalog()

        assert await fetch_live_prices(catalog, [], PriceResolver()) == {}
        catalog.get_many.assert_not_called()


class TestRunPriceRefresh:
    @pytest.fixture
    async def stores(self, store_factory, card_factory):
        """Two users sharing one card, plus a card only the first holds."""
        first = store_factory("user-123")
        second = store_factory("user-456")
        await first.add_item("Default", HAVE, card_factory("sv5-001"), 2)
        await first.add_item("Default", HAVE, card_factory("sv5-002"))
        await second.add_item("Default", HAVE, card_factory("sv5-001"))
        return first, second

    async def test_updates_items_and_values(
        self, stores, session_factory, prices: PriceResolver, card_factory
    ) -> None:
        first, second = stores
        catalog = _catalog({"sv5-001": card_factory("sv5-001", prices={"normal": {"market": 3.0}})})

        results = await run_price_refresh(catalog, prices, session_factory)

        assert results == {"cards": 2, "priced": 1, "items": 2, "users": 2}
        catalog.get_many.assert_awaited_once_with(["sv5-001", "sv5-002"])
        groups = await first.fetch_all(force=True)
        assert groups["Default"].have["sv5-001"].market_price == 3.0
        assert (await first.list_groups())[0].have_value == 6.0
        assert (await second.list_groups())[0].have_value == 3.0

    async def test_writes_legacy_prices(
        self, stores, session_factory, prices: PriceResolver, card_factory
    ) -> None:
        catalog = _catalog({"sv5-001": card_factory("sv5-001", prices={"normal": {"market": 3.0}})})

        await run_price_refresh(catalog, prices, session_factory)

        fresh = PriceResolver()
        async with session_factory() as session:
            assert await fresh.load_legacy(session) == 1
        assert fresh.resolve_price("sv5-001") == 3.0

    async def test_http_error_stops_before_writes(
        self, stores, session_factory, prices: PriceResolver
    ) -> None:
        first, _ = stores
        catalog = _catalog(error=httpx.ConnectError("catalog unreachable"))

        results = await run_price_refresh(catalog, prices, session_factory)

        assert results == {"cards": 2, "priced": 0, "items": 0, "users": 0}
        groups = await first.fetch_all(force=True)
        assert groups["Default"].have["sv5-001"].market_price == 0.0

    async def test_empty_database(self, session_factory, prices: PriceResolver) -> None:
        catalog = _catalog()

        results = await run_price_refresh(catalog, prices, session_factory)

        assert results == {"cards": 0, "priced": 0, "items": 0, "users": 0}
        catalog.get_many.assert_not_called()
