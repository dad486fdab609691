"""Tests for the price resolver and its precedence chain."""

import json
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from binderkeep.db.operations import load_prices
from binderkeep.services.price_resolver import (
    NO_PRICE_LABEL,
    PriceRecord,
    PriceResolver,
    PriceSource,
    market_price_from_payload,
)

CARD = "sv5-123"


def _put(resolver: PriceResolver, source: PriceSource, price: float) -> None:
    """Place a record in exactly one tier, bypassing write-back."""
    resolver.cache.put(PriceRecord(CARD, price, source, resolver._clock()))


class TestMarketPriceFromPayload:
    def test_normal_finish_first(self) -> None:
        """Normal market price wins over other finishes."""
        payload = {"holofoil": {"market": 9.0}, "normal": {"market": 1.25}}

        assert market_price_from_payload(payload) == 1.25

    def test_skips_missing_and_zero_finishes(self) -> None:
        """Falls through finishes without a positive market price."""
        payload = {
            "normal": {"market": None},
            "holofoil": {"market": 0},
            "reverseHolofoil": {"market": 5.5},
        }

        assert market_price_from_payload(payload) == 5.5

    def test_other_finishes_checked_last(self) -> None:
        """Unlisted finishes are still considered."""
        assert market_price_from_payload({"1stEditionHolofoil": {"market": 7.0}}) == 7.0

    def test_single_finish_and_bare_number(self) -> None:
        """Accepts one finish dict or a plain number."""
        assert market_price_from_payload({"market": 4.5, "low": 3.0}) == 4.5
        assert market_price_from_payload(2.5) == 2.5

    @pytest.mark.parametrize("value", [None, 0, -1.0, float("nan"), True, "4.50", {}])
    def test_unusable_values(self, value: object) -> None:
        """Non-positive, non-numeric, and empty data give None."""
        assert market_price_from_payload(value) is None  # type: ignore[arg-type]


class TestPrecedence:
    async def test_live_beats_robust_and_persists(self, tmp_path: Path) -> None:
        """A live 4.50 wins over a cached 3.00 and replaces it."""
        path = tmp_path / "prices.json"
        resolver = PriceResolver(robust_path=path)
        resolver.observe(CARD, 3.00, source=PriceSource.ROBUST)

        assert resolver.resolve_price(CARD, {"normal": {"market": 4.50}}) == 4.50
        assert resolver.resolve_price(CARD) == 4.50
        assert resolver.cache.get(PriceSource.ROBUST, CARD).price == 4.50
        assert resolver.cache.get(PriceSource.LEGACY, CARD).price == 4.50

        assert await resolver.flush_robust() is True
        reloaded = PriceResolver(robust_path=path)
        assert reloaded.resolve_price(CARD) == 4.50

    def test_zero_live_price_falls_back_to_cache(self) -> None:
        """A zero live price does not override the cache."""
        resolver = PriceResolver()
        resolver.observe(CARD, 3.00, source=PriceSource.ROBUST)

        assert resolver.resolve_price(CARD, {"normal": {"market": 0}}) == 3.00

    def test_robust_beats_legacy(self) -> None:
        """Robust tier is consulted before legacy."""
        resolver = PriceResolver()
        _put(resolver, PriceSource.LEGACY, 1.00)
        _put(resolver, PriceSource.ROBUST, 2.00)

        assert resolver.resolve_price(CARD) == 2.00

    def test_robust_hit_written_back_to_legacy(self) -> None:
        """A robust hit warms the legacy tier."""
        resolver = PriceResolver()
        _put(resolver, PriceSource.ROBUST, 2.00)

        resolver.resolve_price(CARD)

        assert resolver.cache.get(PriceSource.LEGACY, CARD).price == 2.00

    def test_legacy_only(self) -> None:
        """Legacy tier answers when nothing better exists."""
        resolver = PriceResolver()
        _put(resolver, PriceSource.LEGACY, 0.75)

        assert resolver.resolve_price(CARD) == 0.75
        assert resolver.cache.get(PriceSource.ROBUST, CARD) is None

    def test_no_price(self) -> None:
        """Unknown cards resolve to None and format as No Price."""
        resolver = PriceResolver()

        assert resolver.resolve_price(CARD) is None
        assert resolver.format_price(CARD) == NO_PRICE_LABEL

    def test_empty_card_id(self) -> None:
        assert PriceResolver().resolve_price("", {"normal": {"market": 1.0}}) is None

    def test_resolution_is_repeatable(self) -> None:
        """Same inputs with no writes in between give the same answer."""
        resolver = PriceResolver()
        _put(resolver, PriceSource.ROBUST, 2.00)

        assert resolver.resolve_price(CARD) == resolver.resolve_price(CARD)


class TestFormatPrice:
    def test_formats_dollars(self) -> None:
        resolver = PriceResolver()
        resolver.observe(CARD, 4.5)
        resolver.observe("sv5-200", 1234.5)

        assert resolver.format_price(CARD) == "$4.50"
        assert resolver.format_price("sv5-200") == "$1,234.50"


class TestRenderPass:
    def test_memoized_within_pass(self) -> None:
        """A card is resolved from the tiers once per pass."""
        resolver = PriceResolver()
        _put(resolver, PriceSource.ROBUST, 3.00)

        with resolver.render_pass():
            assert resolver.resolve_price(CARD) == 3.00
            # Direct cache edits bypass memo invalidation
            _put(resolver, PriceSource.ROBUST, 5.00)
            assert resolver.resolve_price(CARD) == 3.00

        assert resolver.resolve_price(CARD) == 5.00

    def test_write_drops_memo(self) -> None:
        """Writing a card's price invalidates its memo entries."""
        resolver = PriceResolver()
        resolver.observe(CARD, 3.00, source=PriceSource.ROBUST)

        with resolver.render_pass():
            assert resolver.resolve_price(CARD) == 3.00
            resolver.observe(CARD, 6.00, source=PriceSource.ROBUST)
            assert resolver.resolve_price(CARD) == 6.00

    def test_new_pass_sees_new_data(self) -> None:
        resolver = PriceResolver()
        _put(resolver, PriceSource.ROBUST, 3.00)

        with resolver.render_pass():
            resolver.resolve_price(CARD)
        _put(resolver, PriceSource.ROBUST, 4.00)
        with resolver.render_pass():
            assert resolver.resolve_price(CARD) == 4.00


class TestObserve:
    def test_ignores_unusable_prices(self) -> None:
        resolver = PriceResolver()

        assert resolver.observe(CARD, 0) is False
        assert resolver.observe(CARD, None) is False
        assert len(resolver.cache) == 0

    def test_overwrite_false_keeps_existing(self) -> None:
        """Seeding never replaces a price a tier already holds."""
        resolver = PriceResolver()
        resolver.observe(CARD, 3.00)

        assert resolver.observe(CARD, 1.00, overwrite=False) is False
        assert resolver.resolve_price(CARD) == 3.00

    def test_live_observation_fills_every_tier(self) -> None:
        resolver = PriceResolver()
        resolver.observe(CARD, 4.00, source=PriceSource.LIVE)

        for source in PriceSource:
            assert resolver.cache.get(source, CARD).price == 4.00

    async def test_clear(self, tmp_path: Path) -> None:
        path = tmp_path / "prices.json"
        resolver = PriceResolver(robust_path=path)
        resolver.observe(CARD, 4.00, source=PriceSource.ROBUST)
        await resolver.flush_robust()

        resolver.clear()
        await resolver.flush_robust()

        assert resolver.resolve_price(CARD) is None
        assert json.loads(path.read_text()) == {}


class TestPersistence:
    def test_unreadable_robust_file(self, tmp_path: Path) -> None:
        """A corrupt cache file leaves the robust tier empty."""
        path = tmp_path / "prices.json"
        path.write_text("{not json")

        resolver = PriceResolver(robust_path=path)

        assert resolver.resolve_price(CARD) is None

    @pytest.mark.parametrize("content", ["[1, 2]", '"prices"', "42", "null"])
    def test_robust_file_not_an_object(self, tmp_path: Path, content: str) -> None:
        """Valid JSON of the wrong shape leaves the robust tier empty."""
        path = tmp_path / "prices.json"
        path.write_text(content)

        resolver = PriceResolver(robust_path=path)

        assert resolver.resolve_price(CARD) is None
        assert len(resolver.cache) == 0

    async def test_robust_writes_wait_for_flush(self, tmp_path: Path) -> None:
        """Many robust changes reach the file in one flush."""
        path = tmp_path / "prices.json"
        resolver = PriceResolver(robust_path=path)

        with resolver.render_pass():
            for i in range(50):
                resolver.resolve_price(f"sv5-{i:03d}", {"normal": {"market": i + 1.0}})

        assert not path.exists()
        assert await resolver.flush_robust() is True
        assert len(json.loads(path.read_text())) == 50
        assert await resolver.flush_robust() is False

    async def test_flush_without_path(self) -> None:
        resolver = PriceResolver()
        resolver.observe(CARD, 2.0, source=PriceSource.ROBUST)

        assert await resolver.flush_robust() is False

    async def test_failed_flush_stays_dirty(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        resolver = PriceResolver(robust_path=blocker / "prices.json")
        resolver.observe(CARD, 2.0, source=PriceSource.ROBUST)

        assert await resolver.flush_robust() is False
        assert resolver._robust_dirty is True

    def test_robust_file_skips_bad_entries(self, tmp_path: Path) -> None:
        path = tmp_path / "prices.json"
        path.write_text(
            json.dumps(
                {
                    CARD: {"price": 2.0, "observed_at": "2026-01-01T00:00:00+00:00"},
                    "sv5-001": {"price": -1},
                    "sv5-002": "junk",
                }
            )
        )

        resolver = PriceResolver(robust_path=path)

        assert resolver.resolve_price(CARD) == 2.0
        assert resolver.resolve_price("sv5-001") is None
        assert resolver.resolve_price("sv5-002") is None

    async def test_legacy_flush_and_load(self, session: AsyncSession) -> None:
        """Legacy prices round-trip through the card_prices table."""
        resolver = PriceResolver()
        resolver.observe(CARD, 1.50)
        resolver.observe("sv5-200", 0.25)

        written = await resolver.flush_legacy(session)
        await session.commit()

        assert written == 2
        assert await resolver.flush_legacy(session) == 0

        fresh = PriceResolver()
        assert await fresh.load_legacy(session) == 2
        assert fresh.resolve_price(CARD) == 1.50
        assert {row.card_id for row in await load_prices(session)} == {CARD, "sv5-200"}
