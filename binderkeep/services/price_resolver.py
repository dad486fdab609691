"""
Price Resolver: one authoritative market price from disagreeing sources.

Call sites differ in what they know about a card: a detail view carries
the full TCGplayer price payload, a grid thumbnail only has an id. The
resolver lets every call site ask for the best available price without
knowing which source holds it.

PRECEDENCE (highest first):
1. LIVE: a non-zero market price in freshly supplied price data
2. ROBUST: most recent value in the robust tier (no TTL, survives
   restarts through a JSON file)
3. LEGACY: most recent value in the legacy tier (persisted in the
   card_prices table)
4. None ("No Price")

INVARIANTS:
- A hit at any tier is written back into every lower tier
- Resolution is pure given cache state: identical inputs with no
  intervening writes give identical results
- Results are memoized per (card_id, render pass); a write to a card
  drops that card's memo entries
- The resolver never raises; missing data degrades to None
"""

import asyncio
import json
import logging
import math
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from itertools import count
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from binderkeep.db.operations import as_utc, load_prices, upsert_prices

logger = logging.getLogger(__name__)

NO_PRICE_LABEL = "No Price"

# Finishes checked first when reading a TCGplayer payload
PREFERRED_FINISHES = ("normal", "holofoil", "reverseHolofoil")


class PriceSource(str, Enum):
    """Where a price record came from."""

    LIVE = "live"
    ROBUST = "robust"
    LEGACY = "legacy"


# Cache tiers consulted when no live data is supplied, highest first
CACHE_TIERS: tuple[PriceSource, ...] = (PriceSource.ROBUST, PriceSource.LEGACY)


@dataclass(frozen=True)
class PriceRecord:
    card_id: str
    price: float
    source: PriceSource
    observed_at: datetime


def _usable(value: Any) -> float | None:
    """Return value as a float if it is a positive finite number."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    price = float(value)
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def market_price_from_payload(prices: Mapping[str, Any] | float | None) -> float | None:
    """
    Extract a market price from live price data.

    Accepts a bare number, a single finish ({"market": 4.5, ...}), or a
    TCGplayer payload keyed by finish. Finishes are checked in the order
    normal, holofoil, reverseHolofoil, then any other finish.

    Returns:
        The first positive market price, or None.
    """
    if prices is None:
        return None
    if not isinstance(prices, Mapping):
        return _usable(prices)

    if "market" in prices:
        return _usable(prices.get("market"))

    ordered = [*PREFERRED_FINISHES, *(k for k in prices if k not in PREFERRED_FINISHES)]
    for finish in ordered:
        data = prices.get(finish)
        if isinstance(data, Mapping):
            price = _usable(data.get("market"))
            if price is not None:
                return price
    return None


def _write_json(path: Path, payload: dict[str, Any]) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f)
    except OSError as e:
        logger.warning("Could not write robust price cache %s: %s", path, e)
        return False
    return True


class PriceCache:
    """
    Price records for every tier, keyed by (source, card_id).

    Holds at most one record per card per tier; writing replaces it.
    """

    def __init__(self) -> None:
        self._tiers: dict[PriceSource, dict[str, PriceRecord]] = {
            source: {} for source in PriceSource
        }

    def get(self, source: PriceSource, card_id: str) -> PriceRecord | None:
        return self._tiers[source].get(card_id)

    def put(self, record: PriceRecord) -> bool:
        """
        Store a record.

        Returns True if the tier's value for the card changed.
        """
        tier = self._tiers[record.source]
        previous = tier.get(record.card_id)
        tier[record.card_id] = record
        return previous is None or previous.price != record.price

    def records(self, source: PriceSource) -> list[PriceRecord]:
        return list(self._tiers[source].values())

    def latest(self, card_id: str) -> PriceRecord | None:
        """Most recently observed record for a card across all tiers."""
        found = [r for tier in self._tiers.values() if (r := tier.get(card_id)) is not None]
        if not found:
            return None
        return max(found, key=lambda r: r.observed_at)

    def clear(self) -> None:
        for tier in self._tiers.values():
            tier.clear()

    def __len__(self) -> int:
        return sum(len(tier) for tier in self._tiers.values())


class PriceResolver:
    """
    Resolves a single market price per card from live data and cache tiers.

    Changes to the robust tier mark it dirty; `flush_robust` writes it to
    `robust_path` (when given) off the event loop, once per operation. The
    legacy tier is loaded from and flushed to the database explicitly with
    `load_legacy` / `flush_legacy`.
    """

    def __init__(
        self,
        robust_path: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.cache = PriceCache()
        self._robust_path = robust_path
        self._clock = clock or (lambda: datetime.now(UTC))
        self._dirty_legacy: set[str] = set()
        self._robust_dirty = False

        self._pass_ids = count(1)
        self._current_pass: int | None = None
        self._memo: dict[tuple[str, int], float | None] = {}

        if robust_path is not None:
            self.load_robust()

    # -- resolution --------------------------------------------------------

    def resolve_price(
        self,
        card_id: str,
        live_prices: Mapping[str, Any] | float | None = None,
    ) -> float | None:
        """
        Resolve the authoritative market price for a card.

        Args:
            card_id: Catalog card id
            live_prices: Price data accompanying the current card fetch

        Returns:
            The price, or None when no source has a positive value.
        """
        if not card_id:
            return None

        live = market_price_from_payload(live_prices)
        if live is not None:
            self._write(card_id, live, PriceSource.LIVE)
            return self._remember(card_id, live)

        memo_key = self._memo_key(card_id)
        if memo_key is not None and memo_key in self._memo:
            return self._memo[memo_key]

        for position, source in enumerate(CACHE_TIERS):
            record = self.cache.get(source, card_id)
            if record is not None:
                for lower in CACHE_TIERS[position + 1 :]:
                    self._store(card_id, record.price, lower)
                return self._remember(card_id, record.price)

        return self._remember(card_id, None)

    def format_price(self, card_id: str, live_prices: Mapping[str, Any] | None = None) -> str:
        """Display form of the resolved price."""
        price = self.resolve_price(card_id, live_prices)
        if price is None:
            return NO_PRICE_LABEL
        return f"${price:,.2f}"

    @contextmanager
    def render_pass(self) -> Iterator[int]:
        """
        Scope a batch of lookups (one grid render, one value computation).

        Within a pass each card is resolved from the tiers at most once.
        """
        previous = self._current_pass
        pass_id = next(self._pass_ids)
        self._current_pass = pass_id
        try:
            yield pass_id
        finally:
            self._current_pass = previous
            self._memo = {key: value for key, value in self._memo.items() if key[1] != pass_id}

    # -- writes ------------------------------------------------------------

    def observe(
        self,
        card_id: str,
        price: float | None,
        source: PriceSource = PriceSource.LEGACY,
        overwrite: bool = True,
    ) -> bool:
        """
        Record a price seen outside `resolve_price` (e.g., a stored item price).

        Non-positive prices are ignored. With `overwrite=False` a tier that
        already holds a price for the card keeps it.

        Returns True if anything was stored.
        """
        usable = _usable(price)
        if not card_id or usable is None:
            return False

        if source == PriceSource.LIVE:
            tiers = (PriceSource.LIVE, *CACHE_TIERS)
        else:
            tiers = CACHE_TIERS[CACHE_TIERS.index(source) :]
        if not overwrite:
            tiers = tuple(t for t in tiers if self.cache.get(t, card_id) is None)

        for tier in tiers:
            self._store(card_id, usable, tier)
        return bool(tiers)

    def clear(self) -> None:
        """Wipe every tier; the robust file is emptied on the next flush."""
        self.cache.clear()
        self._memo.clear()
        self._dirty_legacy.clear()
        self._robust_dirty = True

    def _write(self, card_id: str, price: float, source: PriceSource) -> None:
        """Store at `source` and warm every cache tier below it."""
        self._store(card_id, price, source)
        for lower in CACHE_TIERS:
            self._store(card_id, price, lower)

    def _store(self, card_id: str, price: float, source: PriceSource) -> None:
        record = PriceRecord(card_id, price, source, self._clock())
        changed = self.cache.put(record)
        if not changed:
            return

        self._forget(card_id)
        if source == PriceSource.ROBUST:
            self._robust_dirty = True
        elif source == PriceSource.LEGACY:
            self._dirty_legacy.add(card_id)

    # -- memo --------------------------------------------------------------

    def _memo_key(self, card_id: str) -> tuple[str, int] | None:
        if self._current_pass is None:
            return None
        return (card_id, self._current_pass)

    def _remember(self, card_id: str, price: float | None) -> float | None:
        key = self._memo_key(card_id)
        if key is not None:
            self._memo[key] = price
        return price

    def _forget(self, card_id: str) -> None:
        for key in [k for k in self._memo if k[0] == card_id]:
            del self._memo[key]

    # -- persistence -------------------------------------------------------

    def load_robust(self) -> int:
        """
        Load the robust tier from its JSON file.

        A missing or unreadable file leaves the tier empty.
        """
        if self._robust_path is None or not self._robust_path.exists():
            return 0

        try:
            with open(self._robust_path, encoding="utf-8") as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read robust price cache %s: %s", self._robust_path, e)
            return 0
        if not isinstance(stored, dict):
            logger.warning(
                "Ignoring robust price cache %s: expected an object, got %s",
                self._robust_path,
                type(stored).__name__,
            )
            return 0

        loaded = 0
        for card_id, entry in stored.items():
            price = _usable(entry.get("price")) if isinstance(entry, dict) else None
            if price is None:
                continue
            try:
                observed_at = as_utc(datetime.fromisoformat(entry["observed_at"]))
            except (KeyError, TypeError, ValueError):
                observed_at = self._clock()
            self.cache.put(PriceRecord(card_id, price, PriceSource.ROBUST, observed_at))
            loaded += 1

        logger.info("Loaded %d robust card prices", loaded)
        return loaded

    async def flush_robust(self) -> bool:
        """
        Write the robust tier to its file in a worker thread, if it changed.

        Returns True if the file was written.
        """
        if self._robust_path is None or not self._robust_dirty:
            return False

        # Snapshot on the loop; later changes mark the tier dirty again
        payload = self._robust_payload()
        self._robust_dirty = False
        written = await asyncio.to_thread(_write_json, self._robust_path, payload)
        if not written:
            self._robust_dirty = True
        return written

    def _robust_payload(self) -> dict[str, dict[str, Any]]:
        return {
            r.card_id: {"price": r.price, "observed_at": r.observed_at.isoformat()}
            for r in self.cache.records(PriceSource.ROBUST)
        }

    async def load_legacy(self, session: AsyncSession) -> int:
        """
        Load the legacy tier from the card_prices table.

        Raises:
            SQLAlchemyError: If the backend read fails
        """
        rows = await load_prices(session)

        for row in rows:
            price = _usable(row.price)
            if price is not None:
                self.cache.put(
                    PriceRecord(row.card_id, price, PriceSource.LEGACY, as_utc(row.observed_at))
                )
                self._forget(row.card_id)
        return len(rows)

    async def flush_legacy(self, session: AsyncSession) -> int:
        """
        Persist legacy-tier records changed since the last flush.

        Returns the number of prices written.

        Raises:
            SQLAlchemyError: If the backend write fails; dirty records are kept
        """
        if not self._dirty_legacy:
            return 0

        records = [
            (record.card_id, record.price, record.observed_at)
            for card_id in sorted(self._dirty_legacy)
            if (record := self.cache.get(PriceSource.LEGACY, card_id)) is not None
        ]
        written = await upsert_prices(session, records)

        self._dirty_legacy.clear()
        return written
