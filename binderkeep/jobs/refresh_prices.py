"""
Scheduled job to refresh card market prices.

Fetches current TCGplayer prices for every card held in any collection,
writes them onto stored items and the price tiers, then recomputes every
user's group values. Can be run as a standalone script or called from a
scheduler.
"""

import asyncio
import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binderkeep.config import settings
from binderkeep.db.database import async_session_factory, session_scope
from binderkeep.db.operations import list_card_ids, list_user_ids, set_market_price
from binderkeep.services.card_catalog import PokemonTcgCatalog
from binderkeep.services.collection_store import CollectionStore
from binderkeep.services.price_resolver import PriceResolver

logger = logging.getLogger(__name__)


async def fetch_live_prices(
    catalog: PokemonTcgCatalog,
    card_ids: list[str],
    resolver: PriceResolver,
) -> dict[str, float]:
    """
    Resolve live prices for the given cards.

    Cards without a usable live price are left out.

    Returns:
        Dict mapping card id to market price
    """
    if not card_ids:
        return {}

    cards = await catalog.get_many(card_ids)

    prices: dict[str, float] = {}
    for card_id, card in cards.items():
        if not card.prices:
            continue
        price = resolver.resolve_price(card_id, card.prices)
        if price is not None:
            prices[card_id] = price

    logger.info("Resolved live prices for %d of %d cards", len(prices), len(card_ids))
    return prices


async def run_price_refresh(
    catalog: PokemonTcgCatalog | None = None,
    resolver: PriceResolver | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> dict[str, int]:
    """
    Refresh prices for every collected card.

    Args:
        catalog: Card source; defaults to the Pokemon TCG API
        resolver: Price tiers to update; defaults to one backed by the
            configured robust cache file
        session_factory: Session factory; defaults to the application's

    Returns:
        Counts: cards checked, cards priced, items updated, users revalued
    """
    factory = session_factory or async_session_factory
    resolver = resolver or PriceResolver(robust_path=settings.price_cache_path)
    results = {"cards": 0, "priced": 0, "items": 0, "users": 0}

    async with session_scope(factory) as session:
        card_ids = await list_card_ids(session)
        user_ids = await list_user_ids(session)
        await resolver.load_legacy(session)
    results["cards"] = len(card_ids)

    owned_catalog = catalog is None
    catalog = catalog or PokemonTcgCatalog()
    try:
        prices = await fetch_live_prices(catalog, card_ids, resolver)
    except httpx.HTTPError as e:
        logger.error("HTTP error fetching prices: %s", e)
        return results
    finally:
        if owned_catalog:
            await catalog.aclose()
    results["priced"] = len(prices)
    await resolver.flush_robust()

    async with session_scope(factory) as session:
        for card_id, price in prices.items():
            results["items"] += await set_market_price(session, None, card_id, price)
        await resolver.flush_legacy(session)

    for user_id in user_ids:
        store = CollectionStore(user_id, resolver, session_factory=factory)
        values = await store.refresh_group_values()
        logger.info("Revalued %d groups for %s", len(values), user_id)
        results["users"] += 1

    logger.info(
        "Price refresh complete. %d cards priced, %d items updated",
        results["priced"],
        results["items"],
    )
    return results


def main() -> None:
    """CLI entry point for running the price refresh."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_price_refresh())


if __name__ == "__main__":
    main()
