"""
Card catalog client.

The collection only needs id and name lookups from a catalog. The
Pokemon TCG API implementation also returns TCGplayer price payloads,
which feed the live tier of the price resolver.

API docs: https://docs.pokemontcg.io/
"""

import logging
from collections.abc import Iterable
from types import TracebackType
from typing import Any, Protocol

import httpx

from binderkeep.config import settings
from binderkeep.models.card import CardRecord

logger = logging.getLogger(__name__)

USER_AGENT = "BinderKeep/1.0"

# Ids per search request in get_many; keeps the query string short
ID_BATCH_SIZE = 50
MAX_PAGE_SIZE = 250


class CardCatalog(Protocol):
    """Anything that can look cards up by id or name."""

    async def get_by_id(self, card_id: str) -> CardRecord | None: ...

    async def get_by_name(self, name: str) -> list[CardRecord]: ...


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class PokemonTcgCatalog:
    """
    Catalog backed by the Pokemon TCG API v2.

    Usage:
        async with PokemonTcgCatalog() as catalog:
            card = await catalog.get_by_id("sv5-123")
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = (base_url or settings.pokemon_tcg_api_url).rstrip("/")
        key = settings.pokemon_tcg_api_key if api_key is None else api_key

        headers = {"User-Agent": USER_AGENT}
        if key:
            headers["X-Api-Key"] = key

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=headers,
            follow_redirects=True,
            timeout=timeout,
        )
        if client is not None:
            self._client.headers.update(headers)

    async def __aenter__(self) -> "PokemonTcgCatalog":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_by_id(self, card_id: str) -> CardRecord | None:
        """
        Fetch one card by catalog id.

        Returns:
            The card, or None if the catalog does not know the id

        Raises:
            httpx.HTTPError: On transport errors or non-404 error responses
        """
        response = await self._client.get(f"{self.base_url}/cards/{card_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()

        data = response.json().get("data")
        if not data:
            return None
        return CardRecord.from_api(data)

    async def get_by_name(self, name: str) -> list[CardRecord]:
        """
        Fetch every printing with an exact name match.

        Raises:
            httpx.HTTPError: If the request fails
        """
        name = name.strip()
        if not name:
            return []
        return await self._search(f"name:{_quote(name)}")

    async def get_many(self, card_ids: Iterable[str]) -> dict[str, CardRecord]:
        """
        Fetch several cards by id, batching requests.

        Ids the catalog does not know are absent from the result.

        Raises:
            httpx.HTTPError: If a request fails
        """
        unique = sorted({card_id for card_id in card_ids if card_id})
        found: dict[str, CardRecord] = {}

        for start in range(0, len(unique), ID_BATCH_SIZE):
            batch = unique[start : start + ID_BATCH_SIZE]
            query = " OR ".join(f"id:{_quote(card_id)}" for card_id in batch)
            for card in await self._search(f"({query})"):
                found[card.id] = card

        logger.debug("Fetched %d of %d cards from catalog", len(found), len(unique))
        return found

    async def _search(self, query: str) -> list[CardRecord]:
        cards: list[CardRecord] = []
        page = 1
        while True:
            response = await self._client.get(
                f"{self.base_url}/cards",
                params={"q": query, "page": page, "pageSize": MAX_PAGE_SIZE},
            )
            response.raise_for_status()

            body: dict[str, Any] = response.json()
            batch = body.get("data") or []
            cards.extend(CardRecord.from_api(entry) for entry in batch)

            total = int(body.get("totalCount") or 0)
            if not batch or len(cards) >= total:
                return cards
            page += 1
