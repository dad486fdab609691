"""
Request dependencies shared by the API routers.

Identity arrives in the X-User-Id header. Each user gets one long-lived
CollectionStore so its read cache survives between requests; every store
shares one PriceResolver.
"""

from typing import Annotated, TypeVar

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binderkeep.config import settings
from binderkeep.db.database import async_session_factory
from binderkeep.models.failure import STATUS_BY_KIND, FailureKind, KnownError
from binderkeep.models.results import (
    AddItemResult,
    MoveItemResult,
    OperationResult,
    RemoveItemResult,
)
from binderkeep.services.collection_store import CollectionStore
from binderkeep.services.import_export import ImportExport
from binderkeep.services.price_resolver import PriceResolver
from binderkeep.services.sharing import SharingService

StoreResult = TypeVar(
    "StoreResult", AddItemResult, RemoveItemResult, MoveItemResult, OperationResult
)


class StoreRegistry:
    """One CollectionStore per user, created on first request."""

    def __init__(self) -> None:
        self._stores: dict[str | None, CollectionStore] = {}

    def get(
        self,
        user_id: str | None,
        prices: PriceResolver,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> CollectionStore:
        if user_id is None:
            # Anonymous stores hold nothing worth caching
            return CollectionStore(None, prices, session_factory=session_factory)

        store = self._stores.get(user_id)
        if store is None or store.session_factory is not session_factory:
            store = CollectionStore(user_id, prices, session_factory=session_factory)
            self._stores[user_id] = store
        return store

    def clear(self) -> None:
        self._stores.clear()


_registry = StoreRegistry()
_price_resolver: PriceResolver | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


def get_price_resolver() -> PriceResolver:
    """The process-wide price resolver, backed by the robust cache file."""
    global _price_resolver
    if _price_resolver is None:
        _price_resolver = PriceResolver(robust_path=settings.price_cache_path)
    return _price_resolver


def get_store_registry() -> StoreRegistry:
    return _registry


def get_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str | None:
    """Caller identity; a missing or blank header means unauthenticated."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


def get_store(
    user_id: Annotated[str | None, Depends(get_user_id)],
    prices: Annotated[PriceResolver, Depends(get_price_resolver)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    registry: Annotated[StoreRegistry, Depends(get_store_registry)],
) -> CollectionStore:
    return registry.get(user_id, prices, session_factory)


def get_sharing(store: Annotated[CollectionStore, Depends(get_store)]) -> SharingService:
    return SharingService(store)


def get_import_export(store: Annotated[CollectionStore, Depends(get_store)]) -> ImportExport:
    return ImportExport(store)


def check_result(result: StoreResult) -> StoreResult:
    """
    Pass successful store results through; raise for failed ones.

    Raises:
        KnownError: Carrying the status code of the result's failure kind
    """
    if result.status != "error":
        return result
    kind = result.kind or FailureKind.BACKEND_ERROR
    raise KnownError(
        kind=kind,
        message=result.message or "Request failed",
        status_code=STATUS_BY_KIND[kind],
    )


StoreDep = Annotated[CollectionStore, Depends(get_store)]
SharingDep = Annotated[SharingService, Depends(get_sharing)]
ImportExportDep = Annotated[ImportExport, Depends(get_import_export)]
