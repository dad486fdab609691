from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from binderkeep.api.deps import (
    StoreRegistry,
    get_price_resolver,
    get_session_factory,
    get_store_registry,
)
from binderkeep.db.database import get_session
from binderkeep.main import app
from binderkeep.models.card import CardRecord
from binderkeep.models.db import Base
from binderkeep.services import sharing as sharing_module
from binderkeep.services.collection_store import CollectionStore
from binderkeep.services.price_resolver import PriceResolver

USER_ID = "user-123"


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNow:
    """Wall clock the tests advance by hand."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_card(
    card_id: str = "sv5-123",
    name: str = "Iron Thorns ex",
    prices: dict[str, Any] | None = None,
) -> CardRecord:
    return CardRecord(
        id=card_id,
        name=name,
        image_small=f"https://images.pokemontcg.io/{card_id.replace('-', '/')}.png",
        prices=prices,
    )


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Use the minimum bcrypt cost so password tests stay quick."""
    monkeypatch.setattr(sharing_module, "BCRYPT_ROUNDS", 4)


@pytest.fixture
async def async_engine(tmp_path: Path):
    """
    File-backed SQLite engine.

    The store opens a session per operation, so every session must see
    the same database (an in-memory database is per connection).
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def now() -> FakeNow:
    return FakeNow()


@pytest.fixture
def prices(tmp_path: Path) -> PriceResolver:
    return PriceResolver(robust_path=tmp_path / "price-cache.json")


@pytest.fixture
def store_factory(
    session_factory, prices: PriceResolver, clock: FakeClock, now: FakeNow
) -> Callable[..., CollectionStore]:
    def build(user_id: str | None = USER_ID, **kwargs: Any) -> CollectionStore:
        kwargs.setdefault("ttl_seconds", 300.0)
        kwargs.setdefault("debounce_seconds", 0.0)
        return CollectionStore(
            user_id,
            prices,
            session_factory=session_factory,
            clock=clock,
            now=now,
            **kwargs,
        )

    return build


@pytest.fixture
def store(store_factory) -> CollectionStore:
    return store_factory()


@pytest.fixture
async def client(session_factory, prices: PriceResolver):
    """Provide an async test client wired to the test database."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    registry = StoreRegistry()
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_price_resolver] = lambda: prices
    app.dependency_overrides[get_store_registry] = lambda: registry

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": USER_ID},
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def card_factory() -> Callable[..., CardRecord]:
    return make_card
