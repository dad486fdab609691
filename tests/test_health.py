"""Smoke tests for application startup and probes."""

from httpx import AsyncClient


def test_app_imports() -> None:
    """Verify the app can be imported without errors."""
    from binderkeep.main import app

    assert app.title == "BinderKeep"


async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_ready(client: AsyncClient) -> None:
    response = await client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "database": "connected"}
