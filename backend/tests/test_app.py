# tests/test_app.py — Application lifecycle and service endpoints
import logging

import pytest
from httpx import AsyncClient

from main import app, lifespan, VERSION


@pytest.mark.asyncio
async def test_startup_does_not_repeat_secret_warning(monkeypatch, caplog):
    # auth.py warns once at import when the key is missing
    monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
    with caplog.at_level(logging.WARNING):
        async with lifespan(app):
            pass
    assert not [r for r in caplog.records if "JWT_SECRET_KEY" in r.getMessage()]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    res = await client.get("/health")
    assert res.status_code == 200
    data = res.json()
    assert data["version"] == VERSION
    assert data["database"] == "connected"
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    res = await client.get("/")
    assert res.json()["name"] == "Taskgrid"
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert "X-Request-ID" in res.headers
