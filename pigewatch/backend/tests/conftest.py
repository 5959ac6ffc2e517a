# tests/conftest.py
from datetime import datetime, timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.adapters.clients import http_resilience
from app.config import settings
from app.models import Base


@pytest.fixture(autouse=True)
def _fast_http(monkeypatch):
    """No rate limiting, no backoff sleeps, a closed circuit for every test."""
    monkeypatch.setattr(settings, "HTTP_RATE_LIMIT_RPS", 0.0)
    monkeypatch.setattr(settings, "HTTP_BACKOFF_BASE_S", 0.0)
    monkeypatch.setattr(settings, "API_KEY", None)
    http_resilience.reset_circuit()
    yield
    http_resilience.reset_circuit()


@pytest.fixture
async def engine():
    """
    Fresh in-memory DB per test. StaticPool makes all connections share the same
    in-memory database for the lifetime of this engine fixture.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest.fixture
async def session(async_session_maker):
    async with async_session_maker() as s:
        yield s


def aggregator_ad(n: int, **overrides):
    ad = {
        "uniqueId": f"mi-{n}",
        "title": f"Appartement T3 lumineux {n}",
        "url": f"https://www.example-portal.fr/annonce/{n}",
        "price": 300000 + n * 1000,
        "surface": 60 + n,
        "rooms": 3,
        "bedrooms": 2,
        "type": "sale",
        "origin": "leboncoin",
        "publisher": {"name": "Jean Dupont"},
        "creationDate": (datetime.utcnow() - timedelta(days=3)).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "location": {"city": "Paris", "postalCode": "75011"},
        "pictureUrl": f"https://img.example/{n}.jpg",
        "description": "Bel appartement ancien, parquet, moulures.",
    }
    ad.update(overrides)
    return ad


@pytest.fixture
def make_ad():
    return aggregator_ad


@pytest.fixture
def mock_http():
    """Build an httpx.AsyncClient whose requests go to `handler`."""
    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _make
