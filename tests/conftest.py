"""Fixtures shared by the test suite."""

import os

# Keep the application engine off the real database file
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from country_api import models
from country_api.config import settings
from country_api.database import Base, get_db
from country_api.main import app, get_http_client

COUNTRIES = [
    {
        "name": "Nigeria",
        "capital": "Abuja",
        "region": "Africa",
        "population": 206139587,
        "flag": "https://flagcdn.com/ng.svg",
        "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
    },
    {
        "name": "Ghana",
        "capital": "Accra",
        "region": "Africa",
        "population": 31072940,
        "flag": "https://flagcdn.com/gh.svg",
        "currencies": [{"code": "GHS", "name": "Ghanaian cedi", "symbol": "₵"}],
    },
    {
        "name": "United States of America",
        "capital": "Washington, D.C.",
        "region": "Americas",
        "population": 329484123,
        "flag": "https://flagcdn.com/us.svg",
        "currencies": [{"code": "USD", "name": "United States dollar", "symbol": "$"}],
    },
    {
        "name": "France",
        "capital": "Paris",
        "region": "Europe",
        "population": 67391582,
        "flag": "https://flagcdn.com/fr.svg",
        "currencies": [{"code": "EUR", "name": "Euro", "symbol": "€"}],
    },
    {
        "name": "Atlantis",
        "region": "Oceania",
        "population": 5000,
        "currencies": [{"code": "ATL", "name": "Atlantean pearl"}],
    },
    {
        "name": "Bouvet Island",
        "region": "Antarctic",
        "population": 0,
        "flag": "https://flagcdn.com/bv.svg",
    },
]

RATES = {"NGN": 1600.5, "GHS": 15.2, "EUR": 0.92, "USD": 1}


class FakeUpstream:
    """Serves canned restcountries and exchange-rate responses."""

    def __init__(self):
        self.countries = [dict(c) for c in COUNTRIES]
        self.rates = dict(RATES)
        self.countries_status = 200
        self.rates_status = 200
        self.rates_result = "success"
        self.calls = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.host)
        if request.url.host == "restcountries.com":
            return httpx.Response(self.countries_status, json=self.countries)
        if request.url.host == "open.er-api.com":
            return httpx.Response(
                self.rates_status,
                json={
                    "result": self.rates_result,
                    "rates": self.rates,
                    "time_last_update_utc": "Tue, 28 Oct 2025 00:02:31 +0000",
                },
            )
        return httpx.Response(404)


def make_country(name, population=1000, estimated_gdp=None, exchange_rate=None,
                 region=None, currency_code="", refreshed_at=None):
    """Builds a Country row directly, bypassing the refresh pipeline."""
    when = refreshed_at or datetime(2025, 10, 28, 7, 12, 34, tzinfo=timezone.utc)
    return models.Country(
        name=name,
        name_key=models.normalize_name(name),
        population=population,
        region=region,
        currency_code=currency_code,
        exchange_rate=Decimal(str(exchange_rate)) if exchange_rate is not None else None,
        estimated_gdp=Decimal(str(estimated_gdp)) if estimated_gdp is not None else None,
        last_refreshed_at=when,
        created_at=when,
        updated_at=when,
    )


@pytest.fixture(autouse=True)
def cache_dir(tmp_path, monkeypatch):
    """Points the summary image at a per-test directory."""
    path = tmp_path / "cache"
    monkeypatch.setattr(settings, "CACHE_DIR", str(path))
    return path


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
async def http_client(upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture()
async def api(session_maker, http_client):
    """HTTP client for the app, wired to the test database and fake upstreams."""

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_http_client] = lambda: http_client
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
