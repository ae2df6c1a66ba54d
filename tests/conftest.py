"""Test fixtures — create/drop tables around each async test, plus lead builders and fakes."""

import os
from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Force SQLite test database and offline collaborators *before* any app import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_leadcrm.db"
os.environ["OPENAI_API_KEY"] = ""
os.environ["MAINTENANCE_TOKEN"] = "test-maintenance-token"

from leadcrm.database import Base, async_session, engine  # noqa: E402
from leadcrm.main import app  # noqa: E402
from leadcrm.models import Lead, utcnow  # noqa: E402
from leadcrm.services.web_probe import ContactEnrichment  # noqa: E402


@pytest_asyncio.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    app.state.rate_limiter.reset()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # every test runs on its own loop; pooled connections must not outlive it
    await engine.dispose()


@pytest_asyncio.fixture
async def db():
    async with async_session() as session:
        yield session


@pytest.fixture
def session_factory():
    return async_session


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_lead(db):
    """Insert a lead directly, bypassing the duplicate gate.

    ``age_days`` backdates ``created_at``; ``contacted_days_ago`` sets
    ``last_contacted_at``.
    """

    async def _make(age_days: float = 0, contacted_days_ago: float | None = None, **fields) -> Lead:
        fields.setdefault("business_name", "Test Business")
        lead = Lead(created_at=utcnow() - timedelta(days=age_days), **fields)
        if contacted_days_ago is not None:
            lead.last_contacted_at = utcnow() - timedelta(days=contacted_days_ago)
        db.add(lead)
        await db.commit()
        return lead

    return _make


# ── Fakes for network collaborators ───────────────────
class FakeFetcher:
    """HomepageFetcher stand-in: serves canned HTML by URL, ``None`` for unknown URLs."""

    def __init__(self, pages: dict | None = None, default: str | None = None):
        self.pages = pages or {}
        self.default = default
        self.calls = []

    async def fetch(self, url):
        self.calls.append(url)
        return self.pages.get(url, self.default)


class FakeScraper:
    """ContactScraper stand-in returning fixed results per website URL."""

    def __init__(self, results: dict | None = None):
        self.results = results or {}
        self.calls = []

    async def enrich(self, website_url):
        self.calls.append(website_url)
        found = self.results.get(website_url, {})
        return ContactEnrichment(
            facebook_url=found.get("facebook_url"),
            email=found.get("email"),
            checked_at=utcnow().isoformat(),
        )


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def fake_scraper():
    return FakeScraper()
