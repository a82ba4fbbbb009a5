"""
Pytest configuration and shared fixtures.

Each test gets its own in-memory SQLite database; the API client runs the
FastAPI app in-process with the session and semantic comparer overridden.
"""

import os

# Settings are read once at import time, so these must precede any crm import
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECURITY_ADMIN_API_KEY"] = "test-admin-key"
os.environ["SEMANTIC_BACKEND"] = "none"
os.environ["LOG_FORMAT"] = "text"
os.environ["EMAIL_ADMIN_NOTIFY_EMAIL"] = ""

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from catalog.field_definitions import FIELD_DEFINITIONS  # noqa: E402
from crm import models  # noqa: E402
from crm.api import app  # noqa: E402
from crm.db import get_session  # noqa: E402
from crm.routes.matching import comparer_dependency  # noqa: E402
from semantic import SemanticComparisonError, SemanticScore  # noqa: E402

ADMIN_KEY = "test-admin-key"


class FakeComparer:
    """Semantic comparer returning a fixed score and recording its calls."""

    def __init__(self, score: float = 0.8, fail: bool = False):
        self.score = score
        self.fail = fail
        self.calls = []

    async def compare(self, text1, text2, context):
        self.calls.append((text1, text2, context))
        if self.fail:
            raise SemanticComparisonError("comparer unavailable")
        return SemanticScore(score=self.score, reasoning="fake comparison")


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def fake_comparer():
    return FakeComparer()


@pytest_asyncio.fixture
async def api_client(session_factory, fake_comparer):
    """Admin-authenticated HTTP client bound to the test database."""

    async def override_session():
        async with session_factory() as db_session:
            yield db_session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[comparer_dependency] = lambda: fake_comparer

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Admin-Key": ADMIN_KEY},
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_pro(session):
    """Factory inserting a pro; keyword arguments override the defaults."""
    counter = {"n": 0}

    async def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "full_name": f"Agent {n}",
            "phone": f"+1512555{n:04d}",
            "email": f"agent{n}@example.com",
            "pro_type": "real_estate_agent",
            "status": "active",
            "pipeline_stage": "match_ready",
            "cities": ["Austin"],
            "states": ["TX"],
            "motivation": 8,
        }
        fields.update(overrides)
        pro = models.Pro(**fields)
        session.add(pro)
        await session.commit()
        return pro

    return _make


@pytest.fixture
def make_client(session):
    """Factory inserting a client; keyword arguments override the defaults."""
    counter = {"n": 0}

    async def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "company_name": f"Brokerage {n}",
            "email": f"owner{n}@brokerage{n}.com",
            "client_type": "real_estate",
            "active": True,
            "credits_balance": 1000.0,
            "cities": ["Austin"],
            "states": ["TX"],
        }
        fields.update(overrides)
        client = models.Client(**fields)
        session.add(client)
        await session.commit()
        return client

    return _make


@pytest_asyncio.fixture
async def package(session):
    row = models.PricingPackage(name="Growth", monthly_cost=499.0, leads_per_month=20)
    session.add(row)
    await session.commit()
    return row


@pytest_asyncio.fixture
async def seeded_fields(session):
    """Default field definitions from the catalog."""
    session.add_all(models.FieldDefinition(**row) for row in FIELD_DEFINITIONS)
    await session.commit()
