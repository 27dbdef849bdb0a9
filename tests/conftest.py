"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; set test defaults before importing the app.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DATABASE_AUTO_MIGRATE", "false")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.retry import RetryPolicy
from app.database import models
from app.main import app
from tests.helpers import TEST_USER_ID


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with the schema created.

    pysqlite's own transaction handling breaks SAVEPOINT, so BEGIN is
    emitted explicitly.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(db_engine):
    maker = async_sessionmaker(db_engine, expire_on_commit=False)
    async with maker() as db_session:
        yield db_session


@pytest_asyncio.fixture
async def project(session) -> models.Project:
    project = models.Project(
        owner_id=TEST_USER_ID,
        name="Acme Coffee",
        onboarding_data={
            "brand": "Acme Coffee",
            "product": "Specialty coffee subscriptions",
            "market": "Urban professionals",
        },
    )
    session.add(project)
    await session.commit()
    return project


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy with no waiting between attempts."""
    return RetryPolicy(max_attempts=3, base_delay=0, backoff=1)
