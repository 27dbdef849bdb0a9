"""Async SQLAlchemy engine, session dependency and schema management."""

import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    def to_dict(self) -> Dict[str, Any]:
        """Column values as JSON-friendly primitives."""
        data: Dict[str, Any] = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if isinstance(value, uuid.UUID):
                value = str(value)
            elif isinstance(value, (datetime, date)):
                value = value.isoformat()
            data[column.key] = value
        return data


def _engine_options() -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.db.echo, "future": True}
    if settings.db.is_postgres:
        options.update(
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.max_overflow,
            # Disable prepared statement cache for PgBouncer compatibility
            connect_args={"statement_cache_size": 0},
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options())

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for getting async database session.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


class DatabaseClient:
    """Database client with connection checks and schema creation."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._connected = False

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._connected = True
            LOGGER.info("Database connection successful")
            return True
        except Exception:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise

    async def disconnect(self) -> None:
        """Dispose of the engine's connection pool."""
        await self.engine.dispose()
        self._connected = False
        LOGGER.info("Database connection closed")

    async def create_tables(self) -> None:
        """Create missing tables from the SQLAlchemy models.

        Existing tables are left as they are.
        """
        # Models must be registered on Base.metadata before create_all
        from app.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        LOGGER.info("Database tables created/verified successfully")

    async def drop_tables(self) -> None:
        """Drop all database tables.

        WARNING: This will delete all data!
        """
        from app.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        LOGGER.warning("All database tables dropped")

    async def auto_migrate(self, drop_existing: bool = False) -> None:
        """Create the schema, optionally dropping it first."""
        LOGGER.info("Starting auto-migration", extra={"drop_existing": drop_existing})
        if drop_existing:
            await self.drop_tables()
        await self.create_tables()
        LOGGER.info("Auto-migration completed successfully")

    async def health_check(self) -> dict:
        """Check database health."""
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))
            self._connected = True
            return {
                "status": "healthy",
                "connected": True,
                "database": self.engine.dialect.name,
                "latency_test": "passed" if val == 1 else "failed",
            }
        except Exception as e:
            self._connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "connected": False, "error": str(e)}

    @property
    def is_connected(self) -> bool:
        return self._connected


db_client = DatabaseClient(engine)


async def init_database(auto_migrate: bool = True, drop_existing: bool = False) -> None:
    """Initialize database connection and optionally create the schema.

    Args:
        auto_migrate: Whether to create missing tables on startup
        drop_existing: Whether to drop existing tables (WARNING: data loss!)
    """
    LOGGER.info("Initializing database connection...")
    await db_client.connect()
    if auto_migrate:
        await db_client.auto_migrate(drop_existing=drop_existing)
    LOGGER.info("Database initialization completed")


async def close_database() -> None:
    """Close database connection."""
    try:
        await db_client.disconnect()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})
