"""Database module for SQLAlchemy models."""

from app.core.database import Base, engine, get_async_session, db_client, init_database, close_database
from app.database.models import Project, Segment

__all__ = [
    "Base",
    "engine",
    "get_async_session",
    "db_client",
    "init_database",
    "close_database",
    "Project",
    "Segment",
]
