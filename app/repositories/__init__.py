"""Repository layer modules."""

from app.repositories.base_repository import BaseRepository
from app.repositories.history_repository import HistoryRepository
from app.repositories.project_repository import ProjectRepository
from app.repositories.segment_repository import SegmentRepository

__all__ = [
    "BaseRepository",
    "HistoryRepository",
    "ProjectRepository",
    "SegmentRepository",
]
