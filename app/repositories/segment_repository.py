"""Repository for working audience segments."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import Segment
from app.repositories.base_repository import BaseRepository


class SegmentRepository(BaseRepository[Segment]):
    """Repository for Segment records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Segment)

    async def list_for_project(self, project_id: UUID) -> List[Segment]:
        """All working segments of a project in ordinal order."""
        return await self.get_all(
            limit=None,
            filters={"project_id": project_id},
            order_by=["segment_index", "created_at"],
        )

    async def get_in_project(self, segment_id: UUID, project_id: UUID) -> Optional[Segment]:
        """The segment with ``segment_id`` if it belongs to ``project_id``."""
        return await self.get_one({"id": segment_id, "project_id": project_id})
