"""Repository for the canonical-write audit trail."""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import DataHistory
from app.repositories.base_repository import BaseRepository

OPERATIONS = ("INSERT", "UPDATE", "UPSERT")


class HistoryRepository(BaseRepository[DataHistory]):
    """Repository for DataHistory records.

    Entries are written inside the caller's transaction so they commit or
    roll back together with the change they describe.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, DataHistory)

    async def record(
        self,
        table_name: str,
        operation: str,
        project_id: UUID,
        record_id: Optional[Any] = None,
        segment_id: Optional[UUID] = None,
        old_data: Optional[Dict[str, Any]] = None,
        new_data: Optional[Dict[str, Any]] = None,
        changed_by: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> DataHistory:
        """Append one history entry without committing.

        Raises:
            ValueError: If ``operation`` is not a known operation
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown history operation: {operation!r}")
        return await self.create(
            commit=False,
            table_name=table_name,
            operation=operation,
            project_id=project_id,
            record_id=str(record_id) if record_id is not None else None,
            segment_id=segment_id,
            old_data=old_data,
            new_data=new_data,
            changed_by=changed_by,
            details=details,
        )
