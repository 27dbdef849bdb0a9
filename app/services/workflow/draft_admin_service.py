"""Listing and explicit deletion of draft rows."""

from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError
from app.core.step_graph import Stage
from app.database import models
from app.repositories.base_repository import BaseRepository
from app.services.workflow.stages import Scope, get_stage
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DraftAdminService:
    """Read and delete drafts. Drafts are never modified in place."""

    def __init__(self, db_session: AsyncSession):
        self.session = db_session

    def _repository(self, stage) -> BaseRepository:
        return BaseRepository(self.session, get_stage(stage).draft_model)

    async def list_drafts(
        self,
        stage,
        project: models.Project,
        segment_id: Optional[UUID] = None,
    ) -> List[Dict[str, Any]]:
        """Drafts of a stage, newest version first."""
        definition = get_stage(stage)
        filters: Dict[str, Any] = {"project_id": project.id}
        if segment_id and definition.scope != Scope.PROJECT:
            filters["segment_id"] = segment_id

        drafts = await self._repository(stage).get_all(
            limit=None, filters=filters, order_by=["-version", "created_at"]
        )
        return [draft.to_dict() for draft in drafts]

    async def batch_delete(self, project: models.Project, stages: Sequence[Stage]) -> Dict[str, int]:
        """Delete every draft of ``stages`` for the project in one transaction.

        Returns:
            Deleted row count per stage slug
        """
        if not stages:
            raise ValidationError("stages must contain at least one stage")

        deleted: Dict[str, int] = {}
        for stage in stages:
            definition = get_stage(stage)
            deleted[definition.stage.value] = await self._repository(stage).delete_where(
                {"project_id": project.id}, commit=False
            )
        await self.session.commit()

        LOGGER.info(
            f"Deleted drafts for project {project.id}",
            extra={"project_id": str(project.id), "deleted": deleted},
        )
        return deleted

    async def delete_version(self, stage, project: models.Project, version: int) -> int:
        """Delete one version cohort of a stage's drafts.

        Raises:
            NotFoundError: If the project has no drafts with that version
        """
        removed = await self._repository(stage).delete_where(
            {"project_id": project.id, "version": version}
        )
        if not removed:
            raise NotFoundError(f"No drafts with version {version}")
        return removed
