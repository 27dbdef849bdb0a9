"""Project-level operations: ownership checks, resets and read views."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.core.step_graph import ONBOARDING, STAGE_ORDER, Stage, draft_step
from app.database import models
from app.repositories.base_repository import BaseRepository
from app.repositories.project_repository import ProjectRepository
from app.repositories.segment_repository import SegmentRepository
from app.services.workflow.stages import STAGES
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ProjectService:
    """Service for project reads, ownership and reset."""

    def __init__(self, db_session: AsyncSession):
        self.session = db_session
        self.repository = ProjectRepository(db_session)
        self.segments = SegmentRepository(db_session)

    async def get_owned_project(self, project_id: UUID, user_id: str) -> models.Project:
        """Load a project and check the caller owns it.

        Raises:
            NotFoundError: If the project does not exist
            PermissionDeniedError: If it belongs to someone else
        """
        project = await self.repository.get_by_id(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.owner_id != user_id:
            LOGGER.warning(
                f"User {user_id} tried to access project {project_id}",
                extra={"project_id": str(project_id), "user_id": user_id},
            )
            raise PermissionDeniedError("You do not have access to this project")
        return project

    async def reset(self, project: models.Project) -> models.Project:
        """Delete every draft and canonical row of the project and rewind it.

        Working segments are removed as well. The pointer goes back to
        onboarding through ``ProjectRepository.advance``.
        """
        removed = 0
        scope = {"project_id": project.id}
        for definition in STAGES.values():
            removed += await BaseRepository(self.session, definition.draft_model).delete_where(scope, commit=False)
            removed += await BaseRepository(self.session, definition.canonical_model).delete_where(scope, commit=False)
        removed += await self.segments.delete_where(scope, commit=False)
        await self.session.commit()

        LOGGER.info(
            f"Reset project {project.id}: removed {removed} rows",
            extra={"project_id": str(project.id)},
        )
        return await self.repository.advance(project.id, ONBOARDING)

    async def reset_to_segment_details(self, project: models.Project) -> models.Project:
        """Rewind the project so segment details can be approved again.

        Everything downstream of segment details goes: drafts and canonical
        rows of every later stage, the approved segment details and the
        working segments they created. Final segments, the final portrait and
        the segment-details drafts stay, and the pointer returns to
        ``segment_details_draft``.
        """
        later = STAGE_ORDER[STAGE_ORDER.index(Stage.SEGMENT_DETAILS) + 1:]
        scope = {"project_id": project.id}

        removed = 0
        for stage in later:
            definition = STAGES[stage]
            removed += await BaseRepository(self.session, definition.draft_model).delete_where(scope, commit=False)
            removed += await BaseRepository(self.session, definition.canonical_model).delete_where(scope, commit=False)
        removed += await BaseRepository(self.session, models.SegmentDetails).delete_where(scope, commit=False)
        removed += await self.segments.delete_where(scope, commit=False)
        await self.session.commit()

        LOGGER.info(
            f"Reset project {project.id} to segment details: removed {removed} rows",
            extra={"project_id": str(project.id)},
        )
        return await self.repository.advance(project.id, draft_step(Stage.SEGMENT_DETAILS))

    async def top_pains(self, project: models.Project, segment_id: Optional[UUID] = None) -> List[Dict[str, Any]]:
        """Pains of the project joined with their ranking overlay.

        The join happens here after two independent reads. A pain without an
        overlay row reads as not top-ranked with a zero impact score.
        """
        filters: Dict[str, Any] = {"project_id": project.id}
        if segment_id:
            filters["segment_id"] = segment_id

        pains = await BaseRepository(self.session, models.Pain).get_all(
            limit=None, filters=filters, order_by=["segment_id", "pain_index"]
        )
        rankings = await BaseRepository(self.session, models.PainRanking).get_all(limit=None, filters=filters)
        overlay = {ranking.pain_id: ranking for ranking in rankings}

        views = []
        for pain in pains:
            ranking = overlay.get(pain.id)
            views.append({
                **pain.to_dict(),
                "is_top_pain": bool(ranking.is_top_pain) if ranking else False,
                "impact_score": ranking.impact_score if ranking else 0,
                "ranking_reasoning": ranking.ranking_reasoning if ranking else None,
            })
        return views
