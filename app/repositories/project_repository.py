"""Repository for projects and their workflow step pointer."""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.step_graph import is_valid_step
from app.core.exceptions import UnknownStepError
from app.database.models import Project
from app.repositories.base_repository import BaseRepository


class ProjectRepository(BaseRepository[Project]):
    """Repository for Project records.

    ``current_step`` can only be changed through ``advance``; generic updates
    that try to set it are rejected.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Project)

    async def update(self, id: UUID, commit: bool = True, **kwargs) -> Optional[Project]:
        if "current_step" in kwargs:
            raise ValueError("current_step is written only through ProjectRepository.advance")
        return await super().update(id, commit=commit, **kwargs)

    async def advance(self, project_id: UUID, step: str) -> Optional[Project]:
        """Record ``step`` as the project's current step.

        The last committed write wins; no concurrency token is kept because
        the pointer only gates navigation.

        Args:
            project_id: Project to move
            step: A workflow step identifier produced by the step graph

        Returns:
            The updated project, or None if it does not exist
        """
        if not is_valid_step(step):
            raise UnknownStepError(f"Unknown step: {step!r}")

        project = await super().update(project_id, current_step=step)
        if project:
            self.logger.info(
                f"Project {project_id} advanced to {step}",
                extra={"project_id": str(project_id), "step": step},
            )
        return project
