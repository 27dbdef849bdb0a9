"""Approval of draft rows into canonical rows.

Approval runs in three phases: resolve every draft's linkage (segment and
parent pain), clear the canonical scope for replace-style stages, then write
one canonical row per resolved draft. In the default best-effort mode each
row is written inside its own savepoint, so one bad row is skipped and
recorded while the rest of the batch commits. Strict mode writes the whole
batch in one transaction and fails on the first skipped row.

Every canonical write is mirrored into ``data_history`` in the same
transaction: INSERT or UPDATE per upserted row, one UPSERT per replaced scope.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import DatabaseError, NotFoundError, ValidationError
from app.core.step_graph import Stage, approved_step
from app.database import models
from app.repositories.base_repository import BaseRepository
from app.repositories.history_repository import HistoryRepository
from app.repositories.project_repository import ProjectRepository
from app.repositories.segment_repository import SegmentRepository
from app.services.base_service import BaseService
from app.services.workflow.stages import ApprovalMode, Scope, StageDefinition, get_stage
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

TOP_PICK_MESSAGE = "Select at least one TOP pain before approving"


@dataclass
class ApprovalResult:
    """Outcome of one approval batch; ``skipped`` holds (draft id, reason)."""

    stage: Stage
    approved: List[Dict[str, Any]]
    skipped: List[Tuple[str, str]]
    next_step: str
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _ResolvedDraft:
    draft: Any
    segment_id: Optional[UUID] = None
    pain_id: Optional[UUID] = None
    final_segment: Optional[models.SegmentFinal] = None


class RowSkipped(Exception):
    """A single draft could not be approved; carries the reason."""


class ApprovalService(BaseService):
    """Turn a batch of drafts of one stage into canonical rows."""

    def __init__(self, session: AsyncSession, strict: Optional[bool] = None):
        super().__init__(ProjectRepository(session))
        self.session = session
        self.projects: ProjectRepository = self.repository
        self.segments = SegmentRepository(session)
        self.history = HistoryRepository(session)
        self.strict = settings.approval.strict_mode if strict is None else strict

    def validate(
        self,
        stage,
        project: models.Project,
        draft_ids: Sequence[UUID],
        segment_id: Optional[UUID] = None,
        changed_by: Optional[str] = None,
    ):
        if not draft_ids:
            raise ValidationError("draftIds must contain at least one id")

    async def run(
        self,
        stage,
        project: models.Project,
        draft_ids: Sequence[UUID],
        segment_id: Optional[UUID] = None,
        changed_by: Optional[str] = None,
    ) -> ApprovalResult:
        """Approve ``draft_ids`` for ``stage``.

        Args:
            stage: Stage or stage slug
            project: Project the drafts belong to (ownership already checked)
            draft_ids: Draft row identifiers
            segment_id: Only approve drafts of this segment
            changed_by: User recorded on the history entries

        Returns:
            ApprovalResult with approved rows, skipped drafts and the next step

        Raises:
            NotFoundError: If no draft matched
            ValidationError: If a batch invariant fails or nothing could be approved
        """
        definition = get_stage(stage)
        drafts = await self._load_drafts(definition, project, draft_ids, segment_id)

        if definition.requires_top_pick and not any(getattr(d, "is_top_pain", False) for d in drafts):
            raise ValidationError(TOP_PICK_MESSAGE)

        resolved, skipped = await self._resolve(definition, project, drafts)
        if skipped and self.strict:
            raise ValidationError(self._skip_message(definition, skipped, lead=f"Approval of {definition.stage.value} aborted"))

        approved: List[Dict[str, Any]] = []
        extra: Dict[str, Any] = {}

        try:
            replaced: Dict[Optional[UUID], List[Dict[str, Any]]] = {}
            if definition.approval == ApprovalMode.REPLACE_SCOPE and resolved:
                replaced = await self._clear_scopes(definition, project, resolved)

            for item in resolved:
                try:
                    row = await self._write(definition, project, item, extra, changed_by)
                except RowSkipped as e:
                    skipped.append((str(item.draft.id), str(e)))
                    continue
                approved.append(row)

            for scope_segment_id, previous in replaced.items():
                await self._record_replacement(
                    definition, project, scope_segment_id, previous, approved, changed_by
                )

            if skipped and self.strict:
                raise ValidationError(self._skip_message(definition, skipped, lead=f"Approval of {definition.stage.value} aborted"))

            await self.session.commit()
        except ValidationError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(f"Approval of {definition.stage.value} failed: {str(e)}", exc_info=True)
            if self.strict:
                raise ValidationError(f"Approval of {definition.stage.value} rolled back", original_error=e) from e
            raise DatabaseError(f"Approval of {definition.stage.value} failed", original_error=e) from e

        if not approved:
            raise ValidationError(self._skip_message(definition, skipped))

        step = approved_step(definition.stage)
        await self.projects.advance(project.id, step)

        LOGGER.info(
            f"Approved {len(approved)} {definition.stage.value} rows, skipped {len(skipped)}",
            extra={"project_id": str(project.id), "next_step": step, "strict": self.strict},
        )
        return ApprovalResult(
            stage=definition.stage,
            approved=approved,
            skipped=skipped,
            next_step=step,
            extra=extra,
        )

    async def _load_drafts(
        self,
        definition: StageDefinition,
        project: models.Project,
        draft_ids: Sequence[UUID],
        segment_id: Optional[UUID],
    ) -> List[Any]:
        filters: Dict[str, Any] = {"project_id": project.id}
        if segment_id and definition.scope != Scope.PROJECT and definition.approval != ApprovalMode.UPSERT_BY_ORDINAL:
            filters["segment_id"] = segment_id

        drafts = await BaseRepository(self.session, definition.draft_model).get_by_ids(draft_ids, filters)
        if not drafts:
            raise NotFoundError("Drafts not found")
        return drafts

    async def _resolve(
        self,
        definition: StageDefinition,
        project: models.Project,
        drafts: List[Any],
    ) -> Tuple[List[_ResolvedDraft], List[Tuple[str, str]]]:
        resolved: List[_ResolvedDraft] = []
        skipped: List[Tuple[str, str]] = []
        for draft in drafts:
            try:
                resolved.append(await self._resolve_one(definition, project, draft))
            except RowSkipped as e:
                LOGGER.warning(f"Skipping {definition.stage.value} draft {draft.id}: {e}")
                skipped.append((str(draft.id), str(e)))
        return resolved, skipped

    async def _resolve_one(self, definition: StageDefinition, project: models.Project, draft) -> _ResolvedDraft:
        item = _ResolvedDraft(draft=draft, segment_id=getattr(draft, "segment_id", None))

        if definition.approval == ApprovalMode.UPSERT_BY_ORDINAL:
            item.final_segment = await BaseRepository(self.session, models.SegmentFinal).get_one(
                {"project_id": project.id, "segment_index": draft.segment_index},
                order_by="-approved_at",
            )
            if item.final_segment is None:
                raise RowSkipped(f"no final segment with index {draft.segment_index}")
            return item

        if hasattr(draft, "pain_id"):
            if draft.pain_id is None:
                raise RowSkipped("draft has no pain")
            pain = await BaseRepository(self.session, models.Pain).get_one(
                {"id": draft.pain_id, "project_id": project.id}
            )
            if pain is None:
                raise RowSkipped("pain not found")
            item.pain_id = pain.id
            item.segment_id = item.segment_id or pain.segment_id

        if definition.scope != Scope.PROJECT:
            if item.segment_id is None:
                raise RowSkipped("segment could not be resolved")
            if await self.segments.get_in_project(item.segment_id, project.id) is None:
                raise RowSkipped("segment not found in project")

        return item

    async def _clear_scopes(
        self,
        definition: StageDefinition,
        project: models.Project,
        resolved: List[_ResolvedDraft],
    ) -> Dict[Optional[UUID], List[Dict[str, Any]]]:
        """Delete the canonical rows the batch replaces.

        Returns the deleted rows keyed by segment id (``None`` for a
        project-wide scope).
        """
        repo = BaseRepository(self.session, definition.canonical_model)
        if definition.scope == Scope.PROJECT:
            scopes = [{"project_id": project.id}]
        else:
            segment_ids = sorted({item.segment_id for item in resolved}, key=str)
            scopes = [{"project_id": project.id, "segment_id": sid} for sid in segment_ids]

        replaced: Dict[Optional[UUID], List[Dict[str, Any]]] = {}
        for scope in scopes:
            previous = await repo.get_all(limit=None, filters=scope)
            replaced[scope.get("segment_id")] = [row.to_dict() for row in previous]
            removed = await repo.delete_where(scope, commit=not self.strict)
            LOGGER.info(
                f"Cleared {removed} {definition.canonical_model.__tablename__} rows before replace",
                extra={"project_id": str(project.id)},
            )
        return replaced

    async def _record_replacement(
        self,
        definition: StageDefinition,
        project: models.Project,
        segment_id: Optional[UUID],
        previous: List[Dict[str, Any]],
        approved: List[Dict[str, Any]],
        changed_by: Optional[str],
    ) -> None:
        current = [
            row for row in approved
            if segment_id is None or row.get("segment_id") == str(segment_id)
        ]
        await self.history.record(
            table_name=definition.canonical_model.__tablename__,
            operation="UPSERT",
            project_id=project.id,
            record_id=current[0]["id"] if current else None,
            segment_id=segment_id,
            old_data={"records": previous, "count": len(previous)} if previous else None,
            new_data={"records": current, "count": len(current)},
            changed_by=changed_by,
            details={"stage": definition.stage.value},
        )

    async def _write(
        self,
        definition: StageDefinition,
        project: models.Project,
        item: _ResolvedDraft,
        extra: Dict[str, Any],
        changed_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        if self.strict:
            return await self._write_row(definition, project, item, extra, changed_by)

        try:
            async with self.session.begin_nested():
                return await self._write_row(definition, project, item, extra, changed_by)
        except SQLAlchemyError as e:
            LOGGER.warning(
                f"Canonical write for {definition.stage.value} draft {item.draft.id} failed: {str(e)}"
            )
            raise RowSkipped(f"write failed: {e.__class__.__name__}") from e

    async def _write_row(
        self,
        definition: StageDefinition,
        project: models.Project,
        item: _ResolvedDraft,
        extra: Dict[str, Any],
        changed_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        values = {name: getattr(item.draft, name) for name in definition.fields}
        repo = BaseRepository(self.session, definition.canonical_model)
        stage_info = {"stage": definition.stage.value, "draft_id": str(item.draft.id)}

        if definition.approval == ApprovalMode.UPSERT_BY_ORDINAL:
            segment = await self._upsert_working_segment(project, item.final_segment, values, changed_by)
            extra.setdefault("segments", []).append(segment.to_dict())
            row = await self._upsert(
                repo, {"project_id": project.id, "segment_id": segment.id}, values, changed_by, stage_info
            )
            return row.to_dict()

        scope: Dict[str, Any] = {"project_id": project.id}
        if definition.scope != Scope.PROJECT:
            scope["segment_id"] = item.segment_id
        if item.pain_id is not None:
            scope["pain_id"] = item.pain_id

        if definition.approval == ApprovalMode.REPLACE_SCOPE:
            row = await repo.create(commit=False, **scope, **values)
        elif definition.approval == ApprovalMode.UPSERT_BY_PAIN:
            row = await self._upsert(
                repo,
                {"project_id": project.id, "pain_id": item.pain_id},
                {**scope, **values},
                changed_by,
                stage_info,
            )
        else:
            row = await self._upsert(repo, scope, values, changed_by, stage_info)
        return row.to_dict()

    async def _upsert(
        self,
        repo: BaseRepository,
        lookup: Dict[str, Any],
        values: Dict[str, Any],
        changed_by: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        order_by: str = "-approved_at",
    ):
        """Update the first row matching ``lookup`` or create one, with a history entry."""
        existing = await repo.get_one(lookup, order_by=order_by)
        if existing is not None:
            before = existing.to_dict()
            row = await repo.update(existing.id, commit=False, **values)
            await self._record_row(repo, row, "UPDATE", before, changed_by, details)
            return row
        row = await repo.create(commit=False, **{**lookup, **values})
        await self._record_row(repo, row, "INSERT", None, changed_by, details)
        return row

    async def _record_row(
        self,
        repo: BaseRepository,
        row,
        operation: str,
        old_data: Optional[Dict[str, Any]],
        changed_by: Optional[str],
        details: Optional[Dict[str, Any]],
    ) -> None:
        await self.history.record(
            table_name=repo.model.__tablename__,
            operation=operation,
            project_id=row.project_id,
            record_id=row.id,
            segment_id=getattr(row, "segment_id", None),
            old_data=old_data,
            new_data=row.to_dict(),
            changed_by=changed_by,
            details=details,
        )

    async def _upsert_working_segment(
        self,
        project: models.Project,
        final_segment: models.SegmentFinal,
        details: Dict[str, Any],
        changed_by: Optional[str] = None,
    ) -> models.Segment:
        values = {
            "name": final_segment.name,
            "description": final_segment.description,
            "sociodemographics": final_segment.sociodemographics,
            "needs": details.get("needs"),
            "triggers": details.get("triggers"),
            "core_values": details.get("core_values"),
        }
        lookup = {"project_id": project.id, "segment_index": final_segment.segment_index}
        return await self._upsert(
            self.segments,
            lookup,
            values,
            changed_by,
            {"source_segment_id": str(final_segment.id)},
            order_by="created_at",
        )

    @staticmethod
    def _skip_message(
        definition: StageDefinition,
        skipped: List[Tuple[str, str]],
        lead: Optional[str] = None,
    ) -> str:
        lead = lead or f"No {definition.stage.value} drafts could be approved"
        reasons = "; ".join(f"{draft_id}: {reason}" for draft_id, reason in skipped)
        return f"{lead} ({reasons})" if reasons else lead
