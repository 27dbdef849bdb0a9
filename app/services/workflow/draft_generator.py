"""Draft generation for a workflow stage.

A run resolves the stage's generation units, then handles them one at a
time: load the canonical inputs, call the provider through the retry policy,
split the response into draft rows and persist them under a fresh version.
Units are processed sequentially so at most one provider call is in flight
per run. Rows committed for earlier units survive a later failure; the
project pointer only moves once every unit has been handled.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    DatabaseError,
    MalformedOutputError,
    NotFoundError,
    ValidationError,
)
from app.core.retry import RetryPolicy
from app.core.step_graph import Stage, draft_step
from app.core.unified_llm import TextGenerator
from app.database import models
from app.prompts.research_prompts import build_prompt
from app.repositories.base_repository import BaseRepository
from app.repositories.project_repository import ProjectRepository
from app.repositories.segment_repository import SegmentRepository
from app.services.base_service import BaseService
from app.services.workflow.stages import (
    Requirement,
    Scope,
    StageDefinition,
    UnitSource,
    get_stage,
    item_model,
)
from app.utils.json_parser import parse_llm_json
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class GenerationUnit:
    """One scope unit of a generation run."""

    segment: Optional[models.Segment] = None
    final_segment: Optional[models.SegmentFinal] = None
    pain: Optional[models.Pain] = None
    inputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        if self.pain is not None:
            return f"pain {self.pain.pain_index} ({self.pain.name})"
        if self.segment is not None:
            return f"segment {self.segment.segment_index} ({self.segment.name})"
        if self.final_segment is not None:
            return f"final segment {self.final_segment.segment_index} ({self.final_segment.name})"
        return "project"

    @property
    def segment_id(self) -> Optional[UUID]:
        return self.segment.id if self.segment is not None else None


@dataclass
class GenerationResult:
    stage: Stage
    drafts: List[Dict[str, Any]]
    skipped_units: List[Tuple[str, str]]
    current_step: str


class DraftGeneratorService(BaseService):
    """Generate draft rows for one stage of one project."""

    def __init__(
        self,
        session: AsyncSession,
        llm_client: TextGenerator,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(ProjectRepository(session))
        self.session = session
        self.llm_client = llm_client
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.projects: ProjectRepository = self.repository
        self.segments = SegmentRepository(session)

    def validate(self, stage, project: models.Project, segment_id: Optional[UUID] = None):
        if project is None:
            raise ValidationError("Project is required")

    async def run(
        self,
        stage,
        project: models.Project,
        segment_id: Optional[UUID] = None,
    ) -> GenerationResult:
        """Generate drafts for ``stage``.

        Args:
            stage: Stage or stage slug
            project: Project the drafts belong to (ownership already checked)
            segment_id: Restrict the run to one segment

        Returns:
            GenerationResult with the persisted drafts

        Raises:
            NotFoundError: If ``segment_id`` is not a segment of the project
            ValidationError: If no unit had the inputs it needs
            ProviderError: If a provider call still fails after retries
        """
        definition = get_stage(stage)
        units = await self._resolve_units(definition, project, segment_id)

        LOGGER.info(
            f"Generating {definition.stage.value} drafts for project {project.id}",
            extra={"project_id": str(project.id), "units": len(units)},
        )

        drafts: List[Dict[str, Any]] = []
        skipped: List[Tuple[str, str]] = []

        for unit in units:
            missing = await self._load_inputs(definition, project, unit)
            if missing:
                reason = f"missing {', '.join(missing)}"
                LOGGER.info(f"Skipping {unit.label}: {reason}")
                skipped.append((unit.label, reason))
                continue

            created = await self._generate_unit(definition, project, unit)
            if not created:
                skipped.append((unit.label, "provider returned no usable items"))
                continue
            drafts.extend(created)

        if not drafts:
            detail = "; ".join(f"{label}: {reason}" for label, reason in skipped)
            raise ValidationError(
                f"Nothing to generate for {definition.stage.value}"
                + (f" ({detail})" if detail else "")
            )

        step = draft_step(definition.stage)
        await self.projects.advance(project.id, step)

        return GenerationResult(
            stage=definition.stage,
            drafts=drafts,
            skipped_units=skipped,
            current_step=step,
        )

    async def _resolve_units(
        self,
        definition: StageDefinition,
        project: models.Project,
        segment_id: Optional[UUID],
    ) -> List[GenerationUnit]:
        if definition.units == UnitSource.PROJECT:
            return [GenerationUnit()]

        if definition.units == UnitSource.FINAL_SEGMENTS:
            finals = BaseRepository(self.session, models.SegmentFinal)
            filters: Dict[str, Any] = {"project_id": project.id}
            if segment_id:
                filters["id"] = segment_id
            rows = await finals.get_all(limit=None, filters=filters, order_by="segment_index")
            if segment_id and not rows:
                raise NotFoundError("Segment not found")
            if not rows:
                raise ValidationError("Final segments have not been approved yet")
            return [GenerationUnit(final_segment=row) for row in rows]

        segments = await self._scoped_segments(project, segment_id)

        if definition.units == UnitSource.WORKING_SEGMENTS:
            return [GenerationUnit(segment=segment) for segment in segments]

        units: List[GenerationUnit] = []
        for segment in segments:
            if definition.units == UnitSource.TOP_PAINS:
                units.extend(await self._top_pain_units(project, segment))
            else:
                units.extend(await self._canvased_pain_units(project, segment))
        if not units:
            raise ValidationError(
                "No top-ranked pains found" if definition.units == UnitSource.TOP_PAINS
                else "No approved canvases found"
            )
        return units

    async def _scoped_segments(
        self, project: models.Project, segment_id: Optional[UUID]
    ) -> List[models.Segment]:
        if segment_id:
            segment = await self.segments.get_in_project(segment_id, project.id)
            if segment is None:
                raise NotFoundError("Segment not found")
            return [segment]

        segments = await self.segments.list_for_project(project.id)
        if not segments:
            raise ValidationError("Segments not found")
        return segments

    async def _top_pain_units(self, project: models.Project, segment: models.Segment) -> List[GenerationUnit]:
        rankings = await BaseRepository(self.session, models.PainRanking).get_all(
            limit=None,
            filters={"project_id": project.id, "segment_id": segment.id, "is_top_pain": True},
        )
        top_ids = {ranking.pain_id for ranking in rankings}
        pains = await BaseRepository(self.session, models.Pain).get_all(
            limit=None,
            filters={"project_id": project.id, "segment_id": segment.id},
            order_by="pain_index",
        )
        return [GenerationUnit(segment=segment, pain=pain) for pain in pains if pain.id in top_ids]

    async def _canvased_pain_units(self, project: models.Project, segment: models.Segment) -> List[GenerationUnit]:
        canvases = await BaseRepository(self.session, models.Canvas).get_all(
            limit=None, filters={"project_id": project.id, "segment_id": segment.id}
        )
        by_pain = {canvas.pain_id: canvas for canvas in canvases}
        pains = await BaseRepository(self.session, models.Pain).get_all(
            limit=None,
            filters={"project_id": project.id, "segment_id": segment.id},
            order_by="pain_index",
        )
        return [
            GenerationUnit(segment=segment, pain=pain, inputs={"canvas": by_pain[pain.id]})
            for pain in pains
            if pain.id in by_pain
        ]

    async def _load_inputs(
        self,
        definition: StageDefinition,
        project: models.Project,
        unit: GenerationUnit,
    ) -> List[str]:
        """Load every requirement into ``unit.inputs``; return the names that are missing."""
        missing: List[str] = []
        for requirement in definition.requires:
            value = await self._load_requirement(requirement, project, unit)
            if not value:
                missing.append(requirement.name)
            else:
                unit.inputs[requirement.name] = value
        return missing

    async def _load_requirement(self, requirement: Requirement, project: models.Project, unit: GenerationUnit):
        filters: Dict[str, Any] = {"project_id": project.id}
        if requirement.scope in (Scope.SEGMENT, Scope.PAIN):
            if unit.segment_id is None:
                return None
            filters["segment_id"] = unit.segment_id
        if requirement.scope == Scope.PAIN:
            if unit.pain is None:
                return None
            filters["pain_id"] = unit.pain.id

        repo = BaseRepository(self.session, requirement.model)
        if requirement.many:
            return await repo.get_all(limit=None, filters=filters, order_by=list(requirement.order_by))
        return await repo.get_one(filters, order_by=list(requirement.order_by))

    async def _generate_unit(
        self,
        definition: StageDefinition,
        project: models.Project,
        unit: GenerationUnit,
    ) -> List[Dict[str, Any]]:
        prompt = build_prompt(
            definition.stage,
            project.onboarding_data,
            self._prompt_inputs(unit),
            list(definition.fields),
            definition.items_key,
            definition.correlation_key,
        )

        async def fetch_and_parse() -> Dict[str, Any]:
            text = await self.llm_client.generate(prompt, definition.max_tokens)
            payload = self._check_shape(definition, parse_llm_json(text))
            return self._validate_items(definition, payload)

        payload = await self.retry_policy.run(
            fetch_and_parse,
            description=f"{definition.stage.value} generation for {unit.label}",
        )

        rows = self._map_response(definition, unit, payload)
        if not rows:
            LOGGER.warning(f"No usable {definition.stage.value} items for {unit.label}")
            return []

        version = await self._next_version(definition, project, unit)
        links = self._unit_links(definition, project, unit)
        draft_rows = [{**row, **links, "version": version} for row in rows]

        repo = BaseRepository(self.session, definition.draft_model)
        try:
            created = await repo.create_many(draft_rows)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Failed to save {definition.stage.value} drafts", original_error=e) from e

        LOGGER.info(
            f"Saved {len(created)} {definition.stage.value} drafts for {unit.label} (version {version})",
            extra={"project_id": str(project.id), "version": version},
        )
        return [draft.to_dict() for draft in created]

    @staticmethod
    def _prompt_inputs(unit: GenerationUnit) -> Dict[str, Any]:
        inputs: Dict[str, Any] = {}
        if unit.segment is not None:
            inputs["segment"] = unit.segment.to_dict()
        if unit.final_segment is not None:
            inputs["segment"] = unit.final_segment.to_dict()
        if unit.pain is not None:
            inputs["pain"] = unit.pain.to_dict()
        for name, value in unit.inputs.items():
            inputs[name] = [row.to_dict() for row in value] if isinstance(value, list) else value.to_dict()
        return inputs

    @staticmethod
    def _check_shape(definition: StageDefinition, payload: Any) -> Dict[str, Any]:
        """Reject responses whose top-level shape does not fit the stage."""
        if not isinstance(payload, dict):
            raise MalformedOutputError(
                f"Expected a JSON object for {definition.stage.value}, got {type(payload).__name__}"
            )
        if definition.items_key and not isinstance(payload.get(definition.items_key), list):
            raise MalformedOutputError(
                f"Expected a '{definition.items_key}' list for {definition.stage.value}"
            )
        return payload

    @staticmethod
    def _validate_items(definition: StageDefinition, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Check every item against the stage schema and coerce its fields.

        A single bad item rejects the whole response as malformed. Keys
        outside the payload fields (such as a correlation key) are kept as
        the provider sent them.
        """
        schema = item_model(definition.stage)
        items = payload[definition.items_key] if definition.items_key else [payload]

        cleaned: List[Dict[str, Any]] = []
        for position, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                raise MalformedOutputError(
                    f"{definition.stage.value} item {position} is {type(item).__name__}, not an object"
                )
            try:
                values = schema.model_validate(item).model_dump(exclude_unset=True, exclude_none=True)
            except pydantic.ValidationError as e:
                problems = "; ".join(
                    f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                    for error in e.errors()
                )
                raise MalformedOutputError(
                    f"Invalid {definition.stage.value} item {position}: {problems}",
                    original_error=e,
                ) from e
            passthrough = {key: value for key, value in item.items() if key not in definition.fields}
            cleaned.append({**passthrough, **values})

        if definition.items_key:
            return {**payload, definition.items_key: cleaned}
        return cleaned[0]

    def _map_response(
        self,
        definition: StageDefinition,
        unit: GenerationUnit,
        payload: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """Turn a provider payload into draft field mappings.

        Items have already been checked by ``_validate_items``; only the
        stage's payload fields are kept. For correlated stages each item is
        matched to a parent by its correlation key and items without a match
        are dropped.
        """
        items = payload[definition.items_key] if definition.items_key else [payload]
        rows: List[Dict[str, Any]] = []

        parents: Dict[Any, Any] = {}
        if definition.correlation_key:
            for parent in unit.inputs.get("pains", []):
                parents[getattr(parent, definition.correlation_key)] = parent

        for position, item in enumerate(items, start=1):
            row = {name: item[name] for name in definition.fields if name in item}

            if definition.ordinal_key and row.get(definition.ordinal_key) is None:
                row[definition.ordinal_key] = position

            if definition.correlation_key:
                parent = parents.get(_as_int(item.get(definition.correlation_key)))
                if parent is None:
                    LOGGER.debug(
                        f"Dropping {definition.stage.value} item with unknown "
                        f"{definition.correlation_key}={item.get(definition.correlation_key)!r}"
                    )
                    continue
                row["pain_id"] = parent.id

            rows.append(row)
        return rows

    def _unit_links(
        self,
        definition: StageDefinition,
        project: models.Project,
        unit: GenerationUnit,
    ) -> Dict[str, Any]:
        links: Dict[str, Any] = {"project_id": project.id}
        if definition.scope in (Scope.SEGMENT, Scope.PAIN) and unit.segment is not None:
            links["segment_id"] = unit.segment.id
        if definition.scope == Scope.PAIN and unit.pain is not None:
            links["pain_id"] = unit.pain.id
        if unit.final_segment is not None:
            links["segment_index"] = unit.final_segment.segment_index
            links["source_segment_id"] = unit.final_segment.id
        for field_name, input_name in definition.input_links:
            source = unit.inputs.get(input_name)
            if source is not None:
                links[field_name] = source.id
        return links

    async def _next_version(
        self,
        definition: StageDefinition,
        project: models.Project,
        unit: GenerationUnit,
    ) -> int:
        filters: Dict[str, Any] = {"project_id": project.id}
        if unit.segment is not None:
            filters["segment_id"] = unit.segment.id
        if unit.pain is not None:
            filters["pain_id"] = unit.pain.id
        if unit.final_segment is not None:
            filters["segment_index"] = unit.final_segment.segment_index

        repo = BaseRepository(self.session, definition.draft_model)
        current = await repo.max_value("version", filters)
        return (current or 0) + 1


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
