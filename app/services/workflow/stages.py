"""Declarative description of every workflow stage.

The draft generator and the approval service are generic; everything that
differs between stages (tables, payload fields, prerequisites, how provider
output is split into rows and how approval writes canonical rows) is
declared here.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple, Type
from uuid import UUID

from pydantic import BaseModel, ConfigDict, create_model
from sqlalchemy import Boolean, Integer, String, Uuid

from app.core.exceptions import UnknownStepError
from app.core.step_graph import Stage
from app.database import models


class Scope(str, Enum):
    """Granularity of one generation unit."""
    PROJECT = "project"
    SEGMENT = "segment"
    PAIN = "pain"


class ApprovalMode(str, Enum):
    """How approved drafts are reconciled into canonical rows."""
    UPSERT_SINGLE = "upsert_single"
    REPLACE_SCOPE = "replace_scope"
    UPSERT_BY_PAIN = "upsert_by_pain"
    UPSERT_BY_ORDINAL = "upsert_by_ordinal"


class UnitSource(str, Enum):
    """Where generation units come from."""
    PROJECT = "project"
    WORKING_SEGMENTS = "working_segments"
    FINAL_SEGMENTS = "final_segments"
    TOP_PAINS = "top_pains"
    CANVASED_PAINS = "canvased_pains"


@dataclass(frozen=True)
class Requirement:
    """Canonical input that must exist before a unit can be generated."""

    name: str
    model: Type[models.Base]
    scope: Scope = Scope.PROJECT
    many: bool = False
    order_by: Tuple[str, ...] = ("-approved_at",)


@dataclass(frozen=True)
class StageDefinition:
    stage: Stage
    draft_model: Type[models.Base]
    canonical_model: Type[models.Base]
    scope: Scope
    units: UnitSource
    approval: ApprovalMode
    fields: Tuple[str, ...]
    max_tokens: int = 4096
    # Key of the list in the provider response; None means one row per unit.
    items_key: Optional[str] = None
    # Field echoed by the provider that ties an item to a known parent.
    correlation_key: Optional[str] = None
    # Ordinal field assigned from list position when the provider omits it.
    ordinal_key: Optional[str] = None
    requires: Tuple[Requirement, ...] = field(default_factory=tuple)
    # (draft field, unit input name): the field receives that input's id.
    input_links: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    requires_top_pick: bool = False

    @property
    def key(self) -> str:
        return self.stage.key


PORTRAIT_FIELDS = (
    "sociodemographics",
    "psychographics",
    "age_range",
    "gender_distribution",
    "income_level",
    "education",
    "location",
    "occupation",
    "family_status",
    "values_beliefs",
    "lifestyle_habits",
    "interests_hobbies",
    "personality_traits",
)

_VALIDATION = Requirement("validation", models.Validation)
_PORTRAIT = Requirement("portrait", models.Portrait)
_PORTRAIT_REVIEW = Requirement("portrait_review", models.PortraitReview)
_PORTRAIT_FINAL = Requirement("portrait_final", models.PortraitFinal)
_SEGMENTS_INITIAL = Requirement(
    "segments_initial", models.SegmentInitial, many=True, order_by=("segment_index",)
)
_SEGMENTS_REVIEW = Requirement("segments_review", models.SegmentsReview)
_SEGMENT_DETAILS = Requirement("segment_details", models.SegmentDetails, Scope.SEGMENT)
_JOBS = Requirement("jobs", models.Jobs, Scope.SEGMENT)
_PREFERENCES = Requirement("preferences", models.Preferences, Scope.SEGMENT)
_DIFFICULTIES = Requirement("difficulties", models.Difficulties, Scope.SEGMENT)
_TRIGGERS = Requirement("triggers", models.Triggers, Scope.SEGMENT)
_PAINS = Requirement("pains", models.Pain, Scope.SEGMENT, many=True, order_by=("pain_index",))
_COMPETITIVE = Requirement("competitive_intelligence", models.CompetitiveIntelligence, Scope.SEGMENT)
_PRICING = Requirement("pricing_psychology", models.PricingPsychology, Scope.SEGMENT)


STAGES: Dict[Stage, StageDefinition] = {
    definition.stage: definition
    for definition in (
        StageDefinition(
            stage=Stage.VALIDATION,
            draft_model=models.ValidationDraft,
            canonical_model=models.Validation,
            scope=Scope.PROJECT,
            units=UnitSource.PROJECT,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=(
                "what_brand_sells",
                "problem_solved",
                "key_differentiator",
                "understanding_correct",
                "clarification_needed",
            ),
            max_tokens=2048,
        ),
        StageDefinition(
            stage=Stage.PORTRAIT,
            draft_model=models.PortraitDraft,
            canonical_model=models.Portrait,
            scope=Scope.PROJECT,
            units=UnitSource.PROJECT,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=PORTRAIT_FIELDS,
            requires=(_VALIDATION,),
        ),
        StageDefinition(
            stage=Stage.PORTRAIT_REVIEW,
            draft_model=models.PortraitReviewDraft,
            canonical_model=models.PortraitReview,
            scope=Scope.PROJECT,
            units=UnitSource.PROJECT,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=("original_portrait_id", "what_to_change", "what_to_add", "what_to_remove", "reasoning"),
            requires=(_PORTRAIT,),
            input_links=(("original_portrait_id", "portrait"),),
        ),
        StageDefinition(
            stage=Stage.PORTRAIT_FINAL,
            draft_model=models.PortraitFinalDraft,
            canonical_model=models.PortraitFinal,
            scope=Scope.PROJECT,
            units=UnitSource.PROJECT,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=PORTRAIT_FIELDS + ("changes_applied",),
            requires=(_PORTRAIT, _PORTRAIT_REVIEW),
        ),
        StageDefinition(
            stage=Stage.SEGMENTS,
            draft_model=models.SegmentInitialDraft,
            canonical_model=models.SegmentInitial,
            scope=Scope.PROJECT,
            units=UnitSource.PROJECT,
            approval=ApprovalMode.REPLACE_SCOPE,
            fields=("segment_index", "name", "description", "sociodemographics"),
            max_tokens=8192,
            items_key="segments",
            ordinal_key="segment_index",
            requires=(_PORTRAIT_FINAL,),
        ),
        StageDefinition(
            stage=Stage.SEGMENTS_REVIEW,
            draft_model=models.SegmentsReviewDraft,
            canonical_model=models.SegmentsReview,
            scope=Scope.PROJECT,
            units=UnitSource.PROJECT,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=("segment_overlaps", "too_broad", "too_narrow", "missing_segments", "recommendations"),
            requires=(_SEGMENTS_INITIAL,),
        ),
        StageDefinition(
            stage=Stage.SEGMENTS_FINAL,
            draft_model=models.SegmentFinalDraft,
            canonical_model=models.SegmentFinal,
            scope=Scope.PROJECT,
            units=UnitSource.PROJECT,
            approval=ApprovalMode.REPLACE_SCOPE,
            fields=("segment_index", "name", "description", "sociodemographics", "changes_applied", "is_new"),
            max_tokens=8192,
            items_key="segments",
            ordinal_key="segment_index",
            requires=(_SEGMENTS_INITIAL, _SEGMENTS_REVIEW),
        ),
        StageDefinition(
            stage=Stage.SEGMENT_DETAILS,
            draft_model=models.SegmentDetailsDraft,
            canonical_model=models.SegmentDetails,
            scope=Scope.SEGMENT,
            units=UnitSource.FINAL_SEGMENTS,
            approval=ApprovalMode.UPSERT_BY_ORDINAL,
            fields=("needs", "triggers", "core_values", "awareness_level", "objections"),
            requires=(_PORTRAIT_FINAL,),
        ),
        StageDefinition(
            stage=Stage.JOBS,
            draft_model=models.JobsDraft,
            canonical_model=models.Jobs,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=("functional_jobs", "emotional_jobs", "social_jobs"),
            requires=(_PORTRAIT_FINAL,),
        ),
        StageDefinition(
            stage=Stage.PREFERENCES,
            draft_model=models.PreferencesDraft,
            canonical_model=models.Preferences,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=("preferences",),
            requires=(_JOBS,),
        ),
        StageDefinition(
            stage=Stage.DIFFICULTIES,
            draft_model=models.DifficultiesDraft,
            canonical_model=models.Difficulties,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=("difficulties",),
            requires=(_PREFERENCES,),
        ),
        StageDefinition(
            stage=Stage.TRIGGERS,
            draft_model=models.TriggersDraft,
            canonical_model=models.Triggers,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=("triggers",),
            requires=(_DIFFICULTIES,),
        ),
        StageDefinition(
            stage=Stage.PAINS,
            draft_model=models.PainDraft,
            canonical_model=models.Pain,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.REPLACE_SCOPE,
            fields=("pain_index", "name", "description", "deep_triggers", "examples"),
            max_tokens=6144,
            items_key="pains",
            ordinal_key="pain_index",
            requires=(_JOBS, _TRIGGERS),
        ),
        StageDefinition(
            stage=Stage.PAINS_RANKING,
            draft_model=models.PainRankingDraft,
            canonical_model=models.PainRanking,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_BY_PAIN,
            fields=("impact_score", "is_top_pain", "ranking_reasoning"),
            items_key="rankings",
            correlation_key="pain_index",
            requires=(_PAINS,),
            requires_top_pick=True,
        ),
        StageDefinition(
            stage=Stage.CANVAS,
            draft_model=models.CanvasDraft,
            canonical_model=models.Canvas,
            scope=Scope.PAIN,
            units=UnitSource.TOP_PAINS,
            approval=ApprovalMode.UPSERT_BY_PAIN,
            fields=("emotional_aspects", "behavioral_patterns", "buying_signals"),
            max_tokens=6144,
            requires=(_PORTRAIT_FINAL,),
        ),
        StageDefinition(
            stage=Stage.CANVAS_EXTENDED,
            draft_model=models.CanvasExtendedDraft,
            canonical_model=models.CanvasExtended,
            scope=Scope.PAIN,
            units=UnitSource.CANVASED_PAINS,
            approval=ApprovalMode.UPSERT_BY_PAIN,
            fields=(
                "canvas_id",
                "extended_analysis",
                "different_angles",
                "journey_description",
                "emotional_peaks",
                "purchase_moment",
                "post_purchase",
            ),
            max_tokens=8192,
            input_links=(("canvas_id", "canvas"),),
        ),
        StageDefinition(
            stage=Stage.CHANNEL_STRATEGY,
            draft_model=models.ChannelStrategyDraft,
            canonical_model=models.ChannelStrategy,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=(
                "primary_platforms",
                "content_preferences",
                "trusted_sources",
                "communities",
                "search_patterns",
                "advertising_response",
            ),
            max_tokens=6000,
            requires=(_PORTRAIT_FINAL, _SEGMENT_DETAILS, _TRIGGERS),
        ),
        StageDefinition(
            stage=Stage.COMPETITIVE_INTELLIGENCE,
            draft_model=models.CompetitiveIntelligenceDraft,
            canonical_model=models.CompetitiveIntelligence,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=(
                "alternatives_tried",
                "current_workarounds",
                "vs_competitors",
                "switching_barriers",
                "evaluation_process",
                "category_beliefs",
            ),
            max_tokens=6000,
            requires=(_PAINS, _JOBS),
        ),
        StageDefinition(
            stage=Stage.PRICING_PSYCHOLOGY,
            draft_model=models.PricingPsychologyDraft,
            canonical_model=models.PricingPsychology,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=(
                "budget_context",
                "price_perception",
                "value_anchors",
                "willingness_to_pay_signals",
                "payment_psychology",
                "roi_calculation",
                "pricing_objections",
                "discount_sensitivity",
                "budget_triggers",
            ),
            max_tokens=6000,
            requires=(_PAINS, _COMPETITIVE),
        ),
        StageDefinition(
            stage=Stage.TRUST_FRAMEWORK,
            draft_model=models.TrustFrameworkDraft,
            canonical_model=models.TrustFramework,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=(
                "baseline_trust",
                "proof_hierarchy",
                "trusted_authorities",
                "social_proof",
                "transparency_needs",
                "trust_killers",
                "credibility_markers",
                "risk_reduction",
                "trust_journey",
            ),
            max_tokens=6000,
            requires=(_PAINS, _COMPETITIVE, _PRICING),
        ),
        StageDefinition(
            stage=Stage.JTBD_CONTEXT,
            draft_model=models.JtbdContextDraft,
            canonical_model=models.JtbdContext,
            scope=Scope.SEGMENT,
            units=UnitSource.WORKING_SEGMENTS,
            approval=ApprovalMode.UPSERT_SINGLE,
            fields=("job_contexts", "job_priority_ranking", "job_dependencies"),
            requires=(_JOBS, _COMPETITIVE),
        ),
    )
}


def get_stage(stage) -> StageDefinition:
    """Definition for ``stage`` (a Stage or its URL slug).

    Raises:
        UnknownStepError: If the stage does not exist
    """
    try:
        return STAGES[stage if isinstance(stage, Stage) else Stage(stage)]
    except (KeyError, ValueError) as e:
        raise UnknownStepError(f"Unknown stage: {stage!r}") from e


class StageItem(BaseModel):
    """Base for the per-stage schemas provider items are checked against."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


_COLUMN_TYPES = ((Boolean, bool), (Integer, int), (String, str), (Uuid, UUID))


def _python_type(column) -> Any:
    for sql_type, python_type in _COLUMN_TYPES:
        if isinstance(column.type, sql_type):
            return python_type
    return Any


@lru_cache(maxsize=None)
def item_model(stage) -> Type[StageItem]:
    """Pydantic schema for one provider item of ``stage``.

    Built from the draft table's payload columns. A field is required when
    its column is NOT NULL without a default and is not the ordinal the
    generator fills from list position. Linked fields are set from unit
    inputs, never from provider output, and are left out.
    """
    definition = get_stage(stage)
    linked = {field_name for field_name, _ in definition.input_links}
    columns = definition.draft_model.__table__.columns

    fields: Dict[str, Any] = {}
    for name in definition.fields:
        if name in linked:
            continue
        column = columns[name]
        python_type = _python_type(column)
        required = (
            not column.nullable
            and column.default is None
            and name != definition.ordinal_key
        )
        fields[name] = (python_type, ...) if required else (Optional[python_type], None)

    model_name = "".join(part.title() for part in definition.key.split("_")) + "Item"
    return create_model(model_name, __base__=StageItem, **fields)
