"""SQLAlchemy models for all database tables.

Every stage owns a ``<stage>_drafts`` table and a canonical table. Draft and
canonical models share a payload mixin, so the fields an approval copies are
the same columns on both sides.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.core.step_graph import ONBOARDING

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Project(Base):
    """A research project and its position in the workflow."""

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    # Written only through ProjectRepository.advance
    current_step: Mapped[str] = mapped_column(String, nullable=False, default=ONBOARDING)
    onboarding_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class Segment(Base):
    """Working audience segment used by every segment-scoped stage.

    Created from a final segment when its details are approved; the two are
    linked by ``segment_index`` only.
    """

    __tablename__ = "segments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    segment_index: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sociodemographics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    needs: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    triggers: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    core_values: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# --- shared columns -------------------------------------------------------


class ProjectScoped:
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )


class SegmentScoped(ProjectScoped):
    segment_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)


class PainScoped(SegmentScoped):
    pain_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)


class DraftColumns:
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CanonicalColumns:
    approved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# --- stage payloads ---------------------------------------------------------


class ValidationFields:
    what_brand_sells: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    problem_solved: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    key_differentiator: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    understanding_correct: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    clarification_needed: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class PortraitFields:
    sociodemographics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    psychographics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    age_range: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    gender_distribution: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    income_level: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    education: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    occupation: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    family_status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    values_beliefs: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    lifestyle_habits: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    interests_hobbies: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    personality_traits: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class PortraitReviewFields:
    original_portrait_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    what_to_change: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    what_to_add: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    what_to_remove: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class PortraitFinalFields(PortraitFields):
    changes_applied: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class SegmentItemFields:
    segment_index: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sociodemographics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class SegmentsReviewFields:
    segment_overlaps: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    too_broad: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    too_narrow: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    missing_segments: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    recommendations: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class SegmentFinalFields(SegmentItemFields):
    changes_applied: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    is_new: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class SegmentDetailsFields:
    needs: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    triggers: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    core_values: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    awareness_level: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    objections: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class JobsFields:
    functional_jobs: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    emotional_jobs: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    social_jobs: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class PreferencesFields:
    preferences: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class DifficultiesFields:
    difficulties: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class TriggersFields:
    triggers: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class PainFields:
    pain_index: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deep_triggers: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    examples: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class PainRankingFields:
    impact_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_top_pain: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ranking_reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class CanvasFields:
    emotional_aspects: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    behavioral_patterns: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    buying_signals: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class CanvasExtendedFields:
    canvas_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    extended_analysis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    different_angles: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    journey_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    emotional_peaks: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    purchase_moment: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    post_purchase: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class ChannelStrategyFields:
    primary_platforms: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    content_preferences: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    trusted_sources: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    communities: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    search_patterns: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    advertising_response: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class CompetitiveIntelligenceFields:
    alternatives_tried: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    current_workarounds: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    vs_competitors: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    switching_barriers: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    evaluation_process: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    category_beliefs: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class PricingPsychologyFields:
    budget_context: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    price_perception: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    value_anchors: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    willingness_to_pay_signals: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    payment_psychology: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    roi_calculation: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    pricing_objections: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    discount_sensitivity: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    budget_triggers: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class TrustFrameworkFields:
    baseline_trust: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    proof_hierarchy: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    trusted_authorities: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    social_proof: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    transparency_needs: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    trust_killers: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    credibility_markers: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    risk_reduction: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    trust_journey: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class JtbdContextFields:
    job_contexts: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    job_priority_ranking: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    job_dependencies: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


# --- project-level stages ---------------------------------------------------


class ValidationDraft(ProjectScoped, DraftColumns, ValidationFields, Base):
    __tablename__ = "validation_drafts"


class Validation(ProjectScoped, CanonicalColumns, ValidationFields, Base):
    __tablename__ = "validation"


class PortraitDraft(ProjectScoped, DraftColumns, PortraitFields, Base):
    __tablename__ = "portrait_drafts"


class Portrait(ProjectScoped, CanonicalColumns, PortraitFields, Base):
    __tablename__ = "portrait"


class PortraitReviewDraft(ProjectScoped, DraftColumns, PortraitReviewFields, Base):
    __tablename__ = "portrait_review_drafts"


class PortraitReview(ProjectScoped, CanonicalColumns, PortraitReviewFields, Base):
    __tablename__ = "portrait_review"


class PortraitFinalDraft(ProjectScoped, DraftColumns, PortraitFinalFields, Base):
    __tablename__ = "portrait_final_drafts"


class PortraitFinal(ProjectScoped, CanonicalColumns, PortraitFinalFields, Base):
    __tablename__ = "portrait_final"


class SegmentInitialDraft(ProjectScoped, DraftColumns, SegmentItemFields, Base):
    __tablename__ = "segments_drafts"


class SegmentInitial(ProjectScoped, CanonicalColumns, SegmentItemFields, Base):
    __tablename__ = "segments_initial"


class SegmentsReviewDraft(ProjectScoped, DraftColumns, SegmentsReviewFields, Base):
    __tablename__ = "segments_review_drafts"


class SegmentsReview(ProjectScoped, CanonicalColumns, SegmentsReviewFields, Base):
    __tablename__ = "segments_review"


class SegmentFinalDraft(ProjectScoped, DraftColumns, SegmentFinalFields, Base):
    __tablename__ = "segments_final_drafts"


class SegmentFinal(ProjectScoped, CanonicalColumns, SegmentFinalFields, Base):
    __tablename__ = "segments_final"


# --- segment-level stages ---------------------------------------------------


class SegmentDetailsDraft(SegmentScoped, DraftColumns, SegmentDetailsFields, Base):
    """Details generated for one final segment.

    ``segment_id`` stays empty: the working segment does not exist until the
    draft is approved. The final segment is referenced by ordinal.
    """

    __tablename__ = "segment_details_drafts"

    segment_index: Mapped[int] = mapped_column(Integer, nullable=False)
    source_segment_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)


class SegmentDetails(SegmentScoped, CanonicalColumns, SegmentDetailsFields, Base):
    __tablename__ = "segment_details"


class JobsDraft(SegmentScoped, DraftColumns, JobsFields, Base):
    __tablename__ = "jobs_drafts"


class Jobs(SegmentScoped, CanonicalColumns, JobsFields, Base):
    __tablename__ = "jobs"


class PreferencesDraft(SegmentScoped, DraftColumns, PreferencesFields, Base):
    __tablename__ = "preferences_drafts"


class Preferences(SegmentScoped, CanonicalColumns, PreferencesFields, Base):
    __tablename__ = "preferences"


class DifficultiesDraft(SegmentScoped, DraftColumns, DifficultiesFields, Base):
    __tablename__ = "difficulties_drafts"


class Difficulties(SegmentScoped, CanonicalColumns, DifficultiesFields, Base):
    __tablename__ = "difficulties"


class TriggersDraft(SegmentScoped, DraftColumns, TriggersFields, Base):
    __tablename__ = "triggers_drafts"


class Triggers(SegmentScoped, CanonicalColumns, TriggersFields, Base):
    __tablename__ = "triggers"


class PainDraft(SegmentScoped, DraftColumns, PainFields, Base):
    __tablename__ = "pains_drafts"


class Pain(SegmentScoped, CanonicalColumns, PainFields, Base):
    __tablename__ = "pains_initial"


class PainRankingDraft(PainScoped, DraftColumns, PainRankingFields, Base):
    __tablename__ = "pains_ranking_drafts"


class PainRanking(PainScoped, CanonicalColumns, PainRankingFields, Base):
    """Importance overlay keyed by pain id."""

    __tablename__ = "pains_ranking"


class CanvasDraft(PainScoped, DraftColumns, CanvasFields, Base):
    __tablename__ = "canvas_drafts"


class Canvas(PainScoped, CanonicalColumns, CanvasFields, Base):
    __tablename__ = "canvas"


class CanvasExtendedDraft(PainScoped, DraftColumns, CanvasExtendedFields, Base):
    __tablename__ = "canvas_extended_drafts"


class CanvasExtended(PainScoped, CanonicalColumns, CanvasExtendedFields, Base):
    __tablename__ = "canvas_extended"


class ChannelStrategyDraft(SegmentScoped, DraftColumns, ChannelStrategyFields, Base):
    __tablename__ = "channel_strategy_drafts"


class ChannelStrategy(SegmentScoped, CanonicalColumns, ChannelStrategyFields, Base):
    __tablename__ = "channel_strategy"


class CompetitiveIntelligenceDraft(SegmentScoped, DraftColumns, CompetitiveIntelligenceFields, Base):
    __tablename__ = "competitive_intelligence_drafts"


class CompetitiveIntelligence(SegmentScoped, CanonicalColumns, CompetitiveIntelligenceFields, Base):
    __tablename__ = "competitive_intelligence"


class PricingPsychologyDraft(SegmentScoped, DraftColumns, PricingPsychologyFields, Base):
    __tablename__ = "pricing_psychology_drafts"


class PricingPsychology(SegmentScoped, CanonicalColumns, PricingPsychologyFields, Base):
    __tablename__ = "pricing_psychology"


class TrustFrameworkDraft(SegmentScoped, DraftColumns, TrustFrameworkFields, Base):
    __tablename__ = "trust_framework_drafts"


class TrustFramework(SegmentScoped, CanonicalColumns, TrustFrameworkFields, Base):
    __tablename__ = "trust_framework"


class JtbdContextDraft(SegmentScoped, DraftColumns, JtbdContextFields, Base):
    __tablename__ = "jtbd_context_drafts"


class JtbdContext(SegmentScoped, CanonicalColumns, JtbdContextFields, Base):
    __tablename__ = "jtbd_context"


# --- audit ------------------------------------------------------------------


class DataHistory(Base):
    """Append-only record of a write to a canonical table.

    ``operation`` is INSERT or UPDATE for a single row and UPSERT for a
    replaced scope, whose snapshots hold ``{"records": [...], "count": n}``.
    """

    __tablename__ = "data_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    table_name: Mapped[str] = mapped_column(String, nullable=False)
    record_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    segment_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    operation: Mapped[str] = mapped_column(String, nullable=False)
    old_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    new_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    changed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    details: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
