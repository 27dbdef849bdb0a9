"""Workflow stages and the static step ordering.

A project moves through ``onboarding``, then a ``<stage>_draft`` /
``<stage>_approved`` pair for every stage, then ``completed``. Both the draft
generator and the approval transaction advance the project pointer through
``next_step`` so the two call sites cannot disagree about ordering.
"""

from enum import Enum
from typing import Dict, List, Tuple, Union

from app.core.exceptions import UnknownStepError


class Stage(str, Enum):
    """A workflow stage, valued by its URL slug."""

    VALIDATION = "validation"
    PORTRAIT = "portrait"
    PORTRAIT_REVIEW = "portrait-review"
    PORTRAIT_FINAL = "portrait-final"
    SEGMENTS = "segments"
    SEGMENTS_REVIEW = "segments-review"
    SEGMENTS_FINAL = "segments-final"
    SEGMENT_DETAILS = "segment-details"
    JOBS = "jobs"
    PREFERENCES = "preferences"
    DIFFICULTIES = "difficulties"
    TRIGGERS = "triggers"
    PAINS = "pains"
    PAINS_RANKING = "pains-ranking"
    CANVAS = "canvas"
    CANVAS_EXTENDED = "canvas-extended"
    CHANNEL_STRATEGY = "channel-strategy"
    COMPETITIVE_INTELLIGENCE = "competitive-intelligence"
    PRICING_PSYCHOLOGY = "pricing-psychology"
    TRUST_FRAMEWORK = "trust-framework"
    JTBD_CONTEXT = "jtbd-context"

    @property
    def key(self) -> str:
        """Underscore form used in step identifiers and table names."""
        return self.value.replace("-", "_")


ONBOARDING = "onboarding"
COMPLETED = "completed"

# Stage order is the declaration order of the enum.
STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)

PROJECT_STEPS: Tuple[str, ...] = (
    ONBOARDING,
    *(f"{stage.key}_{phase}" for stage in STAGE_ORDER for phase in ("draft", "approved")),
    COMPLETED,
)

_SUCCESSORS: Dict[str, str] = {
    step: PROJECT_STEPS[index + 1] for index, step in enumerate(PROJECT_STEPS[:-1])
}
# The terminal step maps onto itself so the function is total.
_SUCCESSORS[COMPLETED] = COMPLETED


def _coerce_stage(stage: Union[Stage, str]) -> Stage:
    try:
        return stage if isinstance(stage, Stage) else Stage(stage)
    except ValueError as e:
        raise UnknownStepError(f"Unknown stage: {stage!r}") from e


def is_valid_step(step: str) -> bool:
    return step in _SUCCESSORS


def next_step(step: str) -> str:
    """Return the step that follows ``step``.

    Raises:
        UnknownStepError: If ``step`` is not part of the workflow
    """
    try:
        return _SUCCESSORS[step]
    except KeyError as e:
        raise UnknownStepError(f"Unknown step: {step!r}") from e


def draft_step(stage: Union[Stage, str]) -> str:
    """Step recorded once drafts for ``stage`` have been generated."""
    step = f"{_coerce_stage(stage).key}_draft"
    if step not in _SUCCESSORS:
        raise UnknownStepError(f"Unknown step: {step!r}")
    return step


def approved_step(stage: Union[Stage, str]) -> str:
    """Step recorded once drafts for ``stage`` have been approved."""
    return next_step(draft_step(stage))


def step_index(step: str) -> int:
    """Position of ``step`` in the workflow ordering."""
    try:
        return PROJECT_STEPS.index(step)
    except ValueError as e:
        raise UnknownStepError(f"Unknown step: {step!r}") from e


def steps() -> List[str]:
    return list(PROJECT_STEPS)
