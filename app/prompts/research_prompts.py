# Prompts for the audience research workflow.
# - One instruction block per stage, followed by the project context and the
#   canonical inputs the stage depends on.
# - Every prompt ends with an explicit JSON shape whose keys are exactly the
#   column names the response is persisted into.

import json
from typing import Any, Dict, List, Optional

from app.core.step_graph import Stage

PROMPT_HEADER = r"""
You are a senior market researcher building a customer-insight model for a brand.
Work only from the context below. Be specific and concrete; avoid generic marketing language.
Return **strict JSON** only: no commentary, no markdown, no trailing commas.
""".strip()

STAGE_INSTRUCTIONS: Dict[Stage, str] = {
    Stage.VALIDATION: (
        "Restate what the brand sells, the problem it solves and its key differentiator. "
        "Set understanding_correct to false and explain in clarification_needed when the "
        "onboarding answers are contradictory or too thin."
    ),
    Stage.PORTRAIT: (
        "Describe the brand's core customer: a sociodemographic summary, a psychographic summary, "
        "the detailed demographic fields, and lists of values/beliefs, lifestyle habits, "
        "interests/hobbies and personality traits."
    ),
    Stage.PORTRAIT_REVIEW: (
        "Critically review the approved portrait. List what to change, what to add and what "
        "to remove, each with a short justification, and give an overall assessment in reasoning."
    ),
    Stage.PORTRAIT_FINAL: (
        "Produce the final customer portrait by applying the review to the original portrait. "
        "List every applied change in changes_applied."
    ),
    Stage.SEGMENTS: (
        "Split the audience described by the final portrait into 6-10 distinct segments. "
        "Number them with segment_index starting at 1."
    ),
    Stage.SEGMENTS_REVIEW: (
        "Review the segments: find overlapping pairs, segments that are too broad or too narrow, "
        "segments that are missing, and give prioritised recommendations."
    ),
    Stage.SEGMENTS_FINAL: (
        "Produce the final segment list by applying the review. Keep segment_index stable for "
        "segments that survive, mark newly introduced segments with is_new, and list changes_applied."
    ),
    Stage.SEGMENT_DETAILS: (
        "Deepen the given segment: its needs, purchase triggers, core values, awareness level "
        "(unaware, problem-aware, solution-aware, product-aware or most-aware) and objections."
    ),
    Stage.JOBS: (
        "List the jobs-to-be-done of this segment, separated into functional, emotional and social jobs."
    ),
    Stage.PREFERENCES: (
        "List what this segment prefers when choosing a solution, each with the reason it matters."
    ),
    Stage.DIFFICULTIES: (
        "List the difficulties this segment meets when trying to get its jobs done."
    ),
    Stage.TRIGGERS: (
        "List the situations and events that push this segment to start looking for a solution."
    ),
    Stage.PAINS: (
        "List 6-10 distinct pains of this segment. Number them with pain_index starting at 1 and "
        "give for each a name, a description, deep triggers and real-life examples."
    ),
    Stage.PAINS_RANKING: (
        "Rank every pain listed below. For each pain echo its pain_index, give an impact_score "
        "from 1 to 10, set is_top_pain for the three most important pains and explain the "
        "ranking in ranking_reasoning. Do not invent pains that are not listed."
    ),
    Stage.CANVAS: (
        "Build a pain canvas for the given pain: its emotional aspects, the behavioural patterns "
        "it produces and the buying signals that show the segment is ready to act."
    ),
    Stage.CANVAS_EXTENDED: (
        "Extend the approved canvas of the given pain: an extended analysis, different "
        "communication angles, a journey description, emotional peaks, the purchase moment "
        "and post-purchase behaviour."
    ),
    Stage.CHANNEL_STRATEGY: (
        "Describe where this segment can be reached: primary platforms, content preferences, "
        "trusted sources, communities, search patterns and response to advertising."
    ),
    Stage.COMPETITIVE_INTELLIGENCE: (
        "Analyse the competitive landscape from this segment's point of view: alternatives "
        "already tried, current workarounds, comparison with competitors, switching barriers, "
        "evaluation process and category beliefs."
    ),
    Stage.PRICING_PSYCHOLOGY: (
        "Describe how this segment thinks about price: budget context, price perception, value "
        "anchors, willingness-to-pay signals, payment psychology, ROI calculation, pricing "
        "objections, discount sensitivity and budget triggers."
    ),
    Stage.TRUST_FRAMEWORK: (
        "Describe how this segment builds trust: baseline trust, proof hierarchy, trusted "
        "authorities, social proof, transparency needs, trust killers, credibility markers, "
        "risk reduction and the trust journey."
    ),
    Stage.JTBD_CONTEXT: (
        "Put the jobs of this segment in context: the situations in which each job appears, "
        "a priority ranking of the jobs and the dependencies between them."
    ),
}

# Fields filled from loaded inputs rather than by the model
_SYSTEM_FIELDS = {"original_portrait_id", "canvas_id"}


def _render(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def _strip_record(record: Dict[str, Any]) -> Dict[str, Any]:
    hidden = {"id", "project_id", "segment_id", "pain_id", "version", "created_at", "approved_at", "updated_at"}
    return {key: value for key, value in record.items() if key not in hidden and value is not None}


def response_shape(
    fields: List[str],
    items_key: Optional[str] = None,
    correlation_key: Optional[str] = None,
) -> str:
    """Describe the JSON document the model must return."""
    item = {name: "..." for name in fields if name not in _SYSTEM_FIELDS}
    if correlation_key:
        item = {correlation_key: "<index of the listed item>", **item}
    shape: Any = {items_key: [item]} if items_key else item
    return _render(shape)


def build_prompt(
    stage: Stage,
    onboarding_data: Optional[Dict[str, Any]],
    inputs: Dict[str, Any],
    fields: List[str],
    items_key: Optional[str] = None,
    correlation_key: Optional[str] = None,
) -> str:
    """Assemble the full prompt for one generation unit.

    Args:
        stage: Stage being generated
        onboarding_data: The project's onboarding answers
        inputs: Canonical records keyed by name (``to_dict`` output or lists of it)
        fields: Payload fields the response must contain
        items_key: Key of the item list for multi-row stages
        correlation_key: Key each item must echo back

    Returns:
        Prompt text
    """
    sections = [PROMPT_HEADER, f"## Task\n{STAGE_INSTRUCTIONS[stage]}"]

    sections.append(f"## Brand onboarding\n{_render(onboarding_data or {})}")

    for name, value in inputs.items():
        if isinstance(value, list):
            rendered = [_strip_record(record) for record in value]
        else:
            rendered = _strip_record(value)
        sections.append(f"## {name.replace('_', ' ').title()}\n{_render(rendered)}")

    sections.append(
        "## Response format\nReturn exactly this JSON structure:\n"
        + response_shape(fields, items_key, correlation_key)
    )
    return "\n\n".join(sections)
