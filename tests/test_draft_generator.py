"""Tests for draft generation."""

import json
import re
import uuid

import pytest

from app.core.exceptions import (
    APIClientError,
    MalformedOutputError,
    NotFoundError,
    ProviderError,
    UnknownStepError,
    ValidationError,
)
from app.core.step_graph import ONBOARDING, Stage
from app.database import models
from app.repositories.base_repository import BaseRepository
from app.services.workflow.draft_generator import DraftGeneratorService
from tests.helpers import ScriptedLLM, add_rows

VALIDATION_RESPONSE = """```json
{
  "what_brand_sells": "Specialty coffee subscriptions",
  "problem_solved": "Stale supermarket coffee",
  "key_differentiator": "Roasted to order",
  "understanding_correct": true,
  "clarification_needed": null
}
```"""


def _segments_with_pains(project, count=2, pains_per_segment=3):
    rows = []
    for segment_index in range(1, count + 1):
        segment = models.Segment(
            id=uuid.uuid4(),
            project_id=project.id,
            segment_index=segment_index,
            name=f"Segment {segment_index}",
        )
        rows.append(segment)
        for pain_index in range(1, pains_per_segment + 1):
            rows.append(
                models.Pain(
                    project_id=project.id,
                    segment_id=segment.id,
                    pain_index=pain_index,
                    name=f"Pain {segment_index}.{pain_index}",
                )
            )
    return rows


def _rank_listed_pains(prompt: str) -> str:
    """Rank every pain_index in the prompt and invent one extra entry."""
    indexes = sorted({int(match) for match in re.findall(r'"pain_index": (\d+)', prompt)})
    rankings = [
        {"pain_index": index, "impact_score": 10 - index, "is_top_pain": index == 1, "ranking_reasoning": "r"}
        for index in indexes
    ]
    rankings.append({"pain_index": 99, "impact_score": 5, "is_top_pain": True, "ranking_reasoning": "invented"})
    return json.dumps({"rankings": rankings})


@pytest.mark.asyncio
async def test_each_run_adds_a_new_version_cohort(session, project, fast_retry):
    llm = ScriptedLLM(VALIDATION_RESPONSE)
    generator = DraftGeneratorService(session, llm, fast_retry)

    first = await generator.execute(Stage.VALIDATION, project)
    second = await generator.execute(Stage.VALIDATION, project)

    drafts = await BaseRepository(session, models.ValidationDraft).get_all(
        filters={"project_id": project.id}, order_by="version"
    )
    assert [draft.version for draft in drafts] == [1, 2]
    assert first.drafts[0]["id"] != second.drafts[0]["id"]
    assert drafts[0].what_brand_sells == "Specialty coffee subscriptions"
    assert project.current_step == "validation_draft"


@pytest.mark.asyncio
async def test_ranking_makes_one_call_per_segment_and_correlates_by_index(session, project, fast_retry):
    await add_rows(session, *_segments_with_pains(project))
    llm = ScriptedLLM(_rank_listed_pains)
    generator = DraftGeneratorService(session, llm, fast_retry)

    result = await generator.execute(Stage.PAINS_RANKING, project)

    assert len(llm.calls) == 2
    assert len(result.drafts) == 6

    pains = {
        pain.id: pain
        for pain in await BaseRepository(session, models.Pain).get_all(filters={"project_id": project.id})
    }
    for draft in result.drafts:
        pain = pains[uuid.UUID(draft["pain_id"])]
        assert str(pain.segment_id) == draft["segment_id"]
        assert draft["impact_score"] == 10 - pain.pain_index
        assert draft["is_top_pain"] == (pain.pain_index == 1)
    assert project.current_step == "pains_ranking_draft"


@pytest.mark.asyncio
async def test_segment_filter_limits_generation_to_that_segment(session, project, fast_retry):
    rows = await add_rows(session, *_segments_with_pains(project))
    target = rows[0]
    llm = ScriptedLLM(_rank_listed_pains)

    result = await DraftGeneratorService(session, llm, fast_retry).execute(
        Stage.PAINS_RANKING, project, segment_id=target.id
    )

    assert len(llm.calls) == 1
    assert {draft["segment_id"] for draft in result.drafts} == {str(target.id)}


@pytest.mark.asyncio
async def test_list_stage_assigns_missing_ordinals(session, project, fast_retry):
    await add_rows(
        session,
        models.PortraitFinal(project_id=project.id, sociodemographics="Urban, 25-40"),
    )
    llm = ScriptedLLM(json.dumps({"segments": [{"name": "Commuters"}, {"name": "Home baristas"}]}))

    result = await DraftGeneratorService(session, llm, fast_retry).execute(Stage.SEGMENTS, project)

    assert [(d["segment_index"], d["name"]) for d in result.drafts] == [(1, "Commuters"), (2, "Home baristas")]
    assert {d["version"] for d in result.drafts} == {1}


@pytest.mark.asyncio
async def test_missing_prerequisites_fail_without_moving_pointer(session, project, fast_retry):
    llm = ScriptedLLM("{}")

    with pytest.raises(ValidationError) as exc_info:
        await DraftGeneratorService(session, llm, fast_retry).execute(Stage.PORTRAIT, project)

    assert "validation" in exc_info.value.message
    assert llm.calls == []
    assert project.current_step == ONBOARDING
    assert await BaseRepository(session, models.PortraitDraft).count({"project_id": project.id}) == 0


@pytest.mark.asyncio
async def test_segment_stage_without_segments_is_rejected(session, project, fast_retry):
    with pytest.raises(ValidationError):
        await DraftGeneratorService(session, ScriptedLLM("{}"), fast_retry).execute(Stage.JOBS, project)


@pytest.mark.asyncio
async def test_unknown_segment_is_not_found(session, project, fast_retry):
    await add_rows(session, *_segments_with_pains(project, count=1))

    with pytest.raises(NotFoundError):
        await DraftGeneratorService(session, ScriptedLLM("{}"), fast_retry).execute(
            Stage.PAINS_RANKING, project, segment_id=uuid.uuid4()
        )


@pytest.mark.asyncio
async def test_malformed_response_is_retried_then_persisted(session, project, fast_retry):
    llm = ScriptedLLM("Here you go: {oops", VALIDATION_RESPONSE)

    result = await DraftGeneratorService(session, llm, fast_retry).execute(Stage.VALIDATION, project)

    assert len(llm.calls) == 2
    assert len(result.drafts) == 1


@pytest.mark.asyncio
async def test_wrong_shape_is_treated_as_malformed(session, project, fast_retry):
    await add_rows(session, models.PortraitFinal(project_id=project.id))
    llm = ScriptedLLM('{"segments": "none"}', '{"segments": [{"name": "Commuters"}]}')

    result = await DraftGeneratorService(session, llm, fast_retry).execute(Stage.SEGMENTS, project)

    assert len(llm.calls) == 2
    assert len(result.drafts) == 1


@pytest.mark.asyncio
async def test_provider_failure_aborts_run_and_keeps_earlier_units(session, project, fast_retry):
    await add_rows(session, *_segments_with_pains(project))
    llm = ScriptedLLM(_rank_listed_pains, APIClientError("503 Service Unavailable"))

    with pytest.raises(ProviderError):
        await DraftGeneratorService(session, llm, fast_retry).execute(Stage.PAINS_RANKING, project)

    # first segment succeeded, second exhausted its three attempts
    assert len(llm.calls) == 1 + 3
    assert await BaseRepository(session, models.PainRankingDraft).count({"project_id": project.id}) == 3
    assert project.current_step == ONBOARDING


@pytest.mark.asyncio
async def test_unknown_stage_is_not_wrapped(session, project, fast_retry):
    llm = ScriptedLLM("{}")

    with pytest.raises(UnknownStepError):
        await DraftGeneratorService(session, llm, fast_retry).execute("horoscope", project)

    assert llm.calls == []


# --- item checks ------------------------------------------------------------


@pytest.mark.asyncio
async def test_item_values_are_coerced_to_column_types(session, project, fast_retry):
    await add_rows(session, *_segments_with_pains(project, count=1, pains_per_segment=1))
    llm = ScriptedLLM(json.dumps({
        "rankings": [
            {"pain_index": "1", "impact_score": "8", "is_top_pain": "true", "ranking_reasoning": 42}
        ]
    }))

    result = await DraftGeneratorService(session, llm, fast_retry).execute(Stage.PAINS_RANKING, project)

    assert len(llm.calls) == 1
    [draft] = result.drafts
    assert draft["is_top_pain"] is True
    assert draft["impact_score"] == 8
    assert draft["ranking_reasoning"] == "42"


async def _segment_ready_for_pains(session, project):
    segment = models.Segment(id=uuid.uuid4(), project_id=project.id, segment_index=1, name="Commuters")
    await add_rows(
        session,
        segment,
        models.Jobs(project_id=project.id, segment_id=segment.id, functional_jobs=["Stay awake"]),
        models.Triggers(project_id=project.id, segment_id=segment.id, triggers=["Monday"]),
    )
    return segment


@pytest.mark.asyncio
async def test_item_missing_required_field_is_retried(session, project, fast_retry):
    await _segment_ready_for_pains(session, project)
    llm = ScriptedLLM(
        json.dumps({"pains": [{"description": "Nobody named this one"}]}),
        json.dumps({"pains": [{"name": "Bitter aftertaste"}]}),
    )

    result = await DraftGeneratorService(session, llm, fast_retry).execute(Stage.PAINS, project)

    assert len(llm.calls) == 2
    assert [(d["pain_index"], d["name"]) for d in result.drafts] == [(1, "Bitter aftertaste")]


@pytest.mark.asyncio
async def test_invalid_items_on_every_attempt_fail_without_writing(session, project, fast_retry):
    await _segment_ready_for_pains(session, project)
    llm = ScriptedLLM(json.dumps({"pains": [{"name": "Ok"}, "not an object"]}))

    with pytest.raises(MalformedOutputError):
        await DraftGeneratorService(session, llm, fast_retry).execute(Stage.PAINS, project)

    assert len(llm.calls) == 3
    assert await BaseRepository(session, models.PainDraft).count({"project_id": project.id}) == 0
    assert project.current_step == ONBOARDING


@pytest.mark.asyncio
async def test_wrongly_typed_field_is_treated_as_malformed(session, project, fast_retry):
    llm = ScriptedLLM(
        json.dumps({"what_brand_sells": "Coffee", "understanding_correct": {"maybe": True}}),
        VALIDATION_RESPONSE,
    )

    result = await DraftGeneratorService(session, llm, fast_retry).execute(Stage.VALIDATION, project)

    assert len(llm.calls) == 2
    assert result.drafts[0]["understanding_correct"] is True


# --- unit sources -----------------------------------------------------------


@pytest.mark.asyncio
async def test_segment_details_run_once_per_final_segment(session, project, fast_retry):
    finals = await add_rows(
        session,
        models.PortraitFinal(project_id=project.id),
        models.SegmentFinal(project_id=project.id, segment_index=1, name="Commuters"),
        models.SegmentFinal(project_id=project.id, segment_index=2, name="Home baristas"),
    )
    by_index = {final.segment_index: final for final in finals[1:]}
    llm = ScriptedLLM(json.dumps({"needs": ["Fresh beans"], "awareness_level": "solution aware"}))
    generator = DraftGeneratorService(session, llm, fast_retry)

    first = await generator.execute(Stage.SEGMENT_DETAILS, project)

    assert len(llm.calls) == 2
    for draft in first.drafts:
        assert draft["source_segment_id"] == str(by_index[draft["segment_index"]].id)
        assert draft["segment_id"] is None
        assert draft["version"] == 1
    assert sorted(d["segment_index"] for d in first.drafts) == [1, 2]
    assert project.current_step == "segment_details_draft"

    second = await generator.execute(Stage.SEGMENT_DETAILS, project)

    assert {(d["segment_index"], d["version"]) for d in second.drafts} == {(1, 2), (2, 2)}


@pytest.mark.asyncio
async def test_canvas_runs_only_for_top_ranked_pains(session, project, fast_retry):
    rows = await add_rows(session, *_segments_with_pains(project, count=1))
    segment, pains = rows[0], rows[1:]
    await add_rows(
        session,
        models.PortraitFinal(project_id=project.id),
        models.PainRanking(
            project_id=project.id, segment_id=segment.id, pain_id=pains[0].id, impact_score=3, is_top_pain=False
        ),
        models.PainRanking(
            project_id=project.id, segment_id=segment.id, pain_id=pains[1].id, impact_score=9, is_top_pain=True
        ),
    )
    llm = ScriptedLLM(json.dumps({"emotional_aspects": ["Guilt"], "buying_signals": ["Asks for samples"]}))

    result = await DraftGeneratorService(session, llm, fast_retry).execute(Stage.CANVAS, project)

    assert len(llm.calls) == 1
    [draft] = result.drafts
    assert draft["pain_id"] == str(pains[1].id)
    assert draft["segment_id"] == str(segment.id)
    assert draft["emotional_aspects"] == ["Guilt"]


@pytest.mark.asyncio
async def test_extended_canvas_links_the_approved_canvas(session, project, fast_retry):
    rows = await add_rows(session, *_segments_with_pains(project, count=1, pains_per_segment=2))
    segment, pain = rows[0], rows[2]
    [canvas] = await add_rows(
        session,
        models.Canvas(project_id=project.id, segment_id=segment.id, pain_id=pain.id, emotional_aspects=["Guilt"]),
    )
    llm = ScriptedLLM(json.dumps({"canvas_id": "made-up", "extended_analysis": "Mornings are rushed"}))

    result = await DraftGeneratorService(session, llm, fast_retry).execute(Stage.CANVAS_EXTENDED, project)

    assert len(llm.calls) == 1
    [draft] = result.drafts
    assert draft["canvas_id"] == str(canvas.id)
    assert draft["pain_id"] == str(pain.id)
    assert draft["extended_analysis"] == "Mornings are rushed"
