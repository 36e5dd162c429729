from unittest.mock import AsyncMock, MagicMock

import pytest
from core.usage import TokenUsage
from models.agent_models import EditorReport, SurgicalPlan, WriterDraft
from models.unit_models import UnitSpec, UnitStatus
from models.world_models import ValidationResult
from orchestration.chapter_loop import ChapterRevisionLoop
from orchestration.token_accountant import Stage, TokenAccountant

SPEC = UnitSpec(number=3, title="The Ford", summary="Crossing the river")
PROSE = " ".join(["river"] * 200)


def _writer(content=PROSE, state=None):
    writer = MagicMock()
    writer.draft_chapter = AsyncMock(
        return_value=(
            WriterDraft(content=content, continuity_state=state or {"summary": "crossed"}),
            TokenUsage(100, 50, 0),
        )
    )
    return writer


def _editor(*scores):
    editor = MagicMock()
    reports = [
        (
            EditorReport(
                score=s,
                approved=s >= 7,
                verdict="verdict",
                critical_weaknesses=["pacing drags"] if s < 7 else [],
                surgical_plan=SurgicalPlan(diagnosis="slow", procedure="cut", objective="tension")
                if s < 7
                else None,
            ),
            TokenUsage(20, 10, 0),
        )
        for s in scores
    ]
    editor.evaluate_chapter = AsyncMock(side_effect=reports)
    return editor


@pytest.mark.asyncio
async def test_low_scores_exhaust_budget_and_force_approval():
    writer = _writer()
    editor = _editor(4, 4, 4)
    loop = ChapterRevisionLoop(writer, editor)

    outcome = await loop.produce(SPEC, "", {"summary": "before"}, retry_budget=3)

    assert writer.draft_chapter.await_count == 3
    assert outcome.approved is True
    assert outcome.forced is True
    assert outcome.attempts == 3
    assert outcome.score == 4


@pytest.mark.asyncio
async def test_surgical_plan_is_injected_into_next_attempt():
    writer = _writer()
    loop = ChapterRevisionLoop(writer, _editor(5, 8))

    outcome = await loop.produce(SPEC, "brief", {})

    first, second = writer.draft_chapter.await_args_list
    assert first.args[3] is None
    assert "Diagnosis: slow" in second.args[3]
    assert "pacing drags" in second.args[3]
    assert outcome.forced is False
    assert outcome.attempts == 2


@pytest.mark.asyncio
async def test_blocking_validation_turns_into_rejection():
    writer = _writer()
    validator = AsyncMock(
        side_effect=[
            (
                ValidationResult(
                    is_valid=False,
                    error_class="BILOCATION",
                    correction_instructions="Ana cannot be at the ford and the mill",
                ),
                TokenUsage(),
            ),
            (ValidationResult(), TokenUsage()),
        ]
    )
    loop = ChapterRevisionLoop(writer, _editor(8, 8))

    outcome = await loop.produce(SPEC, "", {}, validator=validator)

    assert writer.draft_chapter.await_count == 2
    assert writer.draft_chapter.await_args_list[1].args[3] == (
        "Ana cannot be at the ford and the mill"
    )
    assert outcome.forced is False
    assert outcome.validation.is_valid


@pytest.mark.asyncio
async def test_continuity_state_comes_from_accepted_draft():
    writer = _writer(state={"characters": {"Ana": {"location": "ford"}}})
    outcome = await ChapterRevisionLoop(writer, _editor(9)).produce(SPEC, "", {})
    assert outcome.continuity_state == {"characters": {"Ana": {"location": "ford"}}}


@pytest.mark.asyncio
async def test_polish_that_shrinks_text_is_rejected():
    copyeditor = MagicMock()
    copyeditor.polish_chapter = AsyncMock(return_value=("river river", TokenUsage()))
    loop = ChapterRevisionLoop(_writer(), _editor(9), copyeditor)
    outcome = await loop.produce(SPEC, "", {})
    assert outcome.content == PROSE


@pytest.mark.asyncio
async def test_polish_that_keeps_length_is_used():
    polished = PROSE.replace("river", "River")
    copyeditor = MagicMock()
    copyeditor.polish_chapter = AsyncMock(return_value=(polished, TokenUsage(5, 5, 0)))
    loop = ChapterRevisionLoop(_writer(), _editor(9), copyeditor)
    outcome = await loop.produce(SPEC, "", {})
    assert outcome.content == polished


@pytest.mark.asyncio
async def test_status_callback_and_token_accounting():
    statuses = []

    async def on_status(number, status):
        statuses.append((number, status))

    accountant = TokenAccountant("p")
    loop = ChapterRevisionLoop(_writer(), _editor(6, 9), accountant=accountant)
    await loop.produce(SPEC, "", {}, on_status=on_status)

    assert [s for _, s in statuses] == [
        UnitStatus.WRITING,
        UnitStatus.EDITING,
        UnitStatus.WRITING,
        UnitStatus.EDITING,
    ]
    assert UnitStatus.COMPLETED not in [s for _, s in statuses]
    assert {n for n, _ in statuses} == {3}
    assert accountant.get_stage_total(Stage.DRAFTING) == 300
    assert accountant.get_stage_total(Stage.EDITING) == 60
