import pytest
from agents.architect_agent import ArchitectAgent
from agents.checkpoint_agent import CheckpointAgent
from agents.consistency_agent import ConsistencyAgent
from agents.copyeditor_agent import CopyeditorAgent
from agents.editor_agent import EditorAgent
from agents.final_reviewer_agent import FinalReviewerAgent
from agents.translator_agent import TranslatorAgent
from agents.writer_agent import CONTINUITY_MARKER, WriterAgent, split_draft
from core.errors import CompletionError
from core.llm_interface import CompletionResult
from models.project_models import Project
from models.review_models import Severity
from models.unit_models import Unit, UnitSpec
from utils.locale_rules import language_name

SPEC = UnitSpec(number=2, title="The Mill", summary="Ana hides the key", key_events=["rain"])
UNIT = Unit(project_id="p", number=2, title="The Mill", content="Ana hid the key.")
FAILED = CompletionResult(error="HTTPStatusError: 503", status_code=503)


def test_split_draft_separates_prose_and_state():
    draft = split_draft(
        f"The rain fell.\n\n{CONTINUITY_MARKER}\n"
        '{"summary": "Ana reached the mill", "open_threads": ["the key"]}'
    )
    assert draft.content == "The rain fell."
    assert draft.continuity_state["summary"] == "Ana reached the mill"
    assert draft.continuity_state["open_threads"] == ["the key"]


def test_split_draft_without_marker_or_with_bad_state():
    assert split_draft("  Only prose.  ").continuity_state == {}
    assert split_draft("  Only prose.  ").content == "Only prose."
    broken = split_draft(f"Prose.\n{CONTINUITY_MARKER}\nnot json at all")
    assert broken.content == "Prose."
    assert broken.continuity_state == {}


@pytest.mark.asyncio
async def test_writer_sends_corrections_and_uses_locale(make_llm):
    llm = make_llm([f"Texto.\n{CONTINUITY_MARKER}\n{{\"summary\": \"s\"}}"])
    writer = WriterAgent(model_name="w", llm=llm, locale="es")

    draft, usage = await writer.draft_chapter(SPEC, "WORLD LEDGER", {"summary": "before"}, "Fix it")

    assert draft.content == "Texto."
    assert usage.total_tokens == 15
    call = llm.calls[0]
    assert language_name("es") in call["system"]
    assert "THIS IS A REWRITE" in call["prompt"]
    assert "Fix it" in call["prompt"]
    assert '"summary": "before"' in call["prompt"]


@pytest.mark.asyncio
async def test_writer_raises_when_the_call_fails(make_llm):
    with pytest.raises(CompletionError):
        await WriterAgent(llm=make_llm([FAILED])).draft_chapter(SPEC, "", None)


@pytest.mark.asyncio
async def test_editor_approval_follows_threshold(make_llm):
    llm = make_llm(
        [
            {"score": 6, "verdict": "Flat", "critical_weaknesses": ["slow"]},
            {"score": 7.5, "verdict": "Good"},
        ]
    )
    editor = EditorAgent(llm=llm, threshold=7)

    rejected, _ = await editor.evaluate_chapter(SPEC, "draft", "", None)
    approved, _ = await editor.evaluate_chapter(SPEC, "draft", "", None)

    assert rejected.approved is False
    assert "slow" in rejected.corrective_instructions()
    assert approved.approved is True
    assert llm.calls[0]["sampling"].json_mode is True


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["I liked it a lot.", FAILED])
async def test_editor_falls_back_to_approval_at_threshold(make_llm, reply):
    report, _ = await EditorAgent(llm=make_llm([reply]), threshold=7).evaluate_chapter(
        SPEC, "draft", "", None
    )
    assert report.approved is True
    assert report.score == 7


@pytest.mark.asyncio
async def test_copyeditor_keeps_original_on_failure(make_llm):
    copyeditor = CopyeditorAgent(llm=make_llm([FAILED, "  Polished.  "]), locale="fr")
    assert (await copyeditor.polish_chapter("Raw."))[0] == "Raw."
    assert (await copyeditor.polish_chapter("Raw."))[0] == "Polished."


@pytest.mark.asyncio
async def test_translator_parses_or_echoes(make_llm):
    llm = make_llm([{"translated_text": "Ana hid the key.", "notes": "n"}, "Ana escondió la llave."])
    translator = TranslatorAgent(llm=llm)

    parsed, _ = await translator.translate_unit(UNIT, "en", "fr")
    echoed, _ = await translator.translate_unit(UNIT, "en", "es")

    assert parsed.translated_text == "Ana hid the key."
    assert parsed.notes == "n"
    assert echoed.translated_text == "Ana escondió la llave."
    assert echoed.target_language == "es"
    assert language_name("fr") in llm.calls[0]["system"]


@pytest.mark.asyncio
async def test_translator_raises_on_failed_call(make_llm):
    with pytest.raises(CompletionError):
        await TranslatorAgent(llm=make_llm([FAILED])).translate_unit(UNIT, "en", "fr")


@pytest.mark.asyncio
async def test_architect_fills_outline_gaps(make_llm):
    llm = make_llm(
        [
            {
                "world_bible": {"characters": [{"name": "Ana", "immutable": {"eye_color": "green"}}]},
                "outline": [{"number": 1, "title": "Arrival"}, {"number": 7, "title": "Stray"}],
            }
        ]
    )
    project = Project(title="Book", premise="A smuggler's last run", has_prologue=True)

    plan, _ = await ArchitectAgent(llm=llm).plan_project(project, [1, 0, 2])

    assert [s.number for s in plan.outline] == [0, 1, 2]
    assert plan.outline[1].title == "Arrival"
    assert plan.outline[2].summary == "A smuggler's last run"
    assert plan.world_bible.characters[0].immutable == {"eye_color": "green"}
    assert "- 0: Prologue" in llm.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_architect_raises_on_failed_call(make_llm):
    with pytest.raises(CompletionError):
        await ArchitectAgent(llm=make_llm([FAILED])).plan_project(Project(title="B"), [1])


@pytest.mark.asyncio
async def test_consistency_agent_truncates_and_tolerates_bad_json(make_llm):
    llm = make_llm(["no verdict here"])
    agent = ConsistencyAgent(llm=llm)

    result, _ = await agent.validate_chapter("brief", 2, "x" * 20000)

    assert result.is_valid
    assert result.warnings
    assert "x" * 20000 not in llm.calls[0]["prompt"]
    assert "TEXT OF CHAPTER 2" in llm.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_consistency_agent_raises_on_failed_call(make_llm):
    with pytest.raises(CompletionError):
        await ConsistencyAgent(llm=make_llm([FAILED])).validate_chapter("", 1, "text")


@pytest.mark.asyncio
async def test_reviewer_parses_and_falls_back(make_llm):
    llm = make_llm(
        [
            {
                "score": 7,
                "issues": [
                    {"description": "eyes change", "severity": "CRÍTICA", "affected_units": [2, -1]}
                ],
            },
            FAILED,
            "unreadable",
        ]
    )
    reviewer = FinalReviewerAgent(llm=llm)
    kwargs = {"pass_number": 1, "tranche_index": 1, "tranche_count": 1}

    parsed, _ = await reviewer.review_tranche([UNIT], **kwargs, final_pass=True)
    failed, _ = await reviewer.review_tranche([UNIT], **kwargs)
    unreadable, _ = await reviewer.review_tranche([UNIT], **kwargs)

    assert parsed.issues[0].severity is Severity.CRITICAL
    assert parsed.issues[0].affected_units == {2, 998}
    assert "final pass" in llm.calls[0]["system"]
    assert failed.score == 8
    assert failed.issues == []
    assert unreadable.score == 8


@pytest.mark.asyncio
async def test_checkpoint_returns_empty_report_on_failure(make_llm):
    report, _ = await CheckpointAgent(llm=make_llm([FAILED])).review_window([UNIT])
    assert report.issues == []
