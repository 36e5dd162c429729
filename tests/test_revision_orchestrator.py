import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from core.errors import ChronicleError, CompletionError
from core.usage import TokenUsage
from ledger.consistency_ledger import ConsistencyLedger
from models.agent_models import ArchitectPlan, CheckpointReport, EditorReport, WriterDraft
from models.project_models import Project, ProjectStatus
from models.review_models import Issue, PartialVerdict, Severity, Verdict
from models.unit_models import Unit, UnitSpec, UnitStatus
from models.world_models import CharacterSeed, NewFact, ValidationResult, WorldBible
from orchestration.revision_orchestrator import (
    RevisionOrchestrator,
    issue_instructions,
    planned_unit_numbers,
)
from storage.file_manager import FileManager

USAGE = TokenUsage(10, 5, 0)


class FakeReviewer:
    model_name = "reviewer"

    def __init__(self, partials):
        self.partials = list(partials)

    async def review_tranche(self, units, **kwargs):
        return self.partials.pop(0), USAGE


def _plan(project, numbers, world_notes=""):
    return (
        ArchitectPlan(
            world_bible=WorldBible(
                characters=[CharacterSeed(name="Ana", immutable={"eye_color": "green"})]
            ),
            outline=[UnitSpec(number=n, title=f"Part {n}") for n in numbers],
        ),
        USAGE,
    )


def _draft(unit, world_brief, prior, instructions=None):
    return (
        WriterDraft(
            content=f"Prose for {unit.number}. " * 40,
            continuity_state={"summary": f"after {unit.number}"},
        ),
        USAGE,
    )


def _agents(checkpoint_issues=(), partials=(PartialVerdict(score=9.5),)):
    architect = MagicMock()
    architect.plan_project = AsyncMock(side_effect=_plan)
    writer = MagicMock()
    writer.draft_chapter = AsyncMock(side_effect=_draft)
    editor = MagicMock()
    editor.evaluate_chapter = AsyncMock(
        return_value=(EditorReport(score=8, approved=True), USAGE)
    )
    copyeditor = MagicMock()
    copyeditor.polish_chapter = AsyncMock(side_effect=lambda text: (text, USAGE))
    checkpoint = MagicMock()
    checkpoint.review_window = AsyncMock(
        side_effect=[(CheckpointReport(issues=list(checkpoint_issues)), USAGE)]
        + [(CheckpointReport(), USAGE)] * 5
    )
    consistency = MagicMock()
    consistency.validate_chapter = AsyncMock(
        return_value=(
            ValidationResult(new_facts=[NewFact(entity_name="Ana", update={"location": "ford"})]),
            USAGE,
        )
    )
    return {
        "architect": architect,
        "writer": writer,
        "editor": editor,
        "copyeditor": copyeditor,
        "checkpoint": checkpoint,
        "reviewer": FakeReviewer(partials),
        "consistency": consistency,
    }


def _orchestrator(repos, agents, **kwargs):
    ledger = ConsistencyLedger(repos.world, agents["consistency"])
    return RevisionOrchestrator(
        repos,
        llm=MagicMock(),
        ledger=ledger,
        architect=agents["architect"],
        writer=agents["writer"],
        editor=agents["editor"],
        copyeditor=agents["copyeditor"],
        checkpoint=agents["checkpoint"],
        reviewer=agents["reviewer"],
        **kwargs,
    )


def test_planned_unit_numbers_include_special_units():
    project = Project(
        title="T", chapter_count=2, has_prologue=True, has_epilogue=True, has_author_note=True
    )
    assert planned_unit_numbers(project) == [0, 1, 2, 998, 999]


def test_issue_instructions_prefer_corrections():
    issues = [
        Issue(description="d1", severity="critical", category="plot", correction_instructions="fix"),
        Issue(description="d2"),
    ]
    assert issue_instructions(issues) == "- [critical] plot: fix\n- [minor] other: d2"


@pytest.mark.asyncio
async def test_full_run_with_checkpoint_and_review_rewrites(repos, tmp_path):
    await repos.projects.save(Project(id="p", title="Book", chapter_count=4, has_prologue=True))
    checkpoint_issue = Issue(
        affected_units=[1],
        category="continuity",
        description="Ana's eyes change colour",
        severity=Severity.CRITICAL,
        correction_instructions="Keep Ana's eyes green",
    )
    review_issue = Issue(
        affected_units=[3],
        category="plot",
        description="The ford crossing is skipped",
        severity=Severity.CRITICAL,
        correction_instructions="Show the crossing",
    )
    agents = _agents(
        checkpoint_issues=[checkpoint_issue],
        partials=[PartialVerdict(score=9, issues=[review_issue]), PartialVerdict(score=9.5)],
    )
    files = FileManager(str(tmp_path / "manuscripts"), str(tmp_path / "translations"))
    orchestrator = _orchestrator(
        repos,
        agents,
        checkpoint_interval=2,
        checkpoint_window=2,
        max_passes=2,
        file_manager=files,
    )

    verdict = await orchestrator.run("p")

    assert verdict.verdict is Verdict.APPROVED
    assert verdict.pass_number == 2
    writer_calls = agents["writer"].draft_chapter.await_args_list
    assert [c.args[0].number for c in writer_calls] == [0, 1, 1, 2, 3, 4, 3]
    assert "Keep Ana's eyes green" in writer_calls[2].args[3]
    assert "Show the crossing" in writer_calls[6].args[3]
    assert "WORLD LEDGER" in writer_calls[0].args[1]
    assert writer_calls[1].args[2] == {"summary": "after 0"}

    project = await repos.projects.get("p")
    assert project.status is ProjectStatus.COMPLETED
    assert project.final_verdict == "APPROVED"
    assert project.token_usage.input_tokens > 0

    units = await repos.units.list_for_project("p")
    assert all(u.status is UnitStatus.COMPLETED for u in units)
    ana = (await orchestrator.ledger.world_model("p")).entity("Ana")
    assert ana.attributes == {"eye_color": "green", "location": "ford"}

    manuscript = (tmp_path / "manuscripts" / "p.md").read_text(encoding="utf-8")
    assert manuscript.startswith("# Book")
    assert manuscript.index("## Prologue") < manuscript.index("## Chapter 4")


@pytest.mark.asyncio
async def test_existing_plan_is_resumed(repos):
    await repos.projects.save(Project(id="p", title="Book", chapter_count=3))
    done = Unit(
        project_id="p",
        number=1,
        content="Done.",
        status=UnitStatus.COMPLETED,
        continuity_state={"summary": "after 1"},
    )
    await repos.units.save_many([done, Unit(project_id="p", number=2), Unit(project_id="p", number=3)])
    agents = _agents()

    await _orchestrator(repos, agents, checkpoint_interval=10, max_passes=1).run("p")

    agents["architect"].plan_project.assert_not_awaited()
    calls = agents["writer"].draft_chapter.await_args_list
    assert [c.args[0].number for c in calls] == [2, 3]
    assert calls[0].args[2] == {"summary": "after 1"}


@pytest.mark.asyncio
async def test_failure_marks_project_error(repos):
    await repos.projects.save(Project(id="p", title="Book", chapter_count=1))
    agents = _agents()
    agents["architect"].plan_project.side_effect = CompletionError("planner down")

    with pytest.raises(CompletionError):
        await _orchestrator(repos, agents).run("p")

    project = await repos.projects.get("p")
    assert project.status is ProjectStatus.ERROR
    assert project.error == "planner down"


@pytest.mark.asyncio
async def test_unit_is_only_completed_together_with_its_content(repos):
    await repos.projects.save(Project(id="p", title="Book", chapter_count=1))
    agents = _agents()
    agents["editor"].evaluate_chapter.return_value = (EditorReport(score=4, approved=False), USAGE)
    agents["consistency"].validate_chapter.side_effect = asyncio.CancelledError()
    orchestrator = _orchestrator(repos, agents, checkpoint_interval=10, max_passes=1)

    with pytest.raises(asyncio.CancelledError):
        await orchestrator.run("p")

    interrupted = await repos.units.get("p", 1)
    assert interrupted.status is not UnitStatus.COMPLETED
    assert interrupted.content == ""

    agents["consistency"].validate_chapter.side_effect = None
    await orchestrator.run("p")

    assert agents["writer"].draft_chapter.await_count == 6
    finished = await repos.units.get("p", 1)
    assert finished.status is UnitStatus.COMPLETED
    assert finished.content.startswith("Prose for 1.")


@pytest.mark.asyncio
async def test_checkpoint_rewrite_feeds_the_next_unit(repos):
    await repos.projects.save(Project(id="p", title="Book", chapter_count=3))
    issue = Issue(
        affected_units=[2],
        description="Ana is in two places",
        severity=Severity.CRITICAL,
        correction_instructions="Keep Ana at the mill",
    )
    agents = _agents(checkpoint_issues=[issue])
    calls = {"n": 0}

    async def numbered_draft(unit, world_brief, prior, instructions=None):
        calls["n"] += 1
        state = {"v": f"{unit.number}-call{calls['n']}"}
        return WriterDraft(content=f"Prose for {unit.number}. " * 40, continuity_state=state), USAGE

    agents["writer"].draft_chapter.side_effect = numbered_draft
    orchestrator = _orchestrator(
        repos, agents, checkpoint_interval=2, checkpoint_window=2, max_passes=1
    )

    await orchestrator.run("p")

    writer_calls = agents["writer"].draft_chapter.await_args_list
    assert [c.args[0].number for c in writer_calls] == [1, 2, 2, 3]
    rewritten = await repos.units.get("p", 2)
    assert rewritten.continuity_state == {"v": "2-call3"}
    assert writer_calls[3].args[2] == {"v": "2-call3"}


def test_review_needs_at_least_one_pass(repos):
    with pytest.raises(ChronicleError):
        _orchestrator(repos, _agents(), max_passes=-1)
