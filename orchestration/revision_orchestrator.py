# orchestration/revision_orchestrator.py
"""Top-level driver for generating and revising a manuscript."""

from __future__ import annotations

import functools
from collections.abc import Sequence

import structlog

from agents.architect_agent import ArchitectAgent
from agents.checkpoint_agent import CheckpointAgent
from agents.copyeditor_agent import CopyeditorAgent
from agents.editor_agent import EditorAgent
from agents.final_reviewer_agent import FinalReviewerAgent
from agents.writer_agent import WriterAgent
from config import settings
from core.errors import ChronicleError
from core.llm_interface import LLMService, llm_service
from core.usage import TokenUsage
from data_access.repositories import Repositories
from ledger.consistency_ledger import ConsistencyLedger
from models.project_models import Project, ProjectStatus
from models.review_models import Issue, ReviewVerdict, Severity, Verdict
from models.unit_models import (
    AUTHOR_NOTE_NUMBER,
    EPILOGUE_NUMBER,
    PROLOGUE_NUMBER,
    Unit,
    UnitSpec,
    UnitStatus,
    count_words,
    sort_units,
    unit_label,
    unit_sort_key,
)
from orchestration.chapter_loop import ChapterOutcome, ChapterRevisionLoop
from orchestration.token_accountant import Stage, TokenAccountant
from orchestration.tranche_review import TrancheReviewer
from storage.file_manager import FileManager
from ui.rich_display import RichDisplayManager

logger = structlog.get_logger(__name__)


def planned_unit_numbers(project: Project) -> list[int]:
    numbers = list(range(1, project.chapter_count + 1))
    if project.has_prologue:
        numbers.insert(0, PROLOGUE_NUMBER)
    if project.has_epilogue:
        numbers.append(EPILOGUE_NUMBER)
    if project.has_author_note:
        numbers.append(AUTHOR_NOTE_NUMBER)
    return numbers


def issue_instructions(issues: Sequence[Issue]) -> str:
    lines = []
    for issue in issues:
        fix = issue.correction_instructions or issue.description
        lines.append(f"- [{issue.severity.value}] {issue.category}: {fix}")
    return "\n".join(lines)


class RevisionOrchestrator:
    """Plans a project, produces every unit and runs the review passes.

    Agents may be injected; otherwise they are built per project so the
    writer and copyeditor follow the project's locale.
    """

    def __init__(
        self,
        repos: Repositories,
        *,
        llm: LLMService | None = None,
        ledger: ConsistencyLedger | None = None,
        architect: ArchitectAgent | None = None,
        writer: WriterAgent | None = None,
        editor: EditorAgent | None = None,
        copyeditor: CopyeditorAgent | None = None,
        checkpoint: CheckpointAgent | None = None,
        reviewer: FinalReviewerAgent | None = None,
        file_manager: FileManager | None = None,
        checkpoint_interval: int | None = None,
        checkpoint_window: int | None = None,
        max_passes: int | None = None,
        display: RichDisplayManager | None = None,
    ) -> None:
        self.repos = repos
        self.display = display
        self.llm = llm or llm_service
        self.ledger = ledger or ConsistencyLedger(repos.world)
        self.architect = architect or ArchitectAgent(llm=self.llm)
        self._writer = writer
        self._copyeditor = copyeditor
        self.editor = editor or EditorAgent(llm=self.llm)
        self.checkpoint = checkpoint or CheckpointAgent(llm=self.llm)
        self.reviewer = reviewer or FinalReviewerAgent(llm=self.llm)
        self.file_manager = file_manager
        self.checkpoint_interval = checkpoint_interval or settings.CHECKPOINT_INTERVAL
        self.checkpoint_window = checkpoint_window or settings.CHECKPOINT_WINDOW
        self.max_passes = max_passes or settings.REVIEW_MAX_PASSES
        if self.max_passes < 1:
            raise ChronicleError(f"max_passes must be at least 1, got {self.max_passes}.")

    def _chapter_loop(self, project: Project, accountant: TokenAccountant) -> ChapterRevisionLoop:
        writer = self._writer or WriterAgent(llm=self.llm, locale=project.locale)
        copyeditor = self._copyeditor or CopyeditorAgent(llm=self.llm, locale=project.locale)
        return ChapterRevisionLoop(writer, self.editor, copyeditor, accountant=accountant)

    async def run(self, project_id: str, world_notes: str = "") -> ReviewVerdict:
        project = await self.repos.projects.get(project_id)
        accountant = TokenAccountant(
            project_id,
            sink=self.repos.projects.save_token_usage,
            initial=TokenUsage(**project.token_usage.model_dump()),
        )
        loop = self._chapter_loop(project, accountant)
        try:
            await self.repos.projects.set_status(project_id, ProjectStatus.GENERATING)
            units = await self.ensure_plan(project, accountant, world_notes)
            await self.generate_units(project, units, loop, accountant)

            await self.repos.projects.set_status(project_id, ProjectStatus.REVIEWING)
            verdict = await self.review(project, loop, accountant)

            project = await self.repos.projects.get(project_id)
            project.status = ProjectStatus.COMPLETED
            project.final_score = verdict.score
            project.final_verdict = verdict.verdict.value
            project.error = None
            await self.repos.projects.save(project)
            if self.file_manager is not None:
                path = await self.file_manager.save_manuscript(
                    project_id, project.title, await self.repos.units.list_for_project(project_id)
                )
                logger.info(f"Manuscript written to {path}.", project_id=project_id)
            logger.info(
                "Project completed.",
                project_id=project_id,
                verdict=verdict.verdict.value,
                score=verdict.score,
                tokens=accountant.total,
            )
            return verdict
        except Exception as exc:
            logger.error("Project run failed.", project_id=project_id, error=str(exc), exc_info=True)
            await self.repos.projects.set_status(project_id, ProjectStatus.ERROR, str(exc))
            raise

    async def ensure_plan(
        self, project: Project, accountant: TokenAccountant, world_notes: str = ""
    ) -> list[Unit]:
        """Return the project's units, planning them first if none exist."""
        existing = await self.repos.units.list_for_project(project.id)
        if existing:
            logger.info(
                "Resuming generation with existing plan.",
                project_id=project.id,
                completed=sum(1 for u in existing if u.status == UnitStatus.COMPLETED),
                total=len(existing),
            )
            return existing

        plan, usage = await self.architect.plan_project(
            project, planned_unit_numbers(project), world_notes
        )
        await accountant.record(Stage.PLANNING, usage)
        await self.ledger.seed(project.id, plan.world_bible)
        units = [
            Unit(project_id=project.id, number=spec.number, title=spec.title, plan=spec)
            for spec in plan.outline
        ]
        await self.repos.units.save_many(units)
        return sort_units(units)

    async def _accept(
        self, project: Project, unit: Unit, outcome: ChapterOutcome, accountant: TokenAccountant
    ) -> Unit:
        validation = outcome.validation
        if validation is None:
            # Forced past the editor: the text was never validated, facts still matter.
            validation, usage = await self.ledger.validate(outcome.content, project.id, unit.number)
            await accountant.record(Stage.CONSISTENCY_CHECK, usage)
        await self.ledger.apply_validation(project.id, unit.number, validation)
        unit.content = outcome.content
        unit.continuity_state = outcome.continuity_state
        unit.word_count = count_words(outcome.content)
        unit.editor_score = outcome.score
        unit.attempts = outcome.attempts
        unit.status = UnitStatus.COMPLETED
        await self.repos.units.save(unit)
        return unit

    async def _produce(
        self,
        project: Project,
        unit: Unit,
        prior_continuity: dict,
        loop: ChapterRevisionLoop,
        accountant: TokenAccountant,
        corrective_instructions: str | None = None,
    ) -> Unit:
        spec = unit.plan or UnitSpec(number=unit.number, title=unit.title)

        async def on_status(number: int, status: UnitStatus) -> None:
            # COMPLETED is only ever stored by _accept, together with the content.
            if status != UnitStatus.COMPLETED:
                unit.status = status
                await self.repos.units.save(unit)
            if self.display is not None:
                self.display.update(
                    project=project.title,
                    unit=unit.label,
                    step=status.value,
                    total_tokens=accountant.total,
                )

        outcome = await loop.produce(
            spec,
            await self.ledger.constraints(project.id, unit.number),
            prior_continuity,
            validator=functools.partial(
                self.ledger.validate, project_id=project.id, unit_number=unit.number
            ),
            corrective_instructions=corrective_instructions,
            on_status=on_status,
        )
        return await self._accept(project, unit, outcome, accountant)

    async def _previous_continuity(self, project_id: str, number: int) -> dict:
        previous = [
            u
            for u in await self.repos.units.list_for_project(project_id)
            if u.sort_key < unit_sort_key(number) and u.status == UnitStatus.COMPLETED
        ]
        return previous[-1].continuity_state if previous else {}

    async def rewrite_unit(
        self,
        project: Project,
        number: int,
        instructions: str,
        loop: ChapterRevisionLoop,
        accountant: TokenAccountant,
    ) -> Unit | None:
        unit = await self.repos.units.get(project.id, number)
        if unit is None:
            logger.warning(f"Cannot rewrite missing {unit_label(number)}.", project_id=project.id)
            return None
        unit.status = UnitStatus.REVISION
        await self.repos.units.save(unit)
        logger.info(f"Rewriting {unit.label}.", project_id=project.id)
        return await self._produce(
            project,
            unit,
            await self._previous_continuity(project.id, number),
            loop,
            accountant,
            corrective_instructions=instructions,
        )

    async def generate_units(
        self,
        project: Project,
        units: Sequence[Unit],
        loop: ChapterRevisionLoop,
        accountant: TokenAccountant,
    ) -> None:
        prior: dict = {}
        produced = 0
        for unit in sort_units(units):
            if unit.status == UnitStatus.COMPLETED:
                prior = unit.continuity_state
                continue
            unit = await self._produce(project, unit, prior, loop, accountant)
            prior = unit.continuity_state
            produced += 1
            logger.info(
                f"{unit.label} completed.",
                project_id=project.id,
                words=unit.word_count,
                score=unit.editor_score,
                attempts=unit.attempts,
            )
            if produced % self.checkpoint_interval == 0:
                rewritten = await self.run_checkpoint(project, unit.number, loop, accountant)
                if unit.number in rewritten:
                    stored = await self.repos.units.get(project.id, unit.number)
                    prior = stored.continuity_state if stored is not None else prior

    async def run_checkpoint(
        self,
        project: Project,
        up_to: int,
        loop: ChapterRevisionLoop,
        accountant: TokenAccountant,
    ) -> list[int]:
        """Review the latest window; returns the units sent back for rewrite."""
        completed = [
            u
            for u in await self.repos.units.list_for_project(project.id)
            if u.status == UnitStatus.COMPLETED and u.sort_key <= unit_sort_key(up_to)
        ]
        window = completed[-self.checkpoint_window :]
        if not window:
            return []
        report, usage = await self.checkpoint.review_window(
            window, await self.ledger.constraints(project.id, up_to)
        )
        await accountant.record(Stage.CHECKPOINT, usage)
        in_window = {u.number for u in window}
        critical = [i for i in report.issues if i.severity == Severity.CRITICAL]
        targets: dict[int, list[Issue]] = {}
        for issue in critical:
            for number in issue.affected_units & in_window:
                targets.setdefault(number, []).append(issue)
        logger.info(
            "Checkpoint finished.",
            project_id=project.id,
            window=sorted(in_window, key=unit_sort_key),
            issues=len(report.issues),
            critical=len(critical),
        )
        for number in sorted(targets, key=unit_sort_key):
            await self.rewrite_unit(
                project, number, issue_instructions(targets[number]), loop, accountant
            )
        return sorted(targets, key=unit_sort_key)

    async def review(
        self, project: Project, loop: ChapterRevisionLoop, accountant: TokenAccountant
    ) -> ReviewVerdict:
        reviewer = TrancheReviewer(self.reviewer, accountant=accountant, max_passes=self.max_passes)
        previously_fixed: list[Issue] = []
        verdict: ReviewVerdict | None = None
        for pass_number in range(1, self.max_passes + 1):
            units = await self.repos.units.list_for_project(project.id)
            brief = await self.ledger.constraints(project.id, units[-1].number) if units else ""
            verdict = await reviewer.review_manuscript(units, brief, pass_number, previously_fixed)
            if verdict.verdict != Verdict.REQUIRES_REVISION:
                break
            for number in sorted(verdict.units_to_rewrite, key=unit_sort_key):
                await self.rewrite_unit(
                    project,
                    number,
                    issue_instructions(verdict.issues_for_unit(number)),
                    loop,
                    accountant,
                )
            previously_fixed = list(verdict.issues)
        if verdict is None:
            raise ChronicleError("Review produced no verdict.")
        return verdict
