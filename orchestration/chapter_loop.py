# orchestration/chapter_loop.py
"""Bounded write → edit → validate → polish loop for a single unit."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from agents.copyeditor_agent import CopyeditorAgent
from agents.editor_agent import EditorAgent
from agents.writer_agent import WriterAgent
from config import settings
from core.usage import TokenUsage
from models.agent_models import EditorReport
from models.unit_models import UnitSpec, UnitStatus, count_words
from models.world_models import ValidationResult
from orchestration.token_accountant import Stage, TokenAccountant

logger = structlog.get_logger(__name__)

StatusCallback = Callable[[int, UnitStatus], Awaitable[None]]
Validator = Callable[[str], Awaitable[tuple[ValidationResult, TokenUsage]]]


@dataclass
class ChapterOutcome:
    content: str
    continuity_state: dict[str, Any]
    approved: bool
    forced: bool = False
    attempts: int = 0
    score: float | None = None
    validation: ValidationResult | None = None
    editor_report: EditorReport | None = field(default=None, repr=False)


class ChapterRevisionLoop:
    def __init__(
        self,
        writer: WriterAgent,
        editor: EditorAgent,
        copyeditor: CopyeditorAgent | None = None,
        *,
        accountant: TokenAccountant | None = None,
        retry_budget: int | None = None,
        polish_min_ratio: float | None = None,
    ) -> None:
        self.writer = writer
        self.editor = editor
        self.copyeditor = copyeditor
        self.accountant = accountant
        self.retry_budget = retry_budget or settings.CHAPTER_RETRY_BUDGET
        self.polish_min_ratio = (
            polish_min_ratio
            if polish_min_ratio is not None
            else settings.POLISH_MIN_LENGTH_RATIO
        )

    async def _record(self, stage: Stage, usage: TokenUsage) -> None:
        if self.accountant is not None:
            await self.accountant.record(stage, usage)

    async def polish(self, text: str) -> str:
        """Run the copyeditor; shrinking output is discarded."""
        if self.copyeditor is None or not text.strip():
            return text
        polished, usage = await self.copyeditor.polish_chapter(text)
        await self._record(Stage.POLISH, usage)
        original_words = count_words(text)
        polished_words = count_words(polished)
        if polished_words < self.polish_min_ratio * original_words:
            logger.warning(
                "Polish shrank the text; keeping the unpolished version.",
                original_words=original_words,
                polished_words=polished_words,
                min_ratio=self.polish_min_ratio,
            )
            return text
        return polished

    async def produce(
        self,
        unit: UnitSpec,
        world_brief: str,
        prior_continuity: dict[str, Any] | None,
        retry_budget: int | None = None,
        *,
        validator: Validator | None = None,
        corrective_instructions: str | None = None,
        on_status: StatusCallback | None = None,
    ) -> ChapterOutcome:
        """Drive one unit to an accepted text.

        Budget counts writer invocations. When it runs out, the last draft is
        force-approved: the pipeline never stalls on one unit. ``on_status``
        sees only in-progress states; marking the unit completed belongs to
        whoever persists its content.
        """
        budget = max(1, retry_budget or self.retry_budget)
        instructions = corrective_instructions
        draft_content = ""
        draft_state: dict[str, Any] = {}
        report: EditorReport | None = None
        validation: ValidationResult | None = None
        approved = False
        attempts = 0

        async def status(value: UnitStatus) -> None:
            if on_status is not None:
                await on_status(unit.number, value)

        while attempts < budget and not approved:
            attempts += 1
            await status(UnitStatus.WRITING)
            draft, usage = await self.writer.draft_chapter(
                unit, world_brief, prior_continuity, instructions
            )
            await self._record(Stage.DRAFTING, usage)
            draft_content, draft_state = draft.content, draft.continuity_state

            await status(UnitStatus.EDITING)
            report, usage = await self.editor.evaluate_chapter(
                unit, draft_content, world_brief, prior_continuity
            )
            await self._record(Stage.EDITING, usage)
            validation = None
            if not report.approved:
                instructions = report.corrective_instructions()
                logger.info(
                    f"{unit.label} rejected by editor (attempt {attempts}/{budget}).",
                    score=report.score,
                )
                continue

            if validator is not None:
                validation, usage = await validator(draft_content)
                await self._record(Stage.CONSISTENCY_CHECK, usage)
                if not validation.is_valid:
                    instructions = validation.correction_instructions
                    logger.info(
                        f"{unit.label} blocked by consistency check (attempt {attempts}/{budget}).",
                        error_class=validation.error_class,
                    )
                    continue
            approved = True

        forced = not approved
        if forced:
            logger.warning(
                f"Retry budget exhausted for {unit.label}; force-approving last draft.",
                attempts=attempts,
                score=report.score if report else None,
                blocked_by=(
                    validation.error_class
                    if validation is not None and not validation.is_valid
                    else "editor"
                ),
            )

        content = await self.polish(draft_content)
        return ChapterOutcome(
            content=content,
            continuity_state=draft_state,
            approved=True,
            forced=forced,
            attempts=attempts,
            score=report.score if report else None,
            validation=validation,
            editor_report=report,
        )
