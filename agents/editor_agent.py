# agents/editor_agent.py
from typing import Any

import structlog
from config import settings
from core.llm_interface import LLMService, SamplingConfig, llm_service
from core.usage import TokenUsage
from processing.structured_extractor import extract_structured
from prompt_renderer import render_prompt

from models import EditorReport, UnitSpec

logger = structlog.get_logger(__name__)


class EditorAgent:
    """Scores a draft and prescribes a targeted fix when it falls short."""

    def __init__(
        self,
        model_name: str | None = None,
        llm: LLMService | None = None,
        threshold: float | None = None,
    ):
        self.model_name = model_name or settings.EDITOR_MODEL
        self.llm = llm or llm_service
        self.threshold = (
            threshold if threshold is not None else settings.EDITOR_APPROVAL_THRESHOLD
        )
        logger.info(f"EditorAgent initialized with model: {self.model_name}")

    def _fallback_report(self, raw: str) -> EditorReport:
        # An unreadable verdict must not stall the loop; accept at threshold.
        return EditorReport(
            score=self.threshold,
            verdict="Editor response could not be read; accepted at threshold.",
            approved=True,
        )

    async def evaluate_chapter(
        self,
        unit: UnitSpec,
        draft: str,
        world_brief: str,
        prior_continuity: dict[str, Any] | None,
    ) -> tuple[EditorReport, TokenUsage]:
        prompt = render_prompt(
            "editor_agent/evaluate_chapter.j2",
            {
                "world_brief": world_brief,
                "prior_continuity": prior_continuity or {},
                "unit": unit,
                "draft": draft,
            },
        )
        result = await self.llm.complete(
            render_prompt("editor_agent/system.j2", {"threshold": self.threshold}),
            [{"role": "user", "content": prompt}],
            SamplingConfig(
                model=self.model_name,
                temperature=settings.TEMPERATURE_EDITING,
                json_mode=True,
            ),
        )
        if not result.ok:
            logger.warning(
                f"Editor call failed for {unit.label}; accepting draft at threshold.",
                error=result.error,
            )
            return self._fallback_report(""), result.usage

        extracted = extract_structured(
            result.text, EditorReport, self._fallback_report, context=f"editor:{unit.label}"
        )
        report = extracted.value
        if extracted.ok:
            report.approved = report.score >= self.threshold
        logger.info(
            f"Editor scored {unit.label}: {report.score:g}/10.",
            approved=report.approved,
        )
        return report, result.usage
