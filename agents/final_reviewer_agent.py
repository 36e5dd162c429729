# agents/final_reviewer_agent.py
from collections.abc import Sequence

import structlog
from config import settings
from core.llm_interface import LLMService, SamplingConfig, llm_service
from core.usage import TokenUsage
from processing.structured_extractor import extract_structured
from prompt_renderer import render_prompt

from models import Issue, PartialVerdict, Unit

logger = structlog.get_logger(__name__)


class FinalReviewerAgent:
    """Reviews one tranche of the finished manuscript."""

    def __init__(self, model_name: str | None = None, llm: LLMService | None = None):
        self.model_name = model_name or settings.REVIEWER_MODEL
        self.llm = llm or llm_service
        logger.info(f"FinalReviewerAgent initialized with model: {self.model_name}")

    @staticmethod
    def fallback_verdict() -> PartialVerdict:
        return PartialVerdict(score=settings.REVIEW_FALLBACK_SCORE)

    async def review_tranche(
        self,
        units: Sequence[Unit],
        *,
        pass_number: int,
        tranche_index: int,
        tranche_count: int,
        world_brief: str = "",
        pre_analysis: str = "",
        previous_issues: Sequence[Issue] = (),
        previously_fixed: Sequence[Issue] = (),
        final_pass: bool = False,
    ) -> tuple[PartialVerdict, TokenUsage]:
        prompt = render_prompt(
            "final_reviewer_agent/review_tranche.j2",
            {
                "pass_number": pass_number,
                "tranche_index": tranche_index,
                "tranche_count": tranche_count,
                "world_brief": world_brief,
                "pre_analysis": pre_analysis,
                "previous_issues": list(previous_issues),
                "previously_fixed": list(previously_fixed),
                "units": list(units),
            },
        )
        result = await self.llm.complete(
            render_prompt("final_reviewer_agent/system.j2", {"final_pass": final_pass}),
            [{"role": "user", "content": prompt}],
            SamplingConfig(
                model=self.model_name,
                temperature=settings.TEMPERATURE_REVIEW,
                json_mode=True,
            ),
        )
        if not result.ok:
            logger.error(
                f"Review of tranche {tranche_index}/{tranche_count} failed; using fallback verdict.",
                error=result.error,
            )
            return self.fallback_verdict(), result.usage
        extracted = extract_structured(
            result.text,
            PartialVerdict,
            self.fallback_verdict(),
            context=f"review:pass{pass_number}:tranche{tranche_index}",
        )
        return extracted.value, result.usage
