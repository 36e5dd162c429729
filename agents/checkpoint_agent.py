# agents/checkpoint_agent.py
from collections.abc import Sequence

import structlog
from config import settings
from core.llm_interface import LLMService, SamplingConfig, llm_service
from core.usage import TokenUsage
from processing.structured_extractor import extract_structured
from prompt_renderer import render_prompt

from models import CheckpointReport, Unit

logger = structlog.get_logger(__name__)


class CheckpointAgent:
    """Mid-generation review of the most recent window of units."""

    def __init__(self, model_name: str | None = None, llm: LLMService | None = None):
        self.model_name = model_name or settings.REVIEWER_MODEL
        self.llm = llm or llm_service
        logger.info(f"CheckpointAgent initialized with model: {self.model_name}")

    async def review_window(
        self, units: Sequence[Unit], world_brief: str = ""
    ) -> tuple[CheckpointReport, TokenUsage]:
        prompt = render_prompt(
            "checkpoint_agent/review_window.j2",
            {"world_brief": world_brief, "units": list(units)},
        )
        result = await self.llm.complete(
            render_prompt("final_reviewer_agent/system.j2", {"final_pass": False}),
            [{"role": "user", "content": prompt}],
            SamplingConfig(
                model=self.model_name,
                temperature=settings.TEMPERATURE_REVIEW,
                json_mode=True,
            ),
        )
        if not result.ok:
            logger.warning("Checkpoint review failed; skipping.", error=result.error)
            return CheckpointReport(), result.usage
        extracted = extract_structured(
            result.text, CheckpointReport, CheckpointReport(), context="checkpoint"
        )
        return extracted.value, result.usage
