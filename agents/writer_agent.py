# agents/writer_agent.py
from typing import Any

import structlog
from config import settings
from core.llm_interface import LLMService, SamplingConfig, llm_service
from core.usage import TokenUsage
from processing.structured_extractor import extract_structured
from prompt_renderer import render_prompt
from utils.locale_rules import language_name

from models import ContinuityState, UnitSpec, WriterDraft

logger = structlog.get_logger(__name__)

CONTINUITY_MARKER = "---CONTINUITY_STATE---"


def split_draft(text: str) -> WriterDraft:
    """Separate prose from the trailing continuity block.

    Without a marker the whole text is prose and the state is empty.
    """
    prose, sep, tail = text.partition(CONTINUITY_MARKER)
    if not sep:
        return WriterDraft(content=text.strip(), continuity_state={})
    extracted = extract_structured(
        tail, ContinuityState, ContinuityState(), context="continuity_state"
    )
    state: dict[str, Any] = extracted.value.model_dump() if extracted.ok else {}
    return WriterDraft(content=prose.strip(), continuity_state=state)


class WriterAgent:
    def __init__(
        self,
        model_name: str | None = None,
        llm: LLMService | None = None,
        locale: str | None = None,
    ):
        self.model_name = model_name or settings.WRITER_MODEL
        self.llm = llm or llm_service
        self.locale = locale or settings.DEFAULT_LOCALE
        logger.info(f"WriterAgent initialized with model: {self.model_name}")

    async def draft_chapter(
        self,
        unit: UnitSpec,
        world_brief: str,
        prior_continuity: dict[str, Any] | None,
        corrective_instructions: str | None = None,
    ) -> tuple[WriterDraft, TokenUsage]:
        prompt = render_prompt(
            "writer_agent/draft_chapter.j2",
            {
                "world_brief": world_brief,
                "prior_continuity": prior_continuity or {},
                "unit": unit,
                "corrective_instructions": corrective_instructions,
                "marker": CONTINUITY_MARKER,
            },
        )
        result = await self.llm.complete(
            render_prompt(
                "writer_agent/system.j2", {"language_name": language_name(self.locale)}
            ),
            [{"role": "user", "content": prompt}],
            SamplingConfig(
                model=self.model_name,
                temperature=settings.TEMPERATURE_DRAFTING,
                frequency_penalty=0.3,
                presence_penalty=0.3,
            ),
        )
        result.raise_for_error()
        draft = split_draft(result.text)
        if not draft.continuity_state:
            logger.warning(f"No continuity state returned for {unit.label}.")
        return draft, result.usage
