# agents/consistency_agent.py
import structlog
from config import settings
from core.llm_interface import LLMService, SamplingConfig, llm_service
from core.usage import TokenUsage
from processing.structured_extractor import extract_structured
from prompt_renderer import render_prompt

from models import ValidationResult, unit_label

logger = structlog.get_logger(__name__)


def _unreadable(raw: str) -> ValidationResult:
    return ValidationResult(
        is_valid=True,
        warnings=["Consistency response could not be read; unit accepted."],
    )


class ConsistencyAgent:
    """Checks one unit against the world brief and extracts new facts."""

    def __init__(self, model_name: str | None = None, llm: LLMService | None = None):
        self.model_name = model_name or settings.CONSISTENCY_MODEL
        self.llm = llm or llm_service
        logger.info(f"ConsistencyAgent initialized with model: {self.model_name}")

    async def validate_chapter(
        self, world_brief: str, unit_number: int, text: str
    ) -> tuple[ValidationResult, TokenUsage]:
        """Raises ``CompletionError`` when the service call itself fails."""
        limit = settings.CONSISTENCY_MAX_TEXT_CHARS
        if len(text) > limit:
            logger.debug(
                f"Truncating {unit_label(unit_number)} to {limit} chars for validation."
            )
            text = text[:limit]
        prompt = render_prompt(
            "consistency_agent/validate_chapter.j2",
            {
                "world_brief": world_brief,
                "unit_label": unit_label(unit_number),
                "unit_text": text,
            },
        )
        result = await self.llm.complete(
            render_prompt("consistency_agent/system.j2", {}),
            [{"role": "user", "content": prompt}],
            SamplingConfig(
                model=self.model_name,
                temperature=settings.TEMPERATURE_CONSISTENCY_CHECK,
                json_mode=True,
            ),
        )
        result.raise_for_error()
        extracted = extract_structured(
            result.text,
            ValidationResult,
            _unreadable,
            context=f"consistency:{unit_label(unit_number)}",
        )
        return extracted.value, result.usage
