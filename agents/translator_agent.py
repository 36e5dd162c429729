# agents/translator_agent.py
import structlog
from config import settings
from core.llm_interface import LLMService, SamplingConfig, llm_service
from core.usage import TokenUsage
from processing.structured_extractor import extract_structured
from prompt_renderer import render_prompt
from utils.locale_rules import editorial_rules, language_name

from models import TranslationResult, Unit

logger = structlog.get_logger(__name__)


class TranslatorAgent:
    def __init__(self, model_name: str | None = None, llm: LLMService | None = None):
        self.model_name = model_name or settings.TRANSLATOR_MODEL
        self.llm = llm or llm_service
        logger.info(f"TranslatorAgent initialized with model: {self.model_name}")

    async def translate_unit(
        self, unit: Unit, source_language: str, target_language: str
    ) -> tuple[TranslationResult, TokenUsage]:
        """Translate one unit.

        Raises ``CompletionError`` when the service call fails. An unreadable
        response is treated as the translated text itself.
        """
        system_prompt = render_prompt(
            "translator_agent/system.j2",
            {
                "source_name": language_name(source_language),
                "target_name": language_name(target_language),
                "rules": editorial_rules(target_language),
            },
        )
        prompt = render_prompt(
            "translator_agent/translate_unit.j2",
            {
                "unit_label": unit.label,
                "title": unit.title,
                "text": unit.content,
                "source_language": source_language,
                "target_language": target_language,
            },
        )
        result = await self.llm.complete(
            system_prompt,
            [{"role": "user", "content": prompt}],
            SamplingConfig(
                model=self.model_name,
                temperature=settings.TEMPERATURE_TRANSLATION,
                json_mode=True,
            ),
        )
        result.raise_for_error()

        def echo(raw: str) -> TranslationResult:
            return TranslationResult(
                translated_text=raw,
                source_language=source_language,
                target_language=target_language,
            )

        extracted = extract_structured(
            result.text, TranslationResult, echo, context=f"translate:{unit.label}"
        )
        translation = extracted.value
        if not translation.translated_text.strip():
            translation = echo(result.text)
        return translation, result.usage
