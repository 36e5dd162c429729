# agents/copyeditor_agent.py
import structlog
from config import settings
from core.llm_interface import LLMService, SamplingConfig, llm_service
from core.usage import TokenUsage
from prompt_renderer import render_prompt
from utils.locale_rules import editorial_rules, language_name

logger = structlog.get_logger(__name__)


class CopyeditorAgent:
    """Applies the manuscript language's typographic conventions."""

    def __init__(
        self,
        model_name: str | None = None,
        llm: LLMService | None = None,
        locale: str | None = None,
    ):
        self.model_name = model_name or settings.COPYEDITOR_MODEL
        self.llm = llm or llm_service
        self.locale = locale or settings.DEFAULT_LOCALE
        logger.info(
            f"CopyeditorAgent initialized with model: {self.model_name}", locale=self.locale
        )

    async def polish_chapter(self, text: str) -> tuple[str, TokenUsage]:
        """Return the polished text, or ``text`` itself if the call failed."""
        system_prompt = render_prompt(
            "copyeditor_agent/system.j2",
            {
                "language_name": language_name(self.locale),
                "rules": editorial_rules(self.locale),
            },
        )
        result = await self.llm.complete(
            system_prompt,
            [
                {
                    "role": "user",
                    "content": render_prompt(
                        "copyeditor_agent/polish_chapter.j2", {"text": text}
                    ),
                }
            ],
            SamplingConfig(model=self.model_name, temperature=settings.TEMPERATURE_POLISH),
        )
        if not result.ok or not result.text.strip():
            logger.warning("Polish step produced no text; keeping original.", error=result.error)
            return text, result.usage
        return result.text.strip(), result.usage
