# config.py
"""Configuration settings for the Chronicle manuscript pipeline.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import os

import structlog
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()

_PLACEHOLDER_API_KEYS = {"", "nope", "changeme", "your-api-key"}


class ChronicleSettings(BaseSettings):
    """Full configuration for the Chronicle system."""

    # API and Model Configuration
    OPENAI_API_BASE: str = "http://127.0.0.1:8080/v1"
    OPENAI_API_KEY: str = "nope"

    LARGE_MODEL: str = "Qwen3-14B"
    MEDIUM_MODEL: str = "Qwen3-8B"
    SMALL_MODEL: str = "Qwen3-4B"

    # Per-step model assignments (set from base models if not specified in env)
    ARCHITECT_MODEL: str | None = None
    WRITER_MODEL: str | None = None
    EDITOR_MODEL: str | None = None
    COPYEDITOR_MODEL: str | None = None
    CONSISTENCY_MODEL: str | None = None
    REVIEWER_MODEL: str | None = None
    TRANSLATOR_MODEL: str | None = None

    # Temperature Settings
    TEMPERATURE_PLANNING: float = 0.7
    TEMPERATURE_DRAFTING: float = 0.8
    TEMPERATURE_EDITING: float = 0.3
    TEMPERATURE_POLISH: float = 0.3
    TEMPERATURE_CONSISTENCY_CHECK: float = 0.2
    TEMPERATURE_REVIEW: float = 0.3
    TEMPERATURE_TRANSLATION: float = 0.3
    LLM_TOP_P: float = 0.9

    # Completion gateway
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_RETRY_DELAY_SECONDS: float = 3.0
    LLM_TIMEOUT_SECONDS: float = 600.0
    MAX_CONCURRENT_LLM_CALLS: int = 4
    MAX_GENERATION_TOKENS: int = 16384
    TIKTOKEN_DEFAULT_ENCODING: str = "cl100k_base"
    FALLBACK_CHARS_PER_TOKEN: float = 4.0

    # Persistence
    STORE_BACKEND: str = "memory"
    NEO4J_URI: str = "bolt://localhost:7687"
    NEO4J_USER: str = "neo4j"
    NEO4J_PASSWORD: str = "chronicle_password"
    NEO4J_DATABASE: str | None = "neo4j"

    # Output and File Paths
    BASE_OUTPUT_DIR: str = "chronicle_output"
    MANUSCRIPTS_DIR: str = "manuscripts"
    TRANSLATIONS_DIR: str = "translations"
    PATTERN_BANK_FILE: str | None = None

    # Chapter revision loop
    CHAPTER_RETRY_BUDGET: int = 3
    EDITOR_APPROVAL_THRESHOLD: float = 7.0
    POLISH_MIN_LENGTH_RATIO: float = 1.0
    DEFAULT_LOCALE: str = "en"

    # Consistency ledger
    IMMUTABLE_ATTRIBUTE_KEYS: list[str] = [
        "eye_color",
        "hair_color",
        "height",
        "skin_tone",
        "birthmark",
        "scar",
        "species",
        "date_of_birth",
        "birthplace",
    ]
    CONSISTENCY_MAX_TEXT_CHARS: int = 12000

    # Checkpoints during generation
    CHECKPOINT_INTERVAL: int = 5
    CHECKPOINT_WINDOW: int = 5

    # Tranche review protocol
    REVIEW_TRANCHE_SIZE: int = 8
    REVIEW_TRANCHE_MAX_TOKENS: int = 96000
    REVIEW_MAX_PASSES: int = 3
    REVIEW_MAX_RETAINED_ISSUES: int = 10
    REVIEW_APPROVAL_SCORE: float = 9.0
    REVIEW_FALLBACK_SCORE: float = 8.0

    # Score-coherence caps
    SCORE_CAP_CRITICAL: float = 6.0
    SCORE_CAP_MANY_MAJORS: float = 7.0
    SCORE_CAP_TWO_MAJORS: float = 7.5
    SCORE_CAP_ONE_MAJOR: float = 8.0
    SCORE_CAP_MINORS: list[float] = [9.0, 8.5, 8.0]
    SCORE_CAP_MANY_MINORS: float = 8.0

    # Issue deduplication
    ISSUE_SIMILARITY_METHOD: str = "keyword_overlap"
    ISSUE_SIMILARITY_THRESHOLD: float = 0.5
    ISSUE_KEYWORD_MIN_LENGTH: int = 4

    # Pre-analysis repetition scan
    REPETITION_NGRAM_SIZE: int = 4
    REPETITION_UNIT_THRESHOLD: int = 4
    REPETITION_REPORT_LIMIT: int = 10

    # Jobs
    JOB_HEARTBEAT_STALE_SECONDS: float = 180.0

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="CHRONICLE_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "chronicle_run.log"
    ENABLE_RICH_PROGRESS: bool = True

    @model_validator(mode="after")
    def set_dynamic_model_defaults(self) -> ChronicleSettings:
        if self.ARCHITECT_MODEL is None:
            self.ARCHITECT_MODEL = self.LARGE_MODEL
        if self.WRITER_MODEL is None:
            self.WRITER_MODEL = self.LARGE_MODEL
        if self.EDITOR_MODEL is None:
            self.EDITOR_MODEL = self.LARGE_MODEL
        if self.COPYEDITOR_MODEL is None:
            self.COPYEDITOR_MODEL = self.MEDIUM_MODEL
        if self.CONSISTENCY_MODEL is None:
            self.CONSISTENCY_MODEL = self.MEDIUM_MODEL
        if self.REVIEWER_MODEL is None:
            self.REVIEWER_MODEL = self.LARGE_MODEL
        if self.TRANSLATOR_MODEL is None:
            self.TRANSLATOR_MODEL = self.MEDIUM_MODEL
        return self

    @model_validator(mode="after")
    def warn_on_placeholder_api_key(self) -> ChronicleSettings:
        if self.OPENAI_API_KEY.strip().lower() in _PLACEHOLDER_API_KEYS:
            logger.warning(
                "OPENAI_API_KEY looks like a placeholder; requests may be rejected."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )


settings = ChronicleSettings()

MANUSCRIPTS_DIR = os.path.join(settings.BASE_OUTPUT_DIR, settings.MANUSCRIPTS_DIR)
TRANSLATIONS_DIR = os.path.join(settings.BASE_OUTPUT_DIR, settings.TRANSLATIONS_DIR)
