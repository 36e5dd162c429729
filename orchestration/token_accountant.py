from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum

import structlog

from core.usage import TokenUsage

logger = structlog.get_logger(__name__)

UsageSink = Callable[[str, TokenUsage], Awaitable[None]]


class Stage(str, Enum):
    """Stages for token accounting."""

    PLANNING = "Planning"
    DRAFTING = "Drafting"
    EDITING = "Editing"
    POLISH = "Polish"
    CONSISTENCY_CHECK = "ConsistencyCheck"
    CHECKPOINT = "Checkpoint"
    FINAL_REVIEW = "FinalReview"
    TRANSLATION = "Translation"


class TokenAccountant:
    """Accumulate token usage for one project and flush it after every step.

    One accountant exists per project run; it is handed explicitly to the
    components that spend tokens. ``sink`` persists the running total, which
    starts from ``initial`` when a project is resumed.
    """

    def __init__(
        self,
        project_id: str,
        sink: UsageSink | None = None,
        initial: TokenUsage | None = None,
    ) -> None:
        self.project_id = project_id
        self.usage = TokenUsage()
        self.usage.add(initial)
        self.stage_totals: dict[str, TokenUsage] = {}
        self._sink = sink

    @property
    def total(self) -> int:
        return self.usage.total_tokens

    def record_usage(
        self, stage: Stage | str, usage: dict[str, int] | TokenUsage | None
    ) -> None:
        """Record token usage for a stage."""
        stage_name = stage.value if isinstance(stage, Stage) else stage
        if not usage:
            return
        if not isinstance(usage, TokenUsage):
            usage = TokenUsage(
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
                thinking_tokens=usage.get("thinking_tokens", 0),
            )
        self.usage.add(usage)
        self.stage_totals.setdefault(stage_name, TokenUsage()).add(usage)
        logger.debug(
            "Tokens from '%s': %s. Project total: %s",
            stage_name,
            usage.total_tokens,
            self.total,
            project_id=self.project_id,
        )

    async def flush(self) -> None:
        if self._sink is not None:
            await self._sink(self.project_id, self.usage)

    async def record(
        self, stage: Stage | str, usage: dict[str, int] | TokenUsage | None
    ) -> None:
        """Record usage for a finished step and persist the running total."""
        self.record_usage(stage, usage)
        await self.flush()

    def get_stage_total(self, stage: Stage | str) -> int:
        """Return accumulated tokens for a stage."""
        stage_name = stage.value if isinstance(stage, Stage) else stage
        usage = self.stage_totals.get(stage_name)
        return usage.total_tokens if usage else 0
