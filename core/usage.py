# core/usage.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class TokenUsage:
    """LLM token usage metrics."""

    input_tokens: int = 0
    output_tokens: int = 0
    thinking_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.thinking_tokens

    @classmethod
    def from_api(cls, payload: dict[str, Any] | None) -> TokenUsage:
        """Build usage from an OpenAI-style ``usage`` block."""
        if not payload:
            return cls()
        details = payload.get("completion_tokens_details") or {}
        return cls(
            input_tokens=int(payload.get("prompt_tokens") or 0),
            output_tokens=int(payload.get("completion_tokens") or 0),
            thinking_tokens=int(details.get("reasoning_tokens") or 0),
        )

    def add(self, usage: TokenUsage | dict[str, int] | None) -> None:
        """Accumulate usage values from another instance or dictionary."""
        if not usage:
            return
        if isinstance(usage, TokenUsage):
            self.input_tokens += usage.input_tokens
            self.output_tokens += usage.output_tokens
            self.thinking_tokens += usage.thinking_tokens
        else:
            self.input_tokens += usage.get("input_tokens", 0)
            self.output_tokens += usage.get("output_tokens", 0)
            self.thinking_tokens += usage.get("thinking_tokens", 0)

    def get_if_used(self) -> dict[str, int] | None:
        """Return usage dict only if any tokens were accumulated."""
        if self.total_tokens:
            return self.to_dict()
        return None

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    def __bool__(self) -> bool:
        return self.total_tokens > 0
