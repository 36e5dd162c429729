# models/agent_models.py
"""Structured outputs exchanged between pipeline steps."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .review_models import Issue
from .unit_models import UnitSpec
from .world_models import WorldBible


class AgentBaseModel(BaseModel):
    """Base model supporting mapping style access."""

    model_config = ConfigDict(from_attributes=True, extra="allow")

    def __getitem__(self, item: str) -> Any:  # pragma: no cover - convenience
        return getattr(self, item)

    def get(
        self, item: str, default: Any = None
    ) -> Any:  # pragma: no cover - convenience
        return getattr(self, item, default)


class SurgicalPlan(AgentBaseModel):
    """Targeted fix the editor prescribes for a rejected draft."""

    diagnosis: str = ""
    procedure: str = ""
    objective: str = ""

    def is_empty(self) -> bool:
        return not (self.diagnosis or self.procedure or self.objective)


class EditorReport(AgentBaseModel):
    """Structural-edit verdict for one draft."""

    score: float = 0.0
    verdict: str = ""
    strengths: list[str] = Field(default_factory=list)
    critical_weaknesses: list[str] = Field(default_factory=list)
    surgical_plan: SurgicalPlan | None = None
    approved: bool = False

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: object) -> object:
        if isinstance(value, (int, float)):
            return max(0.0, min(10.0, float(value)))
        return value

    def corrective_instructions(self) -> str:
        """Render the rejection as instructions for the next writer attempt."""
        lines = [f"Editor score: {self.score:g}/10. {self.verdict}".strip()]
        if self.critical_weaknesses:
            lines.append("Critical weaknesses to fix:")
            lines.extend(f"- {w}" for w in self.critical_weaknesses)
        if self.surgical_plan and not self.surgical_plan.is_empty():
            lines.append(f"Diagnosis: {self.surgical_plan.diagnosis}")
            lines.append(f"Procedure: {self.surgical_plan.procedure}")
            lines.append(f"Objective: {self.surgical_plan.objective}")
        if self.strengths:
            lines.append("Keep these strengths:")
            lines.extend(f"- {s}" for s in self.strengths)
        return "\n".join(lines)


class ContinuityState(AgentBaseModel):
    """End-of-unit snapshot handed to the next unit's writer."""

    characters: dict[str, dict[str, Any]] = Field(default_factory=dict)
    open_threads: list[str] = Field(default_factory=list)
    summary: str = ""


class WriterDraft(BaseModel):
    content: str
    continuity_state: dict[str, Any] = Field(default_factory=dict)


class ArchitectPlan(AgentBaseModel):
    """World bible plus per-unit outline produced at planning time."""

    world_bible: WorldBible = Field(default_factory=WorldBible)
    outline: list[UnitSpec] = Field(default_factory=list)


class CheckpointReport(AgentBaseModel):
    issues: list[Issue] = Field(default_factory=list)
    notes: str = ""


class TranslationResult(AgentBaseModel):
    translated_text: str
    source_language: str = ""
    target_language: str = ""
    notes: str = ""
