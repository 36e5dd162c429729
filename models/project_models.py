# models/project_models.py
"""Project records and the user-supplied project definition."""

from __future__ import annotations

import uuid
from enum import Enum

from pydantic import BaseModel, Field

from core.usage import TokenUsage


class ProjectStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    REVIEWING = "reviewing"
    COMPLETED = "completed"
    ERROR = "error"


class TokenTotals(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    thinking_tokens: int = 0

    @classmethod
    def from_usage(cls, usage: TokenUsage) -> TokenTotals:
        return cls(**usage.to_dict())


class Project(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    genre: str = ""
    premise: str = ""
    locale: str = "en"
    chapter_count: int = 10
    has_prologue: bool = False
    has_epilogue: bool = False
    has_author_note: bool = False
    status: ProjectStatus = ProjectStatus.IDLE
    token_usage: TokenTotals = Field(default_factory=TokenTotals)
    final_score: float | None = None
    final_verdict: str | None = None
    error: str | None = None


class ProjectDefinition(BaseModel):
    """Shape of the YAML file passed to ``main.py generate``."""

    title: str = Field(..., min_length=1)
    genre: str = ""
    premise: str = ""
    locale: str = "en"
    chapter_count: int = Field(10, ge=1, le=997)
    has_prologue: bool = False
    has_epilogue: bool = False
    has_author_note: bool = False
    world_notes: str = ""

    def to_project(self) -> Project:
        return Project(**self.model_dump(exclude={"world_notes"}))
