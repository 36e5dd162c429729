# models/unit_models.py
"""Manuscript units (chapters and special segments) and their canonical order.

Special units use out-of-band sentinel numbers. Two conventions exist in
stored data: ``998``/``999`` and ``-1``/``-2`` for the epilogue and the
author's note; both normalize to the same unit.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, Field, field_validator

PROLOGUE_NUMBER = 0
EPILOGUE_NUMBER = 998
AUTHOR_NOTE_NUMBER = 999

_EPILOGUE_ALIASES = frozenset({EPILOGUE_NUMBER, -1})
_AUTHOR_NOTE_ALIASES = frozenset({AUTHOR_NOTE_NUMBER, -2})


class UnitKind(str, Enum):
    PROLOGUE = "prologue"
    CHAPTER = "chapter"
    EPILOGUE = "epilogue"
    AUTHOR_NOTE = "author_note"


_KIND_RANK = {
    UnitKind.PROLOGUE: 0,
    UnitKind.CHAPTER: 1,
    UnitKind.EPILOGUE: 2,
    UnitKind.AUTHOR_NOTE: 3,
}


def unit_kind(number: int) -> UnitKind:
    if number == PROLOGUE_NUMBER:
        return UnitKind.PROLOGUE
    if number in _EPILOGUE_ALIASES:
        return UnitKind.EPILOGUE
    if number in _AUTHOR_NOTE_ALIASES:
        return UnitKind.AUTHOR_NOTE
    return UnitKind.CHAPTER


def normalize_unit_number(number: int) -> int:
    """Map any sentinel alias onto its canonical stored number."""
    kind = unit_kind(number)
    if kind is UnitKind.EPILOGUE:
        return EPILOGUE_NUMBER
    if kind is UnitKind.AUTHOR_NOTE:
        return AUTHOR_NOTE_NUMBER
    return number


def unit_sort_key(number: int) -> tuple[int, int]:
    """Total order: prologue, numbered units ascending, epilogue, author's note."""
    kind = unit_kind(number)
    return _KIND_RANK[kind], number if kind is UnitKind.CHAPTER else 0


def unit_label(number: int) -> str:
    kind = unit_kind(number)
    if kind is UnitKind.PROLOGUE:
        return "Prologue"
    if kind is UnitKind.EPILOGUE:
        return "Epilogue"
    if kind is UnitKind.AUTHOR_NOTE:
        return "Author's note"
    return f"Chapter {number}"


class UnitStatus(str, Enum):
    PENDING = "pending"
    WRITING = "writing"
    EDITING = "editing"
    REVISION = "revision"
    COMPLETED = "completed"


class UnitSpec(BaseModel):
    """The plan for one unit, produced at planning time."""

    number: int
    title: str = ""
    summary: str = ""
    key_events: list[str] = Field(default_factory=list)
    characters: list[str] = Field(default_factory=list)
    setting: str = ""
    target_words: int = 2500

    @field_validator("number")
    @classmethod
    def _canonical_number(cls, value: int) -> int:
        return normalize_unit_number(value)

    @property
    def label(self) -> str:
        return unit_label(self.number)


class Unit(BaseModel):
    project_id: str
    number: int
    title: str = ""
    content: str = ""
    status: UnitStatus = UnitStatus.PENDING
    continuity_state: dict[str, Any] = Field(default_factory=dict)
    word_count: int = 0
    plan: UnitSpec | None = None
    editor_score: float | None = None
    attempts: int = 0

    @field_validator("number")
    @classmethod
    def _canonical_number(cls, value: int) -> int:
        return normalize_unit_number(value)

    @property
    def record_id(self) -> str:
        return f"{self.project_id}:{self.number}"

    @property
    def label(self) -> str:
        return unit_label(self.number)

    @property
    def sort_key(self) -> tuple[int, int]:
        return unit_sort_key(self.number)


def count_words(text: str) -> int:
    return len(text.split()) if text else 0


_U = TypeVar("_U", Unit, UnitSpec)


def sort_units(units: Iterable[_U]) -> list[_U]:
    return sorted(units, key=lambda u: unit_sort_key(u.number))
