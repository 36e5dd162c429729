# models/review_models.py
"""Review findings and verdicts."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .unit_models import normalize_unit_number


class Severity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.MAJOR: 1, Severity.MINOR: 2}

_SEVERITY_ALIASES = {
    "critical": Severity.CRITICAL,
    "critica": Severity.CRITICAL,
    "crítica": Severity.CRITICAL,
    "high": Severity.MAJOR,
    "major": Severity.MAJOR,
    "mayor": Severity.MAJOR,
    "medium": Severity.MAJOR,
    "minor": Severity.MINOR,
    "menor": Severity.MINOR,
    "low": Severity.MINOR,
}


class Verdict(str, Enum):
    APPROVED = "APPROVED"
    APPROVED_WITH_RESERVATIONS = "APPROVED_WITH_RESERVATIONS"
    REQUIRES_REVISION = "REQUIRES_REVISION"


class Issue(BaseModel):
    """A single finding raised by a review step."""

    affected_units: set[int] = Field(default_factory=set)
    category: str = "other"
    description: str
    severity: Severity = Severity.MINOR
    correction_instructions: str = ""

    @field_validator("affected_units", mode="before")
    @classmethod
    def _normalize_units(cls, value: object) -> object:
        if value is None:
            return set()
        if isinstance(value, int):
            value = [value]
        if isinstance(value, (list, tuple, set, frozenset)):
            return {normalize_unit_number(int(v)) for v in value}
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower().replace(" ", "_") or "other"
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: object) -> object:
        if isinstance(value, str):
            return _SEVERITY_ALIASES.get(value.strip().lower(), Severity.MINOR)
        return value

    def summary_line(self) -> str:
        units = ", ".join(str(u) for u in sorted(self.affected_units)) or "-"
        return f"[{self.severity.value}] {self.category} (units {units}): {self.description}"


class PartialVerdict(BaseModel):
    """What one tranche review call returns."""

    score: float = 0.0
    issues: list[Issue] = Field(default_factory=list)
    units_to_rewrite: set[int] = Field(default_factory=set)

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: object) -> object:
        if isinstance(value, (int, float)):
            return max(0.0, min(10.0, float(value)))
        return value


class ReviewVerdict(BaseModel):
    verdict: Verdict
    score: float
    raw_score: float
    issues: list[Issue] = Field(default_factory=list)
    units_to_rewrite: set[int] = Field(default_factory=set)
    pass_number: int = 1
    tranche_count: int = 0

    def issues_for_unit(self, number: int) -> list[Issue]:
        return [i for i in self.issues if number in i.affected_units]
