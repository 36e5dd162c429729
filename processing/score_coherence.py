# processing/score_coherence.py
"""Keep a review score consistent with the findings it reports."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import structlog

from config import settings
from models.review_models import Issue, Severity, Verdict

logger = structlog.get_logger(__name__)

PERFECT_SCORE = 10.0


@dataclass(frozen=True)
class SeverityCounts:
    critical: int = 0
    major: int = 0
    minor: int = 0

    @classmethod
    def of(cls, issues: Iterable[Issue]) -> SeverityCounts:
        critical = major = minor = 0
        for issue in issues:
            if issue.severity is Severity.CRITICAL:
                critical += 1
            elif issue.severity is Severity.MAJOR:
                major += 1
            else:
                minor += 1
        return cls(critical, major, minor)

    @property
    def total(self) -> int:
        return self.critical + self.major + self.minor


@dataclass(frozen=True)
class ScoreCaps:
    critical: float = 6.0
    many_majors: float = 7.0
    two_majors: float = 7.5
    one_major: float = 8.0
    minors: Sequence[float] = (9.0, 8.5, 8.0)
    many_minors: float = 8.0

    @classmethod
    def from_settings(cls) -> ScoreCaps:
        return cls(
            critical=settings.SCORE_CAP_CRITICAL,
            many_majors=settings.SCORE_CAP_MANY_MAJORS,
            two_majors=settings.SCORE_CAP_TWO_MAJORS,
            one_major=settings.SCORE_CAP_ONE_MAJOR,
            minors=tuple(settings.SCORE_CAP_MINORS),
            many_minors=settings.SCORE_CAP_MANY_MINORS,
        )


def max_allowed_score(
    critical: int, major: int, minor: int, caps: ScoreCaps | None = None
) -> float:
    """Highest score the given finding counts permit; the tightest cap wins."""
    caps = caps or ScoreCaps.from_settings()
    cap = PERFECT_SCORE
    if critical > 0:
        cap = min(cap, caps.critical)
    if major >= 3:
        cap = min(cap, caps.many_majors)
    elif major == 2:
        cap = min(cap, caps.two_majors)
    elif major == 1:
        cap = min(cap, caps.one_major)
    if 0 < minor <= len(caps.minors):
        cap = min(cap, caps.minors[minor - 1])
    elif minor > len(caps.minors):
        cap = min(cap, caps.many_minors)
    return cap


def clamp_score(
    raw_score: float, issues: Sequence[Issue], caps: ScoreCaps | None = None
) -> float:
    counts = SeverityCounts.of(issues)
    cap = max_allowed_score(counts.critical, counts.major, counts.minor, caps)
    score = max(0.0, min(PERFECT_SCORE, raw_score))
    if score > cap:
        logger.warning(
            "Review score clamped to stay coherent with reported issues.",
            raw_score=round(score, 2),
            clamped_score=cap,
            critical=counts.critical,
            major=counts.major,
            minor=counts.minor,
        )
        return cap
    return score


def derive_verdict(
    score: float,
    issues: Sequence[Issue],
    *,
    final_pass: bool = False,
    approval_score: float | None = None,
) -> Verdict:
    """APPROVED needs a high score and zero issues; the final pass never rejects."""
    threshold = (
        approval_score if approval_score is not None else settings.REVIEW_APPROVAL_SCORE
    )
    if score >= threshold and not issues:
        return Verdict.APPROVED
    if final_pass:
        return Verdict.APPROVED_WITH_RESERVATIONS
    return Verdict.REQUIRES_REVISION
