# processing/issue_dedup.py
"""Merge near-duplicate review findings.

Two issues are duplicates when they share a category and their descriptions
are similar enough under a pluggable similarity function. Merging unions the
affected units, keeps the most severe rating and every distinct correction
instruction. The first issue of a group keeps its description, so a second
pass over already deduplicated output changes nothing.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

import structlog

from config import settings
from models.review_models import Issue
from utils.similarity import bag_of_words_cosine, keyword_overlap, strip_accents

logger = structlog.get_logger(__name__)

SimilarityFn = Callable[[str, str], float]

SIMILARITY_FUNCTIONS: dict[str, Callable[..., float]] = {
    "keyword_overlap": keyword_overlap,
    "cosine": bag_of_words_cosine,
}


def _normalized(text: str) -> str:
    return " ".join(strip_accents(text.lower()).split())


def sort_by_severity(issues: Iterable[Issue]) -> list[Issue]:
    """Critical first; stable within a severity."""
    return sorted(issues, key=lambda issue: issue.severity.rank)


class IssueDeduplicator:
    def __init__(
        self,
        similarity: SimilarityFn | str | None = None,
        threshold: float | None = None,
        min_keyword_length: int | None = None,
    ) -> None:
        self.threshold = (
            threshold if threshold is not None else settings.ISSUE_SIMILARITY_THRESHOLD
        )
        min_len = (
            min_keyword_length
            if min_keyword_length is not None
            else settings.ISSUE_KEYWORD_MIN_LENGTH
        )
        if similarity is None:
            similarity = settings.ISSUE_SIMILARITY_METHOD
        if isinstance(similarity, str):
            try:
                base = SIMILARITY_FUNCTIONS[similarity]
            except KeyError:
                raise ValueError(
                    f"Unknown similarity method '{similarity}'. "
                    f"Expected one of {sorted(SIMILARITY_FUNCTIONS)}."
                ) from None
            self.similarity: SimilarityFn = lambda a, b: base(a, b, min_len)
        else:
            self.similarity = similarity

    def is_duplicate(self, a: Issue, b: Issue) -> bool:
        if a.category != b.category:
            return False
        if _normalized(a.description) == _normalized(b.description):
            return True
        return self.similarity(a.description, b.description) >= self.threshold

    @staticmethod
    def merge(primary: Issue, other: Issue) -> Issue:
        instructions = primary.correction_instructions
        extra = other.correction_instructions.strip()
        if extra and extra not in instructions:
            instructions = f"{instructions}\n{extra}" if instructions else extra
        severity = min(primary.severity, other.severity, key=lambda s: s.rank)
        return primary.model_copy(
            update={
                "affected_units": primary.affected_units | other.affected_units,
                "severity": severity,
                "correction_instructions": instructions,
            }
        )

    def deduplicate(self, issues: Iterable[Issue]) -> list[Issue]:
        groups: list[Issue] = []
        incoming = 0
        for issue in issues:
            incoming += 1
            for idx, existing in enumerate(groups):
                if self.is_duplicate(existing, issue):
                    groups[idx] = self.merge(existing, issue)
                    break
            else:
                groups.append(issue.model_copy(deep=True))
        if incoming != len(groups):
            logger.info(
                "Merged duplicate review issues.",
                incoming=incoming,
                retained=len(groups),
            )
        return sort_by_severity(groups)


def dedup_issues(issues: Iterable[Issue], **kwargs: object) -> list[Issue]:
    return IssueDeduplicator(**kwargs).deduplicate(issues)  # type: ignore[arg-type]
