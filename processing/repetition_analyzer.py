# processing/repetition_analyzer.py
"""Detect phrases that recur across many units of a manuscript."""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from config import settings
from models.unit_models import unit_sort_key

logger = structlog.get_logger(__name__)

_TOKEN_RE = re.compile(r"[^\W\d_]+", re.UNICODE)


@dataclass(frozen=True)
class RepeatedPhrase:
    phrase: str
    units: tuple[int, ...]


class RepetitionAnalyzer:
    """Detect repeated n-gram phrases spread over several units."""

    def __init__(
        self,
        n: int | None = None,
        unit_threshold: int | None = None,
        limit: int | None = None,
    ) -> None:
        self.n = n or settings.REPETITION_NGRAM_SIZE
        self.unit_threshold = unit_threshold or settings.REPETITION_UNIT_THRESHOLD
        self.limit = limit or settings.REPETITION_REPORT_LIMIT

    def _ngrams(self, text: str) -> set[str]:
        tokens = _TOKEN_RE.findall(text.lower())
        found: set[str] = set()
        for i in range(len(tokens) - self.n + 1):
            window = tokens[i : i + self.n]
            # Skip runs of function words ("and then he was").
            if sum(len(t) > 3 for t in window) < 2:
                continue
            found.add(" ".join(window))
        return found

    def analyze(self, texts: Mapping[int, str]) -> list[RepeatedPhrase]:
        """Return phrases occurring in at least ``unit_threshold`` units."""
        phrase_units: dict[str, set[int]] = defaultdict(set)
        for number, text in texts.items():
            if not text or not text.strip():
                continue
            for phrase in self._ngrams(text):
                phrase_units[phrase].add(number)

        repeated = [
            RepeatedPhrase(phrase, tuple(sorted(units, key=unit_sort_key)))
            for phrase, units in phrase_units.items()
            if len(units) >= self.unit_threshold
        ]
        repeated.sort(key=lambda r: (-len(r.units), r.phrase))
        if repeated:
            logger.info(
                "RepetitionAnalyzer found %s phrases repeated across units.",
                len(repeated),
            )
        return repeated[: self.limit]
