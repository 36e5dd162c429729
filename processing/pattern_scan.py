# processing/pattern_scan.py
"""Whole-manuscript pattern scan run before tranche review.

Some problems only show in aggregate: a convenient coincidence is fine once,
a tic when it drives the plot in five chapters. The bank is plain data, a
list of ``(pattern, label, threshold)`` detectors where ``threshold`` is the
number of distinct units a pattern must appear in before it is reported.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path

import structlog
import yaml

from config import settings
from models.unit_models import Unit, sort_units, unit_label
from processing.repetition_analyzer import RepeatedPhrase, RepetitionAnalyzer

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PatternDetector:
    pattern: str
    label: str
    threshold: int

    @cached_property
    def regex(self) -> re.Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE | re.UNICODE)


PLOT_CONVENIENCE = "plot convenience"
REPEATED_GESTURE = "repeated gesture"

DEFAULT_PATTERN_BANK: tuple[PatternDetector, ...] = (
    PatternDetector(
        r"\b(just|right) (at|in) that (very )?moment\b",
        f"{PLOT_CONVENIENCE}: 'just at that moment'",
        3,
    ),
    PatternDetector(
        r"\bby (sheer |pure )?(chance|coincidence)\b",
        f"{PLOT_CONVENIENCE}: coincidence",
        3,
    ),
    PatternDetector(
        r"\b(luckily|conveniently|as luck would have it)\b",
        f"{PLOT_CONVENIENCE}: lucky break",
        3,
    ),
    PatternDetector(
        r"\bsuddenly (remembered|realized|realised)\b",
        f"{PLOT_CONVENIENCE}: sudden recollection",
        3,
    ),
    PatternDetector(
        r"\bjusto en (ese|aquel) (mismo )?(momento|instante)\b",
        f"{PLOT_CONVENIENCE}: 'justo en ese momento'",
        3,
    ),
    PatternDetector(
        r"\b(por (pura )?casualidad|casualmente|por suerte)\b",
        f"{PLOT_CONVENIENCE}: casualidad",
        3,
    ),
    PatternDetector(
        r"\b(raised|arched) an eyebrow\b", f"{REPEATED_GESTURE}: raised eyebrow", 5
    ),
    PatternDetector(
        r"\b((clenched|tightened|set) (his|her|their) jaw|jaw (clenched|tightened))\b",
        f"{REPEATED_GESTURE}: clenched jaw",
        5,
    ),
    PatternDetector(r"\bnodded slowly\b", f"{REPEATED_GESTURE}: slow nod", 5),
    PatternDetector(
        r"\bran (a|his|her|their) hand through (his|her|their) hair\b",
        f"{REPEATED_GESTURE}: hand through hair",
        5,
    ),
    PatternDetector(
        r"\blet out a breath (he|she|they) (didn't|did not) know\b",
        f"{REPEATED_GESTURE}: held breath cliche",
        2,
    ),
    PatternDetector(r"\barque[oó] una ceja\b", f"{REPEATED_GESTURE}: ceja arqueada", 5),
    PatternDetector(r"\bfrunci[oó] el ce[nñ]o\b", f"{REPEATED_GESTURE}: ceño fruncido", 5),
    PatternDetector(
        r"\bapret[oó] (la mand[ií]bula|los dientes)\b",
        f"{REPEATED_GESTURE}: mandíbula apretada",
        5,
    ),
)


def load_pattern_bank(path: str | Path) -> list[PatternDetector]:
    """Load extra detectors from a YAML list of ``{pattern, label, threshold}``."""
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or []
    if not isinstance(data, list):
        raise ValueError(f"Pattern bank {path} must contain a YAML list.")
    detectors = []
    for entry in data:
        detector = PatternDetector(
            pattern=str(entry["pattern"]),
            label=str(entry["label"]),
            threshold=int(entry.get("threshold", 3)),
        )
        detector.regex  # compile now so a bad pattern fails at load time
        detectors.append(detector)
    return detectors


@dataclass(frozen=True)
class PatternFinding:
    label: str
    threshold: int
    units: tuple[int, ...]
    occurrences: int


@dataclass
class PreAnalysisReport:
    findings: list[PatternFinding] = field(default_factory=list)
    repeated_phrases: list[RepeatedPhrase] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.findings or self.repeated_phrases)

    def render(self) -> str:
        if self.is_empty:
            return "PRE-ANALYSIS (whole manuscript): no recurring patterns above threshold."
        lines = ["PRE-ANALYSIS (whole manuscript, detected mechanically):"]
        for f in self.findings:
            where = ", ".join(unit_label(u) for u in f.units)
            lines.append(
                f"- {f.label}: {f.occurrences} occurrence(s) in {len(f.units)} units "
                f"(threshold {f.threshold}): {where}"
            )
        for r in self.repeated_phrases:
            where = ", ".join(unit_label(u) for u in r.units)
            lines.append(f'- repeated phrase "{r.phrase}" in {len(r.units)} units: {where}')
        return "\n".join(lines)


class PatternScanner:
    def __init__(
        self,
        detectors: Sequence[PatternDetector] | None = None,
        repetition: RepetitionAnalyzer | None = None,
    ) -> None:
        self.detectors = list(detectors) if detectors is not None else list(DEFAULT_PATTERN_BANK)
        self.repetition = repetition

    def scan(self, units: Iterable[Unit]) -> PreAnalysisReport:
        ordered = sort_units(units)
        report = PreAnalysisReport()
        for detector in self.detectors:
            hits: list[int] = []
            occurrences = 0
            for unit in ordered:
                count = len(detector.regex.findall(unit.content or ""))
                if count:
                    hits.append(unit.number)
                    occurrences += count
            if len(hits) >= detector.threshold:
                report.findings.append(
                    PatternFinding(detector.label, detector.threshold, tuple(hits), occurrences)
                )
        if self.repetition is not None:
            report.repeated_phrases = self.repetition.analyze(
                {u.number: u.content for u in ordered}
            )
        if not report.is_empty:
            logger.info(
                "Pre-analysis scan flagged recurring patterns.",
                patterns=len(report.findings),
                phrases=len(report.repeated_phrases),
            )
        return report


def build_scanner() -> PatternScanner:
    """Scanner with the built-in bank, any configured extras and phrase repetition."""
    detectors = list(DEFAULT_PATTERN_BANK)
    if settings.PATTERN_BANK_FILE:
        detectors.extend(load_pattern_bank(settings.PATTERN_BANK_FILE))
    return PatternScanner(detectors, RepetitionAnalyzer())
