# orchestration/tranche_review.py
"""Whole-manuscript review in bounded slices ("tranches").

Each tranche is reviewed with the whole-manuscript pre-analysis and the
issues raised so far, so cross-tranche problems are caught once. Findings
are deduplicated, the averaged score is clamped against the severities
reported and a single verdict is derived.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

import structlog

from agents.final_reviewer_agent import FinalReviewerAgent
from config import settings
from core.llm_interface import count_tokens, truncate_text_by_tokens
from models.review_models import Issue, ReviewVerdict, Verdict
from models.unit_models import Unit, sort_units
from orchestration.token_accountant import Stage, TokenAccountant
from processing.issue_dedup import IssueDeduplicator
from processing.pattern_scan import PatternScanner, build_scanner
from processing.score_coherence import clamp_score, derive_verdict

logger = structlog.get_logger(__name__)

# Room left in each tranche for instructions, brief and earlier issues.
PROMPT_OVERHEAD_TOKENS = 4000


def split_into_tranches(units: Sequence[Unit], size: int) -> list[list[Unit]]:
    ordered = sort_units(units)
    size = max(1, size)
    return [ordered[i : i + size] for i in range(0, len(ordered), size)]


class TrancheReviewer:
    def __init__(
        self,
        reviewer: FinalReviewerAgent,
        *,
        scanner: PatternScanner | None = None,
        deduplicator: IssueDeduplicator | None = None,
        accountant: TokenAccountant | None = None,
        tranche_size: int | None = None,
        max_tranche_tokens: int | None = None,
        max_passes: int | None = None,
        max_retained_issues: int | None = None,
    ) -> None:
        self.reviewer = reviewer
        self.scanner = scanner or build_scanner()
        self.deduplicator = deduplicator or IssueDeduplicator()
        self.accountant = accountant
        self.tranche_size = tranche_size or settings.REVIEW_TRANCHE_SIZE
        self.max_tranche_tokens = max_tranche_tokens or settings.REVIEW_TRANCHE_MAX_TOKENS
        self.max_passes = max_passes or settings.REVIEW_MAX_PASSES
        self.max_retained_issues = (
            max_retained_issues or settings.REVIEW_MAX_RETAINED_ISSUES
        )

    def fit_tranche(self, tranche: Sequence[Unit], reserved_tokens: int = 0) -> list[Unit]:
        """Truncate unit texts evenly so the tranche fits the token limit."""
        model = self.reviewer.model_name
        budget = max(self.max_tranche_tokens - PROMPT_OVERHEAD_TOKENS - reserved_tokens, len(tranche))
        total = sum(count_tokens(u.content or "", model) for u in tranche)
        if total <= budget:
            return list(tranche)
        per_unit = max(budget // max(len(tranche), 1), 1)
        logger.info(
            "Tranche exceeds token budget; truncating unit texts.",
            tokens=total,
            budget=budget,
            per_unit=per_unit,
        )
        return [
            u.model_copy(
                update={"content": truncate_text_by_tokens(u.content or "", model, per_unit)}
            )
            for u in tranche
        ]

    async def review_manuscript(
        self,
        units: Sequence[Unit],
        world_brief: str = "",
        pass_number: int = 1,
        previously_fixed: Sequence[Issue] = (),
    ) -> ReviewVerdict:
        final_pass = pass_number >= self.max_passes
        tranches = split_into_tranches(units, self.tranche_size)
        if not tranches:
            logger.warning("Review requested for an empty manuscript.")
            return ReviewVerdict(
                verdict=Verdict.APPROVED, score=10.0, raw_score=10.0, pass_number=pass_number
            )

        pre_analysis = self.scanner.scan(units).render()
        reserved = count_tokens(world_brief + pre_analysis, self.reviewer.model_name)
        collected: list[Issue] = []
        scores: list[float] = []

        for index, tranche in enumerate(tranches, start=1):
            running = self.deduplicator.deduplicate(collected)
            partial, usage = await self.reviewer.review_tranche(
                self.fit_tranche(tranche, reserved),
                pass_number=pass_number,
                tranche_index=index,
                tranche_count=len(tranches),
                world_brief=world_brief,
                pre_analysis=pre_analysis,
                previous_issues=running,
                previously_fixed=previously_fixed if pass_number > 1 else (),
                final_pass=final_pass,
            )
            if self.accountant is not None:
                await self.accountant.record(Stage.FINAL_REVIEW, usage)
            scores.append(partial.score)
            collected.extend(partial.issues)
            logger.info(
                f"Tranche {index}/{len(tranches)} reviewed.",
                pass_number=pass_number,
                units=[u.number for u in tranche],
                score=partial.score,
                issues=len(partial.issues),
            )

        issues = self.deduplicator.deduplicate(collected)
        raw_score = sum(scores) / len(scores)
        score = clamp_score(raw_score, issues)
        verdict = derive_verdict(score, issues, final_pass=final_pass)

        present = {u.number for u in units}
        to_rewrite: set[int] = set()
        for issue in issues[: self.max_retained_issues]:
            to_rewrite |= issue.affected_units
        unknown = to_rewrite - present
        if unknown:
            logger.warning("Review named units that do not exist.", units=sorted(unknown))
            to_rewrite &= present

        if final_pass and issues:
            categories = Counter(i.category for i in issues)
            severities = Counter(i.severity.value for i in issues)
            logger.warning(
                f"Final review pass accepted the manuscript as {verdict.value} despite open issues.",
                issues=len(issues),
                severities=dict(severities),
                categories=dict(categories),
                score=score,
            )

        logger.info(
            f"Review pass {pass_number} verdict: {verdict.value}.",
            score=score,
            raw_score=round(raw_score, 2),
            issues=len(issues),
            units_to_rewrite=sorted(to_rewrite),
        )
        return ReviewVerdict(
            verdict=verdict,
            score=score,
            raw_score=raw_score,
            issues=issues,
            units_to_rewrite=to_rewrite,
            pass_number=pass_number,
            tranche_count=len(tranches),
        )
