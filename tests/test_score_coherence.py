import itertools

import pytest
from models.review_models import Issue, Severity, Verdict
from processing.score_coherence import clamp_score, derive_verdict, max_allowed_score


def _issues(critical: int, major: int, minor: int) -> list[Issue]:
    issues = []
    for severity, count in (
        (Severity.CRITICAL, critical),
        (Severity.MAJOR, major),
        (Severity.MINOR, minor),
    ):
        issues.extend(
            Issue(description=f"{severity.value} {i}", severity=severity) for i in range(count)
        )
    return issues


@pytest.mark.parametrize(
    "counts, cap",
    [
        ((0, 0, 0), 10.0),
        ((1, 0, 0), 6.0),
        ((0, 3, 0), 7.0),
        ((0, 2, 0), 7.5),
        ((0, 1, 0), 8.0),
        ((0, 0, 1), 9.0),
        ((0, 0, 2), 8.5),
        ((0, 0, 3), 8.0),
        ((0, 0, 6), 8.0),
        ((1, 1, 1), 6.0),
        ((0, 1, 1), 8.0),
    ],
)
def test_max_allowed_score_table(counts, cap):
    assert max_allowed_score(*counts) == cap


def test_clamp_never_exceeds_cap_for_any_combination():
    for critical, major, minor in itertools.product(range(3), range(5), range(6)):
        issues = _issues(critical, major, minor)
        cap = max_allowed_score(critical, major, minor)
        for raw in (0.0, 5.5, 7.9, 9.0, 10.0, 12.0):
            assert clamp_score(raw, issues) <= cap


def test_clamp_keeps_scores_below_cap():
    assert clamp_score(5.0, _issues(1, 0, 0)) == 5.0


def test_verdict_requires_zero_issues_for_approval():
    assert derive_verdict(9.5, []) == Verdict.APPROVED
    assert derive_verdict(9.0, _issues(0, 0, 1)) == Verdict.REQUIRES_REVISION
    assert derive_verdict(8.9, []) == Verdict.REQUIRES_REVISION


def test_final_pass_never_requires_revision():
    for critical, major, minor in itertools.product(range(3), repeat=3):
        issues = _issues(critical, major, minor)
        for raw in (0.0, 6.0, 9.5):
            verdict = derive_verdict(clamp_score(raw, issues), issues, final_pass=True)
            assert verdict != Verdict.REQUIRES_REVISION
