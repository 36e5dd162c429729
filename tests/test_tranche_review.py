import pytest
from core.usage import TokenUsage
from models.review_models import Issue, PartialVerdict, Severity, Verdict
from models.unit_models import Unit
from orchestration.tranche_review import TrancheReviewer, split_into_tranches
from processing.pattern_scan import PatternScanner

CRITICAL = Issue(
    affected_units=[10, 11],
    category="continuity",
    description="Ana is in two cities at once",
    severity=Severity.CRITICAL,
    correction_instructions="Move the meeting to the capital",
)


class FakeReviewer:
    model_name = "reviewer-model"

    def __init__(self, partials):
        self.partials = list(partials)
        self.calls = []

    async def review_tranche(self, units, **kwargs):
        self.calls.append(([u.number for u in units], kwargs))
        return self.partials.pop(0), TokenUsage(100, 20, 0)


def _units(count):
    return [
        Unit(project_id="p", number=n, content=f"Text of chapter {n}.", status="completed")
        for n in range(1, count + 1)
    ]


def _reviewer(fake, **kwargs):
    return TrancheReviewer(
        fake,
        scanner=PatternScanner([]),
        tranche_size=8,
        max_tranche_tokens=100_000,
        max_passes=3,
        max_retained_issues=10,
        **kwargs,
    )


def test_split_into_tranches_keeps_canonical_order():
    units = [Unit(project_id="p", number=n) for n in (998, 2, 0, 1, 999)]
    tranches = split_into_tranches(units, 2)
    assert [[u.number for u in t] for t in tranches] == [[0, 1], [2, 998], [999]]


@pytest.mark.asyncio
async def test_critical_issue_in_second_tranche_forces_revision():
    fake = FakeReviewer(
        [
            PartialVerdict(score=9),
            PartialVerdict(score=9, issues=[CRITICAL]),
            PartialVerdict(score=9),
        ]
    )

    verdict = await _reviewer(fake).review_manuscript(_units(20))

    assert [len(units) for units, _ in fake.calls] == [8, 8, 4]
    assert fake.calls[1][0] == list(range(9, 17))
    assert verdict.tranche_count == 3
    assert verdict.score <= 6
    assert verdict.raw_score == pytest.approx(9)
    assert verdict.verdict is Verdict.REQUIRES_REVISION
    assert {10, 11} <= verdict.units_to_rewrite
    third_kwargs = fake.calls[2][1]
    assert any(
        i.description == CRITICAL.description for i in third_kwargs["previous_issues"]
    )
    assert fake.calls[0][1]["previous_issues"] == []


@pytest.mark.asyncio
async def test_last_pass_never_requires_revision():
    fake = FakeReviewer([PartialVerdict(score=9, issues=[CRITICAL])])
    verdict = await _reviewer(fake).review_manuscript(_units(3), pass_number=3)
    assert fake.calls[0][1]["final_pass"] is True
    assert verdict.verdict is Verdict.APPROVED_WITH_RESERVATIONS


@pytest.mark.asyncio
async def test_clean_manuscript_is_approved():
    fake = FakeReviewer([PartialVerdict(score=9.5), PartialVerdict(score=9.5)])
    verdict = await _reviewer(fake).review_manuscript(_units(10))
    assert verdict.verdict is Verdict.APPROVED
    assert verdict.units_to_rewrite == set()


@pytest.mark.asyncio
async def test_duplicate_issues_across_tranches_are_merged():
    repeat = CRITICAL.model_copy(update={"affected_units": {3}})
    fake = FakeReviewer(
        [PartialVerdict(score=5, issues=[repeat]), PartialVerdict(score=5, issues=[CRITICAL])]
    )
    verdict = await _reviewer(fake).review_manuscript(_units(12))
    assert len(verdict.issues) == 1
    assert verdict.issues[0].affected_units == {3, 10, 11}


@pytest.mark.asyncio
async def test_unknown_units_are_not_scheduled_for_rewrite():
    ghost = Issue(affected_units=[42], description="ghost chapter", severity="major")
    fake = FakeReviewer([PartialVerdict(score=7, issues=[ghost])])
    verdict = await _reviewer(fake).review_manuscript(_units(4))
    assert verdict.units_to_rewrite == set()


@pytest.mark.asyncio
async def test_previously_fixed_only_sent_after_first_pass():
    fixed = [Issue(description="old problem")]
    fake = FakeReviewer([PartialVerdict(score=9.5), PartialVerdict(score=9.5)])
    reviewer = _reviewer(fake)
    await reviewer.review_manuscript(_units(2), pass_number=1, previously_fixed=fixed)
    await reviewer.review_manuscript(_units(2), pass_number=2, previously_fixed=fixed)
    assert fake.calls[0][1]["previously_fixed"] == ()
    assert fake.calls[1][1]["previously_fixed"] == fixed


@pytest.mark.asyncio
async def test_empty_manuscript_is_trivially_approved():
    fake = FakeReviewer([])
    verdict = await _reviewer(fake).review_manuscript([])
    assert verdict.verdict is Verdict.APPROVED
    assert fake.calls == []
