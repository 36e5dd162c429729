# tests/orchestration/test_token_accountant.py
import pytest

from core.usage import TokenUsage
from orchestration.token_accountant import Stage, TokenAccountant


def test_record_usage_with_tokenusage():
    tracker = TokenAccountant("p")
    tracker.record_usage(Stage.PLANNING, TokenUsage(input_tokens=1, output_tokens=4))
    assert tracker.get_stage_total(Stage.PLANNING) == 5
    assert tracker.total == 5


def test_record_usage_with_dict_and_accumulation():
    tracker = TokenAccountant("p")
    tracker.record_usage(Stage.DRAFTING, {"output_tokens": 3})
    tracker.record_usage(Stage.EDITING, TokenUsage(0, 2, 2))
    tracker.record_usage(Stage.DRAFTING, {"output_tokens": 7})

    assert tracker.get_stage_total(Stage.DRAFTING) == 10
    assert tracker.get_stage_total("Editing") == 4
    assert tracker.get_stage_total(Stage.TRANSLATION) == 0
    assert tracker.total == 14


def test_empty_usage_is_ignored():
    tracker = TokenAccountant("p")
    tracker.record_usage(Stage.POLISH, None)
    tracker.record_usage(Stage.POLISH, TokenUsage())
    assert tracker.stage_totals == {}


def test_initial_usage_is_carried_forward():
    tracker = TokenAccountant("p", initial=TokenUsage(100, 50, 0))
    tracker.record_usage(Stage.FINAL_REVIEW, TokenUsage(1, 1, 0))
    assert tracker.total == 152
    assert tracker.get_stage_total(Stage.FINAL_REVIEW) == 2


@pytest.mark.asyncio
async def test_record_flushes_running_total_to_sink():
    flushed = []

    async def sink(project_id, usage):
        flushed.append((project_id, usage.total_tokens))

    tracker = TokenAccountant("p", sink=sink)
    await tracker.record(Stage.CHECKPOINT, TokenUsage(3, 0, 0))
    await tracker.record(Stage.CHECKPOINT, TokenUsage(2, 0, 0))
    assert flushed == [("p", 3), ("p", 5)]
