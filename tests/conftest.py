# tests/conftest.py
import json
import os
import sys
from collections.abc import Callable

import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Ensure placeholder secrets do not trigger validators during tests
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("NEO4J_PASSWORD", "test-password")
os.environ.setdefault("ENABLE_RICH_PROGRESS", "false")

from core import llm_interface  # noqa: E402
from core.llm_interface import CompletionResult  # noqa: E402
from core.usage import TokenUsage  # noqa: E402
from data_access.record_store import InMemoryRecordStore  # noqa: E402
from data_access.repositories import Repositories  # noqa: E402


class ScriptedLLM:
    """Stand-in for ``LLMService`` answering from a list or a callable.

    Replies may be strings, dicts (sent as JSON) or ``CompletionResult``.
    """

    def __init__(self, replies: list | Callable[[str, str], object]) -> None:
        self.replies = replies
        self.calls: list[dict] = []
        self.request_count = 0

    async def complete(self, system_prompt, messages, sampling, *, auto_clean_response=True):
        prompt = messages[-1]["content"]
        self.calls.append({"system": system_prompt, "prompt": prompt, "sampling": sampling})
        self.request_count += 1
        if callable(self.replies):
            reply = self.replies(system_prompt, prompt)
        else:
            reply = self.replies.pop(0)
        if isinstance(reply, CompletionResult):
            return reply
        if isinstance(reply, (dict, list)):
            reply = json.dumps(reply)
        return CompletionResult(text=reply, usage=TokenUsage(10, 5, 0))


@pytest.fixture
def make_llm():
    return ScriptedLLM


@pytest.fixture
def repos():
    return Repositories(InMemoryRecordStore())


@pytest.fixture(autouse=True)
def _offline_tokenizer(monkeypatch):
    """Token counts use the character heuristic; no encoding downloads."""
    monkeypatch.setattr(llm_interface, "_get_tokenizer", lambda _name: None)
