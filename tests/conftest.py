"""Shared fixtures: isolated data directory, scripted model backend, recording sleep."""

from __future__ import annotations

import json
from typing import (
    Any,
    List,
    Sequence,
)

import pytest

from expensebot.agent.llm_backends import BaseBackend
from expensebot.config import settings


class ScriptedBackend(BaseBackend):
    """
    Model backend that replays *replies* in order (the last one repeats forever).
    Exception instances are raised instead of returned.  Dicts are sent as JSON.
    """

    def __init__(self, replies: Sequence[Any]):
        super().__init__(timeout=1.0)
        self.replies: List[Any] = list(replies)
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies[min(len(self.prompts), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that only records the requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Point the expense file and conversation store at a fresh temporary directory."""
    monkeypatch.setattr(settings, "DATA_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def scripted_backend():
    """The :class:`ScriptedBackend` class, so tests can build one per scenario."""
    return ScriptedBackend


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


def answer(text: str) -> dict:
    return {"tool_name": "answerUser", "parameters": {"answer": text}}


@pytest.fixture
def answer_call():
    """Builder for an ``answerUser`` reply."""
    return answer
