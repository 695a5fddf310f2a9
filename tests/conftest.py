"""Shared fixtures for nswot tests."""

from typing import Callable, Dict, List, Optional, Sequence, Union

import pytest

from nswot.core.config import reset_settings
from nswot.core.models import AnalysisSnapshot, AnonymizedProfile
from nswot.llm.types import ChatMessage, CompletionResponse, FinishReason
from nswot.utils.reliability import clear_circuit_breakers

from sample_data import JIRA_MARKDOWN


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    """Keep settings and breaker registry from leaking between tests."""
    for name in ("NSWOT_LLM_PROVIDER", "NSWOT_MODEL", "NSWOT_PIPELINE_MODE"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    clear_circuit_breakers()
    yield
    reset_settings()
    clear_circuit_breakers()


@pytest.fixture
def profiles() -> List[AnonymizedProfile]:
    return [
        AnonymizedProfile(
            label="Stakeholder A",
            role="Engineering Manager",
            team="Platform",
            concerns="Release cadence",
            priorities="Reliability",
            quotes=["We own the platform end to end"],
            notes=None,
        ),
        AnonymizedProfile(
            label="Stakeholder B",
            role="Senior Engineer",
            team="Platform",
            concerns="On-call load",
            priorities=None,
            quotes=["Pages every night"],
            notes="Joined last quarter",
        ),
    ]


@pytest.fixture
def snapshot(profiles) -> AnalysisSnapshot:
    return AnalysisSnapshot(profiles=profiles, sources={"jira": JIRA_MARKDOWN})


Reply = Union[str, CompletionResponse, Exception]


class ScriptedCaller:
    """LLM caller double that replays scripted replies and records each call."""

    def __init__(self, replies: Sequence[Reply]):
        self.replies = list(replies)
        self.calls: List[List[ChatMessage]] = []

    def call(
        self,
        messages: List[ChatMessage],
        model_id: str,
        on_token: Optional[Callable[[int], None]] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
    ) -> CompletionResponse:
        self.calls.append(list(messages))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            if on_chunk:
                on_chunk(reply)
            if on_token:
                on_token(len(reply) // 4)
            return CompletionResponse(content=reply, finish_reason=FinishReason.STOP)
        return reply


@pytest.fixture
def scripted_caller() -> Callable[[Sequence[Reply]], ScriptedCaller]:
    return ScriptedCaller


class ProgressRecorder:
    def __init__(self):
        self.events: List[Dict[str, str]] = []

    def __call__(self, stage: str, message: str) -> None:
        self.events.append({"stage": stage, "message": message})

    @property
    def stages(self) -> List[str]:
        return [e["stage"] for e in self.events]


@pytest.fixture
def progress() -> ProgressRecorder:
    return ProgressRecorder()
