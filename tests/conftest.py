from typing import List, Optional
from unittest.mock import Mock

import pytest

from autoreply.services.llm import ChatInvoker, ChatRequest, ChatResult, FailureKind


class ScriptedInvoker(ChatInvoker):
    """Invoker that plays back a fixed list of outcomes and records every call."""

    def __init__(self, outcomes: Optional[List] = None, default: str | FailureKind = "ok"):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.calls: List[tuple] = []

    def complete(self, credential, model, request: ChatRequest) -> ChatResult:
        self.calls.append((credential.index, model))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, FailureKind):
            return ChatResult.fail(outcome, f"{outcome.value} on #{credential.index}/{model}")
        return ChatResult.success(f"{outcome} from #{credential.index}/{model}", model=model)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chat_request():
    return ChatRequest.from_dicts(
        [
            {"role": "system", "content": "Você é um assistente."},
            {"role": "user", "content": "Oi"},
        ]
    )


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test_token_0001")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("ADMIN_TOKEN", "admin-secret")
