"""Shared fixtures: env isolation and scripted provider adapters."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest

from resume_enhancer.estimator import CostEstimator
from resume_enhancer.orchestrator import EnhancementOrchestrator
from resume_enhancer.retry import RetryConfig
from resume_enhancer.usage import UsageTracker


@pytest.fixture(autouse=True)
def _isolate_runtime_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear local runtime env that can leak into tests on developer machines."""
    for key in (
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "GEMINI_API_KEY",
        "RESUME_ENHANCER_CONFIG",
        "RESUME_ENHANCER_TIMEOUT",
        "RESUME_ENHANCER_USAGE_PATH",
        "RESUME_ENHANCER_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)


class ScriptedAdapter:
    """Fake adapter returning queued replies; exceptions in the queue are raised."""

    def __init__(self, name: str, replies: Optional[List[Any]] = None) -> None:
        self.name = name
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    async def invoke(self, api_key, model, messages, max_tokens) -> str:
        self.calls.append({"api_key": api_key, "model": model, "messages": list(messages), "max_tokens": max_tokens})
        if not self.replies:
            raise AssertionError(f"unexpected call to {self.name}")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


def suggestion_reply(*items: Dict[str, Any], confidence: Optional[float] = None) -> str:
    payload: Dict[str, Any] = {"suggestions": list(items)}
    if confidence is not None:
        payload["confidence"] = confidence
    return "Here you go:\n```json\n" + json.dumps(payload) + "\n```"


def summary_suggestion(suggested: str = "Led a team of 5 engineers", confidence: float = 0.9) -> Dict[str, Any]:
    return {
        "type": "improvement",
        "field": "personal.summary",
        "section": "personal",
        "originalValue": "Worked on team",
        "suggestedValue": suggested,
        "confidence": confidence,
        "reasoning": "Stronger wording",
    }


@pytest.fixture
def usage_tracker() -> UsageTracker:
    return UsageTracker()


@pytest.fixture
def make_orchestrator(usage_tracker: UsageTracker):
    def factory(**adapters: ScriptedAdapter) -> EnhancementOrchestrator:
        return EnhancementOrchestrator(
            adapters=adapters,
            estimator=CostEstimator(),
            usage_tracker=usage_tracker,
            retry_config=RetryConfig(base_delay=0, max_delay=0),
            timeout=5.0,
        )

    return factory
