"""Shared test fixtures for all test groups."""

from datetime import UTC, datetime, timedelta

import pytest
from fakeredis import FakeAsyncRedis

from cbt_diary.domain.models import parse_step_payload
from cbt_diary.domain.steps import CBTStepId
from cbt_diary.services.chat_bridge import ChatHandoffResult

RAW_STEP_PAYLOADS = {
    CBTStepId.SITUATION: {"situation": "Presentation at work went badly", "date": "2026-10-18"},
    CBTStepId.EMOTIONS: {"fear": 6, "anxiety": 8, "sadness": 3},
    CBTStepId.THOUGHTS: [{"thought": "Everyone thinks I'm incompetent", "credibility": 8}],
    CBTStepId.CORE_BELIEF: {"coreBeliefText": "I'm not good enough", "coreBeliefCredibility": 7},
    CBTStepId.CHALLENGE_QUESTIONS: {
        "challengeQuestions": [
            {"question": "What evidence supports this thought?", "answer": "One slide had a typo"},
        ]
    },
    CBTStepId.RATIONAL_THOUGHTS: {
        "rationalThoughts": [{"thought": "One mistake doesn't define my work", "confidence": 6}]
    },
    CBTStepId.SCHEMA_MODES: {
        "selectedModes": [
            {
                "id": "vulnerable-child",
                "name": "The Vulnerable Child",
                "description": "scared, helpless, needy",
                "selected": True,
                "intensity": 7,
            },
            {
                "id": "healthy-adult",
                "name": "The Healthy Adult",
                "description": "balanced, rational, caring",
                "selected": False,
                "intensity": 5,
            },
        ]
    },
    CBTStepId.ACTIONS: {"newBehaviors": "Rehearse with a colleague", "originalThoughtCredibility": 4},
    CBTStepId.FINAL_EMOTIONS: {"fear": 2, "anxiety": 3},
}


class FakeChatBridge:
    """Records diary handoffs; answers with a preset result."""

    def __init__(self, result: ChatHandoffResult | None = None):
        self.result = result or ChatHandoffResult(success=True)
        self.calls: list[tuple[str | None, str]] = []

    async def add_message(self, session_id, content):
        self.calls.append((session_id, content))
        if not session_id:
            return ChatHandoffResult(success=False, error="No active chat session")
        return self.result


class TickingClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 10, 18, 9, 30, tzinfo=UTC)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def raw_payloads():
    """Valid wire-format payload for every step."""
    return dict(RAW_STEP_PAYLOADS)


@pytest.fixture
def payloads(raw_payloads):
    """Validated payload for every step, as the flow engine receives them."""
    return {step: parse_step_payload(step, raw) for step, raw in raw_payloads.items()}


@pytest.fixture
async def redis():
    """Create a fake Redis instance for testing."""
    fake_redis = FakeAsyncRedis(decode_responses=True)
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest.fixture
def chat_bridge():
    return FakeChatBridge()


@pytest.fixture
def failing_chat_bridge():
    return FakeChatBridge(ChatHandoffResult(success=False, error="Chat service returned 503"))


@pytest.fixture
def clock():
    return TickingClock()
