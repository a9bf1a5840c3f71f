"""Shared fixtures: a file-backed SQLite database per test and an in-memory work queue."""

import json
from typing import Any

import pytest
import pytest_asyncio

from interaction_analytics.aggregates import AggregateMaintainer
from interaction_analytics.config import Settings
from interaction_analytics.db import create_engine, create_session_maker, init_db
from interaction_analytics.events import LLMCallEvent, OutcomeEvent, QueryEvent
from interaction_analytics.ingestion import BackgroundDispatcher, IngestionGateway
from interaction_analytics.store import EventStore
from interaction_analytics.utils import generate_ulid, now_ms


class FakeWorkQueue:
    """In-memory stand-in for ``EvaluationQueue`` with the same interface.

    TTLs are recorded but never enforced; tests expire items with ``expire()``.
    """

    def __init__(self):
        self.items: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail_on_put = False
        self.fail_on_delete: set[str] = set()

    async def put(self, key: str, payload: dict[str, Any], ttl: int | None = None) -> None:
        if self.fail_on_put:
            raise ConnectionError("queue unavailable")
        self.items[key] = json.dumps(payload)
        self.ttls[key] = ttl

    async def list(self, limit: int) -> list[str]:
        return list(self.items)[:limit]

    async def get(self, key: str) -> dict[str, Any] | None:
        value = self.items.get(key)
        return json.loads(value) if value is not None else None

    async def delete(self, key: str) -> bool:
        if key in self.fail_on_delete:
            raise ConnectionError("queue unavailable")
        return self.items.pop(key, None) is not None

    async def size(self) -> int:
        return len(self.items)

    def expire(self, key: str) -> None:
        self.items.pop(key, None)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway database, with the scheduler off."""
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'analytics.db'}",
        REDIS_URL="redis://localhost:6379/15",
        EVAL_SCHEDULER_ENABLED=False,
        GEMINI_API_KEY="",
    )


@pytest_asyncio.fixture
async def engine(settings):
    """Engine with all tables created; disposed after the test."""
    engine = create_engine(settings.DATABASE_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
def store(session_maker) -> EventStore:
    return EventStore(session_maker)


@pytest.fixture
def maintainer(session_maker) -> AggregateMaintainer:
    return AggregateMaintainer(session_maker)


@pytest.fixture
def work_queue() -> FakeWorkQueue:
    return FakeWorkQueue()


@pytest.fixture
def dispatcher():
    return BackgroundDispatcher(concurrency=4, max_pending=100)


@pytest.fixture
def gateway(store, work_queue, maintainer, dispatcher):
    """Gateway over the test database and the in-memory queue."""
    return IngestionGateway(store, work_queue, maintainer, dispatcher, queue_ttl_seconds=3600)


@pytest.fixture
def make_query():
    """Factory for query events with sensible defaults."""

    def _make(**overrides) -> QueryEvent:
        fields = {
            "id": generate_ulid(),
            "store_id": "store-1",
            "session_id": "session-1",
            "created_at": now_ms(),
            "query_text": "where are the batteries",
            "transcription_confidence": 0.9,
            "intent": "product_location",
            "fast_path": False,
        }
        fields.update(overrides)
        return QueryEvent(**fields)

    return _make


@pytest.fixture
def make_outcome():
    """Factory for outcome events with sensible defaults."""

    def _make(query_id: str, **overrides) -> OutcomeEvent:
        fields = {
            "query_id": query_id,
            "answer_text": "Aisle 7, next to the flashlights.",
            "model_name": "gemini-2.5-flash",
            "latency_ms": 1200,
            "cost_usd": 0.001,
            "action_taken": None,
            "action_success": False,
            "error_flag": False,
        }
        fields.update(overrides)
        return OutcomeEvent(**fields)

    return _make


@pytest.fixture
def make_llm_call():
    """Factory for model-call events with sensible defaults."""

    def _make(**overrides) -> LLMCallEvent:
        fields = {
            "call_id": generate_ulid(),
            "customer_id": "cust-1",
            "timestamp": now_ms(),
            "model_name": "gemini-2.5-flash",
            "provider": "gemini",
            "prompt_text": "Where are the batteries?",
            "completion_text": "Aisle 7.",
            "tokens_prompt": 100,
            "tokens_completion": 20,
            "latency_ms": 300,
            "cost_usd": 0.0005,
        }
        fields.update(overrides)
        return LLMCallEvent(**fields)

    return _make
