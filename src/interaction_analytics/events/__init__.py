"""Ingested event schemas."""

from interaction_analytics.events.schemas import (
    EVENT_TYPES,
    IngestEvent,
    LLMCallEvent,
    OutcomeEvent,
    QueryEvent,
    ingest_event_adapter,
)

__all__ = [
    "EVENT_TYPES",
    "IngestEvent",
    "LLMCallEvent",
    "OutcomeEvent",
    "QueryEvent",
    "ingest_event_adapter",
]
