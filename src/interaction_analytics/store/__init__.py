"""Event store and evaluation records."""

from interaction_analytics.store.event_store import EventStore, query_event_from_row
from interaction_analytics.store.records import EvaluatedBy, EvaluationResult, Label

__all__ = [
    "EvaluatedBy",
    "EvaluationResult",
    "EventStore",
    "Label",
    "query_event_from_row",
]
