"""Ingestion gateway: validate, persist, then dispatch side-effects.

Only the synchronous persist can fail a request. Queueing for evaluation and
aggregate updates are submitted to the background dispatcher after the event
is durable, and their failures are only logged.
"""

import logging
from dataclasses import dataclass
from typing import Any

import pydantic

from interaction_analytics.aggregates.maintainer import AggregateMaintainer
from interaction_analytics.events.schemas import (
    EVENT_TYPES,
    LLMCallEvent,
    OutcomeEvent,
    QueryEvent,
    ingest_event_adapter,
)
from interaction_analytics.exceptions import ValidationError
from interaction_analytics.ingestion.background import BackgroundDispatcher
from interaction_analytics.store.event_store import EventStore
from interaction_analytics.utils import calculate_cost, generate_ulid, now_ms
from interaction_analytics.workqueue.redis_queue import EvaluationQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Acknowledgement returned once the primary event is durable."""

    event_type: str
    event_id: str


class IngestionGateway:
    """Entry point for all ingested events."""

    def __init__(
        self,
        store: EventStore,
        queue: EvaluationQueue,
        maintainer: AggregateMaintainer,
        dispatcher: BackgroundDispatcher,
        queue_ttl_seconds: int = 3600,
    ):
        """Initialize gateway.

        Args:
            store: Event store for the synchronous write
            queue: Evaluation work queue
            maintainer: Aggregate maintainer for rollups
            dispatcher: Runner for detached side-effects
            queue_ttl_seconds: Expiry of evaluation queue items
        """
        self.store = store
        self.queue = queue
        self.maintainer = maintainer
        self.dispatcher = dispatcher
        self.queue_ttl_seconds = queue_ttl_seconds

    def parse(self, payload: Any) -> QueryEvent | OutcomeEvent | LLMCallEvent:
        """Validate a raw payload into a typed event.

        Raises:
            ValidationError: If the payload is malformed or the type is unknown
        """
        if not isinstance(payload, dict):
            raise ValidationError("Event payload must be a JSON object")

        event_type = payload.get("type")
        if event_type not in EVENT_TYPES:
            raise ValidationError(
                f"Unknown event type {event_type!r}; expected one of {', '.join(EVENT_TYPES)}"
            )

        try:
            return ingest_event_adapter.validate_python(payload)
        except pydantic.ValidationError as e:
            errors = [
                {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ]
            raise ValidationError(f"Invalid {event_type} event", errors=errors) from e

    async def ingest(self, payload: Any) -> IngestResult:
        """Validate and persist one event, then dispatch its side-effects.

        Raises:
            ValidationError: Malformed or unknown event
            ConflictError: Event key already recorded
            PersistenceError: Synchronous write failed
        """
        event = self.parse(payload)

        if isinstance(event, QueryEvent):
            return await self._ingest_query(event)
        if isinstance(event, OutcomeEvent):
            return await self._ingest_outcome(event)
        return await self._ingest_llm_call(event)

    async def _ingest_query(self, event: QueryEvent) -> IngestResult:
        if not event.id or event.created_at is None:
            event = event.model_copy(
                update={
                    "id": event.id or generate_ulid(),
                    "created_at": event.created_at if event.created_at is not None else now_ms(),
                }
            )

        logger.debug(
            f"Ingesting query event id={event.id} store={event.store_id} intent={event.intent}"
        )
        await self.store.insert_query(event)

        snapshot = event.to_wire()
        self.dispatcher.submit(
            f"enqueue:{event.id}",
            lambda: self.queue.put(event.id, snapshot, ttl=self.queue_ttl_seconds),
        )
        self.dispatcher.submit(
            f"hourly-stats:{event.id}",
            lambda: self.maintainer.update_hourly_stats(event),
        )
        return IngestResult(event_type="query", event_id=event.id)

    async def _ingest_outcome(self, event: OutcomeEvent) -> IngestResult:
        logger.debug(
            f"Ingesting outcome event query={event.query_id} "
            f"action={event.action_taken} success={event.action_success}"
        )
        await self.store.insert_outcome(event)

        self.dispatcher.submit(
            f"hourly-outcome:{event.query_id}",
            lambda: self.maintainer.apply_outcome(event),
        )
        return IngestResult(event_type="outcome", event_id=event.query_id)

    async def _ingest_llm_call(self, event: LLMCallEvent) -> IngestResult:
        updates: dict[str, Any] = {}
        if not event.call_id:
            updates["call_id"] = generate_ulid()
        if event.timestamp is None:
            updates["timestamp"] = now_ms()
        if event.cost_usd is None:
            updates["cost_usd"] = calculate_cost(
                event.model_name, event.tokens_prompt, event.tokens_completion
            )
        if updates:
            event = event.model_copy(update=updates)

        logger.debug(
            f"Ingesting llm_call event id={event.call_id} model={event.model_name} "
            f"customer={event.customer_id}"
        )
        await self.store.insert_llm_call(event)

        self.dispatcher.submit(
            f"llm-usage:{event.call_id}",
            lambda: self.maintainer.update_llm_usage(event),
        )
        if event.customer_id:
            self.dispatcher.submit(
                f"customer-insight:{event.call_id}",
                lambda: self.maintainer.update_customer_insight(event),
            )
        return IngestResult(event_type="llm_call", event_id=event.call_id)
