"""Tests for the ingestion gateway."""

from unittest.mock import AsyncMock

import pytest
from ulid import ULID

from interaction_analytics.db.models import VoiceStatsHourly
from interaction_analytics.exceptions import ConflictError, PersistenceError, ValidationError
from interaction_analytics.utils import calculate_cost, get_hour_bucket


def query_payload(**overrides):
    payload = {
        "type": "query",
        "storeId": "store-1",
        "sessionId": "sess-1",
        "queryText": "where are the batteries",
        "transcriptionConfidence": 0.92,
        "intent": "product_location",
    }
    payload.update(overrides)
    return payload


class TestValidation:
    """Tests for payload validation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [None, [], "query", 42])
    async def test_non_object_rejected(self, gateway, payload):
        """Test non-object payloads are rejected."""
        with pytest.raises(ValidationError):
            await gateway.ingest(payload)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", [None, "click", "QUERY"])
    async def test_unknown_type_rejected(self, gateway, event_type):
        """Test unknown or missing types are rejected."""
        with pytest.raises(ValidationError, match="Unknown event type"):
            await gateway.ingest({"type": event_type, "storeId": "s"})

    @pytest.mark.asyncio
    async def test_field_errors_reported(self, gateway):
        """Test field errors carry their locations."""
        with pytest.raises(ValidationError) as exc_info:
            await gateway.ingest({"type": "outcome", "queryId": "q1"})
        assert any("latencyMs" in err["loc"] for err in exc_info.value.errors)


class TestQueryIngest:
    """Tests for query events."""

    @pytest.mark.asyncio
    async def test_assigns_id_and_persists(self, gateway, store, work_queue, dispatcher):
        """Test a query without id gets a ULID, is stored and is queued."""
        result = await gateway.ingest(query_payload())
        await dispatcher.drain()

        assert result.event_type == "query"
        assert len(result.event_id) == 26
        assert str(ULID.from_str(result.event_id)) == result.event_id

        row = await store.get_query(result.event_id)
        assert row.query_text == "where are the batteries"
        assert row.created_at > 0

        snapshot = await work_queue.get(result.event_id)
        assert snapshot["id"] == result.event_id
        assert snapshot["queryText"] == "where are the batteries"
        assert snapshot["transcriptionConfidence"] == 0.92
        assert work_queue.ttls[result.event_id] == 3600

    @pytest.mark.asyncio
    async def test_keeps_client_id_and_time(self, gateway, store, dispatcher):
        """Test client-supplied id and createdAt are kept."""
        result = await gateway.ingest(query_payload(id="client-1", createdAt=1234))
        await dispatcher.drain()

        assert result.event_id == "client-1"
        assert (await store.get_query("client-1")).created_at == 1234

    @pytest.mark.asyncio
    async def test_updates_hourly_stats(self, gateway, session_maker, store, dispatcher):
        """Test ingesting a query counts it in its store-hour."""
        result = await gateway.ingest(query_payload(createdAt=1_700_000_000_000))
        await dispatcher.drain()

        async with session_maker() as session:
            row = await session.get(
                VoiceStatsHourly, ("store-1", get_hour_bucket(1_700_000_000_000))
            )
        assert row.total_queries == 1
        assert row.unique_sessions == 1
        assert result.event_id

    @pytest.mark.asyncio
    async def test_enqueue_failure_does_not_fail_request(
        self, gateway, store, work_queue, dispatcher
    ):
        """Test a queue outage still stores the query."""
        work_queue.fail_on_put = True

        result = await gateway.ingest(query_payload())
        await dispatcher.drain()

        assert await store.get_query(result.event_id) is not None
        assert await work_queue.size() == 0
        assert dispatcher.failed == 1

    @pytest.mark.asyncio
    async def test_persist_failure_propagates(self, gateway, store, work_queue, dispatcher):
        """Test a failed write fails the request and triggers no side-effects."""
        store.insert_query = AsyncMock(side_effect=PersistenceError("disk full"))

        with pytest.raises(PersistenceError):
            await gateway.ingest(query_payload())

        assert dispatcher.pending == 0
        assert await work_queue.size() == 0

    @pytest.mark.asyncio
    async def test_duplicate_id_conflicts(self, gateway, dispatcher):
        """Test re-sending a query with the same id is a conflict."""
        await gateway.ingest(query_payload(id="dup"))
        with pytest.raises(ConflictError):
            await gateway.ingest(query_payload(id="dup"))
        await dispatcher.drain()


class TestOutcomeIngest:
    """Tests for outcome events."""

    @pytest.mark.asyncio
    async def test_persists_and_folds_into_hourly(
        self, gateway, store, session_maker, dispatcher
    ):
        """Test an outcome is stored and counted in its query's store-hour."""
        query = await gateway.ingest(query_payload(createdAt=1_700_000_000_000))
        await dispatcher.drain()

        result = await gateway.ingest(
            {
                "type": "outcome",
                "queryId": query.event_id,
                "answerText": "Aisle 7",
                "latencyMs": 450,
                "costUsd": 0.002,
                "actionTaken": "navigate",
                "actionSuccess": True,
            }
        )
        await dispatcher.drain()

        assert result.event_type == "outcome"
        assert result.event_id == query.event_id
        outcome = await store.get_outcome(query.event_id)
        assert outcome.answer_text == "Aisle 7"

        async with session_maker() as session:
            row = await session.get(
                VoiceStatsHourly, ("store-1", get_hour_bucket(1_700_000_000_000))
            )
        assert row.successful_queries == 1
        assert row.total_latency_ms == 450

    @pytest.mark.asyncio
    async def test_second_outcome_conflicts(self, gateway, dispatcher):
        """Test a second outcome for the same query is rejected."""
        query = await gateway.ingest(query_payload())
        outcome = {"type": "outcome", "queryId": query.event_id, "latencyMs": 100}

        await gateway.ingest(outcome)
        with pytest.raises(ConflictError):
            await gateway.ingest(outcome)
        await dispatcher.drain()


class TestLLMCallIngest:
    """Tests for llm_call events."""

    @pytest.mark.asyncio
    async def test_fills_defaults_and_estimates_cost(self, gateway, store, dispatcher):
        """Test call id, timestamp and cost are filled when absent."""
        result = await gateway.ingest(
            {
                "type": "llm_call",
                "modelName": "gpt-4",
                "provider": "openai",
                "tokensPrompt": 1000,
                "tokensCompletion": 500,
                "latencyMs": 800,
            }
        )
        await dispatcher.drain()

        row = await store.get_llm_call(result.event_id)
        assert row.timestamp > 0
        assert row.cost_usd == pytest.approx(calculate_cost("gpt-4", 1000, 500))

    @pytest.mark.asyncio
    async def test_customer_insight_only_with_customer(self, gateway, maintainer, dispatcher):
        """Test the customer update is only submitted when customerId is present."""
        maintainer.update_customer_insight = AsyncMock()
        base = {"type": "llm_call", "modelName": "m", "provider": "p", "latencyMs": 1}

        await gateway.ingest(base)
        await gateway.ingest({**base, "customerId": "cust-9"})
        await dispatcher.drain()

        maintainer.update_customer_insight.assert_awaited_once()
        event = maintainer.update_customer_insight.call_args.args[0]
        assert event.customer_id == "cust-9"
