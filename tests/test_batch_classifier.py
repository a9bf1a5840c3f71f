"""Tests for the batch classifier and its scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from interaction_analytics.classification import (
    BatchClassifier,
    ClassificationScheduler,
    ItemState,
    ModelJudgment,
    QualityModelClient,
    Tier,
)
from interaction_analytics.exceptions import ModelCallError, PersistenceError
from interaction_analytics.store import EvaluatedBy, EvaluationResult, Label


async def enqueue(store, work_queue, event):
    """Persist a query and queue it the way the gateway does."""
    await store.insert_query(event)
    await work_queue.put(event.id, event.to_wire(), ttl=3600)


@pytest.fixture
def quality_model():
    model = MagicMock()
    model.evaluate = AsyncMock(
        return_value=ModelJudgment(label=Label.GOOD, reason="helpful_answer", confidence=0.75)
    )
    return model


class TestCascade:
    """Tests for tier selection."""

    @pytest.mark.asyncio
    async def test_heuristic_match_skips_outcome_lookup(self, store, work_queue, make_query):
        """Test a heuristic verdict is final and the outcome is never read."""
        event = make_query(transcription_confidence=0.3)
        await enqueue(store, work_queue, event)
        store.get_outcome = AsyncMock(wraps=store.get_outcome)

        report = await BatchClassifier(store, work_queue).run_batch()

        store.get_outcome.assert_not_called()
        assert report.items[0].verdict.tier == Tier.HEURISTIC
        result = await store.get_evaluation(event.id)
        assert result.label == Label.BAD
        assert result.reason == "very_low_transcription_confidence"
        assert result.confidence_score == 0.9
        assert result.evaluated_by == EvaluatedBy.AUTO

    @pytest.mark.asyncio
    async def test_outcome_tier(self, store, work_queue, make_query, make_outcome, quality_model):
        """Test an outcome rule decides before the model is consulted."""
        event = make_query()
        await enqueue(store, work_queue, event)
        await store.insert_outcome(make_outcome(event.id, error_flag=True))

        await BatchClassifier(store, work_queue, quality_model=quality_model).run_batch()

        quality_model.evaluate.assert_not_called()
        result = await store.get_evaluation(event.id)
        assert result.label == Label.BAD
        assert result.reason == "error_occurred"
        assert result.confidence_score == 0.95

    @pytest.mark.asyncio
    async def test_model_tier(self, store, work_queue, make_query, make_outcome, quality_model):
        """Test the model decides when no rule matches."""
        event = make_query()
        await enqueue(store, work_queue, event)
        await store.insert_outcome(make_outcome(event.id, latency_ms=6000, action_success=True))

        report = await BatchClassifier(store, work_queue, quality_model=quality_model).run_batch()

        prompt = quality_model.evaluate.call_args.args[0]
        assert 'Query: "where are the batteries"' in prompt
        assert 'Response: "Aisle 7, next to the flashlights."' in prompt
        assert "Success: yes" in prompt
        assert report.items[0].verdict.tier == Tier.MODEL
        result = await store.get_evaluation(event.id)
        assert result.label == Label.GOOD
        assert result.reason == "helpful_answer"
        assert result.confidence_score == 0.75

    @pytest.mark.asyncio
    async def test_model_without_outcome(self, store, work_queue, make_query, quality_model):
        """Test the model is asked with placeholders when no outcome exists."""
        event = make_query()
        await enqueue(store, work_queue, event)

        await BatchClassifier(store, work_queue, quality_model=quality_model).run_batch()

        prompt = quality_model.evaluate.call_args.args[0]
        assert 'Response: "no response"' in prompt
        assert "Success: no" in prompt

    @pytest.mark.asyncio
    async def test_model_failure_falls_back_to_review(
        self, store, work_queue, make_query, quality_model
    ):
        """Test a model failure yields REVIEW and the item is still dequeued."""
        quality_model.evaluate = AsyncMock(side_effect=ModelCallError("Request timed out"))
        event = make_query()
        await enqueue(store, work_queue, event)

        report = await BatchClassifier(store, work_queue, quality_model=quality_model).run_batch()

        assert report.processed == 1
        assert await work_queue.get(event.id) is None
        result = await store.get_evaluation(event.id)
        assert result.label == Label.REVIEW
        assert result.reason == "llm_evaluation_failed"
        assert result.confidence_score == 0.5

    @pytest.mark.asyncio
    async def test_default_without_model(self, store, work_queue, make_query):
        """Test the default verdict applies when the model tier is disabled."""
        event = make_query()
        await enqueue(store, work_queue, event)

        report = await BatchClassifier(store, work_queue, quality_model=None).run_batch()

        assert report.items[0].verdict.tier == Tier.DEFAULT
        result = await store.get_evaluation(event.id)
        assert result.label == Label.REVIEW
        assert result.reason == "no_evaluation_criteria_met"
        assert result.confidence_score == 0.5


class TestIngestedScenarios:
    """End-to-end runs from gateway payloads to stored labels."""

    @pytest.mark.asyncio
    async def test_two_character_fast_path_query(self, gateway, dispatcher, store, work_queue):
        """Test a two-character query is too short even on the fast path."""
        result = await gateway.ingest(
            {"type": "query", "storeId": "s1", "queryText": "hi", "fastPath": True}
        )
        await dispatcher.drain()

        await BatchClassifier(store, work_queue).run_batch()

        evaluation = await store.get_evaluation(result.event_id)
        assert evaluation.label == Label.BAD
        assert evaluation.reason == "query_too_short"
        assert evaluation.confidence_score == 0.9

    @pytest.mark.asyncio
    async def test_fast_path_query_without_confidence(
        self, gateway, dispatcher, store, work_queue
    ):
        """Test a fast-path query with no confidence and no outcome gets the default."""
        result = await gateway.ingest(
            {"type": "query", "storeId": "s1", "queryText": "hey", "fastPath": True}
        )
        await dispatcher.drain()

        await BatchClassifier(store, work_queue).run_batch()

        evaluation = await store.get_evaluation(result.event_id)
        assert evaluation.label == Label.REVIEW
        assert evaluation.reason == "no_evaluation_criteria_met"
        assert evaluation.confidence_score == 0.5

    @pytest.mark.asyncio
    async def test_extreme_latency_outcome(self, gateway, dispatcher, store, work_queue):
        """Test a query answered after 12 s is labelled BAD."""
        result = await gateway.ingest(
            {"type": "query", "storeId": "s1", "queryText": "where is the bread"}
        )
        await gateway.ingest(
            {
                "type": "outcome",
                "queryId": result.event_id,
                "latencyMs": 12000,
                "errorFlag": False,
            }
        )
        await dispatcher.drain()

        await BatchClassifier(store, work_queue).run_batch()

        evaluation = await store.get_evaluation(result.event_id)
        assert evaluation.label == Label.BAD
        assert evaluation.reason == "extreme_latency"
        assert evaluation.confidence_score == 0.9

    @pytest.mark.asyncio
    async def test_very_low_confidence_ignores_outcome_and_model(
        self, gateway, dispatcher, store, work_queue, quality_model
    ):
        """Test very low transcription confidence decides before outcome or model."""
        result = await gateway.ingest(
            {
                "type": "query",
                "storeId": "s1",
                "queryText": "where is the bread",
                "transcriptionConfidence": 0.4,
            }
        )
        await gateway.ingest(
            {
                "type": "outcome",
                "queryId": result.event_id,
                "latencyMs": 900,
                "actionSuccess": True,
            }
        )
        await dispatcher.drain()

        await BatchClassifier(store, work_queue, quality_model=quality_model).run_batch()

        quality_model.evaluate.assert_not_called()
        evaluation = await store.get_evaluation(result.event_id)
        assert evaluation.label == Label.BAD
        assert evaluation.reason == "very_low_transcription_confidence"

    @pytest.mark.asyncio
    async def test_null_model_text_is_terminal(self, gateway, dispatcher, store, work_queue):
        """Test a malformed model reply is a REVIEW fallback and the item leaves the queue."""
        result = await gateway.ingest(
            {"type": "query", "storeId": "s1", "queryText": "where is the bread"}
        )
        await dispatcher.drain()
        response = httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": None}]}}]},
            request=httpx.Request("POST", "https://example.invalid"),
        )
        client = QualityModelClient(api_key="test-key")

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = MagicMock()
            mock_client.post = AsyncMock(return_value=response)
            mock_client.__aenter__ = AsyncMock(return_value=mock_client)
            mock_client.__aexit__ = AsyncMock(return_value=None)
            mock_client_class.return_value = mock_client
            report = await BatchClassifier(store, work_queue, quality_model=client).run_batch()

        assert report.processed == 1
        assert await work_queue.get(result.event_id) is None
        evaluation = await store.get_evaluation(result.event_id)
        assert evaluation.label == Label.REVIEW
        assert evaluation.reason == "llm_evaluation_failed"


class TestBatchRun:
    """Tests for queue handling across a run."""

    @pytest.mark.asyncio
    async def test_drains_queue(self, store, work_queue, make_query):
        """Test every queued item gets exactly one evaluation and leaves the queue."""
        events = [make_query(query_text=f"question number {i}") for i in range(7)]
        for event in events:
            await enqueue(store, work_queue, event)

        classifier = BatchClassifier(store, work_queue, batch_size=3)
        while await work_queue.size():
            await classifier.run_batch()

        for event in events:
            assert await store.get_evaluation(event.id) is not None

    @pytest.mark.asyncio
    async def test_respects_batch_size(self, store, work_queue, make_query):
        """Test a run processes at most batch_size items."""
        for i in range(5):
            await enqueue(store, work_queue, make_query())

        report = await BatchClassifier(store, work_queue, batch_size=2).run_batch()

        assert report.listed == 2
        assert report.processed == 2
        assert await work_queue.size() == 3

    @pytest.mark.asyncio
    async def test_empty_queue(self, store, work_queue):
        """Test an empty queue is a no-op."""
        report = await BatchClassifier(store, work_queue).run_batch()
        assert report.to_dict()["processed"] == 0
        assert report.labels == {}

    @pytest.mark.asyncio
    async def test_vanished_item_is_skipped(self, store, work_queue, make_query):
        """Test an item that expired between list and get writes nothing."""
        event = make_query(transcription_confidence=0.3)
        await enqueue(store, work_queue, event)
        work_queue.list = AsyncMock(return_value=[event.id])
        work_queue.expire(event.id)

        report = await BatchClassifier(store, work_queue).run_batch()

        assert report.skipped == 1
        assert report.items[0].state == ItemState.SKIPPED
        assert await store.get_evaluation(event.id) is None

    @pytest.mark.asyncio
    async def test_store_error_leaves_item_queued(self, store, work_queue, make_query):
        """Test a failing store read keeps the item and does not stop the batch."""
        failing = make_query()
        fine = make_query(transcription_confidence=0.3)
        await enqueue(store, work_queue, failing)
        await enqueue(store, work_queue, fine)

        real_get_outcome = store.get_outcome

        async def get_outcome(query_id):
            if query_id == failing.id:
                raise PersistenceError("database is locked")
            return await real_get_outcome(query_id)

        store.get_outcome = get_outcome

        report = await BatchClassifier(store, work_queue).run_batch()

        assert report.failed == 1
        assert report.processed == 1
        assert await work_queue.get(failing.id) is not None
        assert await work_queue.get(fine.id) is None
        assert await store.get_evaluation(failing.id) is None

    @pytest.mark.asyncio
    async def test_delete_failure_is_retried_idempotently(self, store, work_queue, make_query):
        """Test an item whose delete failed is re-evaluated to the same result."""
        event = make_query(query_text="hi")
        await enqueue(store, work_queue, event)
        work_queue.fail_on_delete.add(event.id)
        classifier = BatchClassifier(store, work_queue)

        first = await classifier.run_batch()
        after_first = await store.get_evaluation(event.id)
        work_queue.fail_on_delete.clear()
        second = await classifier.run_batch()
        after_second = await store.get_evaluation(event.id)

        assert first.failed == 1
        assert second.processed == 1
        assert await work_queue.size() == 0
        assert (after_first.label, after_first.reason, after_first.confidence_score) == (
            after_second.label,
            after_second.reason,
            after_second.confidence_score,
        )

    @pytest.mark.asyncio
    async def test_human_review_survives_reclassification(self, store, work_queue, make_query):
        """Test an automatic run keeps a human label and still dequeues."""
        event = make_query(query_text="hi")
        await enqueue(store, work_queue, event)
        await store.upsert_evaluation(
            EvaluationResult(event.id, Label.GOOD, "verified", 1.0, evaluated_by=EvaluatedBy.HUMAN),
            overwrite_human=True,
        )

        report = await BatchClassifier(store, work_queue).run_batch()

        assert report.processed == 1
        result = await store.get_evaluation(event.id)
        assert result.label == Label.GOOD
        assert result.evaluated_by == EvaluatedBy.HUMAN

    @pytest.mark.asyncio
    async def test_report_labels(self, store, work_queue, make_query):
        """Test the report counts labels of dequeued items."""
        await enqueue(store, work_queue, make_query(query_text="hi"))
        await enqueue(store, work_queue, make_query(transcription_confidence=0.6))
        await enqueue(store, work_queue, make_query(transcription_confidence=0.6))

        report = await BatchClassifier(store, work_queue).run_batch()

        assert report.labels == {"BAD": 1, "REVIEW": 2}


class TestScheduler:
    """Tests for the periodic trigger."""

    @pytest.mark.asyncio
    async def test_triggers_runs_periodically(self):
        """Test the scheduler starts runs on every tick."""
        classifier = MagicMock()
        classifier.run_batch = AsyncMock()
        scheduler = ClassificationScheduler(classifier, interval=0.01)

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert classifier.run_batch.await_count >= 2
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_runs_overlap(self):
        """Test a slow run does not block the next tick."""
        release = asyncio.Event()

        async def slow_run():
            await release.wait()

        classifier = MagicMock()
        classifier.run_batch = AsyncMock(side_effect=slow_run)
        scheduler = ClassificationScheduler(classifier, interval=0.01)

        await scheduler.start()
        await asyncio.sleep(0.05)
        assert scheduler.active_runs >= 2

        release.set()
        await scheduler.stop()
        assert scheduler.active_runs == 0

    @pytest.mark.asyncio
    async def test_failed_run_is_logged(self, caplog):
        """Test a run that raises does not stop the scheduler."""
        classifier = MagicMock()
        classifier.run_batch = AsyncMock(side_effect=ConnectionError("redis down"))
        scheduler = ClassificationScheduler(classifier, interval=60)

        await scheduler.trigger()

        assert "Evaluation run failed: redis down" in caplog.text
