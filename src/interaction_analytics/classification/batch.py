"""Batch classifier: drain the evaluation queue and label each query.

Per item::

    PENDING -> {HEURISTIC_MATCHED | OUTCOME_MATCHED | MODEL_EVALUATED | DEFAULTED}
            -> RESULT_WRITTEN -> DEQUEUED

An item is dequeued whatever its label, including fallback labels. An item
whose processing raises stays queued for the next run or until it expires.
Runs may overlap; the evaluation upsert and queue delete are idempotent.
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from interaction_analytics.classification.quality_model import (
    QualityModelClient,
    build_prompt,
)
from interaction_analytics.classification.rules import (
    DEFAULT_VERDICT,
    MODEL_FAILED_VERDICT,
    Tier,
    Verdict,
    evaluate_heuristics,
    evaluate_outcome,
)
from interaction_analytics.db.models import VoiceOutcome
from interaction_analytics.events.schemas import QueryEvent
from interaction_analytics.exceptions import ClassificationError, ModelCallError
from interaction_analytics.store.event_store import EventStore
from interaction_analytics.store.records import EvaluatedBy, EvaluationResult
from interaction_analytics.workqueue.redis_queue import EvaluationQueue

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


class ItemState(str, Enum):
    """Lifecycle of one queued item within a run."""

    PENDING = "pending"
    HEURISTIC_MATCHED = "heuristic_matched"
    OUTCOME_MATCHED = "outcome_matched"
    MODEL_EVALUATED = "model_evaluated"
    DEFAULTED = "defaulted"
    RESULT_WRITTEN = "result_written"
    DEQUEUED = "dequeued"
    SKIPPED = "skipped"  # Payload vanished between list and get
    FAILED = "failed"  # Left in the queue


TIER_STATES = {
    Tier.HEURISTIC: ItemState.HEURISTIC_MATCHED,
    Tier.OUTCOME: ItemState.OUTCOME_MATCHED,
    Tier.MODEL: ItemState.MODEL_EVALUATED,
    Tier.DEFAULT: ItemState.DEFAULTED,
}


@dataclass
class ItemReport:
    """What happened to one queued item."""

    query_id: str
    state: ItemState
    verdict: Verdict | None = None
    error: str | None = None


@dataclass
class BatchReport:
    """Summary of one classifier run."""

    batch_id: str
    listed: int = 0
    items: list[ItemReport] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for i in self.items if i.state == ItemState.DEQUEUED)

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.state == ItemState.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for i in self.items if i.state == ItemState.SKIPPED)

    @property
    def labels(self) -> dict[str, int]:
        counts = Counter(
            i.verdict.label.value
            for i in self.items
            if i.verdict is not None and i.state == ItemState.DEQUEUED
        )
        return dict(counts)

    def to_dict(self) -> dict:
        """Serialize for logs and CLI output."""
        return {
            "batch_id": self.batch_id,
            "listed": self.listed,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "labels": self.labels,
        }


class BatchClassifier:
    """Assign quality labels to queued queries through the rule cascade."""

    def __init__(
        self,
        store: EventStore,
        queue: EvaluationQueue,
        quality_model: QualityModelClient | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Initialize batch classifier.

        Args:
            store: Event store (outcome reads, evaluation writes)
            queue: Evaluation work queue
            quality_model: Model tier client; None disables the model tier
            batch_size: Max items per run
        """
        self.store = store
        self.queue = queue
        self.quality_model = quality_model
        self.batch_size = batch_size

    async def run_batch(self) -> BatchReport:
        """Process up to ``batch_size`` queued items.

        Failure of one item does not abort the batch. Listing the queue is
        the only step whose failure aborts the run.
        """
        report = BatchReport(batch_id=str(uuid.uuid4())[:8])

        keys = await self.queue.list(self.batch_size)
        report.listed = len(keys)
        logger.info(f"Evaluating batch {report.batch_id} of {len(keys)} queries")

        for key in keys:
            try:
                item = await self.process_item(key)
            except ClassificationError as e:
                logger.error(f"Failed to evaluate query {key}: {e}", exc_info=e.__cause__)
                item = ItemReport(query_id=key, state=ItemState.FAILED, error=str(e))
            report.items.append(item)

        logger.info(
            f"Batch {report.batch_id} complete: {report.processed} evaluated, "
            f"{report.failed} failed, {report.skipped} skipped, labels={report.labels}"
        )
        return report

    async def process_item(self, key: str) -> ItemReport:
        """Classify one queued item, write its result and dequeue it.

        Raises:
            ClassificationError: On any unexpected failure; the item stays queued
        """
        try:
            payload = await self.queue.get(key)
            if payload is None:
                logger.debug(f"Queue item {key} is gone; skipping")
                return ItemReport(query_id=key, state=ItemState.SKIPPED)

            query = QueryEvent.model_validate({**payload, "id": payload.get("id") or key})
            verdict = await self.classify(query)
            logger.debug(f"Query {query.id} {TIER_STATES[verdict.tier].value}")

            await self.store.upsert_evaluation(
                EvaluationResult(
                    query_id=query.id,
                    label=verdict.label,
                    reason=verdict.reason,
                    confidence_score=verdict.confidence,
                    evaluated_by=EvaluatedBy.AUTO,
                )
            )
            await self.queue.delete(key)
        except ClassificationError:
            raise
        except Exception as e:
            raise ClassificationError(f"{type(e).__name__}: {e}", query_id=key) from e

        logger.debug(
            f"Evaluated query {query.id}: {verdict.label.value} ({verdict.reason}) "
            f"via {verdict.tier.value}"
        )
        return ItemReport(query_id=query.id, state=ItemState.DEQUEUED, verdict=verdict)

    async def classify(self, query: QueryEvent) -> Verdict:
        """Run the cascade: heuristics, outcome rules, model, default."""
        verdict = evaluate_heuristics(query)
        if verdict is not None:
            return verdict

        outcome = await self.store.get_outcome(query.id)
        verdict = evaluate_outcome(outcome)
        if verdict is not None:
            return verdict

        if self.quality_model is not None:
            return await self._evaluate_with_model(query, outcome)

        return DEFAULT_VERDICT

    async def _evaluate_with_model(
        self, query: QueryEvent, outcome: VoiceOutcome | None
    ) -> Verdict:
        prompt = build_prompt(
            query_text=query.query_text,
            intent=query.intent,
            answer_text=outcome.answer_text if outcome else None,
            action_taken=outcome.action_taken if outcome else None,
            action_success=outcome.action_success if outcome else None,
        )
        try:
            judgment = await self.quality_model.evaluate(prompt)
        except ModelCallError as e:
            logger.error(f"LLM evaluation failed for {query.id}: {e}")
            return MODEL_FAILED_VERDICT

        return Verdict(
            label=judgment.label,
            reason=judgment.reason,
            confidence=judgment.confidence,
            tier=Tier.MODEL,
        )
