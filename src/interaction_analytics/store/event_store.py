"""Durable storage for raw events and evaluation results."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interaction_analytics.db.models import LLMCall, VoiceEvaluation, VoiceOutcome, VoiceQuery
from interaction_analytics.events.schemas import LLMCallEvent, OutcomeEvent, QueryEvent
from interaction_analytics.exceptions import ConflictError, PersistenceError
from interaction_analytics.store.records import EvaluatedBy, EvaluationResult, Label
from interaction_analytics.store.upsert import dialect_insert

logger = logging.getLogger(__name__)


def query_event_from_row(row: VoiceQuery) -> QueryEvent:
    """Rebuild the query event snapshot from its stored row."""
    return QueryEvent(
        id=row.id,
        store_id=row.store_id,
        session_id=row.session_id,
        user_id=row.user_id,
        created_at=row.created_at,
        query_text=row.query_text,
        transcription_confidence=row.transcription_conf,
        intent=row.intent,
        fast_path=bool(row.fast_path),
    )


class EventStore:
    """Parameterized inserts, upserts and point reads over the event tables."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        """Initialize event store.

        Args:
            session_maker: Factory for database sessions
        """
        self.session_maker = session_maker

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert_query(self, event: QueryEvent) -> None:
        """Persist a query event. ``id`` and ``created_at`` must be assigned.

        Raises:
            ConflictError: If the query id was already recorded
            PersistenceError: If the write fails
        """
        if not event.id or event.created_at is None:
            raise ValueError("Query event must have id and created_at before insert")

        row = VoiceQuery(
            id=event.id,
            store_id=event.store_id,
            session_id=event.session_id,
            user_id=event.user_id,
            created_at=event.created_at,
            query_text=event.query_text,
            transcription_conf=event.transcription_confidence,
            intent=event.intent,
            fast_path=event.fast_path,
        )
        try:
            await self._add(row, f"query {event.id}", raise_integrity=True)
        except IntegrityError as e:
            raise ConflictError(f"Query {event.id} already recorded", key=event.id) from e

    async def insert_outcome(self, event: OutcomeEvent) -> None:
        """Persist an outcome event.

        Raises:
            ConflictError: If an outcome already exists for the query
            PersistenceError: If the write fails
        """
        row = VoiceOutcome(
            query_id=event.query_id,
            answer_text=event.answer_text,
            model_name=event.model_name,
            latency_ms=event.latency_ms,
            tokens_prompt=event.tokens_prompt,
            tokens_completion=event.tokens_completion,
            cost_usd=event.cost_usd,
            action_taken=event.action_taken,
            action_success=event.action_success,
            error_flag=event.error_flag,
            tool_calls=event.tool_calls,
        )
        try:
            await self._add(row, f"outcome {event.query_id}", raise_integrity=True)
        except IntegrityError as e:
            raise ConflictError(
                f"Outcome already recorded for query {event.query_id}",
                key=event.query_id,
            ) from e

    async def insert_llm_call(self, event: LLMCallEvent) -> None:
        """Persist a model-call event. ``call_id``, ``timestamp`` and ``cost_usd`` must be set.

        Raises:
            ConflictError: If the call id was already recorded
            PersistenceError: If the write fails
        """
        if not event.call_id or event.timestamp is None or event.cost_usd is None:
            raise ValueError("LLM call event must have call_id, timestamp and cost_usd")

        row = LLMCall(
            call_id=event.call_id,
            query_id=event.query_id,
            customer_id=event.customer_id,
            session_id=event.session_id,
            timestamp=event.timestamp,
            model_name=event.model_name,
            provider=event.provider,
            prompt_text=event.prompt_text,
            completion_text=event.completion_text,
            tokens_prompt=event.tokens_prompt,
            tokens_completion=event.tokens_completion,
            latency_ms=event.latency_ms,
            cost_usd=event.cost_usd,
            temperature=event.temperature,
            max_tokens=event.max_tokens,
            system_prompt=event.system_prompt,
            error_message=event.error_message,
            request_metadata=event.request_metadata,
        )
        try:
            await self._add(row, f"llm call {event.call_id}", raise_integrity=True)
        except IntegrityError as e:
            raise ConflictError(
                f"LLM call {event.call_id} already recorded", key=event.call_id
            ) from e

    async def upsert_evaluation(
        self, result: EvaluationResult, overwrite_human: bool = False
    ) -> bool:
        """Insert or replace the evaluation for a query.

        Automatic results never replace a human review unless
        ``overwrite_human`` is set.

        Returns:
            True if a row was written

        Raises:
            PersistenceError: If the write fails
        """
        values = {
            "query_id": result.query_id,
            "label": result.label.value,
            "reason": result.reason,
            "confidence_score": result.confidence_score,
            "evaluated_at": result.evaluated_at,
            "evaluated_by": result.evaluated_by.value,
        }
        try:
            async with self.session_maker() as session:
                stmt = dialect_insert(session, VoiceEvaluation).values(**values)
                update_where = None
                if not overwrite_human:
                    update_where = VoiceEvaluation.evaluated_by != EvaluatedBy.HUMAN.value
                stmt = stmt.on_conflict_do_update(
                    index_elements=[VoiceEvaluation.query_id],
                    set_={k: v for k, v in values.items() if k != "query_id"},
                    where=update_where,
                )
                outcome = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to upsert evaluation for {result.query_id}: {e}"
            ) from e

        written = outcome.rowcount != 0
        if not written:
            logger.debug(f"Kept human evaluation for {result.query_id}")
        return written

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_query(self, query_id: str) -> VoiceQuery | None:
        """Get a query by id."""
        return await self._get(VoiceQuery, query_id)

    async def get_outcome(self, query_id: str) -> VoiceOutcome | None:
        """Get the outcome recorded for a query, if any."""
        return await self._get(VoiceOutcome, query_id)

    async def get_llm_call(self, call_id: str) -> LLMCall | None:
        """Get a model-call record by id."""
        return await self._get(LLMCall, call_id)

    async def get_evaluation(self, query_id: str) -> EvaluationResult | None:
        """Get the current evaluation for a query, if any."""
        row = await self._get(VoiceEvaluation, query_id)
        if row is None:
            return None
        return EvaluationResult(
            query_id=row.query_id,
            label=Label(row.label),
            reason=row.reason or "",
            confidence_score=row.confidence_score if row.confidence_score is not None else 0.0,
            evaluated_by=EvaluatedBy(row.evaluated_by),
            evaluated_at=row.evaluated_at,
        )

    async def list_unevaluated_queries(
        self, since_ms: int, limit: int = 500
    ) -> list[VoiceQuery]:
        """Get queries created since ``since_ms`` that have no evaluation."""
        stmt = (
            select(VoiceQuery)
            .outerjoin(VoiceEvaluation, VoiceEvaluation.query_id == VoiceQuery.id)
            .where(VoiceQuery.created_at >= since_ms)
            .where(VoiceEvaluation.query_id.is_(None))
            .order_by(VoiceQuery.created_at)
            .limit(limit)
        )
        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list unevaluated queries: {e}") from e

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _add(self, row, what: str, raise_integrity: bool = False) -> None:
        try:
            async with self.session_maker() as session:
                session.add(row)
                await session.commit()
        except IntegrityError as e:
            if raise_integrity:
                raise
            raise PersistenceError(f"Integrity error storing {what}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store {what}: {e}") from e
        logger.debug(f"Stored {what}")

    async def _get(self, model, key: str):
        try:
            async with self.session_maker() as session:
                return await session.get(model, key)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read {model.__tablename__} {key}: {e}") from e
