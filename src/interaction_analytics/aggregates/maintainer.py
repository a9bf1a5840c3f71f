"""Read-modify-write maintenance of hourly and per-customer rollups.

None of these updates take a lock. Two requests touching the same store-hour
or customer at the same moment can interleave: the unique-session recount can
briefly lag, the first-insert of a bucket can collide on its primary key, and
the customer latency mean can lose one sample. Aggregates are approximate;
callers run these updates as detached side-effects and only log
failures.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interaction_analytics.db.models import (
    CustomerInsight,
    LLMUsageHourly,
    VoiceQuery,
    VoiceStatsHourly,
)
from interaction_analytics.events.schemas import LLMCallEvent, OutcomeEvent, QueryEvent
from interaction_analytics.exceptions import PersistenceError
from interaction_analytics.utils import HOUR_MS, get_hour_bucket, now_ms

logger = logging.getLogger(__name__)


class AggregateMaintainer:
    """Keeps VoiceStatsHourly, LLMUsageHourly and CustomerInsight current."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        """Initialize aggregate maintainer.

        Args:
            session_maker: Factory for database sessions
        """
        self.session_maker = session_maker

    async def update_hourly_stats(self, event: QueryEvent) -> None:
        """Count a query in its store-hour and recount unique sessions.

        Raises:
            PersistenceError: If the update fails
        """
        created_at = event.created_at if event.created_at is not None else now_ms()
        hour_bucket = get_hour_bucket(created_at)

        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    update(VoiceStatsHourly)
                    .where(VoiceStatsHourly.store_id == event.store_id)
                    .where(VoiceStatsHourly.hour_bucket == hour_bucket)
                    .values(total_queries=VoiceStatsHourly.total_queries + 1)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 0:
                    session.add(
                        VoiceStatsHourly(
                            store_id=event.store_id,
                            hour_bucket=hour_bucket,
                            total_queries=1,
                            successful_queries=0,
                            failed_queries=0,
                            total_latency_ms=0,
                            total_cost_usd=0.0,
                            unique_sessions=0,
                        )
                    )
                await session.commit()

                if event.session_id:
                    await self._recount_sessions(session, event.store_id, hour_bucket)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to update hourly stats for {event.store_id}@{hour_bucket}: {e}"
            ) from e

    async def _recount_sessions(
        self, session: AsyncSession, store_id: str, hour_bucket: int
    ) -> None:
        """Recompute unique sessions for a store-hour from the raw queries.

        A full count over one hour of queries; exact, at O(queries in bucket).
        """
        start_ms = hour_bucket * 1000
        distinct_sessions = (
            select(func.count(func.distinct(VoiceQuery.session_id)))
            .where(VoiceQuery.store_id == store_id)
            .where(VoiceQuery.created_at >= start_ms)
            .where(VoiceQuery.created_at < start_ms + HOUR_MS)
            .scalar_subquery()
        )
        await session.execute(
            update(VoiceStatsHourly)
            .where(VoiceStatsHourly.store_id == store_id)
            .where(VoiceStatsHourly.hour_bucket == hour_bucket)
            .values(unique_sessions=distinct_sessions)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

    async def apply_outcome(self, event: OutcomeEvent) -> bool:
        """Fold an outcome into its query's store-hour.

        Returns:
            False if the query is unknown, so there is no bucket to update

        Raises:
            PersistenceError: If the update fails
        """
        success = 0 if event.failed else 1
        failure = 1 - success
        cost = event.cost_usd or 0.0

        try:
            async with self.session_maker() as session:
                query = await session.get(VoiceQuery, event.query_id)
                if query is None:
                    logger.debug(f"No query {event.query_id} for outcome; skipping hourly stats")
                    return False

                hour_bucket = get_hour_bucket(query.created_at)
                result = await session.execute(
                    update(VoiceStatsHourly)
                    .where(VoiceStatsHourly.store_id == query.store_id)
                    .where(VoiceStatsHourly.hour_bucket == hour_bucket)
                    .values(
                        successful_queries=VoiceStatsHourly.successful_queries + success,
                        failed_queries=VoiceStatsHourly.failed_queries + failure,
                        total_latency_ms=VoiceStatsHourly.total_latency_ms + event.latency_ms,
                        total_cost_usd=VoiceStatsHourly.total_cost_usd + cost,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    # Query's own hourly update has not landed yet
                    session.add(
                        VoiceStatsHourly(
                            store_id=query.store_id,
                            hour_bucket=hour_bucket,
                            total_queries=0,
                            successful_queries=success,
                            failed_queries=failure,
                            total_latency_ms=event.latency_ms,
                            total_cost_usd=cost,
                            unique_sessions=0,
                        )
                    )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to apply outcome {event.query_id} to hourly stats: {e}"
            ) from e
        return True

    async def update_llm_usage(self, event: LLMCallEvent) -> None:
        """Count a model call in its model-hour bucket.

        Raises:
            PersistenceError: If the update fails
        """
        timestamp = event.timestamp if event.timestamp is not None else now_ms()
        hour_bucket = get_hour_bucket(timestamp)
        errors = 1 if event.error_message else 0
        cost = event.cost_usd or 0.0

        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    update(LLMUsageHourly)
                    .where(LLMUsageHourly.hour_bucket == hour_bucket)
                    .where(LLMUsageHourly.model_name == event.model_name)
                    .where(LLMUsageHourly.provider == event.provider)
                    .values(
                        total_calls=LLMUsageHourly.total_calls + 1,
                        total_tokens=LLMUsageHourly.total_tokens + event.total_tokens,
                        total_cost_usd=LLMUsageHourly.total_cost_usd + cost,
                        total_latency_ms=LLMUsageHourly.total_latency_ms + event.latency_ms,
                        error_count=LLMUsageHourly.error_count + errors,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    session.add(
                        LLMUsageHourly(
                            hour_bucket=hour_bucket,
                            model_name=event.model_name,
                            provider=event.provider,
                            total_calls=1,
                            total_tokens=event.total_tokens,
                            total_cost_usd=cost,
                            total_latency_ms=event.latency_ms,
                            error_count=errors,
                        )
                    )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to update LLM usage for {event.model_name}@{hour_bucket}: {e}"
            ) from e

    async def update_customer_insight(self, event: LLMCallEvent) -> None:
        """Add a model call to its customer's running totals.

        The latency average is recomputed from the previous mean and count
        rather than kept as a separate sum.

        Raises:
            PersistenceError: If the update fails
        """
        if not event.customer_id:
            return

        timestamp = event.timestamp if event.timestamp is not None else now_ms()
        cost = event.cost_usd or 0.0

        try:
            async with self.session_maker() as session:
                insight = await session.get(CustomerInsight, event.customer_id)

                if insight is not None:
                    old_count = insight.total_interactions or 0
                    old_avg = insight.avg_latency_ms or 0.0
                    insight.avg_latency_ms = (old_avg * old_count + event.latency_ms) / (
                        old_count + 1
                    )
                    insight.total_interactions = old_count + 1
                    insight.total_cost_usd = (insight.total_cost_usd or 0.0) + cost
                    insight.last_active = max(insight.last_active or 0, timestamp)
                    insight.insights_updated = now_ms()
                else:
                    session.add(
                        CustomerInsight(
                            customer_id=event.customer_id,
                            total_interactions=1,
                            total_cost_usd=cost,
                            avg_latency_ms=float(event.latency_ms),
                            satisfaction_score=0.0,
                            last_active=timestamp,
                            insights_updated=now_ms(),
                        )
                    )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to update customer insight for {event.customer_id}: {e}"
            ) from e
