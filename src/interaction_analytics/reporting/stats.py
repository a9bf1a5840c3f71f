"""Read-only statistics over raw events and rollups."""

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Float, case, cast, distinct, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interaction_analytics.classification.rules import HIGH_LATENCY_MS
from interaction_analytics.db.models import (
    CustomerInsight,
    LLMCall,
    LLMUsageHourly,
    VoiceEvaluation,
    VoiceOutcome,
    VoiceQuery,
    VoiceStatsHourly,
)
from interaction_analytics.exceptions import PersistenceError
from interaction_analytics.store.records import Label
from interaction_analytics.utils import PERIODS_MS, ms_to_iso, now_ms, parse_period

logger = logging.getLogger(__name__)

DATASET_LIMIT = 1000
DATASET_DEFAULT_WINDOW_MS = PERIODS_MS["30d"]


@dataclass
class StatsParams:
    """Query parameters shared by the stats endpoints."""

    store_id: str | None = None
    period: str = "24h"
    limit: int | None = None
    since: int | None = None
    label: str = Label.GOOD.value

    def limit_or(self, default: int) -> int:
        return self.limit if self.limit and self.limit > 0 else default


def _round(value: Any) -> int:
    return round(value or 0)


def _round2(value: Any) -> float:
    return round((value or 0) * 100) / 100


class StatsService:
    """Aggregate queries backing the ``/stats/*`` endpoints."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self._endpoints: dict[str, Callable[[StatsParams], Awaitable[Any]]] = {
            "summary": self.summary,
            "top-queries": self.top_queries,
            "unanswered": self.unanswered,
            "dataset": self.dataset,
            "hourly": self.hourly,
            "llm-usage": self.llm_usage,
            "customer-insights": self.customer_insights,
            "recent-calls": self.recent_calls,
        }

    @property
    def endpoints(self) -> list[str]:
        return list(self._endpoints)

    async def get(self, name: str, params: StatsParams) -> Any:
        """Run the named stats query.

        Raises:
            KeyError: Unknown endpoint name
            PersistenceError: Query failed
        """
        handler = self._endpoints.get(name)
        if handler is None:
            raise KeyError(name)

        logger.debug(f"Handling stats request: {name} {params}")
        try:
            return await handler(params)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Stats query {name} failed: {e}") from e

    async def summary(self, params: StatsParams) -> dict:
        """Totals for one store (or all stores) over a period."""
        start, end = parse_period(params.period)
        window = [VoiceQuery.created_at >= start, VoiceQuery.created_at <= end]
        if params.store_id:
            window.append(VoiceQuery.store_id == params.store_id)

        totals = (
            select(
                func.count(distinct(VoiceQuery.id)).label("total_queries"),
                func.count(
                    distinct(case((VoiceOutcome.action_success.is_(True), VoiceQuery.id)))
                ).label("successful_queries"),
                func.count(
                    distinct(
                        case(
                            (
                                or_(
                                    VoiceOutcome.error_flag.is_(True),
                                    VoiceOutcome.action_success.is_(False),
                                ),
                                VoiceQuery.id,
                            )
                        )
                    )
                ).label("failed_queries"),
                func.avg(VoiceOutcome.latency_ms).label("avg_latency"),
                func.sum(VoiceOutcome.cost_usd).label("total_cost"),
                func.count(distinct(VoiceQuery.session_id)).label("unique_sessions"),
            )
            .select_from(VoiceQuery)
            .outerjoin(VoiceOutcome, VoiceOutcome.query_id == VoiceQuery.id)
            .where(*window)
        )
        unanswered = (
            select(func.count(distinct(VoiceQuery.id)))
            .select_from(VoiceQuery)
            .outerjoin(VoiceOutcome, VoiceOutcome.query_id == VoiceQuery.id)
            .outerjoin(VoiceEvaluation, VoiceEvaluation.query_id == VoiceQuery.id)
            .where(
                *window,
                or_(
                    VoiceOutcome.action_success.is_(False),
                    VoiceEvaluation.label.in_([Label.REVIEW.value, Label.BAD.value]),
                ),
            )
        )

        async with self.session_maker() as session:
            row = (await session.execute(totals)).one()
            unanswered_count = (await session.execute(unanswered)).scalar() or 0

        total = row.total_queries or 0
        return {
            "storeId": params.store_id or "all",
            "period": params.period,
            "totalQueries": total,
            "successfulQueries": row.successful_queries or 0,
            "failedQueries": row.failed_queries or 0,
            "averageLatencyMs": _round(row.avg_latency),
            "totalCostUsd": row.total_cost or 0,
            "uniqueSessions": row.unique_sessions or 0,
            "unansweredRate": unanswered_count / total if total > 0 else 0,
        }

    async def top_queries(self, params: StatsParams) -> list[dict]:
        """Most frequent query texts with latency and success rate."""
        start, end = parse_period(params.period)
        query_count = func.count().label("query_count")
        stmt = (
            select(
                VoiceQuery.query_text,
                VoiceQuery.intent,
                query_count,
                func.avg(VoiceOutcome.latency_ms).label("avg_latency"),
                (
                    func.sum(case((VoiceOutcome.action_success.is_(True), 1), else_=0))
                    * 100.0
                    / func.count()
                ).label("success_rate"),
            )
            .select_from(VoiceQuery)
            .outerjoin(VoiceOutcome, VoiceOutcome.query_id == VoiceQuery.id)
            .where(VoiceQuery.created_at >= start, VoiceQuery.created_at <= end)
        )
        if params.store_id:
            stmt = stmt.where(VoiceQuery.store_id == params.store_id)
        stmt = (
            stmt.group_by(VoiceQuery.query_text, VoiceQuery.intent)
            .order_by(query_count.desc())
            .limit(params.limit_or(20))
        )

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).all()

        return [
            {
                "queryText": row.query_text,
                "intent": row.intent,
                "count": row.query_count,
                "avgLatencyMs": _round(row.avg_latency),
                "successRate": _round(row.success_rate),
            }
            for row in rows
        ]

    async def unanswered(self, params: StatsParams) -> list[dict]:
        """Query texts that failed, errored, were slow, or were labelled REVIEW/BAD."""
        start, end = parse_period(params.period)
        reason = case(
            (VoiceOutcome.error_flag.is_(True), "error"),
            (VoiceOutcome.action_success.is_(False), "action_failed"),
            (VoiceEvaluation.label == Label.BAD.value, "bad_quality"),
            (VoiceEvaluation.label == Label.REVIEW.value, "needs_review"),
            (VoiceOutcome.latency_ms > HIGH_LATENCY_MS, "slow_response"),
            else_="unknown",
        ).label("reason")
        stmt = (
            select(VoiceQuery.query_text, VoiceQuery.intent, VoiceQuery.created_at, reason)
            .select_from(VoiceQuery)
            .outerjoin(VoiceOutcome, VoiceOutcome.query_id == VoiceQuery.id)
            .outerjoin(VoiceEvaluation, VoiceEvaluation.query_id == VoiceQuery.id)
            .where(
                VoiceQuery.created_at >= start,
                VoiceQuery.created_at <= end,
                or_(
                    VoiceOutcome.action_success.is_(False),
                    VoiceOutcome.error_flag.is_(True),
                    VoiceEvaluation.label.in_([Label.REVIEW.value, Label.BAD.value]),
                    VoiceOutcome.latency_ms > HIGH_LATENCY_MS,
                ),
            )
        )
        if params.store_id:
            stmt = stmt.where(VoiceQuery.store_id == params.store_id)

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).all()

        # Group by (query_text, intent); reasons keep first-seen order
        groups: dict[tuple[str, str | None], dict] = {}
        for row in rows:
            group = groups.setdefault(
                (row.query_text, row.intent),
                {
                    "queryText": row.query_text,
                    "intent": row.intent,
                    "occurrences": 0,
                    "lastSeen": row.created_at,
                    "reasons": [],
                },
            )
            group["occurrences"] += 1
            group["lastSeen"] = max(group["lastSeen"], row.created_at)
            if row.reason not in group["reasons"]:
                group["reasons"].append(row.reason)

        ranked = sorted(groups.values(), key=lambda g: g["occurrences"], reverse=True)
        return ranked[: params.limit_or(20)]

    async def dataset(self, params: StatsParams) -> list[dict]:
        """Successful prompt/completion pairs carrying the requested label."""
        since = params.since if params.since is not None else now_ms() - DATASET_DEFAULT_WINDOW_MS
        stmt = (
            select(
                VoiceQuery.query_text.label("prompt"),
                VoiceOutcome.answer_text.label("completion"),
                VoiceQuery.store_id,
                VoiceQuery.intent,
                VoiceOutcome.model_name,
                VoiceOutcome.action_taken,
                VoiceQuery.created_at,
            )
            .join(VoiceOutcome, VoiceOutcome.query_id == VoiceQuery.id)
            .join(VoiceEvaluation, VoiceEvaluation.query_id == VoiceQuery.id)
            .where(
                VoiceEvaluation.label == params.label,
                VoiceQuery.created_at >= since,
                VoiceOutcome.action_success.is_(True),
                VoiceOutcome.error_flag.is_(False),
            )
        )
        if params.store_id:
            stmt = stmt.where(VoiceQuery.store_id == params.store_id)
        stmt = stmt.order_by(VoiceQuery.created_at.desc()).limit(DATASET_LIMIT)

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).all()

        return [dict(row._mapping) for row in rows]

    async def hourly(self, params: StatsParams) -> list[dict]:
        """Store-hour rollups, newest hour first."""
        start, end = parse_period(params.period)
        stmt = select(
            VoiceStatsHourly.hour_bucket,
            func.sum(VoiceStatsHourly.total_queries).label("queries"),
            func.sum(VoiceStatsHourly.successful_queries).label("successes"),
            func.sum(VoiceStatsHourly.failed_queries).label("failures"),
            func.avg(
                cast(VoiceStatsHourly.total_latency_ms, Float)
                / func.nullif(VoiceStatsHourly.total_queries, 0)
            ).label("avg_latency"),
            func.sum(VoiceStatsHourly.total_cost_usd).label("cost"),
            func.sum(VoiceStatsHourly.unique_sessions).label("sessions"),
        ).where(
            VoiceStatsHourly.hour_bucket * 1000 >= start,
            VoiceStatsHourly.hour_bucket * 1000 <= end,
        )
        if params.store_id:
            stmt = stmt.where(VoiceStatsHourly.store_id == params.store_id)
        stmt = stmt.group_by(VoiceStatsHourly.hour_bucket).order_by(
            VoiceStatsHourly.hour_bucket.desc()
        )

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).all()

        return [
            {
                "hour": ms_to_iso(row.hour_bucket * 1000),
                "queries": row.queries or 0,
                "successes": row.successes or 0,
                "failures": row.failures or 0,
                "avgLatencyMs": _round(row.avg_latency),
                "costUsd": row.cost or 0,
                "sessions": row.sessions or 0,
            }
            for row in rows
        ]

    async def llm_usage(self, params: StatsParams) -> list[dict]:
        """Per-model call volume, cost and error rate over a period."""
        start, end = parse_period(params.period)
        total_calls = func.sum(LLMUsageHourly.total_calls)
        errors = func.sum(LLMUsageHourly.error_count)
        stmt = (
            select(
                LLMUsageHourly.model_name,
                LLMUsageHourly.provider,
                total_calls.label("total_calls"),
                func.sum(LLMUsageHourly.total_tokens).label("total_tokens"),
                func.sum(LLMUsageHourly.total_cost_usd).label("total_cost"),
                func.avg(
                    cast(LLMUsageHourly.total_latency_ms, Float)
                    / func.nullif(LLMUsageHourly.total_calls, 0)
                ).label("avg_latency"),
                (errors * 100.0 / total_calls).label("error_rate"),
                ((total_calls - errors) * 100.0 / total_calls).label("success_rate"),
            )
            .where(
                LLMUsageHourly.hour_bucket * 1000 >= start,
                LLMUsageHourly.hour_bucket * 1000 <= end,
            )
            .group_by(LLMUsageHourly.model_name, LLMUsageHourly.provider)
            .order_by(total_calls.desc())
        )

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).all()

        return [
            {
                "modelName": row.model_name,
                "provider": row.provider,
                "totalCalls": row.total_calls or 0,
                "totalTokens": row.total_tokens or 0,
                "totalCost": row.total_cost or 0,
                "avgLatency": _round(row.avg_latency),
                "errorRate": _round2(row.error_rate),
                "successRate": _round2(row.success_rate),
            }
            for row in rows
        ]

    async def customer_insights(self, params: StatsParams) -> list[dict]:
        """Most active customers."""
        stmt = (
            select(CustomerInsight)
            .order_by(CustomerInsight.total_interactions.desc())
            .limit(params.limit_or(10))
        )

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            {
                "customerId": row.customer_id,
                "totalInteractions": row.total_interactions,
                "avgLatency": _round(row.avg_latency_ms),
                "totalCost": row.total_cost_usd or 0,
                "preferredTopics": json.loads(row.preferred_topics) if row.preferred_topics else [],
                "satisfactionScore": row.satisfaction_score or 0,
                "lastActive": row.last_active,
            }
            for row in rows
        ]

    async def recent_calls(self, params: StatsParams) -> list[dict]:
        """Latest model calls, newest first."""
        stmt = select(LLMCall).order_by(LLMCall.timestamp.desc()).limit(params.limit_or(50))

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            {
                "callId": row.call_id,
                "customerId": row.customer_id,
                "timestamp": row.timestamp,
                "modelName": row.model_name,
                "provider": row.provider,
                "promptText": row.prompt_text,
                "completionText": row.completion_text,
                "tokensPrompt": row.tokens_prompt,
                "tokensCompletion": row.tokens_completion,
                "latencyMs": row.latency_ms,
                "costUsd": row.cost_usd,
                "errorMessage": row.error_message,
            }
            for row in rows
        ]
