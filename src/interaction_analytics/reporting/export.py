"""Export labelled interactions as fine-tuning data (JSONL)."""

import json
import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interaction_analytics.db.models import VoiceEvaluation, VoiceOutcome, VoiceQuery
from interaction_analytics.exceptions import PersistenceError
from interaction_analytics.store.records import Label
from interaction_analytics.utils import ms_to_iso, parse_since

logger = logging.getLogger(__name__)

DEFAULT_SINCE = "2025-01-01"
MIN_TEXT_LENGTH = 3


class ExportFormat(str, Enum):
    """Chat message layout of each exported line."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


# Role name of the human turn per format
USER_ROLES = {
    ExportFormat.OPENAI: "user",
    ExportFormat.ANTHROPIC: "human",
}


@dataclass
class ExportFilters:
    """Selection criteria for training examples."""

    label: Label = Label.GOOD
    since: str | int = DEFAULT_SINCE
    min_confidence: float = 0.8
    max_latency: int = 8000
    limit: int = 5000
    store_id: str | None = None
    format: ExportFormat = ExportFormat.OPENAI


class TrainingDataExporter:
    """Select successful, well-rated interactions and format them as chat pairs."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def export(self, filters: ExportFilters) -> str:
        """Build the JSONL export.

        Args:
            filters: Selection criteria and output format

        Returns:
            One JSON object per line; empty string when nothing matches

        Raises:
            ValueError: If ``since`` is not an epoch-ms value or ISO date
            PersistenceError: Query failed
        """
        since_ms = parse_since(filters.since, default_ms=parse_since(DEFAULT_SINCE, 0))
        logger.info(
            f"Exporting training data: label={filters.label.value} since={filters.since} "
            f"min_confidence={filters.min_confidence} max_latency={filters.max_latency} "
            f"limit={filters.limit} store={filters.store_id} format={filters.format.value}"
        )

        stmt = (
            select(
                VoiceQuery.query_text,
                VoiceOutcome.answer_text,
                VoiceQuery.store_id,
                VoiceQuery.intent,
                VoiceOutcome.action_taken,
                VoiceOutcome.model_name,
                VoiceQuery.created_at,
                VoiceEvaluation.confidence_score,
            )
            .join(VoiceOutcome, VoiceOutcome.query_id == VoiceQuery.id)
            .join(VoiceEvaluation, VoiceEvaluation.query_id == VoiceQuery.id)
            .where(
                VoiceEvaluation.label == filters.label.value,
                VoiceEvaluation.confidence_score >= filters.min_confidence,
                VoiceOutcome.action_success.is_(True),
                VoiceOutcome.error_flag.is_(False),
                VoiceOutcome.latency_ms <= filters.max_latency,
                VoiceQuery.created_at >= since_ms,
                func.length(VoiceQuery.query_text) > MIN_TEXT_LENGTH,
                func.length(VoiceOutcome.answer_text) > MIN_TEXT_LENGTH,
            )
        )
        if filters.store_id:
            stmt = stmt.where(VoiceQuery.store_id == filters.store_id)
        stmt = stmt.order_by(VoiceQuery.created_at.desc()).limit(filters.limit)

        try:
            async with self.session_maker() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Training data export failed: {e}") from e

        if not rows:
            logger.warning("No training data found matching criteria")
            return ""

        logger.info(f"Found {len(rows)} training examples")
        user_role = USER_ROLES[filters.format]
        return "\n".join(
            json.dumps(
                {
                    "messages": [
                        {"role": user_role, "content": row.query_text},
                        {"role": "assistant", "content": row.answer_text},
                    ],
                    "metadata": {
                        "store_id": row.store_id,
                        "intent": row.intent,
                        "action_taken": row.action_taken,
                        "model_name": row.model_name,
                        "confidence_score": row.confidence_score,
                        "created_at": ms_to_iso(row.created_at),
                    },
                }
            )
            for row in rows
        )
