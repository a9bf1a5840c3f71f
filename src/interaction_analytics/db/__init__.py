"""Database models and session management."""

from interaction_analytics.db.database import (
    create_engine,
    create_session_maker,
    init_db,
    init_db_with_retry,
)
from interaction_analytics.db.models import (
    Base,
    CustomerInsight,
    LLMCall,
    LLMUsageHourly,
    VoiceEvaluation,
    VoiceOutcome,
    VoiceQuery,
    VoiceStatsHourly,
)

__all__ = [
    "Base",
    "CustomerInsight",
    "LLMCall",
    "LLMUsageHourly",
    "VoiceEvaluation",
    "VoiceOutcome",
    "VoiceQuery",
    "VoiceStatsHourly",
    "create_engine",
    "create_session_maker",
    "init_db",
    "init_db_with_retry",
]
