"""SQLAlchemy models for raw events and their rollups.

Raw event tables (written once by the ingestion gateway):
- VoiceQuery, VoiceOutcome, LLMCall

Classification results (upserted by the batch classifier or a human reviewer):
- VoiceEvaluation

Aggregate tables (read-modify-write, no cross-request locking):
- VoiceStatsHourly, LLMUsageHourly, CustomerInsight
"""

from sqlalchemy import BigInteger, Boolean, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from interaction_analytics.utils import now_ms


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# Raw events
# =============================================================================


class VoiceQuery(Base):
    """A voice or text query received by the assistant."""

    __tablename__ = "voice_queries"
    __table_args__ = (
        Index("idx_queries_store_time", "store_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # ULID
    store_id: Mapped[str] = mapped_column(String(128))
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, index=True)  # Epoch ms
    query_text: Mapped[str] = mapped_column(Text)
    transcription_conf: Mapped[float | None] = mapped_column(Float, nullable=True)
    intent: Mapped[str | None] = mapped_column(String(128), nullable=True)
    fast_path: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<VoiceQuery(id={self.id}, store_id={self.store_id})>"


class VoiceOutcome(Base):
    """Outcome of answering a query. At most one per query."""

    __tablename__ = "voice_outcomes"

    query_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    answer_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    model_name: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    latency_ms: Mapped[int] = mapped_column(Integer)
    tokens_prompt: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tokens_completion: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    action_taken: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    action_success: Mapped[bool] = mapped_column(Boolean, default=False)
    error_flag: Mapped[bool] = mapped_column(Boolean, default=False)
    tool_calls: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON array

    def __repr__(self) -> str:
        return f"<VoiceOutcome(query_id={self.query_id}, success={self.action_success})>"


class LLMCall(Base):
    """Audit record of an individual model API call."""

    __tablename__ = "llm_calls"

    call_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    query_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    customer_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, index=True)  # Epoch ms
    model_name: Mapped[str] = mapped_column(String(128), index=True)
    provider: Mapped[str] = mapped_column(String(64))
    prompt_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    tokens_prompt: Mapped[int] = mapped_column(Integer, default=0)
    tokens_completion: Mapped[int] = mapped_column(Integer, default=0)
    latency_ms: Mapped[int] = mapped_column(Integer)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    system_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_metadata: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON object
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms)

    def __repr__(self) -> str:
        return f"<LLMCall(call_id={self.call_id}, model={self.model_name})>"


# =============================================================================
# Classification
# =============================================================================


class VoiceEvaluation(Base):
    """Current quality label for a query."""

    __tablename__ = "voice_evaluations"

    query_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("voice_queries.id"), primary_key=True
    )
    label: Mapped[str] = mapped_column(String(16), index=True)  # GOOD, REVIEW, BAD
    reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    evaluated_at: Mapped[int] = mapped_column(BigInteger)  # Epoch ms
    evaluated_by: Mapped[str] = mapped_column(String(16), default="auto")  # auto, human

    def __repr__(self) -> str:
        return f"<VoiceEvaluation(query_id={self.query_id}, label={self.label})>"


# =============================================================================
# Aggregates
# =============================================================================


class VoiceStatsHourly(Base):
    """Per store-hour query counters."""

    __tablename__ = "voice_stats_hourly"

    store_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    hour_bucket: Mapped[int] = mapped_column(BigInteger, primary_key=True, index=True)  # Epoch s
    total_queries: Mapped[int] = mapped_column(Integer, default=0)
    successful_queries: Mapped[int] = mapped_column(Integer, default=0)
    failed_queries: Mapped[int] = mapped_column(Integer, default=0)
    total_latency_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    total_cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    unique_sessions: Mapped[int] = mapped_column(Integer, default=0)  # Recomputed, not incremented

    def __repr__(self) -> str:
        return (
            f"<VoiceStatsHourly(store_id={self.store_id}, hour={self.hour_bucket}, "
            f"total={self.total_queries})>"
        )


class LLMUsageHourly(Base):
    """Per model-hour call counters."""

    __tablename__ = "llm_usage_hourly"

    hour_bucket: Mapped[int] = mapped_column(BigInteger, primary_key=True, index=True)
    model_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    provider: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_calls: Mapped[int] = mapped_column(Integer, default=0)
    total_tokens: Mapped[int] = mapped_column(BigInteger, default=0)
    total_cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    total_latency_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    error_count: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<LLMUsageHourly(model={self.model_name}, hour={self.hour_bucket})>"


class CustomerInsight(Base):
    """Running per-customer totals."""

    __tablename__ = "customer_insights"

    customer_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_interactions: Mapped[int] = mapped_column(Integer, default=0)
    total_cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    avg_latency_ms: Mapped[float] = mapped_column(Float, default=0.0)  # Running weighted mean
    preferred_topics: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON array
    satisfaction_score: Mapped[float] = mapped_column(Float, default=0.0)
    last_active: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    insights_updated: Mapped[int] = mapped_column(BigInteger, default=now_ms)

    def __repr__(self) -> str:
        return (
            f"<CustomerInsight(customer_id={self.customer_id}, "
            f"interactions={self.total_interactions})>"
        )
