"""API request and response schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from interaction_analytics.store.records import Label


class IngestResponse(BaseModel):
    """Acknowledgement of a persisted event."""

    status: Literal["ok"] = "ok"
    id: str = Field(..., description="Id of the stored event (query id, or call id)")

    model_config = {"json_schema_extra": {
        "example": {"status": "ok", "id": "01J9ZK5V6W8X0Y2Z4A6B8C0D2E"}
    }}


class ErrorResponse(BaseModel):
    """Error body returned for rejected requests."""

    status: Literal["error"] = "error"
    error: str = Field(..., description="Human-readable reason")
    details: list[dict[str, Any]] = Field(default_factory=list, description="Field errors")


class EvaluationReviewRequest(BaseModel):
    """Human review of a query's quality label."""

    label: Label = Field(..., description="GOOD, REVIEW or BAD")
    reason: str = Field(default="human_review", max_length=256)
    confidence_score: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {"label": "GOOD", "reason": "verified_answer", "confidenceScore": 1.0}
        },
    )


class EvaluationResponse(BaseModel):
    """Current evaluation of a query."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    query_id: str
    label: Label
    reason: str
    confidence_score: float
    evaluated_at: int
    evaluated_by: Literal["auto", "human"]


class ReadinessResponse(BaseModel):
    """Readiness of dependent services."""

    status: Literal["ready", "degraded"]
    services: dict[str, str]
