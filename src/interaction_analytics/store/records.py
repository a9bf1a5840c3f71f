"""Evaluation records shared by the classifier, the store and the API."""

from dataclasses import dataclass, field
from enum import Enum

from interaction_analytics.utils import now_ms


class Label(str, Enum):
    """Quality label assigned to an interaction."""

    GOOD = "GOOD"
    REVIEW = "REVIEW"
    BAD = "BAD"


class EvaluatedBy(str, Enum):
    """Who produced an evaluation."""

    AUTO = "auto"
    HUMAN = "human"


@dataclass(frozen=True)
class EvaluationResult:
    """Current quality judgment for one query."""

    query_id: str
    label: Label
    reason: str
    confidence_score: float
    evaluated_by: EvaluatedBy = EvaluatedBy.AUTO
    evaluated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        """Serialize for API responses."""
        return {
            "queryId": self.query_id,
            "label": self.label.value,
            "reason": self.reason,
            "confidenceScore": self.confidence_score,
            "evaluatedAt": self.evaluated_at,
            "evaluatedBy": self.evaluated_by.value,
        }
