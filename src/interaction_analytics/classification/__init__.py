"""Quality classification of recorded queries."""

from interaction_analytics.classification.batch import (
    BatchClassifier,
    BatchReport,
    ItemReport,
    ItemState,
)
from interaction_analytics.classification.quality_model import (
    ModelJudgment,
    QualityModelClient,
    build_prompt,
    parse_judgment,
)
from interaction_analytics.classification.rules import (
    DEFAULT_VERDICT,
    MODEL_FAILED_VERDICT,
    Tier,
    Verdict,
    evaluate_heuristics,
    evaluate_outcome,
)
from interaction_analytics.classification.scheduler import ClassificationScheduler

__all__ = [
    "BatchClassifier",
    "BatchReport",
    "ClassificationScheduler",
    "DEFAULT_VERDICT",
    "ItemReport",
    "ItemState",
    "MODEL_FAILED_VERDICT",
    "ModelJudgment",
    "QualityModelClient",
    "Tier",
    "Verdict",
    "build_prompt",
    "evaluate_heuristics",
    "evaluate_outcome",
    "parse_judgment",
]
