"""Rule tiers of the quality cascade.

Each tier is an ordered list of ``(predicate, verdict)`` rules evaluated
first-match-wins. A tier returns a ``Verdict`` or None when nothing matched,
so tiers compose as a short-circuiting pipeline.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from interaction_analytics.store.records import Label

# Thresholds
VERY_LOW_TRANSCRIPTION_CONFIDENCE = 0.5
LOW_TRANSCRIPTION_CONFIDENCE = 0.8
HIGH_TRANSCRIPTION_CONFIDENCE = 0.95
MIN_QUERY_LENGTH = 3
EXTREME_LATENCY_MS = 10_000
HIGH_LATENCY_MS = 8_000
FAST_ACTION_LATENCY_MS = 5_000


class Tier(str, Enum):
    """Which step of the cascade produced a verdict."""

    HEURISTIC = "heuristic"
    OUTCOME = "outcome"
    MODEL = "model"
    DEFAULT = "default"


@dataclass(frozen=True)
class Verdict:
    """Label, reason code and confidence produced by one tier."""

    label: Label
    reason: str
    confidence: float
    tier: Tier


class QueryLike(Protocol):
    """Fields of a query the heuristic tier reads."""

    query_text: str
    transcription_confidence: float | None
    fast_path: bool


class OutcomeLike(Protocol):
    """Fields of an outcome the outcome tier reads."""

    latency_ms: int | None
    action_taken: str | None
    action_success: bool
    error_flag: bool


Rule = tuple[Callable[[Any], bool], Verdict]


def first_match(subject: Any, rules: Sequence[Rule]) -> Verdict | None:
    """Return the verdict of the first rule whose predicate holds."""
    for predicate, verdict in rules:
        if predicate(subject):
            return verdict
    return None


def _conf_below(threshold: float) -> Callable[[QueryLike], bool]:
    def predicate(query: QueryLike) -> bool:
        conf = query.transcription_confidence
        return conf is not None and conf < threshold

    return predicate


def _latency_above(threshold: int) -> Callable[[OutcomeLike], bool]:
    def predicate(outcome: OutcomeLike) -> bool:
        return outcome.latency_ms is not None and outcome.latency_ms > threshold

    return predicate


HEURISTIC_RULES: list[Rule] = [
    (
        _conf_below(VERY_LOW_TRANSCRIPTION_CONFIDENCE),
        Verdict(Label.BAD, "very_low_transcription_confidence", 0.9, Tier.HEURISTIC),
    ),
    (
        lambda q: len(q.query_text or "") < MIN_QUERY_LENGTH,
        Verdict(Label.BAD, "query_too_short", 0.9, Tier.HEURISTIC),
    ),
    (
        _conf_below(LOW_TRANSCRIPTION_CONFIDENCE),
        Verdict(Label.REVIEW, "low_transcription_confidence", 0.7, Tier.HEURISTIC),
    ),
    (
        lambda q: bool(q.fast_path)
        and q.transcription_confidence is not None
        and q.transcription_confidence > HIGH_TRANSCRIPTION_CONFIDENCE,
        Verdict(Label.GOOD, "high_confidence_fast_path", 0.8, Tier.HEURISTIC),
    ),
]

OUTCOME_RULES: list[Rule] = [
    (
        lambda o: bool(o.error_flag),
        Verdict(Label.BAD, "error_occurred", 0.95, Tier.OUTCOME),
    ),
    (
        _latency_above(EXTREME_LATENCY_MS),
        Verdict(Label.BAD, "extreme_latency", 0.9, Tier.OUTCOME),
    ),
    (
        _latency_above(HIGH_LATENCY_MS),
        Verdict(Label.REVIEW, "high_latency", 0.8, Tier.OUTCOME),
    ),
    (
        lambda o: not o.action_success and bool(o.action_taken),
        Verdict(Label.REVIEW, "action_failed", 0.8, Tier.OUTCOME),
    ),
    (
        lambda o: bool(o.action_success)
        and o.latency_ms is not None
        and o.latency_ms < FAST_ACTION_LATENCY_MS,
        Verdict(Label.GOOD, "successful_fast_action", 0.85, Tier.OUTCOME),
    ),
]

DEFAULT_VERDICT = Verdict(Label.REVIEW, "no_evaluation_criteria_met", 0.5, Tier.DEFAULT)
MODEL_FAILED_VERDICT = Verdict(Label.REVIEW, "llm_evaluation_failed", 0.5, Tier.MODEL)


def evaluate_heuristics(query: QueryLike) -> Verdict | None:
    """Fast checks on the query alone."""
    return first_match(query, HEURISTIC_RULES)


def evaluate_outcome(outcome: OutcomeLike | None) -> Verdict | None:
    """Checks on the recorded outcome. A missing outcome matches nothing."""
    if outcome is None:
        return None
    return first_match(outcome, OUTCOME_RULES)
