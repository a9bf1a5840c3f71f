"""Evaluation work queue."""

from interaction_analytics.workqueue.redis_queue import EvaluationQueue

__all__ = ["EvaluationQueue"]
