"""Hourly and per-customer rollups."""

from interaction_analytics.aggregates.maintainer import AggregateMaintainer

__all__ = ["AggregateMaintainer"]
