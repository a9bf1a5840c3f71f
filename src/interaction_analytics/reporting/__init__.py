"""Read-only reporting: statistics and training-data export."""

from interaction_analytics.reporting.export import (
    ExportFilters,
    ExportFormat,
    TrainingDataExporter,
)
from interaction_analytics.reporting.stats import StatsParams, StatsService

__all__ = [
    "ExportFilters",
    "ExportFormat",
    "StatsParams",
    "StatsService",
    "TrainingDataExporter",
]
