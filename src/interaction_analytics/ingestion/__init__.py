"""Event ingestion gateway and its background side-effects."""

from interaction_analytics.ingestion.background import BackgroundDispatcher
from interaction_analytics.ingestion.gateway import IngestionGateway, IngestResult

__all__ = [
    "BackgroundDispatcher",
    "IngestResult",
    "IngestionGateway",
]
