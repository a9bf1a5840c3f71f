"""Read-only statistics and training-data export endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from interaction_analytics.api.deps import get_services
from interaction_analytics.exceptions import PersistenceError
from interaction_analytics.reporting import ExportFilters, ExportFormat, StatsParams
from interaction_analytics.services import Services
from interaction_analytics.store.records import Label
from interaction_analytics.utils import now_ms

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stats"])


@router.get("/stats/{name}")
async def get_stats(
    name: str,
    store: str | None = Query(default=None, description="Store id filter"),
    store_id: str | None = Query(default=None, alias="storeId", description="Store id filter"),
    period: str = Query(default="24h", description="1h, 24h, 7d or 30d"),
    limit: int | None = Query(default=None, ge=1, le=10000),
    since: int | None = Query(default=None, description="Epoch ms lower bound (dataset)"),
    label: Label = Query(default=Label.GOOD, description="Label filter (dataset)"),
    services: Services = Depends(get_services),
) -> Any:
    """Run one of the named statistics queries."""
    params = StatsParams(
        store_id=store or store_id,
        period=period,
        limit=limit,
        since=since,
        label=label.value,
    )
    try:
        return await services.stats.get(name, params)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown stats endpoint: {name}")
    except PersistenceError as e:
        logger.error(f"Stats query {name} failed: {e}", exc_info=e.__cause__)
        raise HTTPException(status_code=500, detail="Stats query failed")


@router.get("/export/training-data")
async def export_training_data(
    label: Label = Query(default=Label.GOOD),
    since: str = Query(default="2025-01-01", description="ISO date or epoch ms"),
    min_confidence: float = Query(default=0.8, ge=0.0, le=1.0),
    max_latency: int = Query(default=8000, ge=0),
    limit: int = Query(default=5000, ge=1, le=50000),
    store_id: str | None = Query(default=None),
    format: ExportFormat = Query(default=ExportFormat.OPENAI),
    services: Services = Depends(get_services),
) -> Response:
    """Download successful, well-rated interactions as JSONL chat examples."""
    filters = ExportFilters(
        label=label,
        since=since,
        min_confidence=min_confidence,
        max_latency=max_latency,
        limit=limit,
        store_id=store_id,
        format=format,
    )
    try:
        body = await services.exporter.export(filters)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid since value: {e}")
    except PersistenceError as e:
        logger.error(f"Training data export failed: {e}", exc_info=e.__cause__)
        raise HTTPException(status_code=500, detail="Export failed")

    filename = f"training_data_{now_ms()}.jsonl"
    return Response(
        content=body,
        media_type="application/x-ndjson",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
