"""Health check endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from interaction_analytics.api.deps import get_services
from interaction_analytics.api.schemas import ReadinessResponse
from interaction_analytics.services import Services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check - returns ok if the service is running."""
    return {"status": "ok"}


@router.get("/health/ready", response_model=ReadinessResponse)
async def ready(services: Services = Depends(get_services)) -> ReadinessResponse:
    """
    Readiness check - verifies dependent services are available.

    Checks:
    - Database: event store connection
    - Redis: evaluation work queue connection
    - Quality model: whether the model tier is configured
    """
    checks: dict[str, str] = {}
    all_ok = True

    # Check database
    try:
        async with services.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {type(e).__name__}"
        all_ok = False

    # Check Redis
    try:
        if await services.redis.ping():
            checks["redis"] = "ok"
        else:
            checks["redis"] = "error: no response"
            all_ok = False
    except Exception as e:
        checks["redis"] = f"error: {type(e).__name__}"
        all_ok = False

    # Model tier is optional; an unconfigured model does not fail readiness
    if services.quality_model is not None:
        checks["quality_model"] = f"ok ({services.quality_model.provider_name})"
    else:
        checks["quality_model"] = "warning: no provider configured"

    status = "ready" if all_ok else "degraded"
    return ReadinessResponse(status=status, services=checks)
