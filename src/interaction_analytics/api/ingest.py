"""Event ingestion endpoint."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from interaction_analytics.api.deps import get_services
from interaction_analytics.api.schemas import ErrorResponse, IngestResponse
from interaction_analytics.exceptions import ConflictError, PersistenceError, ValidationError
from interaction_analytics.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ingest"])


def _error(status_code: int, message: str, details: list | None = None) -> JSONResponse:
    body = ErrorResponse(error=message, details=details or [])
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.post(
    "/ingest",
    response_model=IngestResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def ingest(request: Request, services: Services = Depends(get_services)):
    """Record one ``query``, ``outcome`` or ``llm_call`` event.

    Responds once the event is stored; evaluation queueing and aggregate
    updates continue in the background.
    """
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Request body is not valid JSON")

    try:
        result = await services.gateway.ingest(payload)
    except ValidationError as e:
        logger.info(f"Rejected event: {e}")
        return _error(400, str(e), e.errors)
    except ConflictError as e:
        logger.info(f"Duplicate event: {e}")
        return _error(409, str(e))
    except PersistenceError as e:
        logger.error(f"Failed to store event: {e}", exc_info=e.__cause__)
        return _error(500, "Failed to store event")

    return IngestResponse(id=result.event_id)
