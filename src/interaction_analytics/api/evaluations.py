"""Human review of evaluation labels."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from interaction_analytics.api.deps import get_services
from interaction_analytics.api.schemas import EvaluationResponse, EvaluationReviewRequest
from interaction_analytics.exceptions import PersistenceError
from interaction_analytics.services import Services
from interaction_analytics.store.records import EvaluatedBy, EvaluationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


@router.get("/{query_id}", response_model=EvaluationResponse)
async def get_evaluation(query_id: str, services: Services = Depends(get_services)) -> dict:
    """Get the current evaluation of a query."""
    try:
        result = await services.store.get_evaluation(query_id)
    except PersistenceError as e:
        logger.error(f"Failed to read evaluation {query_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to read evaluation")

    if result is None:
        raise HTTPException(status_code=404, detail=f"No evaluation for query {query_id}")
    return result.to_dict()


@router.put("/{query_id}", response_model=EvaluationResponse)
async def review_evaluation(
    query_id: str,
    review: EvaluationReviewRequest,
    services: Services = Depends(get_services),
) -> dict:
    """Record a human label for a query.

    A human label replaces any existing evaluation and is never replaced by
    a later automatic run.
    """
    try:
        query = await services.store.get_query(query_id)
        if query is None:
            raise HTTPException(status_code=404, detail=f"Query {query_id} not found")

        result = EvaluationResult(
            query_id=query_id,
            label=review.label,
            reason=review.reason,
            confidence_score=review.confidence_score,
            evaluated_by=EvaluatedBy.HUMAN,
        )
        await services.store.upsert_evaluation(result, overwrite_human=True)
    except PersistenceError as e:
        logger.error(f"Failed to store review for {query_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to store review")

    logger.info(f"Human review for {query_id}: {review.label.value} ({review.reason})")
    return result.to_dict()
