"""Spending suggestions for the dashboard card."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from services.observability import logger, metrics
from services.recommendations import RecommendationEngine

router = APIRouter(prefix="/recommendations", tags=["Recommendations"])


@router.get("", summary="Suggestions based on the top payees of the last 30 days")
async def get_recommendations(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    try:
        recommendations = RecommendationEngine(db, user_id).generate()
    except Exception as e:
        logger.exception("Error fetching recommendations", user_id=user_id, error=str(e))
        metrics.increment("recommendations.failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate recommendations",
        )

    return {"data": recommendations}
