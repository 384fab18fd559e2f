"""Dashboard summary cards and charts."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from schemas import SummaryOut
from services.summary import SummaryCalculator, resolve_period

router = APIRouter(prefix="/summary", tags=["Summary"])


@router.get("", summary="Income, expenses and balance for a period")
async def get_summary(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    account_id: Optional[str] = Query(None, alias="accountId"),
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """
    Totals for the requested period compared with the period of equal length
    right before it, plus top categories and a gap-free daily series.

    Example:
        GET /api/summary?from=2025-01-01&to=2025-01-31
    """
    try:
        start, end = resolve_period(date_from, date_to)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    calculator = SummaryCalculator(db, user_id, account_id=account_id)
    return {"data": SummaryOut(**calculator.calculate(start, end))}
