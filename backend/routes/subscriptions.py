"""Billing plan: current subscription, checkout link and Lemon Squeezy webhook."""

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session as DBSession
from typing import Optional

from auth import get_current_user
from database import get_db
from schemas import SubscriptionOut
from services.billing import (
    BillingService, InvalidSignatureError, LemonSqueezyClient, get_lemonsqueezy_client,
)
from services.observability import log_provider_error

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.get("/current", summary="Current billing subscription")
async def get_current_subscription(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    subscription = BillingService(db).current(user_id)
    return {"data": SubscriptionOut.model_validate(subscription) if subscription else None}


@router.post("/checkout", summary="Checkout or customer-portal URL")
async def create_checkout(
    db: DBSession = Depends(get_db),
    client: LemonSqueezyClient = Depends(get_lemonsqueezy_client),
    user_id: str = Depends(get_current_user),
):
    try:
        url = BillingService(db, client).checkout_url(user_id)
    except (httpx.HTTPError, KeyError) as e:
        log_provider_error("lemonsqueezy", "checkout", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create checkout URL",
        )
    return {"data": url}


@router.post("/webhook", summary="Lemon Squeezy webhook")
async def subscription_webhook(
    request: Request,
    x_signature: Optional[str] = Header(None),
    db: DBSession = Depends(get_db),
):
    """
    Mirror subscription events into the local table.

    The body is verified against ``X-Signature`` before anything is parsed.
    """
    body = await request.body()
    try:
        BillingService(db).handle_webhook(body, x_signature)
    except InvalidSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {}
