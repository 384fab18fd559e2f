"""
Billing subscriptions through Lemon Squeezy.

Provides:
    - LemonSqueezyClient: checkout creation and customer-portal lookup (httpx)
    - verify_webhook_signature: HMAC-SHA256 check of webhook bodies
    - BillingService: current subscription, checkout URL, webhook upsert

Author: Finance Dashboard Team
"""

import hashlib
import hmac
import json
from typing import Optional

import httpx
from sqlalchemy.orm import Session as DBSession

from config import (
    APP_URL,
    LEMONSQUEEZY_API_URL, LEMONSQUEEZY_API_KEY,
    LEMONSQUEEZY_STORE_ID, LEMONSQUEEZY_VARIANT_ID,
    LEMONSQUEEZY_WEBHOOK_SECRET,
)
from models import Subscription
from services.observability import logger, metrics, timed


SUBSCRIPTION_EVENTS = {"subscription_created", "subscription_updated"}
ACTIVE_STATUS = "active"


class InvalidSignatureError(ValueError):
    """Webhook body does not match its X-Signature header."""


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def is_active(subscription: Optional[Subscription]) -> bool:
    return subscription is not None and subscription.status == ACTIVE_STATUS


class LemonSqueezyClient:
    """Minimal JSON:API client for the two Lemon Squeezy calls we need."""

    def __init__(
        self,
        api_key: str = LEMONSQUEEZY_API_KEY,
        base_url: str = LEMONSQUEEZY_API_URL,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/vnd.api+json",
                "Content-Type": "application/vnd.api+json",
            },
            timeout=10.0,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    @timed("lemonsqueezy.create_checkout")
    def create_checkout(
        self,
        user_id: str,
        store_id: str = LEMONSQUEEZY_STORE_ID,
        variant_id: str = LEMONSQUEEZY_VARIANT_ID,
        redirect_url: str = APP_URL,
    ) -> str:
        payload = {
            "data": {
                "type": "checkouts",
                "attributes": {
                    "checkout_data": {"custom": {"user_id": user_id}},
                    "product_options": {"redirect_url": redirect_url},
                },
                "relationships": {
                    "store": {"data": {"type": "stores", "id": str(store_id)}},
                    "variant": {"data": {"type": "variants", "id": str(variant_id)}},
                },
            }
        }
        response = self._client.post("/checkouts", json=payload)
        response.raise_for_status()
        return response.json()["data"]["attributes"]["url"]

    @timed("lemonsqueezy.get_subscription")
    def get_customer_portal_url(self, subscription_id: str) -> str:
        response = self._client.get(f"/subscriptions/{subscription_id}")
        response.raise_for_status()
        return response.json()["data"]["attributes"]["urls"]["customer_portal"]


def get_lemonsqueezy_client():
    """Dependency: Provide a LemonSqueezyClient, closed after the request."""
    client = LemonSqueezyClient()
    try:
        yield client
    finally:
        client.close()


class BillingService:
    """Subscription state for one database session."""

    def __init__(self, db: DBSession, client: Optional[LemonSqueezyClient] = None):
        self.db = db
        self.client = client

    def current(self, user_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .first()
        )

    def checkout_url(self, user_id: str) -> str:
        """Customer portal for existing subscribers, a fresh checkout otherwise."""
        subscription = self.current(user_id)
        if subscription:
            return self.client.get_customer_portal_url(subscription.subscription_id)
        return self.client.create_checkout(user_id)

    def handle_webhook(
        self,
        body: bytes,
        signature: Optional[str],
        secret: Optional[str] = None,
    ) -> Optional[Subscription]:
        """
        Apply a verified webhook event.

        Returns:
            The upserted subscription, or None for events we do not track.

        Raises:
            InvalidSignatureError: If the signature check fails.
            ValueError: If the body is not a JSON object or a subscription event
                lacks its user id, subscription id or status.
        """
        if secret is None:
            secret = LEMONSQUEEZY_WEBHOOK_SECRET
        if not verify_webhook_signature(body, signature, secret):
            metrics.increment("billing.webhook.rejected")
            raise InvalidSignatureError("Invalid signature")

        payload = json.loads(body)
        if not isinstance(payload, dict):
            raise ValueError("Webhook body must be a JSON object")
        meta = payload.get("meta") or {}
        event = meta.get("event_name")
        if event not in SUBSCRIPTION_EVENTS:
            logger.info("Ignoring billing webhook", event_name=event)
            return None

        user_id = (meta.get("custom_data") or {}).get("user_id")
        if not user_id:
            raise ValueError("Webhook is missing custom_data.user_id")

        data = payload.get("data") or {}
        if data.get("id") is None:
            raise ValueError("Webhook is missing data.id")
        status = (data.get("attributes") or {}).get("status")
        if not status:
            raise ValueError("Webhook is missing data.attributes.status")
        subscription_id = str(data["id"])

        subscription = self.current(user_id)
        if subscription:
            subscription.subscription_id = subscription_id
            subscription.status = status
        else:
            subscription = Subscription(
                user_id=user_id,
                subscription_id=subscription_id,
                status=status,
            )
            self.db.add(subscription)
        self.db.commit()

        logger.info("Subscription updated", event_name=event, user_id=user_id, status=status)
        metrics.increment("billing.webhook.applied", tags={"event": event})
        return subscription
