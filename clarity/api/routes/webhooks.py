from __future__ import annotations

import json
import logging
from uuid import UUID

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from clarity.core.config import settings
from clarity.core.db import get_db_session
from clarity.core.entitlements import EntitlementChangeHandler, UnknownTierError
from clarity.core.repositories.usage import UsageLedger
from clarity.schemas.billing import BillingWebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

TIER_EVENTS = {"checkout.session.completed", "customer.subscription.updated"}
CANCEL_EVENTS = {"customer.subscription.deleted"}
INVOICE_EVENTS = {"invoice.payment_succeeded", "invoice.payment_failed"}


def _event_object(payload: dict) -> dict:
    return (payload.get("data") or {}).get("object") or {}


def _extract_user_id(payload: dict) -> UUID | None:
    metadata = _event_object(payload).get("metadata") or {}
    raw = metadata.get("supabase_user_id")
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        return None


def _extract_tier(payload: dict) -> str | None:
    metadata = _event_object(payload).get("metadata") or {}
    tier = metadata.get("tier")
    return tier.strip().lower() if tier else None


def _extract_subscription_id(payload: dict) -> str | None:
    data = _event_object(payload)
    if payload.get("type") == "checkout.session.completed":
        return data.get("subscription")
    return data.get("id") or data.get("subscription")


def _verify_and_parse_event(raw_body: bytes, stripe_signature: str | None) -> dict:
    # Unsigned events can change a user's tier, so there is no unverified mode.
    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured, rejecting webhook")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="STRIPE_WEBHOOK_SECRET is not configured",
        )

    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Stripe signature",
        )

    try:
        stripe.Webhook.construct_event(
            payload=raw_body,
            sig_header=stripe_signature,
            secret=settings.stripe_webhook_secret,
        )
    except Exception as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid Stripe signature: {exc}",
        ) from exc

    try:
        return json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        ) from exc


@router.post("/stripe", response_model=BillingWebhookResponse)
async def stripe_webhook(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
) -> BillingWebhookResponse:
    raw_body = await request.body()
    payload = _verify_and_parse_event(raw_body, stripe_signature)
    event_type = payload.get("type", "unknown")
    logger.info("Received webhook event: %s", event_type)

    handler = EntitlementChangeHandler(UsageLedger(session))
    user_id = _extract_user_id(payload)
    response_user = str(user_id) if user_id else None

    if event_type in TIER_EVENTS:
        if user_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Webhook payload missing user identifier",
            )
        subscription_id = _extract_subscription_id(payload) if event_type == "checkout.session.completed" else None
        try:
            outcome = await handler.apply_tier(user_id, _extract_tier(payload), subscription_id)
        except UnknownTierError:
            logger.warning("Ignoring %s for user=%s with unknown tier", event_type, user_id)
            return BillingWebhookResponse(received=True, event_type=event_type, user_id=response_user, updated=False)
        return BillingWebhookResponse(
            received=True,
            event_type=event_type,
            user_id=response_user,
            updated=outcome.ok and outcome.rows > 0,
        )

    if event_type in CANCEL_EVENTS:
        subscription_id = _extract_subscription_id(payload)
        if not subscription_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Webhook payload missing subscription identifier",
            )
        outcome = await handler.cancel_subscription(subscription_id)
        return BillingWebhookResponse(
            received=True,
            event_type=event_type,
            user_id=response_user,
            updated=outcome.ok and outcome.rows > 0,
        )

    if event_type in INVOICE_EVENTS:
        logger.info(
            "Invoice event %s for subscription %s",
            event_type,
            _event_object(payload).get("subscription"),
        )
    else:
        logger.info("Unhandled event type: %s", event_type)
    return BillingWebhookResponse(received=True, event_type=event_type, user_id=response_user, updated=False)
