from __future__ import annotations

import asyncio
import logging

import stripe
from fastapi import HTTPException, status

from clarity.core.config import settings

logger = logging.getLogger(__name__)


class StripeBillingClient:
    def __init__(self) -> None:
        self.base_url = settings.app_base_url.rstrip("/")

    def _api_key(self) -> str:
        if not settings.stripe_secret_key:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="STRIPE_SECRET_KEY is not configured",
            )
        return settings.stripe_secret_key

    def tier_for_price(self, price_id: str) -> str:
        tier = settings.price_tiers().get(price_id)
        if tier is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid price ID",
            )
        return tier

    def create_customer(self, email: str | None, user_id: str) -> str:
        customer = stripe.Customer.create(
            api_key=self._api_key(),
            email=email,
            metadata={"supabase_user_id": user_id},
        )
        return customer["id"]

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        user_id: str,
        tier: str,
        origin: str | None = None,
    ) -> dict[str, str]:
        base_url = (origin or self.base_url).rstrip("/")
        metadata = {"supabase_user_id": user_id, "tier": tier}
        session = stripe.checkout.Session.create(
            api_key=self._api_key(),
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{base_url}/app.html?session_id={{CHECKOUT_SESSION_ID}}&success=true",
            cancel_url=f"{base_url}/app.html?canceled=true",
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return {"url": session["url"], "session_id": session["id"]}

    def create_portal_session(self, customer_id: str, origin: str | None = None) -> str:
        base_url = (origin or self.base_url).rstrip("/")
        session = stripe.billing_portal.Session.create(
            api_key=self._api_key(),
            customer=customer_id,
            return_url=f"{base_url}/app.html",
        )
        return session["url"]


async def call_stripe(func, *args, **kwargs):  # noqa: ANN001, ANN002, ANN003, ANN201
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except stripe.StripeError as exc:
        logger.exception("Stripe request failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Billing provider error: {exc.user_message or 'request failed'}",
        ) from exc
