from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from clarity.core.auth import AuthContext, require_auth_context
from clarity.core.billing import StripeBillingClient, call_stripe
from clarity.core.db import get_db_session
from clarity.core.errors import PersistenceError
from clarity.core.quota import QuotaEngine, utc_today
from clarity.core.repositories.usage import UsageLedger
from clarity.models.user import User
from clarity.schemas.billing import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    PortalSessionResponse,
    UsageResponse,
)

router = APIRouter(prefix="/billing", tags=["billing"])


async def _load_user(ledger: UsageLedger, auth: AuthContext) -> User | None:
    try:
        return await ledger.load(auth.user_id)
    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch user data",
        ) from exc


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> UsageResponse:
    user = await _load_user(UsageLedger(session), auth)
    engine = QuotaEngine()
    if user is None:
        definition = engine.catalog.resolve(None)
        rewrites_today = rewrites_total = 0
    else:
        definition = engine.catalog.resolve(user.tier)
        # Reported only; the stored reset happens on the next rewrite.
        stale = user.last_rewrite_date != utc_today()
        rewrites_today = 0 if stale else user.rewrites_today
        rewrites_total = user.rewrites_total

    next_tier = engine.catalog.next_tier(definition.id)
    return UsageResponse(
        tier=definition.id.value,
        daily_quota=definition.daily_quota,
        allowed_styles=sorted(style.value for style in definition.allowed_styles),
        rewrites_today=rewrites_today,
        rewrites_total=rewrites_total,
        remaining=max(0, definition.daily_quota - rewrites_today),
        next_tier=next_tier.id.value if next_tier else None,
    )


@router.post("/checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    payload: CheckoutSessionRequest,
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
    origin: str | None = Header(default=None),
) -> CheckoutSessionResponse:
    client = StripeBillingClient()
    tier = client.tier_for_price(payload.price_id)

    ledger = UsageLedger(session)
    user = await _load_user(ledger, auth)
    if user is None:
        try:
            user = await ledger.create_record(auth.user_id, auth.email, utc_today())
        except PersistenceError as exc:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to fetch user data",
            ) from exc

    customer_id = user.stripe_customer_id
    if not customer_id:
        customer_id = await call_stripe(client.create_customer, user.email or auth.email, str(auth.user_id))
        saved = await ledger.save(auth.user_id, stripe_customer_id=customer_id)
        if not saved.ok:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to store billing customer",
            )

    checkout = await call_stripe(
        client.create_checkout_session,
        customer_id=customer_id,
        price_id=payload.price_id,
        user_id=str(auth.user_id),
        tier=tier,
        origin=origin,
    )
    return CheckoutSessionResponse(url=checkout["url"], session_id=checkout["session_id"])


@router.post("/portal-session", response_model=PortalSessionResponse)
async def create_portal_session(
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
    origin: str | None = Header(default=None),
) -> PortalSessionResponse:
    user = await _load_user(UsageLedger(session), auth)
    if user is None or not user.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No subscription found",
        )

    client = StripeBillingClient()
    url = await call_stripe(client.create_portal_session, user.stripe_customer_id, origin)
    return PortalSessionResponse(url=url)
