from __future__ import annotations

from pydantic import BaseModel, Field


class UsageResponse(BaseModel):
    tier: str
    daily_quota: int
    allowed_styles: list[str]
    rewrites_today: int
    rewrites_total: int
    remaining: int
    next_tier: str | None = None


class CheckoutSessionRequest(BaseModel):
    price_id: str = Field(min_length=1, max_length=255)


class CheckoutSessionResponse(BaseModel):
    url: str
    session_id: str


class PortalSessionResponse(BaseModel):
    url: str


class BillingWebhookResponse(BaseModel):
    received: bool
    event_type: str
    user_id: str | None = None
    updated: bool
