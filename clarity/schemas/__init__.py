from clarity.schemas.billing import (
    BillingWebhookResponse,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    PortalSessionResponse,
    UsageResponse,
)
from clarity.schemas.rewrite import RewriteRequest, RewriteResponse

__all__ = [
    "BillingWebhookResponse",
    "CheckoutSessionRequest",
    "CheckoutSessionResponse",
    "PortalSessionResponse",
    "UsageResponse",
    "RewriteRequest",
    "RewriteResponse",
]
