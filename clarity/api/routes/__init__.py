from clarity.api.routes.billing import router as billing_router
from clarity.api.routes.rewrite import router as rewrite_router
from clarity.api.routes.webhooks import router as webhooks_router

__all__ = [
    "billing_router",
    "rewrite_router",
    "webhooks_router",
]
