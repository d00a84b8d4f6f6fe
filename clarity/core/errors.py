from __future__ import annotations

from typing import TYPE_CHECKING

from starlette import status

if TYPE_CHECKING:
    from clarity.core.quota import Decision


class ClarityError(Exception):
    """Base class for errors rendered as JSON responses by the API layer."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(self, error: str | None = None) -> None:
        if error is not None:
            self.error = error
        super().__init__(self.error)

    def payload(self) -> dict[str, object]:
        return {"error": self.error}


class InvalidRewriteRequest(ClarityError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid request"


class ConfigurationError(ClarityError):
    error = "Server configuration error"


class RewriteProviderError(ClarityError):
    error = "AI service error"


class PersistenceError(RuntimeError):
    pass


class QuotaRejection(ClarityError):
    def __init__(self, decision: Decision) -> None:
        self.decision = decision
        super().__init__()

    def payload(self) -> dict[str, object]:
        return {
            "error": self.error,
            "message": self.decision.message,
            "remaining": self.decision.remaining,
        }


class QuotaExceeded(QuotaRejection):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "Daily limit reached"


class StyleNotEntitled(QuotaRejection):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Style not available on your plan"

    def payload(self) -> dict[str, object]:
        body = super().payload()
        body["required_tiers"] = [tier.value for tier in self.decision.unlocking_tiers]
        return body
