from __future__ import annotations

import logging
from uuid import UUID

from clarity.core.repositories.base import SaveOutcome
from clarity.core.repositories.usage import UsageLedger
from clarity.core.tiers import TierId, parse_tier

logger = logging.getLogger(__name__)


class UnknownTierError(ValueError):
    pass


class EntitlementChangeHandler:
    """Applies billing-driven tier changes to the usage ledger."""

    def __init__(self, ledger: UsageLedger) -> None:
        self.ledger = ledger

    async def apply_tier(
        self,
        user_id: UUID,
        tier: str | None,
        subscription_id: str | None = None,
    ) -> SaveOutcome:
        tier_id = parse_tier(tier)
        if tier_id is None:
            raise UnknownTierError(f"Unknown tier '{tier}'")

        values: dict[str, object] = {"tier": tier_id.value}
        if subscription_id:
            values["stripe_subscription_id"] = subscription_id

        outcome = await self.ledger.save(user_id, **values)
        if outcome.ok:
            logger.info("Set tier=%s for user=%s (rows=%s)", tier_id.value, user_id, outcome.rows)
        else:
            logger.error("Failed to set tier=%s for user=%s: %s", tier_id.value, user_id, outcome.error)
        return outcome

    async def cancel_subscription(self, subscription_id: str) -> SaveOutcome:
        outcome = await self.ledger.save_by_subscription(
            subscription_id,
            tier=TierId.FREE.value,
            stripe_subscription_id=None,
        )
        if outcome.ok:
            logger.info("Downgraded subscription=%s to free (rows=%s)", subscription_id, outcome.rows)
        else:
            logger.error("Failed to downgrade subscription=%s: %s", subscription_id, outcome.error)
        return outcome
