"""Daily quota and style entitlement decisions for rewrite requests.

Admission and commit are separate steps: ``evaluate`` decides whether a
request may proceed and ``commit`` charges it afterwards, so a failed
generation never costs the caller a quota unit.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Protocol

from clarity.core.tiers import TIER_CATALOG, StyleId, TierCatalog, TierDefinition, TierId


class UsageRecord(Protocol):
    rewrites_today: int
    rewrites_total: int
    last_rewrite_date: date | None
    updated_at: datetime


class DecisionOutcome(str, Enum):
    ADMITTED = "admitted"
    QUOTA_EXCEEDED = "quota_exceeded"
    STYLE_NOT_ENTITLED = "style_not_entitled"


@dataclass(slots=True)
class Decision:
    outcome: DecisionOutcome
    tier: TierDefinition | None
    remaining: int | None
    rolled_over: bool = False
    next_tier: TierDefinition | None = None
    unlocking_tiers: tuple[TierId, ...] = field(default_factory=tuple)

    @property
    def admitted(self) -> bool:
        return self.outcome is DecisionOutcome.ADMITTED

    @property
    def metered(self) -> bool:
        return self.tier is not None

    @property
    def message(self) -> str:
        if self.outcome is DecisionOutcome.QUOTA_EXCEEDED and self.tier is not None:
            used = f"You've used all {self.tier.daily_quota} {self.tier.id.value} rewrites today."
            if self.next_tier is None:
                return f"{used} Your allowance resets tomorrow."
            return (
                f"{used} Upgrade to {self.next_tier.id.value.title()} "
                f"for {self.next_tier.daily_quota} rewrites per day."
            )
        if self.outcome is DecisionOutcome.STYLE_NOT_ENTITLED:
            if not self.unlocking_tiers:
                return "This style is not available."
            names = " or ".join(tier.value.title() for tier in self.unlocking_tiers)
            return f"This style requires the {names} plan."
        return ""


@dataclass(slots=True)
class UsageSnapshot:
    """Detached copy of a ledger row's counters.

    The engine mutates this copy, never the session-bound row, so the ledger's
    atomic UPDATE is the only write of the counters.
    """

    rewrites_today: int
    rewrites_total: int
    last_rewrite_date: date | None
    updated_at: datetime | None = None

    @classmethod
    def of(cls, record: UsageRecord) -> UsageSnapshot:
        return cls(
            rewrites_today=record.rewrites_today or 0,
            rewrites_total=record.rewrites_total or 0,
            last_rewrite_date=record.last_rewrite_date,
            updated_at=record.updated_at,
        )


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class QuotaEngine:
    def __init__(self, catalog: TierCatalog = TIER_CATALOG) -> None:
        self.catalog = catalog

    def roll_over(self, record: UsageRecord, today: date) -> bool:
        if record.last_rewrite_date == today:
            return False
        record.rewrites_today = 0
        record.last_rewrite_date = today
        return True

    def evaluate(
        self,
        record: UsageRecord | None,
        tier: TierId | str | None,
        style: StyleId | None,
        today: date,
    ) -> Decision:
        # Anonymous callers are not metered here.
        if record is None:
            return Decision(outcome=DecisionOutcome.ADMITTED, tier=None, remaining=None)

        rolled_over = self.roll_over(record, today)
        definition = self.catalog.resolve(tier)
        limit = definition.daily_quota
        used = record.rewrites_today or 0

        if used >= limit:
            return Decision(
                outcome=DecisionOutcome.QUOTA_EXCEEDED,
                tier=definition,
                remaining=0,
                rolled_over=rolled_over,
                next_tier=self.catalog.next_tier(definition.id),
            )

        if not definition.allows(style):
            return Decision(
                outcome=DecisionOutcome.STYLE_NOT_ENTITLED,
                tier=definition,
                remaining=limit - used,
                rolled_over=rolled_over,
                next_tier=self.catalog.next_tier(definition.id),
                unlocking_tiers=self.catalog.tiers_allowing(style),
            )

        return Decision(
            outcome=DecisionOutcome.ADMITTED,
            tier=definition,
            remaining=limit - used,
            rolled_over=rolled_over,
        )

    def commit(self, record: UsageRecord, now: datetime | None = None) -> None:
        record.rewrites_today = (record.rewrites_today or 0) + 1
        record.rewrites_total = (record.rewrites_total or 0) + 1
        record.updated_at = now or datetime.now(timezone.utc)

    def remaining_after(self, record: UsageRecord, tier: TierId | str | None) -> int:
        limit = self.catalog.resolve(tier).daily_quota
        return max(0, limit - (record.rewrites_today or 0))
