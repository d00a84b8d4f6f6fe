from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from clarity.core.auth import AuthContext
from clarity.core.config import settings
from clarity.core.errors import (
    InvalidRewriteRequest,
    PersistenceError,
    QuotaExceeded,
    StyleNotEntitled,
)
from clarity.core.quota import DecisionOutcome, QuotaEngine, UsageSnapshot, utc_today
from clarity.core.repositories.base import SaveOutcome
from clarity.core.repositories.history import RewriteHistoryRepository
from clarity.core.repositories.usage import UsageLedger
from clarity.core.rewriter import AnthropicRewriter
from clarity.core.tiers import StyleId, parse_style
from clarity.models.user import User

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RewriteResult:
    result: str
    remaining: int
    bookkeeping: list[SaveOutcome] = field(default_factory=list)

    @property
    def bookkeeping_ok(self) -> bool:
        return all(outcome.ok for outcome in self.bookkeeping)


class RewriteGateway:
    """Runs one rewrite request: admission, generation, then usage accounting.

    Quota is only charged after the text-transform call succeeds. Ledger
    write failures are logged and reported on the result, never raised.
    """

    def __init__(
        self,
        ledger: UsageLedger,
        history: RewriteHistoryRepository,
        rewriter: AnthropicRewriter,
        engine: QuotaEngine | None = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self.ledger = ledger
        self.history = history
        self.rewriter = rewriter
        self.engine = engine or QuotaEngine()
        self.today = today

    @staticmethod
    def validate(text: str | None, style: str | None) -> tuple[str, StyleId | None]:
        if not text or not text.strip():
            raise InvalidRewriteRequest("Text is required")
        if not style or not style.strip():
            raise InvalidRewriteRequest("Style is required")
        # Unknown styles are an entitlement question, answered by the quota engine.
        return text, parse_style(style)

    async def _load_record(self, caller: AuthContext, today: date) -> User | None:
        try:
            record = await self.ledger.load(caller.user_id)
            if record is None:
                record = await self.ledger.create_record(caller.user_id, caller.email, today)
        except PersistenceError:
            logger.exception("Usage record unavailable for user=%s, request is unmetered", caller.user_id)
            return None
        return record

    async def rewrite(self, text: str | None, style: str | None, caller: AuthContext | None) -> RewriteResult:
        text, style_id = self.validate(text, style)
        self.rewriter.ensure_configured()

        today = self.today()
        bookkeeping: list[SaveOutcome] = []
        record = await self._load_record(caller, today) if caller is not None else None
        tier = record.tier if record is not None else None
        usage = UsageSnapshot.of(record) if record is not None else None

        decision = self.engine.evaluate(usage, tier, style_id, today)
        if decision.rolled_over and record is not None:
            bookkeeping.append(await self.ledger.reset_daily_count(record.id, today))

        if decision.outcome is DecisionOutcome.QUOTA_EXCEEDED:
            raise QuotaExceeded(decision)
        if decision.outcome is DecisionOutcome.STYLE_NOT_ENTITLED:
            raise StyleNotEntitled(decision)

        rewritten = await self.rewriter.rewrite(text, style_id)

        if record is None or usage is None:
            return RewriteResult(result=rewritten, remaining=settings.unmetered_remaining)

        self.engine.commit(usage)
        charged = await self.ledger.record_rewrite(record.id, today)
        bookkeeping.append(charged)
        if charged.ok and charged.values:
            usage.rewrites_today = int(charged.values["rewrites_today"])
            usage.rewrites_total = int(charged.values["rewrites_total"])

        bookkeeping.append(await self.history.add(record.id, text, rewritten, style_id.value))

        for outcome in bookkeeping:
            if not outcome.ok:
                logger.warning(
                    "Usage bookkeeping failed for user=%s operation=%s: %s",
                    record.id,
                    outcome.operation,
                    outcome.error,
                )

        return RewriteResult(
            result=rewritten,
            remaining=self.engine.remaining_after(usage, tier),
            bookkeeping=bookkeeping,
        )
