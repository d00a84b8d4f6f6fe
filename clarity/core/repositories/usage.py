from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import case, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clarity.core.repositories.base import Repository, SaveOutcome
from clarity.core.tiers import TierId
from clarity.models.base import utcnow
from clarity.models.user import User


class UsageLedger(Repository[User]):
    """Per-user usage counters and tier assignment, keyed by user id."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=User)

    async def load(self, user_id: UUID) -> User | None:
        return await self.get(user_id)

    async def create_record(self, user_id: UUID, email: str | None, today: date) -> User:
        return await self.create(
            id=user_id,
            email=email,
            tier=TierId.FREE.value,
            rewrites_today=0,
            rewrites_total=0,
            last_rewrite_date=today,
        )

    async def save(self, user_id: UUID, **values: object) -> SaveOutcome:
        values.pop("id", None)
        values.setdefault("updated_at", utcnow())
        return await self._execute_update(
            "save",
            update(User).where(User.id == user_id).values(**values),
        )

    async def save_by_subscription(self, subscription_id: str, **values: object) -> SaveOutcome:
        values.pop("id", None)
        values.setdefault("updated_at", utcnow())
        return await self._execute_update(
            "save_by_subscription",
            update(User).where(User.stripe_subscription_id == subscription_id).values(**values),
        )

    async def reset_daily_count(self, user_id: UUID, today: date) -> SaveOutcome:
        # Conditional on the stored date so concurrent requests reset a day at most once.
        stmt = (
            update(User)
            .where(User.id == user_id)
            .where(or_(User.last_rewrite_date.is_(None), User.last_rewrite_date != today))
            .values(
                rewrites_today=0,
                last_rewrite_date=today,
                updated_at=utcnow(),
            )
        )
        return await self._execute_update("reset_daily_count", stmt)

    async def record_rewrite(self, user_id: UUID, today: date) -> SaveOutcome:
        """Atomically charge one rewrite against ``today``.

        The increment happens in the database, so concurrent commits for the
        same user never overwrite each other. A commit landing after midnight
        starts the new day's count at one.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                rewrites_today=case(
                    (User.last_rewrite_date == today, User.rewrites_today + 1),
                    else_=1,
                ),
                rewrites_total=User.rewrites_total + 1,
                last_rewrite_date=today,
                updated_at=utcnow(),
            )
            .returning(User.rewrites_today, User.rewrites_total)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            row = result.first()
        except SQLAlchemyError as exc:
            return await self._report_failure("record_rewrite", exc)

        if row is None:
            return await self._commit_or_report("record_rewrite", rows=0)
        return await self._commit_or_report(
            "record_rewrite",
            rows=1,
            values={"rewrites_today": row.rewrites_today, "rewrites_total": row.rewrites_total},
        )

    async def _execute_update(self, operation: str, stmt) -> SaveOutcome:  # noqa: ANN001
        try:
            result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        except SQLAlchemyError as exc:
            return await self._report_failure(operation, exc)
        return await self._commit_or_report(operation, rows=result.rowcount or 0)
