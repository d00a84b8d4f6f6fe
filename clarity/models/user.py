from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from clarity.models.base import TimestampedBase


class User(TimestampedBase):
    """Usage ledger row, one per authenticated user."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("rewrites_today >= 0", name="rewrites_today_non_negative"),
        CheckConstraint("rewrites_total >= 0", name="rewrites_total_non_negative"),
    )

    # Supabase auth user id; never generated locally.
    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    tier: Mapped[str] = mapped_column(String(50), nullable=False, default="free")
    rewrites_today: Mapped[int] = mapped_column(nullable=False, default=0)
    rewrites_total: Mapped[int] = mapped_column(nullable=False, default=0)
    last_rewrite_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
