from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from clarity.core.errors import PersistenceError
from clarity.models.base import TimestampedBase

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=TimestampedBase)


@dataclass(slots=True)
class SaveOutcome:
    """Result of a best-effort write; failures are reported, not raised."""

    operation: str
    ok: bool
    rows: int = 0
    error: str | None = None
    values: dict[str, object] | None = None


class Repository(Generic[ModelT]):
    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self.session = session
        self.model = model

    def _select(self) -> Select[tuple[ModelT]]:
        return select(self.model)

    async def get(self, entity_id: UUID) -> ModelT | None:
        try:
            result = await self.session.execute(
                self._select().where(self.model.id == entity_id)
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load {self.model.__tablename__} {entity_id}") from exc
        return result.scalar_one_or_none()

    async def create(self, **values: object) -> ModelT:
        instance = self.model(**values)
        self.session.add(instance)
        try:
            await self.session.commit()
            await self.session.refresh(instance)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Failed to create {self.model.__tablename__} row") from exc
        return instance

    async def _commit_or_report(self, operation: str, rows: int, values: dict | None = None) -> SaveOutcome:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            return await self._report_failure(operation, exc)
        return SaveOutcome(operation=operation, ok=True, rows=rows, values=values)

    async def _report_failure(self, operation: str, exc: Exception) -> SaveOutcome:
        logger.exception("%s failed on %s", operation, self.model.__tablename__)
        try:
            await self.session.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed after %s", operation)
        return SaveOutcome(operation=operation, ok=False, error=str(exc))
