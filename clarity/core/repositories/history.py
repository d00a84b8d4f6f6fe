from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clarity.core.errors import PersistenceError
from clarity.core.repositories.base import Repository, SaveOutcome
from clarity.models.rewrite import Rewrite


class RewriteHistoryRepository(Repository[Rewrite]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Rewrite)

    async def add(self, user_id: UUID, input_text: str, output_text: str, style: str) -> SaveOutcome:
        try:
            await self.create(
                user_id=user_id,
                input_text=input_text,
                output_text=output_text,
                style=style,
            )
        except PersistenceError as exc:
            return SaveOutcome(operation="history", ok=False, error=str(exc.__cause__ or exc))
        return SaveOutcome(operation="history", ok=True, rows=1)
