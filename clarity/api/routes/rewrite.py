from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clarity.core.auth import AuthContext, resolve_optional_caller
from clarity.core.db import get_db_session
from clarity.core.gateway import RewriteGateway
from clarity.core.repositories.history import RewriteHistoryRepository
from clarity.core.repositories.usage import UsageLedger
from clarity.core.rewriter import get_rewriter
from clarity.schemas.rewrite import RewriteRequest, RewriteResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rewrite"])


async def get_rewrite_gateway(
    session: AsyncSession = Depends(get_db_session),
) -> RewriteGateway:
    return RewriteGateway(
        ledger=UsageLedger(session),
        history=RewriteHistoryRepository(session),
        rewriter=get_rewriter(),
    )


@router.post("/rewrite", response_model=RewriteResponse)
async def rewrite(
    payload: RewriteRequest,
    caller: AuthContext | None = Depends(resolve_optional_caller),
    gateway: RewriteGateway = Depends(get_rewrite_gateway),
) -> RewriteResponse:
    outcome = await gateway.rewrite(payload.text, payload.style, caller)
    if not outcome.bookkeeping_ok:
        logger.warning("Rewrite served with incomplete usage bookkeeping")
    return RewriteResponse(result=outcome.result, remaining=outcome.remaining)
