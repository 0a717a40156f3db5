from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from skillgate.core.auth import require_admin, require_caller_email
from skillgate.core.config import Settings, get_settings
from skillgate.core.deps import get_db_session
from skillgate.core.errors import service_unavailable
from skillgate.domain.billing import BalanceOut, TopUpRequest, UsageEventOut
from skillgate.storage.repos import ensure_user, get_balance, get_user_id, list_usage_events, top_up

router = APIRouter()
log = logging.getLogger(__name__)


def _require_session(session: AsyncSession | None) -> AsyncSession:
    if session is None:
        raise service_unavailable("Billing store is not configured")
    return session


@router.get("/balance", response_model=BalanceOut)
async def balance(
    email: str = Depends(require_caller_email),
    session: AsyncSession | None = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> BalanceOut:
    session = _require_session(session)
    user_id = await get_user_id(session, email=email)
    bal = await get_balance(session, user_id=user_id) if user_id is not None else 0
    return BalanceOut(email=email, balance=bal, warn=bal < settings.warn_credits)


@router.get("/usage")
async def usage(
    limit: int = Query(default=25, ge=1, le=100),
    email: str = Depends(require_caller_email),
    session: AsyncSession | None = Depends(get_db_session),
) -> dict:
    session = _require_session(session)
    user_id = await get_user_id(session, email=email)
    rows = await list_usage_events(session, user_id=user_id, limit=limit) if user_id is not None else []
    items = [
        UsageEventOut(
            route=row.route,
            tokens_in=row.tokens_in,
            tokens_out=row.tokens_out,
            cost_credits=row.cost_credits,
            request_id=row.request_id,
            created_at=row.created_at.isoformat() if row.created_at else None,
        )
        for row in rows
    ]
    return {"email": email, "items": items}


@router.post("/topup", response_model=BalanceOut, dependencies=[Depends(require_admin)])
async def topup(
    body: TopUpRequest,
    session: AsyncSession | None = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> BalanceOut:
    session = _require_session(session)
    user_id = await ensure_user(session, email=body.email)
    bal = await top_up(session, user_id=user_id, amount=body.amount, reason=body.reason)
    log.info("billing.topup", extra={"user_id": user_id, "amount": str(body.amount), "balance": str(bal)})
    return BalanceOut(email=body.email, balance=bal, warn=bal < settings.warn_credits)
