from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skillgate.billing.pricing import CREDIT_QUANTUM, Pricing, credits_for_usage
from skillgate.domain.billing import Usage
from skillgate.storage.models import CreditTxn, UsageEvent, User

log = logging.getLogger(__name__)


async def get_user_id(session: AsyncSession, *, email: str) -> str | None:
    return await session.scalar(select(User.id).where(User.email == email))


async def ensure_user(session: AsyncSession, *, email: str) -> str:
    """Get-or-create by email. Safe against a concurrent insert of the same email."""
    user_id = await get_user_id(session, email=email)
    if user_id is not None:
        return user_id

    user = User(email=email)
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        user_id = await get_user_id(session, email=email)
        if user_id is None:
            raise
        return user_id
    log.info("billing.user_created", extra={"user_id": user.id})
    return user.id


async def get_balance(session: AsyncSession, *, user_id: str) -> Decimal:
    stmt = select(func.coalesce(func.sum(CreditTxn.amount_credits), 0)).where(CreditTxn.user_id == user_id)
    total = await session.scalar(stmt)
    return Decimal(total or 0).quantize(CREDIT_QUANTUM)


async def top_up(
    session: AsyncSession,
    *,
    user_id: str,
    amount: Decimal,
    reason: str = "manual-topup",
    meta: dict[str, Any] | None = None,
) -> Decimal:
    """Append a positive ledger row and return the new balance."""
    if amount <= 0:
        raise ValueError("top-up amount must be positive")
    session.add(CreditTxn(user_id=user_id, amount_credits=amount, reason=reason, meta=meta or {}))
    try:
        await session.flush()
        balance = await get_balance(session, user_id=user_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return balance


async def charge(
    session: AsyncSession,
    *,
    user_id: str,
    route: str,
    usage: Usage,
    request_id: str,
    pricing: Pricing,
) -> tuple[Decimal, Decimal]:
    """
    Debit one request's usage. Returns (cost, balance_after).

    The ledger debit and the usage event are written in one transaction: either
    both rows exist afterwards or neither does. The user row is locked first so
    concurrent charges for the same user serialize and balance_after is exact.
    """
    cost = credits_for_usage(usage, pricing)
    usage_meta = usage.model_dump(mode="json")
    try:
        await session.execute(select(User.id).where(User.id == user_id).with_for_update())
        session.add(
            CreditTxn(
                user_id=user_id,
                amount_credits=-cost,
                reason=f"usage:{route}",
                meta=usage_meta,
            )
        )
        await session.flush()
        session.add(
            UsageEvent(
                user_id=user_id,
                route=route,
                tokens_in=usage.tokens_in,
                tokens_out=usage.tokens_out,
                r2_class_a=usage.r2_class_a,
                r2_class_b=usage.r2_class_b,
                r2_gb_retrieved=usage.r2_gb_retrieved,
                cost_credits=cost,
                request_id=request_id,
            )
        )
        await session.flush()
        balance = await get_balance(session, user_id=user_id)
        await session.commit()
    except Exception:
        await session.rollback()
        log.exception("billing.charge_failed", extra={"user_id": user_id, "route": route, "request_id": request_id})
        raise
    return cost, balance


async def list_usage_events(session: AsyncSession, *, user_id: str, limit: int = 25) -> list[UsageEvent]:
    stmt = (
        select(UsageEvent)
        .where(UsageEvent.user_id == user_id)
        .order_by(UsageEvent.created_at.desc(), UsageEvent.id.desc())
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())
