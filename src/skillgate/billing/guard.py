"""
Billing guard for metered routes.

AUTHENTICATE (401) -> CHECK_BALANCE (402 below the hard floor) -> handler runs
-> BillingContext.charge() debits the ledger in one transaction (500 on failure).

The guard returns an explicit BillingContext instead of hanging a callback on
the request; handlers call `charge()` and copy the receipt into headers.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from fastapi import Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from skillgate.billing.pricing import Pricing
from skillgate.core.auth import require_caller_email
from skillgate.core.config import Settings, get_settings
from skillgate.core.deps import get_db_session
from skillgate.core.errors import InsufficientCreditsError, format_credits, internal_error, service_unavailable
from skillgate.core.metrics import si_billing_rejections_total, si_credits_charged_total
from skillgate.domain.billing import Usage, UsageReceipt
from skillgate.storage.repos import charge, ensure_user, get_balance

log = logging.getLogger(__name__)


@dataclass
class BillingContext:
    user_id: str
    email: str
    balance: Decimal
    request_id: str
    session: AsyncSession
    pricing: Pricing

    async def charge(self, usage: Usage, *, route: str) -> UsageReceipt:
        try:
            cost, balance = await charge(
                self.session,
                user_id=self.user_id,
                route=route,
                usage=usage,
                request_id=self.request_id,
                pricing=self.pricing,
            )
        except SQLAlchemyError as e:
            raise internal_error("billing_failed") from e

        self.balance = balance
        si_credits_charged_total.labels(route=route).inc(float(cost))
        log.info(
            "billing.charged",
            extra={"user_id": self.user_id, "route": route, "cost": str(cost), "balance": str(balance), "request_id": self.request_id},
        )
        return UsageReceipt(request_id=self.request_id, cost=cost, balance=balance)


def apply_receipt_headers(response: Response, receipt: UsageReceipt) -> None:
    response.headers[get_settings().skillgate_request_id_header] = receipt.request_id
    response.headers["X-Credits-Used"] = format_credits(receipt.cost)
    response.headers["X-Credits-Balance"] = format_credits(receipt.balance)


async def billing_guard(
    request: Request,
    email: str = Depends(require_caller_email),
    session: AsyncSession | None = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> BillingContext:
    if session is None:
        raise service_unavailable("Billing store is not configured")

    pricing = Pricing.from_settings(settings)
    try:
        user_id = await ensure_user(session, email=email)
        balance = await get_balance(session, user_id=user_id)
        # Release the connection while the skill runs; charge() opens its own transaction.
        await session.commit()
    except SQLAlchemyError as e:
        log.exception("billing.guard_failed")
        raise internal_error("billing_unavailable") from e

    if balance < pricing.hard_stop_below:
        si_billing_rejections_total.labels(status="402").inc()
        log.info("billing.insufficient_credits", extra={"user_id": user_id, "balance": str(balance)})
        raise InsufficientCreditsError(balance)

    request_id = getattr(request.state, "request_id", None) or uuid.uuid4().hex
    return BillingContext(
        user_id=user_id,
        email=email,
        balance=balance,
        request_id=str(request_id),
        session=session,
        pricing=pricing,
    )
