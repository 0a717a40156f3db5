from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field, field_serializer


class Usage(BaseModel):
    """Billable consumption of one request. Token counts may be estimates."""

    tokens_in: int = Field(default=0, ge=0)
    tokens_out: int = Field(default=0, ge=0)
    r2_class_a: int = Field(default=0, ge=0)
    r2_class_b: int = Field(default=0, ge=0)
    r2_gb_retrieved: Decimal = Field(default=Decimal("0"), ge=0)


class UsageReceipt(BaseModel):
    request_id: str
    cost: Decimal
    balance: Decimal


class UsageEventOut(BaseModel):
    route: str
    tokens_in: int
    tokens_out: int
    cost_credits: Decimal
    request_id: str
    created_at: str | None = None

    @field_serializer("cost_credits")
    def _as_number(self, value: Decimal) -> float:
        return float(value)


class BalanceOut(BaseModel):
    email: str
    balance: Decimal
    warn: bool = False

    @field_serializer("balance")
    def _as_number(self, value: Decimal) -> float:
        return float(value)


class TopUpRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    amount: Decimal = Field(gt=0)
    reason: str = Field(default="manual-topup", min_length=1, max_length=200)
