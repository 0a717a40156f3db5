from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from skillgate.core.config import Settings
from skillgate.domain.billing import Usage

CREDIT_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class Pricing:
    tokens_per_credit: int = 1000
    r2_class_a_per_credit: int = 12500
    r2_class_b_per_credit: int = 277777
    r2_gb_retrieve_per_credit: int = 10
    warn_credits: Decimal = Decimal("10")
    hard_stop_below: Decimal = Decimal("1")

    @classmethod
    def from_settings(cls, settings: Settings) -> Pricing:
        return cls(
            tokens_per_credit=settings.tokens_per_credit,
            r2_class_a_per_credit=settings.r2_class_a_per_credit,
            r2_class_b_per_credit=settings.r2_class_b_per_credit,
            r2_gb_retrieve_per_credit=settings.r2_gb_retrieve_per_credit,
            warn_credits=settings.warn_credits,
            hard_stop_below=settings.hard_stop_below,
        )


def credits_for_usage(usage: Usage, pricing: Pricing) -> Decimal:
    tokens = Decimal(usage.tokens_in + usage.tokens_out) / Decimal(pricing.tokens_per_credit)
    class_a = Decimal(usage.r2_class_a) / Decimal(pricing.r2_class_a_per_credit)
    class_b = Decimal(usage.r2_class_b) / Decimal(pricing.r2_class_b_per_credit)
    retrieved = Decimal(usage.r2_gb_retrieved) / Decimal(pricing.r2_gb_retrieve_per_credit)
    return (tokens + class_a + class_b + retrieved).quantize(CREDIT_QUANTUM, rounding=ROUND_HALF_UP)
