from __future__ import annotations

from decimal import Decimal

from fastapi import HTTPException


class ProviderPolicyError(HTTPException):
    """A provider was requested that ALLOW_PROVIDERS does not permit."""

    def __init__(self, provider: str) -> None:
        super().__init__(status_code=403, detail=f"provider '{provider}' is disabled by ALLOW_PROVIDERS")
        self.provider = provider


class UpstreamError(HTTPException):
    """Non-2xx from the local inference server; carries the upstream status as-is."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(status_code=status_code, detail=detail)
        self.upstream_status = status_code


class InsufficientCreditsError(HTTPException):
    def __init__(self, balance: Decimal) -> None:
        super().__init__(
            status_code=402,
            detail={"error": "insufficient_credits", "balance": float(balance)},
            headers={"X-Credits-Balance": format_credits(balance)},
        )
        self.balance = balance


class SkillValidationError(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(status_code=400, detail=detail)


class UnknownSkillError(HTTPException):
    def __init__(self, skill: str) -> None:
        super().__init__(status_code=400, detail=f"Unknown skill: {skill}")
        self.skill = skill


def format_credits(value: Decimal) -> str:
    """Render credits without trailing zeros: Decimal('4.800000') -> '4.8'."""
    text = format(Decimal(value).normalize(), "f")
    return "0" if text in ("-0", "") else text


def unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def internal_error(detail: str = "Internal server error") -> HTTPException:
    return HTTPException(status_code=500, detail=detail)


def bad_gateway(detail: str = "Bad gateway") -> HTTPException:
    return HTTPException(status_code=502, detail=detail)


def service_unavailable(detail: str = "Service unavailable") -> HTTPException:
    return HTTPException(status_code=503, detail=detail)


def gateway_timeout(detail: str = "Gateway timeout") -> HTTPException:
    return HTTPException(status_code=504, detail=detail)
