from __future__ import annotations

import hmac
from typing import Any

from fastapi import Depends, Header, Request

from skillgate.core.config import Settings, get_settings
from skillgate.core.errors import unauthorized

USER_EMAIL_HEADER = "X-User-Email"


def _email_of(holder: Any) -> str | None:
    if holder is None:
        return None
    value = holder.get("email") if isinstance(holder, dict) else getattr(holder, "email", None)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_caller_email(request: Request) -> str | None:
    """
    Caller identity, in priority order: an authenticated user set on
    request.state.user by an upstream auth layer, then request.state.auth,
    then the X-User-Email header.
    """
    for holder in (getattr(request.state, "user", None), getattr(request.state, "auth", None)):
        email = _email_of(holder)
        if email:
            return email
    header = request.headers.get(USER_EMAIL_HEADER)
    return header.strip() if header and header.strip() else None


def require_caller_email(request: Request) -> str:
    email = resolve_caller_email(request)
    if not email:
        raise unauthorized("unauthorized")
    return email


def _parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2:
        return None
    scheme, value = parts[0].lower(), parts[1].strip()
    if scheme != "bearer" or not value:
        return None
    return value


def require_admin(
    authorization: str | None = Header(default=None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Operator endpoints need `Authorization: Bearer <ADMIN_API_KEY>`; closed when unset."""
    if not settings.admin_api_key:
        raise unauthorized("Admin API is not configured")
    token = _parse_bearer(authorization)
    if not token or not hmac.compare_digest(token.encode("utf-8"), settings.admin_api_key.encode("utf-8")):
        raise unauthorized("Invalid admin token")
