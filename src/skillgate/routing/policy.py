from __future__ import annotations

import logging

from skillgate.core.errors import ProviderPolicyError

log = logging.getLogger(__name__)

DEFAULT_ALLOWLIST = "local"


def parse_allowlist(allowlist: str | None) -> frozenset[str]:
    raw = DEFAULT_ALLOWLIST if allowlist is None else allowlist
    return frozenset(part.strip().casefold() for part in raw.split(",") if part.strip())


def is_allowed(name: str, allowlist: str | None) -> bool:
    return (name or "").casefold() in parse_allowlist(allowlist)


def assert_allowed(name: str, allowlist: str | None) -> None:
    if not is_allowed(name, allowlist):
        log.warning("provider.blocked", extra={"provider": name})
        raise ProviderPolicyError(name)
