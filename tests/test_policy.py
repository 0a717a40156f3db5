from __future__ import annotations

import pytest

from skillgate.core.errors import ProviderPolicyError
from skillgate.routing.policy import assert_allowed, is_allowed, parse_allowlist


def test_allowlist_is_case_insensitive() -> None:
    assert is_allowed("LOCAL", "local")
    assert is_allowed("local", " Local , Other ")


def test_provider_outside_allowlist_is_rejected() -> None:
    assert not is_allowed("openai", "local")
    assert not is_allowed("", "local")


def test_default_allowlist_is_local_only() -> None:
    assert parse_allowlist(None) == frozenset({"local"})
    assert parse_allowlist("") == frozenset()


def test_assert_allowed_raises_403() -> None:
    assert_allowed("local", "local")
    with pytest.raises(ProviderPolicyError) as exc:
        assert_allowed("openai", "local")
    assert exc.value.status_code == 403
    assert exc.value.detail == "provider 'openai' is disabled by ALLOW_PROVIDERS"
