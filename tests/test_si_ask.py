from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from skillgate.core.deps import get_llm_client
from skillgate.core.errors import UpstreamError
from skillgate.domain.chat import CompletionInput, CompletionResult
from skillgate.main import create_app


class FakeLLM:
    def __init__(self, text: str = "ok", usage: dict | None = None, exc: Exception | None = None) -> None:
        self.text = text
        self.usage = usage
        self.exc = exc
        self.calls: list[CompletionInput] = []

    async def complete(self, req: CompletionInput, timeout_seconds: float | None = None) -> CompletionResult:
        self.calls.append(req)
        if self.exc is not None:
            raise self.exc
        return CompletionResult(text=self.text, usage=self.usage)


def _app(llm: FakeLLM):
    app = create_app()
    app.dependency_overrides[get_llm_client] = lambda: llm
    return app


def test_skills_are_listed_without_auth() -> None:
    with TestClient(create_app()) as client:
        r = client.get("/api/si/skills")
    assert r.status_code == 200
    keys = [s["key"] for s in r.json()["skills"]]
    assert keys == ["summarize", "explain", "action_items", "translate", "rag_lite", "voice_reply"]


def test_ask_requires_post() -> None:
    with TestClient(create_app()) as client:
        r = client.get("/api/si/ask")
    assert r.status_code == 405


def test_ask_without_identity_is_401() -> None:
    llm = FakeLLM()
    with TestClient(_app(llm)) as client:
        r = client.post("/api/si/ask", json={"skill": "summarize", "input": "hi"})
    assert r.status_code == 401
    assert llm.calls == []


def test_ask_without_database_is_503() -> None:
    with TestClient(_app(FakeLLM())) as client:
        r = client.post("/api/si/ask", json={"prompt": "hi"}, headers={"X-User-Email": "ada@example.com"})
    assert r.status_code == 503


def test_summarize_charges_and_reports_balance(ledger_db) -> None:
    user_id = ledger_db.seed("ada@example.com", credits="5.0")
    llm = FakeLLM(text="b" * 400)

    with TestClient(_app(llm)) as client:
        r = client.post(
            "/api/si/ask",
            json={"skill": "summarize", "input": "a" * 400},
            headers={"X-User-Email": "ada@example.com", "X-Request-ID": "req-e2e"},
        )

    assert r.status_code == 200
    assert r.headers["X-Credits-Used"] == "0.2"
    assert r.headers["X-Credits-Balance"] == "4.8"
    assert r.headers["X-Request-ID"] == "req-e2e"
    body = r.json()
    assert body["ok"] is True
    assert body["result"]["kind"] == "bullets"
    assert body["usage"]["tokens_in"] == 100
    assert body["usage"]["tokens_out"] == 100
    assert body["cost"] == 0.2
    assert body["balance"] == 4.8

    events = ledger_db.usage_events(user_id)
    assert len(events) == 1
    assert events[0].cost_credits == Decimal("0.2")
    assert events[0].request_id == "req-e2e"
    assert events[0].route == "/api/si/ask"
    debits = [t for t in ledger_db.credit_txns(user_id) if t.amount_credits < 0]
    assert [t.reason for t in debits] == ["usage:/api/si/ask"]


def test_low_balance_is_402_and_never_charged(ledger_db, monkeypatch: pytest.MonkeyPatch) -> None:
    user_id = ledger_db.seed("low@example.com", credits="0.5")
    llm = FakeLLM()
    charged: list[object] = []

    async def _no_charge(*args, **kwargs):
        charged.append(kwargs)
        raise AssertionError("charge must not run")

    monkeypatch.setattr("skillgate.billing.guard.charge", _no_charge)

    with TestClient(_app(llm)) as client:
        r = client.post(
            "/api/si/ask",
            json={"skill": "summarize", "input": "hello"},
            headers={"X-User-Email": "low@example.com"},
        )

    assert r.status_code == 402
    assert r.json()["detail"] == {"error": "insufficient_credits", "balance": 0.5}
    assert r.headers["X-Credits-Balance"] == "0.5"
    assert charged == []
    assert llm.calls == []
    assert ledger_db.usage_events(user_id) == []


def test_unknown_user_is_created_and_rejected(ledger_db) -> None:
    with TestClient(_app(FakeLLM())) as client:
        r = client.post(
            "/api/si/ask",
            json={"skill": "summarize", "input": "hello"},
            headers={"X-User-Email": "new@example.com"},
        )
    assert r.status_code == 402
    assert r.json()["detail"]["balance"] == 0


def test_unknown_skill_is_400_and_not_charged(ledger_db) -> None:
    user_id = ledger_db.seed("ada@example.com", credits="5")
    with TestClient(_app(FakeLLM())) as client:
        r = client.post(
            "/api/si/ask",
            json={"skill": "poetry", "input": "hello"},
            headers={"X-User-Email": "ada@example.com"},
        )
    assert r.status_code == 400
    assert ledger_db.usage_events(user_id) == []


def test_chat_variant_meters_upstream_usage(ledger_db) -> None:
    user_id = ledger_db.seed("ada@example.com", credits="5")
    llm = FakeLLM(text="Paris", usage={"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30})

    with TestClient(_app(llm)) as client:
        r = client.post(
            "/api/si/ask",
            json={
                "messages": [
                    {"role": "system", "content": "Be brief."},
                    {"content": "Capital of France?", "name": "ada"},
                ],
                "max_tokens": 64,
            },
            headers={"X-User-Email": "ada@example.com"},
        )

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["provider"] == "local"
    assert body["message"] == {"role": "assistant", "content": "Paris"}
    assert body["usage"]["total_tokens"] == 30
    assert r.headers["X-Credits-Used"] == "0.03"
    assert r.headers["X-Credits-Balance"] == "4.97"

    req = llm.calls[0]
    assert req.max_tokens == 64
    assert req.messages[1].role == "user"
    assert req.messages[1].name == "ada"
    assert ledger_db.usage_events(user_id)[0].tokens_out == 20


def test_prompt_variant_falls_back_to_estimated_usage(ledger_db) -> None:
    ledger_db.seed("ada@example.com", credits="5")
    llm = FakeLLM(text="x" * 40)

    with TestClient(_app(llm)) as client:
        r = client.post(
            "/api/si/ask",
            json={"prompt": "hello", "system": "  Be brief.  "},
            headers={"X-User-Email": "ada@example.com"},
        )

    assert r.status_code == 200
    assert r.json()["usage"] is None
    assert [m.role for m in llm.calls[0].messages] == ["system", "user"]
    assert llm.calls[0].messages[0].content == "Be brief."
    assert llm.calls[0].max_tokens == 1024
    assert float(r.headers["X-Credits-Used"]) > 0


def test_upstream_error_passes_through_uncharged(ledger_db) -> None:
    user_id = ledger_db.seed("ada@example.com", credits="5")
    llm = FakeLLM(exc=UpstreamError(503, "local LLM HTTP 503 Service Unavailable - busy"))

    with TestClient(_app(llm)) as client:
        r = client.post(
            "/api/si/ask",
            json={"prompt": "hello"},
            headers={"X-User-Email": "ada@example.com"},
        )

    assert r.status_code == 503
    assert r.json()["detail"] == "local LLM HTTP 503 Service Unavailable - busy"
    assert ledger_db.usage_events(user_id) == []


def test_unparseable_body_is_an_empty_chat(ledger_db) -> None:
    ledger_db.seed("ada@example.com", credits="5")
    llm = FakeLLM(text="?")

    with TestClient(_app(llm)) as client:
        r = client.post(
            "/api/si/ask",
            content=b"{not json",
            headers={"X-User-Email": "ada@example.com", "Content-Type": "application/json"},
        )

    assert r.status_code == 200
    assert llm.calls[0].messages[0].content == ""


def test_disallowed_provider_is_403(ledger_db, monkeypatch: pytest.MonkeyPatch) -> None:
    from skillgate.core.config import get_settings

    ledger_db.seed("ada@example.com", credits="5")
    monkeypatch.setenv("ALLOW_PROVIDERS", "openai")
    get_settings.cache_clear()
    llm = FakeLLM()

    with TestClient(_app(llm)) as client:
        r = client.post("/api/si/ask", json={"prompt": "hi"}, headers={"X-User-Email": "ada@example.com"})

    assert r.status_code == 403
    assert llm.calls == []


def test_failed_charge_is_500_without_receipt(ledger_db, monkeypatch: pytest.MonkeyPatch) -> None:
    user_id = ledger_db.seed("ada@example.com", credits="5")

    async def _broken_charge(*args, **kwargs):
        raise OperationalError("INSERT INTO usage_event", {}, Exception("disk I/O error"))

    monkeypatch.setattr("skillgate.billing.guard.charge", _broken_charge)

    with TestClient(_app(FakeLLM(text="summary"))) as client:
        r = client.post(
            "/api/si/ask",
            json={"skill": "summarize", "input": "hello"},
            headers={"X-User-Email": "ada@example.com"},
        )

    assert r.status_code == 500
    assert r.json()["detail"] == "billing_failed"
    assert "X-Credits-Used" not in r.headers
    assert "X-Credits-Balance" not in r.headers
    assert ledger_db.usage_events(user_id) == []
    assert [t.reason for t in ledger_db.credit_txns(user_id)] == ["seed"]


def test_receipt_uses_configured_request_id_header(ledger_db, monkeypatch: pytest.MonkeyPatch) -> None:
    from skillgate.core.config import get_settings

    ledger_db.seed("ada@example.com", credits="5")
    monkeypatch.setenv("SKILLGATE_REQUEST_ID_HEADER", "X-Trace-ID")
    get_settings.cache_clear()

    with TestClient(_app(FakeLLM())) as client:
        r = client.post(
            "/api/si/ask",
            json={"skill": "summarize", "input": "hello"},
            headers={"X-User-Email": "ada@example.com", "X-Trace-ID": "trace-7"},
        )

    assert r.status_code == 200
    assert r.headers["X-Trace-ID"] == "trace-7"
    assert "X-Request-ID" not in r.headers
    assert r.headers["X-Credits-Used"]
