"""OpenAI-compatible client for the local inference server (vLLM, Ollama, llama.cpp gateways)."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from skillgate.core.config import DEFAULT_LLM_URL
from skillgate.core.errors import UpstreamError, bad_gateway, gateway_timeout
from skillgate.domain.chat import CompletionInput, CompletionResult

log = logging.getLogger(__name__)

PROVIDER_NAME = "local"
ERROR_BODY_LIMIT = 400


def _safe_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def extract_text(data: Any) -> str:
    """Pull the completion text out of the usual OpenAI-style shapes; never raises."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        ch = choices[0] if isinstance(choices[0], dict) else {}
        message = ch.get("message") if isinstance(ch.get("message"), dict) else {}
        delta = ch.get("delta") if isinstance(ch.get("delta"), dict) else {}
        for candidate in (message.get("content"), delta.get("content"), ch.get("text")):
            if candidate is not None:
                return _safe_text(candidate)
        return ""
    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    return ""


def build_payload(req: CompletionInput) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": req.model,
        "messages": [m.model_dump(exclude_none=True) for m in req.messages],
        "temperature": 0.2 if req.temperature is None else req.temperature,
        "max_tokens": 512 if req.max_tokens is None else req.max_tokens,
        "stream": False,
    }
    if req.tools:
        payload["tools"] = req.tools
        payload["tool_choice"] = "auto"
    return payload


class LocalLLMClient:
    name = PROVIDER_NAME

    def __init__(self, *, client: httpx.AsyncClient, url: str = DEFAULT_LLM_URL):
        self._client = client
        self._url = url

    async def complete(self, req: CompletionInput, timeout_seconds: float | None = None) -> CompletionResult:
        payload = build_payload(req)
        kwargs: dict[str, Any] = {}
        if timeout_seconds is not None:
            kwargs["timeout"] = timeout_seconds

        try:
            resp = await self._client.post(self._url, json=payload, **kwargs)
        except httpx.TimeoutException as e:
            log.exception("Local LLM completion timed out: %s", e)
            raise gateway_timeout("local LLM request timed out") from e
        except httpx.HTTPError as e:
            log.exception("Local LLM completion failed: %s", e)
            raise bad_gateway("local LLM request failed") from e

        if not resp.is_success:
            detail = _safe_text(resp.text)[:ERROR_BODY_LIMIT]
            log.warning(
                "local_llm.upstream_error",
                extra={"status_code": resp.status_code, "model": req.model},
            )
            raise UpstreamError(
                resp.status_code,
                f"local LLM HTTP {resp.status_code} {resp.reason_phrase} - {detail}",
            )

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            data = {}

        usage = data.get("usage") if isinstance(data, dict) else None
        return CompletionResult(
            text=extract_text(data),
            usage=usage if isinstance(usage, dict) else None,
            raw=data,
        )
