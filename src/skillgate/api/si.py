from __future__ import annotations

import json
import logging
import math
import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from skillgate.billing.guard import BillingContext, apply_receipt_headers, billing_guard
from skillgate.core.config import Settings, get_settings
from skillgate.core.deps import get_llm_client, get_skill_engine, get_skill_registry
from skillgate.core.errors import internal_error
from skillgate.core.logging import LogContext, with_context
from skillgate.core.metrics import si_ask_duration_seconds, si_upstream_errors_total
from skillgate.domain.billing import Usage
from skillgate.domain.chat import AskMessage, AskResponse, ChatMessage, CompletionInput
from skillgate.providers.local_llm import LocalLLMClient
from skillgate.routing.policy import assert_allowed
from skillgate.routing.quality import PickInput, pick_model
from skillgate.skills.engine import SkillEngine, estimate_tokens
from skillgate.skills.registry import SkillRegistry

router = APIRouter()
log = logging.getLogger(__name__)

_ROLES = {"system", "user", "assistant", "tool", "function"}


async def _read_body(request: Request) -> dict[str, Any]:
    """JSON object body; anything unparseable counts as {}."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


def normalize_messages(body: dict[str, Any]) -> list[ChatMessage]:
    """Accept OpenAI-style {messages} or a plain {prompt, system}."""
    raw = body.get("messages")
    if not isinstance(raw, list):
        raw = []
        system = body.get("system")
        if isinstance(system, str) and system.strip():
            raw.append({"role": "system", "content": system.strip()})
        prompt = body.get("prompt")
        raw.append({"role": "user", "content": prompt if isinstance(prompt, str) else ""})

    out: list[ChatMessage] = []
    for m in raw:
        if not isinstance(m, dict):
            continue
        role = m.get("role") if m.get("role") in _ROLES else "user"
        content = m.get("content")
        name = m.get("name")
        tool_call_id = m.get("tool_call_id")
        out.append(
            ChatMessage(
                role=role,
                content="" if content is None else str(content),
                name=name if isinstance(name, str) else None,
                tool_call_id=tool_call_id if isinstance(tool_call_id, str) else None,
            )
        )
    return out


def join_for_heuristics(messages: list[ChatMessage], system: str | None) -> str:
    lines = "\n".join(f"{m.role}: {m.content}" if m.content else "" for m in messages)
    return f"{system or ''}\n{lines}"


def _requested_max_tokens(body: dict[str, Any]) -> int | None:
    value = body.get("max_tokens")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value) if math.isfinite(value) else None


def chat_usage(messages: list[ChatMessage], text: str, upstream: dict[str, Any] | None) -> Usage:
    """Prefer the server's token counts; fall back to the length estimate."""
    upstream = upstream or {}
    prompt_tokens = upstream.get("prompt_tokens")
    completion_tokens = upstream.get("completion_tokens")
    if not isinstance(prompt_tokens, int) or prompt_tokens < 0:
        prompt_tokens = estimate_tokens(json.dumps([m.model_dump(exclude_none=True) for m in messages]))
    if not isinstance(completion_tokens, int) or completion_tokens < 0:
        completion_tokens = estimate_tokens(text)
    return Usage(tokens_in=prompt_tokens, tokens_out=completion_tokens)


@router.get("/skills")
def list_skills(registry: SkillRegistry = Depends(get_skill_registry)) -> dict[str, list[dict[str, str]]]:
    return {"skills": registry.list_skills()}


@router.post("/ask")
async def ask(
    request: Request,
    response: Response,
    billing: BillingContext = Depends(billing_guard),
    engine: SkillEngine = Depends(get_skill_engine),
    llm: LocalLLMClient = Depends(get_llm_client),
    settings: Settings = Depends(get_settings),
):
    body = await _read_body(request)
    logger = with_context(log, LogContext(request_id=billing.request_id, user_id=billing.user_id))
    route = request.url.path

    if "skill" in body:
        return await _ask_skill(body, route=route, response=response, billing=billing, engine=engine, logger=logger)
    return await _ask_chat(body, route=route, response=response, billing=billing, llm=llm, settings=settings, logger=logger)


async def _ask_skill(
    body: dict[str, Any],
    *,
    route: str,
    response: Response,
    billing: BillingContext,
    engine: SkillEngine,
    logger: logging.LoggerAdapter,
) -> dict[str, Any]:
    started = time.perf_counter()
    try:
        run = await engine.run(body)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("si.ask.skill_failed", extra={"skill": body.get("skill")})
        raise internal_error("skill_failed") from e
    si_ask_duration_seconds.labels(variant="skill", model=run.model).observe(time.perf_counter() - started)

    receipt = await billing.charge(run.usage, route=route)
    apply_receipt_headers(response, receipt)
    logger.info("si.ask.done", extra={"variant": "skill", "skill": body.get("skill"), "model": run.model})
    return {
        "ok": True,
        "result": run.result.model_dump(exclude_none=True),
        "usage": run.usage.model_dump(),
        "cost": receipt.cost,
        "balance": receipt.balance,
    }


async def _ask_chat(
    body: dict[str, Any],
    *,
    route: str,
    response: Response,
    billing: BillingContext,
    llm: LocalLLMClient,
    settings: Settings,
    logger: logging.LoggerAdapter,
) -> AskResponse:
    messages = normalize_messages(body)
    tools = body.get("tools") if isinstance(body.get("tools"), list) else None
    system = body.get("system") if isinstance(body.get("system"), str) else None
    requested_max = _requested_max_tokens(body)

    choice = pick_model(
        PickInput(
            prompt=next((m.content for m in messages if m.role == "user"), ""),
            system=system,
            joined_messages=join_for_heuristics(messages, system),
            tools=tools,
            max_context=requested_max,
        ),
        fast_model=settings.local_llm_fast,
        quality_model=settings.local_llm_quality,
    )
    assert_allowed(choice.provider, settings.allow_providers)

    started = time.perf_counter()
    try:
        result = await llm.complete(
            CompletionInput(
                model=choice.model,
                messages=messages,
                temperature=choice.temperature,
                max_tokens=requested_max if requested_max is not None else choice.max_tokens,
                tools=tools,
            )
        )
    except HTTPException as e:
        si_upstream_errors_total.labels(status=str(e.status_code)).inc()
        logger.warning("si.ask.upstream_error", extra={"status_code": e.status_code, "model": choice.model})
        raise
    except Exception as e:
        logger.exception("si.ask.local_llm_error", extra={"model": choice.model})
        raise internal_error("local_llm_error") from e
    si_ask_duration_seconds.labels(variant="chat", model=choice.model).observe(time.perf_counter() - started)

    usage = chat_usage(messages, result.text, result.usage)
    receipt = await billing.charge(usage, route=route)
    apply_receipt_headers(response, receipt)
    logger.info("si.ask.done", extra={"variant": "chat", "model": choice.model})
    return AskResponse(
        provider=choice.provider,
        model=choice.model,
        message=AskMessage(content=result.text),
        usage=result.usage,
    )
