"""
Pick a local model tier per request without an extra classification call.

Short, general prompts go to the fast model. Anything that looks like JSON,
tool use, code or a long context goes to the quality model; a false "fast"
costs more than a false "quality", so every hint errs towards quality.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from skillgate.domain.chat import ModelChoice

DEFAULT_FAST_MODEL = "qwen2.5-7b-instruct-q5_k_m"
DEFAULT_QUALITY_MODEL = "qwen2.5-14b-instruct-q4_k_m"
DEFAULT_MAX_CONTEXT = 8192
LONG_PROMPT_CHARS = 2000

_STRUCTURED_RE = re.compile(r'```json|"type"\s*:\s*"object"|jsonschema|json schema|strict json|"required"\s*:')
_TOOLS_RE = re.compile(r"\btools?\s*[:=]\s*\[")
_CODE_RE = re.compile(r"```|import\s|\bfunction\s|\bclass\s|\binterface\s|\btype\s")


@dataclass(frozen=True)
class PickInput:
    prompt: str
    system: str | None = None
    joined_messages: str | None = None
    tools: list[Any] | None = None
    max_context: int | None = None


def _has_structured_hints(s: str) -> bool:
    return _STRUCTURED_RE.search(s.lower()) is not None


def _has_code_hints(s: str) -> bool:
    return _CODE_RE.search(s) is not None


def heuristic_text(inp: PickInput) -> str:
    return "\n".join(part for part in (inp.prompt, inp.system, inp.joined_messages) if part)


def pick_model(
    inp: PickInput,
    *,
    fast_model: str = DEFAULT_FAST_MODEL,
    quality_model: str = DEFAULT_QUALITY_MODEL,
) -> ModelChoice:
    text = heuristic_text(inp)

    structured = _has_structured_hints(text)
    with_tools = bool(inp.tools) or _TOOLS_RE.search(text) is not None
    codey = _has_code_hints(text)
    longish = len(text) > LONG_PROMPT_CHARS

    context = inp.max_context if inp.max_context is not None else DEFAULT_MAX_CONTEXT

    if structured or with_tools or codey or longish:
        return ModelChoice(
            provider="local",
            model=quality_model or DEFAULT_QUALITY_MODEL,
            temperature=0.2,
            max_tokens=min(2048, context),
        )

    return ModelChoice(
        provider="local",
        model=fast_model or DEFAULT_FAST_MODEL,
        temperature=0.5,
        max_tokens=min(1024, context),
    )
