from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel, Field, ValidationError

from skillgate.core.config import Settings
from skillgate.core.errors import SkillValidationError, UnknownSkillError
from skillgate.domain.billing import Usage
from skillgate.domain.chat import ChatMessage, CompletionInput
from skillgate.domain.rag import RAGDoc
from skillgate.providers.local_llm import LocalLLMClient
from skillgate.rag.pipeline import top_texts
from skillgate.rag.rerank import Reranker
from skillgate.routing.policy import assert_allowed
from skillgate.routing.quality import PickInput, pick_model
from skillgate.skills.registry import ResultKind, SkillName, SkillRegistry, SkillSpec

log = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
DEGRADED_EXTRACT_CHARS = 240
RAG_CONTEXT_DOCS = 5
_WS_RE = re.compile(r"\s+")


class SkillRequest(BaseModel):
    skill: str = Field(min_length=1)
    input: str = Field(min_length=1)
    locale: str = "en"
    extras: dict[str, Any] | None = None


class SkillResult(BaseModel):
    kind: ResultKind
    content: str
    lang: str | None = None


@dataclass(frozen=True)
class SkillRun:
    result: SkillResult
    usage: Usage
    model: str


def estimate_tokens(text: str) -> int:
    """
    Approximate token count at ~4 characters per token, rounded half up, minimum 1.

    This is a length heuristic, not a tokenizer: billed token counts are
    estimates and can differ from what the model actually consumed.
    """
    return max(1, math.floor(len(text or "") / CHARS_PER_TOKEN + 0.5))


def estimate_usage(input_text: str, output: SkillResult | None) -> Usage:
    return Usage(
        tokens_in=estimate_tokens(input_text),
        tokens_out=estimate_tokens(output.content if output is not None else ""),
    )


def degraded_text(prompt: str) -> str:
    head = _WS_RE.sub(" ", (prompt or "")[:DEGRADED_EXTRACT_CHARS]).strip()
    return f"[DEGRADED:LLM] Unable to reach model. Showing a concise extract:\n{head}"


def _target_language(extras: dict[str, Any]) -> str:
    return str(extras.get("to") or "en")[:10]


def _context_documents(extras: dict[str, Any]) -> list[RAGDoc]:
    raw = extras.get("documents")
    if not isinstance(raw, list):
        return []
    docs: list[RAGDoc] = []
    for item in raw:
        if isinstance(item, str):
            docs.append(RAGDoc(text=item))
        elif isinstance(item, dict):
            try:
                docs.append(RAGDoc.model_validate(item))
            except ValidationError:
                continue
    return docs


class SkillEngine:
    def __init__(
        self,
        *,
        registry: SkillRegistry,
        llm: LocalLLMClient,
        settings: Settings,
        reranker: Reranker | None = None,
    ):
        self._registry = registry
        self._llm = llm
        self._settings = settings
        self._reranker = reranker

    def list_skills(self) -> list[dict[str, str]]:
        return self._registry.list_skills()

    async def run(self, payload: dict[str, Any] | SkillRequest) -> SkillRun:
        try:
            req = payload if isinstance(payload, SkillRequest) else SkillRequest.model_validate(payload)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise SkillValidationError(f"Invalid skill request: {fields}") from e

        try:
            spec = self._registry.get(req.skill)
        except KeyError as e:
            raise UnknownSkillError(req.skill) from e

        extras = req.extras or {}
        system, prompt, lang = await self._compose(spec, req.input, extras)
        text, model = await self._complete(spec, system=system, prompt=prompt)

        result = SkillResult(kind=spec.kind, content=text, lang=lang)
        usage = estimate_usage(req.input, result)
        log.info(
            "skill.done",
            extra={"skill": spec.name.value, "model": model, "tokens_in": usage.tokens_in, "tokens_out": usage.tokens_out},
        )
        return SkillRun(result=result, usage=usage, model=model)

    async def _compose(self, spec: SkillSpec, text: str, extras: dict[str, Any]) -> tuple[str, str, str | None]:
        """Return (system, prompt, lang) for one skill."""
        if spec.name is SkillName.TRANSLATE:
            lang = _target_language(extras)
            return spec.system.format(lang=lang), text, lang

        if spec.name is SkillName.RAG_LITE:
            context = await self._retrieve(text, extras)
            prompt = f"Question:\n{text}\n\nIf context is missing, list the needed docs."
            if context:
                numbered = "\n\n".join(f"[{i}] {t}" for i, t in enumerate(context, start=1))
                prompt = f"Context:\n{numbered}\n\n{prompt}"
            return spec.system, prompt, None

        return spec.system, text, None

    async def _retrieve(self, query: str, extras: dict[str, Any]) -> list[str]:
        docs = _context_documents(extras)
        if not docs or self._reranker is None:
            return []
        texts, used_fallback = await top_texts(self._reranker, query, docs, top_k=RAG_CONTEXT_DOCS)
        log.info("skill.context", extra={"documents": len(docs), "selected": len(texts), "used_fallback": used_fallback})
        return texts

    async def _complete(self, spec: SkillSpec, *, system: str, prompt: str) -> tuple[str, str]:
        choice = pick_model(
            PickInput(prompt=prompt, system=system),
            fast_model=self._settings.local_llm_fast,
            quality_model=self._settings.local_llm_quality,
        )
        assert_allowed(choice.provider, self._settings.allow_providers)

        req = CompletionInput(
            model=choice.model,
            messages=[ChatMessage(role="system", content=system), ChatMessage(role="user", content=prompt)],
            temperature=choice.temperature,
            max_tokens=min(spec.max_tokens, choice.max_tokens),
        )
        try:
            out = await self._llm.complete(req)
        except HTTPException as e:
            # Degrade instead of failing; the caller still gets a textual answer.
            log.warning("skill.degraded", extra={"skill": spec.name.value, "status_code": e.status_code})
            return degraded_text(prompt), choice.model
        return out.text.strip(), choice.model
