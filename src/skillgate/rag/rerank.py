"""
Rerank a candidate set against a query with a local-first tier chain.

Tiers are tried strictly in order, once each:
  1. dedicated reranker (Cohere-compatible /v1/rerank)
  2. cosine similarity over local embeddings
  3. lexical token overlap (always available)

A tier that cannot answer raises TierUnavailable and the next one runs.
The tier that answered is reported in RerankResult.used_fallback.
"""

from __future__ import annotations

import json
import logging
import math
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from skillgate.core.config import Settings
from skillgate.core.metrics import si_rerank_tier_total
from skillgate.domain.rag import FallbackTier, RankedItem, RerankResult
from skillgate.rag.embeddings import EmbeddingsUnavailable, LocalEmbedder, cosine_scores
from skillgate.routing.policy import assert_allowed

log = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


class TierUnavailable(Exception):
    pass


def tokenize(text: str) -> list[str]:
    return _NON_ALNUM_RE.sub(" ", (text or "").lower()).split()


def lexical_score(query: str, text: str) -> float:
    q = set(tokenize(query))
    d = tokenize(text)
    if not q or not d:
        return 0.0
    overlap = sum(1 for t in d if t in q)
    return overlap / math.sqrt(max(1, len(d)))


def _finite(value: Any, default: float = 0.0) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    return f if math.isfinite(f) else default


class RerankTier(ABC):
    name: str
    fallback: FallbackTier

    @abstractmethod
    async def score(
        self,
        query: str,
        documents: list[str],
        *,
        top_n: int,
        model: str,
        timeout_seconds: float | None = None,
    ) -> tuple[list[RankedItem], str]:
        """Return (unsorted scored items, reported model) or raise TierUnavailable."""
        raise NotImplementedError


class CrossEncoderTier(RerankTier):
    name = "rerank"
    fallback: FallbackTier = False

    def __init__(self, *, client: httpx.AsyncClient, url: str):
        self._client = client
        self._url = url

    async def score(self, query, documents, *, top_n, model, timeout_seconds=None):
        kwargs: dict[str, Any] = {}
        if timeout_seconds is not None:
            kwargs["timeout"] = timeout_seconds
        body = {"model": model, "query": query, "documents": documents, "top_n": top_n}
        try:
            resp = await self._client.post(self._url, json=body, **kwargs)
        except httpx.HTTPError as e:
            raise TierUnavailable(f"rerank request failed: {e}") from e
        if not resp.is_success:
            raise TierUnavailable(f"rerank HTTP {resp.status_code}")
        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TierUnavailable("rerank returned invalid JSON") from e
        if not isinstance(data, dict):
            raise TierUnavailable("rerank returned a non-object body")

        rows = data.get("results")
        if not isinstance(rows, list):
            rows = data.get("data")
        if not isinstance(rows, list):
            rows = []

        n_docs = len(documents)
        items: list[RankedItem] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            raw_index = row.get("index", row.get("document_index", 0))
            index = _finite(raw_index, default=-1.0)
            if not index.is_integer() or not 0 <= index < n_docs:
                continue
            raw_score = row.get("relevance_score", row.get("score", 0))
            items.append(RankedItem(index=int(index), score=_finite(raw_score)))

        if not items:
            raise TierUnavailable("rerank returned no usable results")
        return items, str(data.get("model") or model)


class EmbeddingCosineTier(RerankTier):
    name = "embeddings"
    fallback: FallbackTier = "embeddings"

    def __init__(self, *, embedder: LocalEmbedder):
        self._embedder = embedder

    async def score(self, query, documents, *, top_n, model, timeout_seconds=None):
        try:
            emb = await self._embedder.embed([query, *documents], timeout_seconds=timeout_seconds)
        except EmbeddingsUnavailable as e:
            raise TierUnavailable(str(e)) from e
        if len(emb.vectors) != len(documents) + 1:
            raise TierUnavailable("embeddings count does not match inputs")

        scores = cosine_scores(emb.vectors[0], emb.vectors[1:])
        items = [RankedItem(index=i, score=float(s)) for i, s in enumerate(scores)]
        return items, f"{model}+embed-fallback"


class LexicalTier(RerankTier):
    name = "lexical"
    fallback: FallbackTier = "lexical"

    async def score(self, query, documents, *, top_n, model, timeout_seconds=None):
        items = [RankedItem(index=i, score=lexical_score(query, text)) for i, text in enumerate(documents)]
        return items, f"{model}+lexical-fallback"


def _finalize(items: list[RankedItem], *, top_n: int, min_score: float | None) -> list[RankedItem]:
    out = sorted(items, key=lambda r: r.score, reverse=True)[:top_n]
    if min_score is not None and math.isfinite(min_score):
        out = [r for r in out if r.score >= min_score]
    return out


class Reranker:
    def __init__(
        self,
        *,
        tiers: list[RerankTier],
        default_model: str = "local-reranker",
        allow_providers: str = "local",
    ):
        if not tiers:
            raise ValueError("at least one rerank tier is required")
        self._tiers = tiers
        self._default_model = default_model
        self._allow_providers = allow_providers

    async def rerank(
        self,
        query: str,
        documents: list[str],
        *,
        top_k: int | None = None,
        min_score: float | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
    ) -> RerankResult:
        assert_allowed("local", self._allow_providers)
        model = model or self._default_model

        n_docs = len(documents)
        if n_docs == 0:
            return RerankResult(results=[], model=model, used_fallback=False)

        requested = top_k if top_k is not None else n_docs
        top_n = max(1, min(n_docs, int(requested)))

        for tier in self._tiers:
            try:
                items, reported_model = await tier.score(
                    query, documents, top_n=top_n, model=model, timeout_seconds=timeout_seconds
                )
            except TierUnavailable as e:
                log.warning("rerank.tier_unavailable", extra={"tier": tier.name, "reason": str(e)})
                continue
            si_rerank_tier_total.labels(tier=tier.name).inc()
            return RerankResult(
                results=_finalize(items, top_n=top_n, min_score=min_score),
                model=reported_model,
                used_fallback=tier.fallback,
            )

        # Only reachable when the chain was built without a lexical tier.
        log.error("rerank.all_tiers_unavailable", extra={"documents": n_docs})
        return RerankResult(results=[], model=model, used_fallback="lexical")


def build_reranker(*, client: httpx.AsyncClient, settings: Settings) -> Reranker:
    embedder = LocalEmbedder(
        client=client,
        url=settings.embeddings_url,
        model=settings.local_embed_model,
        batch_size=settings.local_embed_batch_size,
    )
    return Reranker(
        tiers=[
            CrossEncoderTier(client=client, url=settings.local_rerank_url),
            EmbeddingCosineTier(embedder=embedder),
            LexicalTier(),
        ],
        default_model=settings.local_rerank_model,
        allow_providers=settings.allow_providers,
    )
