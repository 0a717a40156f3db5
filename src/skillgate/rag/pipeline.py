from __future__ import annotations

import math

from skillgate.domain.rag import RAGCandidate, RAGDoc, RankedDoc, RankedDocuments, RankOptions
from skillgate.rag.rerank import Reranker


async def rank_documents_detailed(
    reranker: Reranker,
    query: str,
    docs: list[RAGDoc],
    opts: RankOptions | None = None,
) -> tuple[list[RAGCandidate], bool]:
    """Scored candidates best-first, each keeping its index into `docs`."""
    opts = opts or RankOptions()
    if not docs:
        return [], False

    texts = [d.text or "" for d in docs]
    top_k = min(opts.top_k if opts.top_k is not None else len(texts), len(texts))
    res = await reranker.rerank(
        query,
        texts,
        top_k=top_k,
        model=opts.model,
        timeout_seconds=opts.timeout_seconds,
    )

    candidates = [
        RAGCandidate(
            index=r.index,
            score=r.score if math.isfinite(r.score) else 0.0,
            text=docs[r.index].text or "",
            id=docs[r.index].id,
            meta=docs[r.index].meta,
        )
        for r in res.results
    ]
    candidates.sort(key=lambda c: c.score, reverse=True)
    if opts.min_score is not None:
        candidates = [c for c in candidates if c.score >= opts.min_score]
    return candidates, bool(res.used_fallback)


async def rank_documents(
    reranker: Reranker,
    query: str,
    docs: list[RAGDoc],
    opts: RankOptions | None = None,
) -> RankedDocuments:
    candidates, used_fallback = await rank_documents_detailed(reranker, query, docs, opts)
    top = [RankedDoc(id=c.id, text=c.text, meta=c.meta, score=c.score) for c in candidates]
    return RankedDocuments(top=top, used_fallback=used_fallback)


async def top_texts(
    reranker: Reranker,
    query: str,
    docs: list[RAGDoc],
    top_k: int = 5,
    timeout_seconds: float | None = None,
) -> tuple[list[str], bool]:
    """Best `top_k` texts only, for building a context window."""
    ranked = await rank_documents(
        reranker, query, docs, RankOptions(top_k=top_k, timeout_seconds=timeout_seconds)
    )
    return [d.text for d in ranked.top], ranked.used_fallback
