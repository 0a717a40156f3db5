from __future__ import annotations

import httpx
import pytest

from skillgate.core.config import Settings
from skillgate.domain.rag import RAGDoc, RankOptions
from skillgate.rag import rank_documents, rank_documents_detailed, top_texts
from skillgate.rag.rerank import build_reranker

DOCS = [
    RAGDoc(id="a", text="quarterly revenue summary", meta={"page": 1}),
    RAGDoc(id="b", text="create a navigation menu"),
    RAGDoc(id="c", text="menu icons and menu labels"),
]


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def _settings() -> Settings:
    return Settings(
        local_llm_url="http://inference.local/v1/chat/completions",
        local_rerank_url="http://inference.local/v1/rerank",
    )


@pytest.mark.asyncio
async def test_degraded_ranking_keeps_every_document() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(_unreachable)) as client:
        reranker = build_reranker(client=client, settings=_settings())
        ranked = await rank_documents(reranker, "create menu", DOCS)

    assert ranked.used_fallback is True
    assert len(ranked.top) == 3
    assert {d.id for d in ranked.top} == {"a", "b", "c"}
    assert ranked.top[-1].id == "a"
    scores = [d.score for d in ranked.top]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_detailed_candidates_keep_index_and_meta() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(_unreachable)) as client:
        reranker = build_reranker(client=client, settings=_settings())
        candidates, used_fallback = await rank_documents_detailed(
            reranker, "revenue", DOCS, RankOptions(top_k=1)
        )

    assert used_fallback is True
    assert len(candidates) == 1
    assert candidates[0].index == 0
    assert candidates[0].meta == {"page": 1}


@pytest.mark.asyncio
async def test_min_score_filters_projection() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(_unreachable)) as client:
        reranker = build_reranker(client=client, settings=_settings())
        ranked = await rank_documents(reranker, "revenue", DOCS, RankOptions(min_score=0.1))

    assert [d.id for d in ranked.top] == ["a"]


@pytest.mark.asyncio
async def test_top_texts_and_empty_input() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(_unreachable)) as client:
        reranker = build_reranker(client=client, settings=_settings())
        texts, used_fallback = await top_texts(reranker, "menu", DOCS, top_k=2)
        empty = await rank_documents(reranker, "menu", [])

    assert len(texts) == 2
    assert all("menu" in t for t in texts)
    assert used_fallback is True
    assert empty.top == []
    assert empty.used_fallback is False
