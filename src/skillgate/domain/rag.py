from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import BaseModel

# False: the dedicated reranker answered. Otherwise the name of the fallback tier.
FallbackTier = Union[bool, Literal["embeddings", "lexical"]]


class RAGDoc(BaseModel):
    id: str | None = None
    text: str = ""
    meta: dict[str, Any] | None = None


class RankedDoc(RAGDoc):
    score: float


@dataclass(frozen=True)
class RankedItem:
    index: int
    score: float


@dataclass(frozen=True)
class RerankResult:
    results: list[RankedItem]
    model: str
    used_fallback: FallbackTier = False
    provider: str = "local"


@dataclass(frozen=True)
class RAGCandidate:
    index: int
    score: float
    text: str
    id: str | None = None
    meta: dict[str, Any] | None = None


@dataclass(frozen=True)
class RankOptions:
    top_k: int | None = None
    min_score: float | None = None
    model: str | None = None
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class RankedDocuments:
    top: list[RankedDoc] = field(default_factory=list)
    used_fallback: bool = False
