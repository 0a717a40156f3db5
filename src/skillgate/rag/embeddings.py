from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any

import httpx
import numpy as np

log = logging.getLogger(__name__)

MIN_BATCH = 1
MAX_BATCH = 256


class EmbeddingsUnavailable(Exception):
    """The embeddings endpoint could not produce a usable vector per input."""


@dataclass(frozen=True)
class EmbeddingResult:
    vectors: list[list[float]]
    dim: int
    model: str


def clamp_batch_size(value: int) -> int:
    return max(MIN_BATCH, min(MAX_BATCH, int(value)))


def normalize_rows(vectors: list[list[float]]) -> np.ndarray:
    """float32 matrix with unit-length rows; all-zero rows stay zero."""
    mat = np.asarray(vectors, dtype="float32")
    norms = np.linalg.norm(mat, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return mat / norms


def cosine_scores(query: list[float], documents: list[list[float]]) -> np.ndarray:
    """Cosine similarity of each document vector to the query vector."""
    mat = normalize_rows([query, *documents])
    scores = mat[1:] @ mat[0]
    return np.nan_to_num(scores, nan=0.0, posinf=0.0, neginf=0.0)


def _parse_vectors(data: Any) -> list[list[float]]:
    items = data.get("data") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return []
    out: list[list[float]] = []
    for item in items:
        emb = item.get("embedding") if isinstance(item, dict) else None
        if not isinstance(emb, list):
            out.append([])
            continue
        try:
            vec = [float(x) for x in emb]
        except (TypeError, ValueError):
            out.append([])
            continue
        # NaN/Infinity parse as floats; such a vector is unusable.
        out.append(vec if all(math.isfinite(x) for x in vec) else [])
    return out


class LocalEmbedder:
    """Batched client for an OpenAI-compatible /v1/embeddings endpoint."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        url: str,
        model: str,
        batch_size: int = 32,
    ):
        self._client = client
        self._url = url
        self._model = model
        self._batch_size = clamp_batch_size(batch_size)

    async def embed(self, texts: list[str], timeout_seconds: float | None = None) -> EmbeddingResult:
        kwargs: dict[str, Any] = {}
        if timeout_seconds is not None:
            kwargs["timeout"] = timeout_seconds

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            try:
                resp = await self._client.post(self._url, json={"model": self._model, "input": batch}, **kwargs)
            except httpx.HTTPError as e:
                raise EmbeddingsUnavailable(f"embeddings request failed: {e}") from e

            if not resp.is_success:
                raise EmbeddingsUnavailable(f"embeddings HTTP {resp.status_code}")

            try:
                data = resp.json()
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise EmbeddingsUnavailable("embeddings returned invalid JSON") from e

            batch_vectors = _parse_vectors(data)
            if len(batch_vectors) != len(batch) or any(not v for v in batch_vectors):
                raise EmbeddingsUnavailable(
                    f"embeddings returned {len(batch_vectors)} usable vectors for {len(batch)} inputs"
                )
            vectors.extend(batch_vectors)

        dim = len(vectors[0]) if vectors else 0
        if any(len(v) != dim for v in vectors):
            raise EmbeddingsUnavailable("embeddings returned vectors of mixed dimension")
        return EmbeddingResult(vectors=vectors, dim=dim, model=self._model)
