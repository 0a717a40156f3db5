from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal
from urllib.parse import urlsplit

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LLM_URL = "http://127.0.0.1:8000/v1/chat/completions"
DEFAULT_EMBED_URL = "http://127.0.0.1:8000/v1/embeddings"
DEFAULT_RERANK_URL = "http://127.0.0.1:8000/v1/rerank"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    skillgate_env: Literal["local", "test", "prod"] = "local"
    skillgate_log_level: str = "INFO"
    skillgate_request_id_header: str = "X-Request-ID"

    # Provider policy: comma list, case-insensitive.
    allow_providers: str = "local"

    # Local inference server (OpenAI/Cohere-compatible)
    local_llm_url: str = DEFAULT_LLM_URL
    local_embed_url: str | None = None
    local_rerank_url: str = DEFAULT_RERANK_URL
    local_embed_model: str = "local-embedding"
    local_rerank_model: str = "local-reranker"
    local_api_key: str | None = None
    local_llm_fast: str = "qwen2.5-7b-instruct-q5_k_m"
    local_llm_quality: str = "qwen2.5-14b-instruct-q4_k_m"
    local_timeout_seconds: float | None = None  # None: no timeout
    local_embed_batch_size: int = 32

    # Storage
    database_url: str | None = None
    db_pool_size: int = 5

    # Pricing (units per credit)
    tokens_per_credit: int = 1000
    r2_class_a_per_credit: int = 12500
    r2_class_b_per_credit: int = 277777
    r2_gb_retrieve_per_credit: int = 10
    warn_credits: Decimal = Decimal("10")
    hard_stop_below: Decimal = Decimal("1")

    # Operator top-ups
    admin_api_key: str | None = None

    @property
    def embeddings_url(self) -> str:
        """Explicit LOCAL_EMBED_URL, else the chat URL's origin + /v1/embeddings."""
        if self.local_embed_url and self.local_embed_url.strip():
            return self.local_embed_url.strip()
        base = (self.local_llm_url or "").strip()
        if not base:
            return DEFAULT_EMBED_URL
        parts = urlsplit(base)
        if not parts.scheme or not parts.netloc:
            return DEFAULT_EMBED_URL
        return f"{parts.scheme}://{parts.netloc}/v1/embeddings"


@lru_cache
def get_settings() -> Settings:
    return Settings()
