from __future__ import annotations

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from skillgate.core.config import Settings, get_settings
from skillgate.providers.local_llm import LocalLLMClient
from skillgate.rag.rerank import Reranker, build_reranker
from skillgate.skills.engine import SkillEngine
from skillgate.skills.registry import SkillRegistry, build_skill_registry


async def get_db_session(request: Request):
    sessionmaker = getattr(request.app.state, "db_sessionmaker", None)
    if sessionmaker is None:
        yield None
        return

    session: AsyncSession = sessionmaker()
    try:
        yield session
    finally:
        await session.close()


def get_local_http_client(request: Request) -> httpx.AsyncClient:
    client = getattr(request.app.state, "local_http_client", None)
    if client is None:
        raise RuntimeError("local inference HTTP client is not initialised (app lifespan not running?)")
    return client


def get_llm_client(
    client: httpx.AsyncClient = Depends(get_local_http_client),
    settings: Settings = Depends(get_settings),
) -> LocalLLMClient:
    return LocalLLMClient(client=client, url=settings.local_llm_url)


def get_reranker(
    client: httpx.AsyncClient = Depends(get_local_http_client),
    settings: Settings = Depends(get_settings),
) -> Reranker:
    return build_reranker(client=client, settings=settings)


def get_skill_registry(request: Request) -> SkillRegistry:
    registry = getattr(request.app.state, "skill_registry", None)
    if registry is None:
        registry = build_skill_registry()
        request.app.state.skill_registry = registry
    return registry


def get_skill_engine(
    registry: SkillRegistry = Depends(get_skill_registry),
    llm: LocalLLMClient = Depends(get_llm_client),
    reranker: Reranker = Depends(get_reranker),
    settings: Settings = Depends(get_settings),
) -> SkillEngine:
    return SkillEngine(registry=registry, llm=llm, settings=settings, reranker=reranker)
