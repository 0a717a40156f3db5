from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from skillgate import __version__
from skillgate.api import api_router
from skillgate.core.config import get_settings
from skillgate.core.logging import configure_logging
from skillgate.core.middleware import RequestIdMiddleware
from skillgate.skills.registry import build_skill_registry
from skillgate.storage.db import create_engine, create_sessionmaker

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(level=settings.skillgate_log_level)
    log.info("app.start", extra={"env": settings.skillgate_env, "allow_providers": settings.allow_providers})
    db_engine: AsyncEngine | None = None
    db_sessionmaker: async_sessionmaker | None = None

    headers = {"Authorization": f"Bearer {settings.local_api_key}"} if settings.local_api_key else None
    local_client = httpx.AsyncClient(
        headers=headers,
        timeout=httpx.Timeout(settings.local_timeout_seconds),
    )
    app.state.local_http_client = local_client

    if settings.database_url:
        db_engine = create_engine(database_url=settings.database_url, pool_size=settings.db_pool_size)
        db_sessionmaker = create_sessionmaker(db_engine)
        app.state.db_engine = db_engine
        app.state.db_sessionmaker = db_sessionmaker
    yield
    await local_client.aclose()
    if db_engine is not None:
        await db_engine.dispose()
    log.info("app.stop")


def create_app() -> FastAPI:
    app = FastAPI(title="SkillGate", version=__version__, lifespan=lifespan)
    app.state.skill_registry = build_skill_registry()
    app.add_middleware(RequestIdMiddleware)
    app.include_router(api_router)
    return app


app = create_app()
