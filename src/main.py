"""Clinisync API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000

Run without Postgres:
    STORAGE_BACKEND=memory AUTH_ENABLED=false uvicorn src.main:app --reload
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import Settings, get_settings
from src.middleware.auth import BearerAuthMiddleware
from src.routers import health, sync
from src.services.database import close_pool, init_pool
from src.sync.engine import build_engine
from src.sync.memory_store import InMemorySyncStore
from src.sync.postgres_store import PostgresSyncStore
from src.sync.store import SyncStore

logger = logging.getLogger("clinisync")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


async def _open_store(settings: Settings) -> SyncStore:
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory sync store; data is lost on restart")
        return InMemorySyncStore()
    if settings.storage_backend == "postgres":
        pool = await init_pool(settings)
        return PostgresSyncStore(pool)
    raise ValueError(f"Unknown STORAGE_BACKEND '{settings.storage_backend}'")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting Clinisync API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    store = await _open_store(settings)
    app.state.sync_engine = build_engine(settings, store)
    yield
    await store.close()
    if settings.storage_backend == "postgres":
        await close_pool()
    logger.info("Clinisync API shut down")


# ---------- App factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=f"{settings.app_name} API",
        description=(
            "Offline-first delta synchronization for mobile clinic clients — "
            "pull server changes since a cursor, push offline-authored changes back."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ---------- Middleware (order matters: last added is outermost) ----------

    if settings.auth_enabled:
        app.add_middleware(BearerAuthMiddleware, settings=settings)
    else:
        logger.warning("Authentication is disabled")

    # CORS goes last so it is outermost and answers preflight before auth
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(sync.router, prefix="/api/v1")

    return app


app = create_app()
