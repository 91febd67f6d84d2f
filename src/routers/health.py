"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.dependencies import AppSettings

router = APIRouter(tags=["system"])
logger = logging.getLogger("clinisync.health")


@router.get("/health")
async def health_check(request: Request, settings: AppSettings) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also performs a lightweight storage connectivity check.
    """
    engine = getattr(request.app.state, "sync_engine", None)
    storage_ok = False
    if engine is not None:
        try:
            storage_ok = await engine.store.ping()
        except Exception as exc:
            logger.warning("Health check storage probe failed: %s", exc)

    return {
        "status": "healthy" if storage_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "storage": settings.storage_backend,
        "database": "connected" if storage_ok else "unreachable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
