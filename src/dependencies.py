"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.config import Settings
from src.sync.engine import SyncEngine


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller extracted from the Bearer JWT."""

    user_id: str  # token subject
    clinic_id: str | None = None
    session_id: str | None = None


ANONYMOUS = AuthContext(user_id="anonymous")


async def get_current_user(request: Request) -> AuthContext:
    """Extract the authenticated user from the request state.

    The auth middleware sets ``request.state.auth`` before routes run.  With
    auth disabled, callers are anonymous.
    """
    auth: AuthContext | None = getattr(request.state, "auth", None)
    if auth is None:
        if not request.app.state.settings.auth_enabled:
            return ANONYMOUS
        raise HTTPException(status_code=401, detail="Not authenticated")
    return auth


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_sync_engine(request: Request) -> SyncEngine:
    engine: SyncEngine | None = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Sync engine not initialized")
    return engine


# Annotated shortcuts for route signatures
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Engine = Annotated[SyncEngine, Depends(get_sync_engine)]
