"""Pull / push endpoints for offline mobile clients.

``GET /sync`` and ``POST /sync`` follow the WatermelonDB convention (cursor in
the query string for pull, change-set as the body for push).  ``/sync/pull``
and ``/sync/push`` accept the same payloads as JSON bodies.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Query, Response

from src.dependencies import CurrentUser, Engine
from src.models.base import MAX_EPOCH_MS
from src.models.sync import PullRequest, PullResponse, PushResponse
from src.sync.errors import PullQueryError

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger("clinisync.routers.sync")


async def _pull(engine: Engine, user: CurrentUser, body: PullRequest) -> PullResponse:
    if body.schema_version is not None or body.migration is not None:
        logger.debug(
            "Pull from %s: schemaVersion=%s migration=%r (not interpreted)",
            user.user_id,
            body.schema_version,
            body.migration,
        )
    try:
        result = await engine.puller.pull(body.last_pulled_at)
    except PullQueryError as exc:
        # The client must keep its old cursor, so no partial changes are returned
        raise HTTPException(
            status_code=503,
            detail=f"Pull failed for table '{exc.table}', retry later",
        ) from exc
    return result.to_response()


async def _push(
    engine: Engine, user: CurrentUser, changes: dict[str, Any], response: Response
) -> PushResponse:
    logger.info("Push from %s: tables=%s", user.user_id, sorted(changes))
    result = await engine.persister.persist(changes)
    if not result.ok:
        response.status_code = 207
    return result.to_response()


@router.get("", response_model=PullResponse)
async def pull_changes(
    engine: Engine,
    user: CurrentUser,
    last_pulled_at: int | None = Query(default=None, ge=0, le=MAX_EPOCH_MS),
    schema_version: int | None = Query(default=None, alias="schemaVersion"),
    migration: str | None = Query(default=None),
) -> Any:
    body = PullRequest(
        last_pulled_at=last_pulled_at, schema_version=schema_version, migration=migration
    )
    return await _pull(engine, user, body)


@router.post("/pull", response_model=PullResponse)
async def pull_changes_body(engine: Engine, user: CurrentUser, body: PullRequest) -> Any:
    return await _pull(engine, user, body)


@router.post("", response_model=PushResponse)
async def push_changes(
    engine: Engine,
    user: CurrentUser,
    response: Response,
    changes: dict[str, Any] = Body(...),
) -> Any:
    return await _push(engine, user, changes, response)


@router.post("/push", response_model=PushResponse)
async def push_changes_alias(
    engine: Engine,
    user: CurrentUser,
    response: Response,
    changes: dict[str, Any] = Body(...),
) -> Any:
    return await _push(engine, user, changes, response)
