import asyncio
from collections.abc import AsyncGenerator
from uuid import UUID

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import AwareDatetime, BaseModel, Field

from keywarden.core.modules.audit.models import Log
from keywarden.core.pagination import PaginationResult
from keywarden.web.deps import AppDep, AuthTokenDep, ClientIpDep
from keywarden.web.openapi import ErrorResponse

router = APIRouter(tags=["logs"])

KEEPALIVE_SECONDS = 15.0


class PurgeLogsResponse(BaseModel):
    """Result of a retention purge."""

    deleted: int = Field(..., description="Number of entries removed")


@router.get(
    "/logs",
    summary="List audit logs",
    description="Get audit entries, newest first, optionally only those of one key.",
    operation_id="listLogs",
    responses={
        200: {"description": "Paginated list of audit entries"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"},
    },
)
async def list_logs(
    app: AppDep,
    auth_token: AuthTokenDep,
    limit: int = Query(50, ge=1, le=500, description="Maximum items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    key_id: UUID | None = Query(None, description="Only entries of this key"),
) -> PaginationResult[Log]:
    return await app.get_logs(auth_token, limit, offset, key_id)


@router.delete(
    "/logs",
    summary="Purge audit logs",
    description="Delete every entry recorded before the given instant.",
    operation_id="purgeLogs",
    responses={
        200: {"description": "Number of entries removed"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"},
    },
)
async def purge_logs(
    app: AppDep,
    auth_token: AuthTokenDep,
    ip_address: ClientIpDep,
    before: AwareDatetime = Query(..., description="Entries older than this are removed"),
) -> PurgeLogsResponse:
    return PurgeLogsResponse(deleted=await app.purge_logs(auth_token, before, ip_address))


@router.get(
    "/logs/stream",
    summary="Live audit feed",
    description="Server-sent events, one `log` event per newly stored entry. Slow readers may miss entries.",
    operation_id="streamLogs",
    response_class=StreamingResponse,
    responses={
        200: {"description": "Event stream", "content": {"text/event-stream": {}}},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def stream_logs(request: Request, app: AppDep, auth_token: AuthTokenDep) -> StreamingResponse:
    queue = app.subscribe_logs(auth_token)

    async def events() -> AsyncGenerator[str]:
        try:
            while not await request.is_disconnected():
                try:
                    entry = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"event: log\nid: {entry.id}\ndata: {entry.model_dump_json(by_alias=True)}\n\n"
        finally:
            app.unsubscribe_logs(queue)

    return StreamingResponse(events(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
