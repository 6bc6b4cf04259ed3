from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import AwareDatetime

from keywarden.core.modules.access.models import Decision
from keywarden.web.deps import AppDep, AuthTokenDep, ClientIpDep
from keywarden.web.openapi import ErrorResponse

router = APIRouter(tags=["access"])


@router.get(
    "/access/{npub}",
    summary="Check access for an npub",
    description="Decide whether the key may access the resource right now. Unknown keys are denied. "
    "Every call is recorded in the audit log.",
    operation_id="checkAccess",
    responses={
        200: {"description": "Decision (allowed or denied with reason)"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"},
    },
)
async def check_access(npub: str, app: AppDep, ip_address: ClientIpDep) -> Decision:
    return await app.check_access(npub, ip_address)


@router.get(
    "/keys/{key_id}/access",
    summary="Check access for a key",
    description="Decide for a registered key, optionally at another instant (for previewing a policy).",
    operation_id="checkKeyAccess",
    responses={
        200: {"description": "Decision (allowed or denied with reason)"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        422: {"description": "Instant without a timezone offset"},
    },
)
async def check_key_access(
    key_id: UUID,
    app: AppDep,
    auth_token: AuthTokenDep,
    ip_address: ClientIpDep,
    at: AwareDatetime | None = Query(None, description="Instant to decide for (timezone-aware ISO 8601), defaults to now"),
) -> Decision:
    return await app.check_key_access(auth_token, key_id, at, ip_address)
