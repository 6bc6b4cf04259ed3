from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import AwareDatetime, BaseModel, Field

from keywarden.core.modules.key.models import Key, KeyUpdate
from keywarden.core.pagination import PaginationResult
from keywarden.web.deps import AppDep, AuthTokenDep, ClientIpDep
from keywarden.web.openapi import ErrorResponse

router = APIRouter(tags=["keys"])


class CreateKeyRequest(BaseModel):
    """Request to register a key."""

    npub: str = Field(..., description="Bech32 public key (npub1...)")
    nip05: str | None = Field(None, description="NIP-05 identifier (name@domain)")
    profile_name: str | None = Field(None, description="Display name")
    expires_at: AwareDatetime | None = Field(None, description="Key stops being authorized at this instant")
    policy_id: UUID | None = Field(None, description="Policy assigned directly to the key")
    group_id: UUID | None = Field(None, description="Group the key belongs to")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "npub": "npub1qqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqsutfqn",
                    "profile_name": "alice",
                }
            ]
        }
    }


@router.get(
    "/keys",
    summary="List keys",
    description="Get registered keys, newest first, optionally only the members of one group.",
    operation_id="listKeys",
    responses={
        200: {"description": "Paginated list of keys"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_keys(
    app: AppDep,
    auth_token: AuthTokenDep,
    limit: int = Query(50, ge=1, le=500, description="Maximum items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    group_id: UUID | None = Query(None, description="Only keys in this group"),
) -> PaginationResult[Key]:
    return await app.get_keys(auth_token, limit, offset, group_id)


@router.post(
    "/keys",
    summary="Register key",
    description="Add an enabled key. The npub must be valid and not registered yet.",
    operation_id="createKey",
    status_code=201,
    responses={
        201: {"description": "Key created successfully"},
        400: {"model": ErrorResponse, "description": "Invalid npub, duplicate key or unknown policy/group"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def create_key(req: CreateKeyRequest, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> Key:
    return await app.create_key(
        auth_token, req.npub, req.nip05, req.profile_name, req.expires_at, req.policy_id, req.group_id, ip_address
    )


@router.get(
    "/keys/{key_id}",
    summary="Get key",
    operation_id="getKey",
    responses={
        200: {"description": "Key details"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Key not found"},
    },
)
async def get_key(key_id: UUID, app: AppDep, auth_token: AuthTokenDep) -> Key:
    return await app.get_key(auth_token, key_id)


@router.patch(
    "/keys/{key_id}",
    summary="Update key",
    description="Change the fields present in the body. Fields sent as null are cleared.",
    operation_id="updateKey",
    responses={
        200: {"description": "Key updated successfully"},
        400: {"model": ErrorResponse, "description": "Invalid data or unknown policy/group"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Key not found"},
    },
)
async def update_key(key_id: UUID, req: KeyUpdate, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> Key:
    return await app.update_key(auth_token, key_id, req, ip_address)


@router.post(
    "/keys/{key_id}/toggle",
    summary="Toggle key status",
    description="Flip the key between enabled and disabled.",
    operation_id="toggleKey",
    responses={
        200: {"description": "Key with its new status"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Key not found"},
    },
)
async def toggle_key(key_id: UUID, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> Key:
    return await app.toggle_key(auth_token, key_id, ip_address)


@router.delete(
    "/keys/{key_id}",
    summary="Delete key",
    description="Remove the key. Its audit log entries are kept.",
    operation_id="deleteKey",
    status_code=204,
    responses={
        204: {"description": "Key deleted successfully"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Key not found"},
    },
)
async def delete_key(key_id: UUID, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> None:
    await app.delete_key(auth_token, key_id, ip_address)
