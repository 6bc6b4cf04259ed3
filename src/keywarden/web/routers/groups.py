from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from keywarden.core.modules.group.models import Group
from keywarden.core.modules.key.models import Key
from keywarden.core.pagination import PaginationResult
from keywarden.web.deps import AppDep, AuthTokenDep, ClientIpDep
from keywarden.web.openapi import ErrorResponse

router = APIRouter(tags=["groups"])


class CreateGroupRequest(BaseModel):
    """Request to create a group."""

    name: str = Field(..., description="Unique group name")
    default_policy_id: UUID | None = Field(None, description="Policy for members without one of their own")


class UpdateGroupRequest(BaseModel):
    """Partial group update. Sending default_policy_id as null removes the default policy."""

    name: str | None = Field(None, description="New group name")
    default_policy_id: UUID | None = Field(None, description="New default policy")


@router.get(
    "/groups",
    summary="List groups",
    operation_id="listGroups",
    responses={
        200: {"description": "Groups ordered by name"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_groups(app: AppDep, auth_token: AuthTokenDep) -> list[Group]:
    return app.get_groups(auth_token)


@router.post(
    "/groups",
    summary="Create group",
    operation_id="createGroup",
    status_code=201,
    responses={
        201: {"description": "Group created successfully"},
        400: {"model": ErrorResponse, "description": "Invalid name, name already exists or unknown policy"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def create_group(req: CreateGroupRequest, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> Group:
    return await app.create_group(auth_token, req.name, req.default_policy_id, ip_address)


@router.get(
    "/groups/{group_id}",
    summary="Get group",
    operation_id="getGroup",
    responses={
        200: {"description": "Group details"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Group not found"},
    },
)
async def get_group(group_id: UUID, app: AppDep, auth_token: AuthTokenDep) -> Group:
    return app.get_group(auth_token, group_id)


@router.patch(
    "/groups/{group_id}",
    summary="Update group",
    description="Rename the group and/or change its default policy.",
    operation_id="updateGroup",
    responses={
        200: {"description": "Group updated successfully"},
        400: {"model": ErrorResponse, "description": "Invalid name, name already exists or unknown policy"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Group not found"},
    },
)
async def update_group(
    group_id: UUID, req: UpdateGroupRequest, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep
) -> Group:
    return await app.update_group(
        auth_token,
        group_id,
        name=req.name,
        default_policy_id=req.default_policy_id,
        set_default_policy="default_policy_id" in req.model_fields_set,
        ip_address=ip_address,
    )


@router.delete(
    "/groups/{group_id}",
    summary="Delete group",
    description="Delete a group. Refused while keys are still members.",
    operation_id="deleteGroup",
    status_code=204,
    responses={
        204: {"description": "Group deleted successfully"},
        400: {"model": ErrorResponse, "description": "Group still has members"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Group not found"},
    },
)
async def delete_group(group_id: UUID, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> None:
    await app.delete_group(auth_token, group_id, ip_address)


@router.get(
    "/groups/{group_id}/keys",
    summary="List group members",
    operation_id="listGroupKeys",
    responses={
        200: {"description": "Paginated list of member keys"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Group not found"},
    },
)
async def list_group_keys(
    group_id: UUID,
    app: AppDep,
    auth_token: AuthTokenDep,
    limit: int = Query(50, ge=1, le=500, description="Maximum items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
) -> PaginationResult[Key]:
    app.get_group(auth_token, group_id)
    return await app.get_keys(auth_token, limit, offset, group_id)
