from datetime import time
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, Field

from keywarden.core.modules.policy.models import Policy, PolicyUpdate, Weekday
from keywarden.web.deps import AppDep, AuthTokenDep, ClientIpDep
from keywarden.web.openapi import ErrorResponse

router = APIRouter(tags=["policies"])


class CreatePolicyRequest(BaseModel):
    """Request to create a policy."""

    name: str = Field(..., description="Unique policy name")
    active_days: list[Weekday] = Field(default_factory=list, description="Days the policy allows access, empty for every day")
    time_start: time = Field(time(0, 0), description="Window start in the configured timezone (inclusive)")
    time_end: time = Field(time(0, 0), description="Window end (inclusive). Earlier than start wraps past midnight")
    expiry_days: int | None = Field(None, ge=1, description="Stop allowing access this many days after creation")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "office-hours",
                    "active_days": ["mon", "tue", "wed", "thu", "fri"],
                    "time_start": "09:00:00",
                    "time_end": "17:00:00",
                },
                {"name": "night-shift", "active_days": [], "time_start": "22:00:00", "time_end": "06:00:00"},
            ]
        }
    }


@router.get(
    "/policies",
    summary="List policies",
    operation_id="listPolicies",
    responses={
        200: {"description": "Policies ordered by name"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_policies(app: AppDep, auth_token: AuthTokenDep) -> list[Policy]:
    return app.get_policies(auth_token)


@router.post(
    "/policies",
    summary="Create policy",
    operation_id="createPolicy",
    status_code=201,
    responses={
        201: {"description": "Policy created successfully"},
        400: {"model": ErrorResponse, "description": "Invalid data or name already exists"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def create_policy(req: CreatePolicyRequest, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> Policy:
    return await app.create_policy(
        auth_token, req.name, req.active_days, req.time_start, req.time_end, req.expiry_days, ip_address
    )


@router.get(
    "/policies/{policy_id}",
    summary="Get policy",
    operation_id="getPolicy",
    responses={
        200: {"description": "Policy details"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Policy not found"},
    },
)
async def get_policy(policy_id: UUID, app: AppDep, auth_token: AuthTokenDep) -> Policy:
    return app.get_policy(auth_token, policy_id)


@router.patch(
    "/policies/{policy_id}",
    summary="Update policy",
    description="Change the fields present in the body. Set clear_expiry to remove the expiry.",
    operation_id="updatePolicy",
    responses={
        200: {"description": "Policy updated successfully"},
        400: {"model": ErrorResponse, "description": "Invalid data or name already exists"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Policy not found"},
    },
)
async def update_policy(
    policy_id: UUID, req: PolicyUpdate, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep
) -> Policy:
    return await app.update_policy(auth_token, policy_id, req, ip_address)


@router.delete(
    "/policies/{policy_id}",
    summary="Delete policy",
    description="Delete a policy. Refused while a key or group still uses it.",
    operation_id="deletePolicy",
    status_code=204,
    responses={
        204: {"description": "Policy deleted successfully"},
        400: {"model": ErrorResponse, "description": "Policy is still referenced"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Policy not found"},
    },
)
async def delete_policy(policy_id: UUID, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> None:
    await app.delete_policy(auth_token, policy_id, ip_address)
