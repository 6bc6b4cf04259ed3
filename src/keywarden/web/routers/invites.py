from uuid import UUID

from fastapi import APIRouter
from pydantic import AwareDatetime, BaseModel, Field

from keywarden.core.modules.invite.models import Invite, Provisioning
from keywarden.web.deps import AppDep, AuthTokenDep, ClientIpDep
from keywarden.web.openapi import ErrorResponse

router = APIRouter(tags=["invites"])


class CreateInviteRequest(BaseModel):
    """Request to create an invite."""

    expires_at: AwareDatetime = Field(..., description="Invite stops working at this instant")
    max_uses: int | None = Field(1, ge=1, description="Number of keys the invite may provision, null for unlimited")
    comment: str | None = Field(None, description="Free-form note")


class RedeemInviteRequest(BaseModel):
    """Request to provision a key with an invite."""

    token: str = Field(..., description="Invite token")
    npub: str = Field(..., description="Bech32 public key to register (npub1...)")
    nip05: str | None = Field(None, description="NIP-05 identifier (name@domain)")
    profile_name: str | None = Field(None, description="Display name")


@router.get(
    "/invites",
    summary="List invites",
    description="Get all invites, newest first.",
    operation_id="listInvites",
    responses={
        200: {"description": "List of invites"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_invites(app: AppDep, auth_token: AuthTokenDep) -> list[Invite]:
    return await app.get_invites(auth_token)


@router.post(
    "/invites",
    summary="Create invite",
    operation_id="createInvite",
    status_code=201,
    responses={
        201: {"description": "Invite created, the token is in the response"},
        400: {"model": ErrorResponse, "description": "Expiry in the past or invalid max_uses"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def create_invite(req: CreateInviteRequest, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> Invite:
    return await app.create_invite(auth_token, req.expires_at, req.max_uses, req.comment, ip_address)


@router.post(
    "/invites/redeem",
    summary="Redeem invite",
    description="Register an enabled key using an invite token. Each successful call consumes one use.",
    operation_id="redeemInvite",
    status_code=201,
    responses={
        201: {"description": "Key provisioned"},
        400: {"model": ErrorResponse, "description": "Invalid npub or key already registered"},
        403: {"model": ErrorResponse, "description": "Invite not found, disabled, expired or exhausted"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"},
    },
)
async def redeem_invite(req: RedeemInviteRequest, app: AppDep, ip_address: ClientIpDep) -> Provisioning:
    return await app.redeem_invite(req.token, req.npub, req.nip05, req.profile_name, ip_address)


@router.post(
    "/invites/{invite_id}/enable",
    summary="Enable invite",
    operation_id="enableInvite",
    responses={
        200: {"description": "Invite enabled"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Invite not found"},
    },
)
async def enable_invite(invite_id: UUID, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> Invite:
    return await app.set_invite_enabled(auth_token, invite_id, True, ip_address)


@router.post(
    "/invites/{invite_id}/disable",
    summary="Disable invite",
    operation_id="disableInvite",
    responses={
        200: {"description": "Invite disabled"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Invite not found"},
    },
)
async def disable_invite(invite_id: UUID, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> Invite:
    return await app.set_invite_enabled(auth_token, invite_id, False, ip_address)


@router.delete(
    "/invites/{invite_id}",
    summary="Delete invite",
    operation_id="deleteInvite",
    status_code=204,
    responses={
        204: {"description": "Invite deleted successfully"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Invite not found"},
    },
)
async def delete_invite(invite_id: UUID, app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep) -> None:
    await app.delete_invite(auth_token, invite_id, ip_address)
