from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from keywarden.core.modules.session.models import SessionView
from keywarden.web.deps import SESSION_COOKIE, SESSION_HEADER, AppDep, AuthTokenDep, ClientIpDep, ConfigDep, set_session_cookie
from keywarden.web.openapi import ErrorResponse

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    """Authentication request."""

    password: str = Field(..., description="Shared admin password")


class LoginResponse(BaseModel):
    """Authentication response."""

    token: str = Field(..., description="Session token for subsequent requests")


@router.post(
    "/auth/login",
    summary="Authenticate",
    description="Check the admin password and start a session valid for 24 hours, renewed on every authenticated request.",
    operation_id="login",
    responses={
        200: {"description": "Successfully authenticated"},
        401: {"model": ErrorResponse, "description": "Invalid password"},
    },
)
async def login(
    login_data: LoginRequest, app: AppDep, config: ConfigDep, ip_address: ClientIpDep, response: Response
) -> LoginResponse:
    token = await app.login(login_data.password, ip_address)
    # Cookie for browser-based clients
    set_session_cookie(response, token, config)
    return LoginResponse(token=token)


@router.get(
    "/auth/session",
    summary="Current session",
    description="Return the session subject and the expiry of the renewed token.",
    operation_id="getSession",
    responses={
        200: {"description": "Session is valid"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def get_session(app: AppDep, auth_token: AuthTokenDep) -> SessionView:
    return app.get_session(auth_token)


@router.post(
    "/auth/logout",
    summary="End session",
    description="Revoke the current session and every token renewed from it.",
    operation_id="logout",
    status_code=204,
    responses={
        204: {"description": "Successfully logged out"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def logout(app: AppDep, auth_token: AuthTokenDep, ip_address: ClientIpDep, response: Response) -> None:
    await app.logout(auth_token, ip_address)
    response.delete_cookie(SESSION_COOKIE)
    if SESSION_HEADER in response.headers:
        del response.headers[SESSION_HEADER]
