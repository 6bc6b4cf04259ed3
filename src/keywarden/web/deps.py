from typing import Annotated, cast

from fastapi import Depends, Request, Response
from fastapi.security import APIKeyCookie, HTTPAuthorizationCredentials, HTTPBearer

from keywarden.app import App
from keywarden.config import Config
from keywarden.core.modules.session.models import AuthToken
from keywarden.errors import AuthenticationError

SESSION_COOKIE = "auth_token"
SESSION_HEADER = "X-Session-Token"

# Security schemes
bearer_scheme = HTTPBearer(auto_error=False)
cookie_scheme = APIKeyCookie(name=SESSION_COOKIE, auto_error=False)


async def get_app(request: Request) -> App:
    return cast(App, request.app.state.app)


async def get_config(request: Request) -> Config:
    return cast(Config, request.app.state.config)


async def get_client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def set_session_cookie(response: Response, token: AuthToken, config: Config) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="strict",
        secure=config.cookie_secure,
        max_age=config.session_ttl_hours * 60 * 60,
    )


async def get_auth_token(
    app: Annotated[App, Depends(get_app)],
    config: Annotated[Config, Depends(get_config)],
    response: Response,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
    token_cookie: Annotated[str | None, Depends(cookie_scheme)] = None,
) -> AuthToken:
    """Validate the session from Authorization Bearer header or cookie and renew it.

    The renewed token is returned in the cookie and the X-Session-Token header, so
    continuous activity keeps the session alive.
    """
    candidates = []
    if credentials and credentials.scheme == "Bearer":
        candidates.append(credentials.credentials)
    if token_cookie:
        candidates.append(token_cookie)

    for candidate in candidates:
        try:
            renewed = app.renew_session(AuthToken(candidate))
        except AuthenticationError:
            continue
        set_session_cookie(response, renewed, config)
        response.headers[SESSION_HEADER] = renewed
        return renewed

    raise AuthenticationError


# Type aliases for dependencies
AppDep = Annotated[App, Depends(get_app)]
ConfigDep = Annotated[Config, Depends(get_config)]
AuthTokenDep = Annotated[AuthToken, Depends(get_auth_token)]
ClientIpDep = Annotated[str | None, Depends(get_client_ip)]
