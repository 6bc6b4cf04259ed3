import structlog
from fastapi import Request
from fastapi.responses import JSONResponse, Response

from keywarden.errors import (
    AccessDeniedError,
    AuthenticationError,
    InviteRejectedError,
    NotFoundError,
    UserError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# First match wins, so subclasses come before their bases
USER_ERROR_STATUS: list[tuple[type[UserError], int, str]] = [
    (AuthenticationError, 401, "authentication_error"),
    (InviteRejectedError, 403, "invite_rejected"),
    (AccessDeniedError, 403, "access_denied"),
    (NotFoundError, 404, "not_found"),
    (ValidationError, 400, "validation_error"),
]


def create_json_error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "type": error_type})


async def user_error_handler(_: Request, exc: Exception) -> Response:
    """Map UserError subclasses to status codes. Invite rejections carry the reason in the type."""
    status_code, error_type = 400, "bad_request"
    for error_class, code, name in USER_ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code, error_type = code, name
            break
    if isinstance(exc, InviteRejectedError):
        error_type = f"invite_{exc.reason}"
    return create_json_error_response(status_code, str(exc), error_type)


async def storage_error_handler(request: Request, exc: Exception) -> Response:
    """Database unreachable or failing (503). Never reported as a denial."""
    logger.error("storage_error", path=request.url.path, error=str(exc))
    return create_json_error_response(503, "Storage temporarily unavailable, retry later.", "storage_error")


async def general_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle unexpected errors (500)."""
    logger.error("unexpected_error", path=request.url.path, exc_info=exc)
    return create_json_error_response(500, "An unexpected error occurred.", "internal_server_error")
