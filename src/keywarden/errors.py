from abc import ABC


class UserError(ABC, Exception):
    """Base class for user-related errors.

    All errors that inherit from UserError will have their messages
    displayed to the user. These errors should not contain any
    sensitive information.
    """


class NotFoundError(UserError):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str = "Document not found") -> None:
        super().__init__(message)


class AuthenticationError(UserError):
    """Raised when authentication fails.

    The message is always generic so callers cannot tell a forged token
    from an expired or revoked one.
    """

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class AccessDeniedError(UserError):
    """Raised when a request is refused for a business reason."""


class InviteRejectedError(AccessDeniedError):
    """Raised when an invite token cannot be redeemed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invite rejected: {reason}")
        self.reason = reason


class ValidationError(UserError):
    """Raised when user input fails validation."""


class StorageError(Exception):
    """Raised when the database is unreachable, times out or fails mid-operation.

    Never a business outcome: callers retry or report a server error.
    """
