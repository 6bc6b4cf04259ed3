"""Session token models."""

from datetime import datetime
from enum import StrEnum
from typing import NewType

from pydantic import AwareDatetime, BaseModel, Field

from keywarden.core.db import MongoModel

AuthToken = NewType("AuthToken", str)


class SessionError(StrEnum):
    """Why a token was not accepted.

    INVALID covers forged, malformed and revoked tokens alike.
    """

    INVALID = "invalid"
    EXPIRED = "expired"


class SessionClaims(BaseModel):
    """Verified contents of a session token."""

    subject: str
    session_id: str  # Shared by every token renewed from the same login
    issued_at: datetime
    expires_at: datetime


class SessionCheck(BaseModel):
    """Outcome of validating or renewing a token."""

    token: AuthToken | None = None  # The accepted token, or its replacement when renewed
    claims: SessionClaims | None = None
    error: SessionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def fail(cls, error: SessionError) -> "SessionCheck":
        return cls(error=error)


class RevokedSession(MongoModel):
    """Logged-out session chain.

    Kept until every token of the chain has expired on its own.
    Indexed on session_id - unique, expires_at (TTL).
    """

    session_id: str
    expires_at: AwareDatetime


class SessionView(BaseModel):
    """Current session (API representation)."""

    subject: str = Field(..., description="Authenticated subject")
    expires_at: datetime = Field(..., description="Expiry of the renewed token")
