"""Invitation tokens that provision new keys."""

from enum import StrEnum

from pydantic import AwareDatetime, BaseModel, Field

from keywarden.core.db import MongoModel
from keywarden.core.modules.key.models import Key
from keywarden.utils import now


class InviteError(StrEnum):
    """Why an invite could not be redeemed. Client-facing, not system errors."""

    NOT_FOUND = "not_found"
    DISABLED = "disabled"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


class Invite(MongoModel):
    """Single- or multi-use provisioning token.

    `max_uses` None means unlimited. `uses` only grows through redemption and never
    passes `max_uses`.
    Indexed on token - unique.
    """

    token: str
    expires_at: AwareDatetime
    max_uses: int | None = Field(1, ge=1)
    uses: int = Field(0, ge=0)
    enabled: bool = True
    comment: str | None = None
    created_at: AwareDatetime = Field(default_factory=now)

    @property
    def remaining_uses(self) -> int | None:
        return None if self.max_uses is None else self.max_uses - self.uses


class InviteRedemption(BaseModel):
    """Result of one redemption attempt."""

    invite: Invite | None = None  # State right after the successful increment
    error: InviteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def fail(cls, error: InviteError) -> "InviteRedemption":
        return cls(error=error)


class Provisioning(BaseModel):
    """Outcome of provisioning a key through an invite."""

    key: Key | None = None
    invite_remaining_uses: int | None = None  # None when unlimited
    error: InviteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
