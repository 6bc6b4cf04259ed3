"""Public-key identities under access control."""

from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field

from keywarden.core.db import MongoModel
from keywarden.utils import now


class Key(MongoModel):
    """An npub identity and its access settings.

    A disabled or expired key is never authorized, whatever its policy says.
    Indexed on npub - unique, policy_id, group_id.
    """

    npub: str
    nip05: str | None = None  # Resolved NIP-05 identifier, supplied by the caller
    profile_name: str | None = None
    status: bool = True  # Enabled
    expires_at: AwareDatetime | None = None
    policy_id: UUID | None = None  # Overrides the group's default policy
    group_id: UUID | None = None
    created_at: AwareDatetime = Field(default_factory=now)


class KeyUpdate(BaseModel):
    """Partial key update. Fields set to null clear the stored value."""

    nip05: str | None = None
    profile_name: str | None = None
    status: bool | None = None
    expires_at: AwareDatetime | None = None
    policy_id: UUID | None = None
    group_id: UUID | None = None
