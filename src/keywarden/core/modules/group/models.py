"""Groups of keys sharing a default policy."""

from uuid import UUID

from pydantic import AwareDatetime, Field

from keywarden.core.db import MongoModel
from keywarden.utils import now


class Group(MongoModel):
    """Named collection of keys.

    Members are the keys whose group_id points here. The default policy applies to
    members without a policy of their own.
    Indexed on name - unique.
    """

    name: str
    default_policy_id: UUID | None = None
    created_at: AwareDatetime = Field(default_factory=now)
