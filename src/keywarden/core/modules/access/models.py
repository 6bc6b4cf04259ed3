"""Authorization decision models."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field

from keywarden.core.modules.policy.models import Policy


class DenialReason(StrEnum):
    """Why a key was refused. Expected outcomes, never system errors."""

    UNKNOWN_KEY = "unknown_key"
    KEY_DISABLED = "key_disabled"
    KEY_EXPIRED = "key_expired"
    POLICY_NOT_FOUND = "policy_not_found"
    POLICY_EXPIRED = "policy_expired"
    OUTSIDE_ACTIVE_DAYS = "outside_active_days"
    OUTSIDE_TIME_WINDOW = "outside_time_window"


class PolicySource(StrEnum):
    """Where the policy applied to a key came from."""

    NONE = "none"
    KEY = "key"
    GROUP = "group"


class PolicyVerdict(BaseModel):
    """Outcome of evaluating one policy at one instant."""

    allowed: bool
    reason: DenialReason | None = None

    @classmethod
    def allow(cls) -> "PolicyVerdict":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason) -> "PolicyVerdict":
        return cls(allowed=False, reason=reason)


class EffectivePolicy(BaseModel):
    """Policy that governs a key, tagged with the reference that selected it."""

    source: PolicySource
    policy_id: UUID | None = None
    policy: Policy | None = None  # None with a policy_id set means the reference is dangling


class Decision(BaseModel):
    """Allow/deny outcome for a key (API representation)."""

    allowed: bool = Field(..., description="Whether the key may access the resource right now")
    reason: DenialReason | None = Field(None, description="Denial reason, absent when allowed")
    key_id: UUID | None = Field(None, description="Evaluated key, absent for unknown keys")
    policy_source: PolicySource = Field(PolicySource.NONE, description="Which reference selected the applied policy")
    policy_id: UUID | None = Field(None, description="Applied policy")
    evaluated_at: datetime = Field(..., description="Instant the decision was made for")
