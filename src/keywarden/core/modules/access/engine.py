"""Key authorization decisions.

Everything here is pure: callers pass the snapshot of groups and policies and the
instant to decide for, so the same inputs always give the same decision.
"""

from collections.abc import Mapping
from datetime import datetime
from uuid import UUID

from keywarden.core.modules.access.models import Decision, DenialReason, EffectivePolicy, PolicySource
from keywarden.core.modules.group.models import Group
from keywarden.core.modules.key.models import Key
from keywarden.core.modules.policy.evaluator import evaluate
from keywarden.core.modules.policy.models import Policy


def resolve_effective_policy(key: Key, groups: Mapping[UUID, Group], policies: Mapping[UUID, Policy]) -> EffectivePolicy:
    """Pick the policy governing a key: its own, else its group's default, else none."""
    if key.policy_id is not None:
        return EffectivePolicy(source=PolicySource.KEY, policy_id=key.policy_id, policy=policies.get(key.policy_id))

    group = groups.get(key.group_id) if key.group_id is not None else None
    if group is not None and group.default_policy_id is not None:
        policy_id = group.default_policy_id
        return EffectivePolicy(source=PolicySource.GROUP, policy_id=policy_id, policy=policies.get(policy_id))

    return EffectivePolicy(source=PolicySource.NONE)


def authorize(key: Key, groups: Mapping[UUID, Group], policies: Mapping[UUID, Policy], now: datetime) -> Decision:
    """Decide whether `key` may access the resource at `now`.

    Checks run cheapest first and stop at the first denial:
    disabled, expired, then the effective policy.
    """

    def deny(reason: DenialReason, effective: EffectivePolicy | None = None) -> Decision:
        return Decision(
            allowed=False,
            reason=reason,
            key_id=key.id,
            policy_source=effective.source if effective else PolicySource.NONE,
            policy_id=effective.policy_id if effective else None,
            evaluated_at=now,
        )

    if not key.status:
        return deny(DenialReason.KEY_DISABLED)
    if key.expires_at is not None and key.expires_at <= now:
        return deny(DenialReason.KEY_EXPIRED)

    effective = resolve_effective_policy(key, groups, policies)
    if effective.policy_id is not None and effective.policy is None:
        # Dangling reference: fail closed
        return deny(DenialReason.POLICY_NOT_FOUND, effective)

    verdict = evaluate(effective.policy, now)
    if verdict.reason is not None:
        return deny(verdict.reason, effective)

    return Decision(
        allowed=True,
        key_id=key.id,
        policy_source=effective.source,
        policy_id=effective.policy_id,
        evaluated_at=now,
    )
