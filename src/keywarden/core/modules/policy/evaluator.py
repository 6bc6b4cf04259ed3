"""Pure evaluation of a policy against an instant."""

from datetime import datetime, time, timedelta

from keywarden.core.modules.access.models import DenialReason, PolicyVerdict
from keywarden.core.modules.policy.models import Policy, Weekday


def is_policy_expired(policy: Policy, now: datetime) -> bool:
    """A policy with expiry_days stops allowing access once that many days have passed since creation."""
    if policy.expiry_days is None:
        return False
    return now - policy.created_at > timedelta(days=policy.expiry_days)


def is_within_window(start: time, end: time, moment: time) -> bool:
    """Check a time of day against an inclusive window.

    Equal bounds cover the whole day. `end < start` wraps past midnight.
    """
    if start == end:
        return True
    if start < end:
        return start <= moment <= end
    return moment >= start or moment <= end


def evaluate(policy: Policy | None, now: datetime) -> PolicyVerdict:
    """Evaluate a policy at `now`.

    `now` must be an aware datetime expressed in the zone the policy's days and
    times are written for; weekday and time of day are read from it directly.
    No policy means no restriction.
    """
    if policy is None:
        return PolicyVerdict.allow()

    if is_policy_expired(policy, now):
        return PolicyVerdict.deny(DenialReason.POLICY_EXPIRED)

    if policy.active_days and Weekday.of(now) not in policy.active_days:
        return PolicyVerdict.deny(DenialReason.OUTSIDE_ACTIVE_DAYS)

    moment = now.time().replace(microsecond=0)
    if not is_within_window(policy.time_start, policy.time_end, moment):
        return PolicyVerdict.deny(DenialReason.OUTSIDE_TIME_WINDOW)

    return PolicyVerdict.allow()
