"""Tests for the pure authorization engine."""

from datetime import time, timedelta
from uuid import uuid4

from fakes import T0, make_npub

from keywarden.core.modules.access.engine import authorize, resolve_effective_policy
from keywarden.core.modules.access.models import DenialReason, PolicySource
from keywarden.core.modules.group.models import Group
from keywarden.core.modules.key.models import Key
from keywarden.core.modules.policy.models import Policy, Weekday


def make_key(**kwargs) -> Key:
    kwargs.setdefault("npub", make_npub(7))
    return Key(**kwargs)


def office_hours() -> Policy:
    return Policy(
        name="office-hours",
        active_days=[Weekday.MON, Weekday.TUE, Weekday.WED, Weekday.THU, Weekday.FRI],
        time_start=time(9),
        time_end=time(17),
        created_at=T0,
    )


def night_shift() -> Policy:
    return Policy(name="night-shift", time_start=time(22), time_end=time(6), created_at=T0)


class TestResolveEffectivePolicy:
    """Tests for choosing the policy that governs a key."""

    def test_key_policy_overrides_group_default(self):
        own, default = office_hours(), night_shift()
        group = Group(name="staff", default_policy_id=default.id)
        key = make_key(policy_id=own.id, group_id=group.id)

        effective = resolve_effective_policy(key, {group.id: group}, {own.id: own, default.id: default})

        assert effective.source == PolicySource.KEY
        assert effective.policy == own

    def test_group_default_used_without_own_policy(self):
        default = night_shift()
        group = Group(name="staff", default_policy_id=default.id)
        key = make_key(group_id=group.id)

        effective = resolve_effective_policy(key, {group.id: group}, {default.id: default})

        assert effective.source == PolicySource.GROUP
        assert effective.policy_id == default.id

    def test_no_policy_anywhere(self):
        group = Group(name="staff")
        key = make_key(group_id=group.id)

        effective = resolve_effective_policy(key, {group.id: group}, {})

        assert effective.source == PolicySource.NONE
        assert effective.policy is None

    def test_missing_group_means_no_policy(self):
        key = make_key(group_id=uuid4())
        assert resolve_effective_policy(key, {}, {}).source == PolicySource.NONE


class TestAuthorize:
    """Tests for allow/deny decisions."""

    def test_enabled_key_without_policy_allowed(self):
        key = make_key()

        decision = authorize(key, {}, {}, T0)

        assert decision.allowed
        assert decision.reason is None
        assert decision.key_id == key.id
        assert decision.evaluated_at == T0

    def test_disabled_key_denied(self):
        decision = authorize(make_key(status=False), {}, {}, T0)

        assert not decision.allowed
        assert decision.reason == DenialReason.KEY_DISABLED

    def test_disabled_wins_over_expired_and_policy(self):
        policy = office_hours()
        key = make_key(status=False, expires_at=T0 - timedelta(days=1), policy_id=policy.id)

        decision = authorize(key, {}, {policy.id: policy}, T0.replace(hour=3))

        assert decision.reason == DenialReason.KEY_DISABLED

    def test_expired_key_denied(self):
        key = make_key(expires_at=T0 - timedelta(seconds=1))
        assert authorize(key, {}, {}, T0).reason == DenialReason.KEY_EXPIRED

    def test_key_expiring_exactly_now_denied(self):
        key = make_key(expires_at=T0)
        assert authorize(key, {}, {}, T0).reason == DenialReason.KEY_EXPIRED

    def test_key_expiring_later_allowed(self):
        key = make_key(expires_at=T0 + timedelta(seconds=1))
        assert authorize(key, {}, {}, T0).allowed

    def test_key_policy_applied(self):
        policy = office_hours()
        key = make_key(policy_id=policy.id)

        decision = authorize(key, {}, {policy.id: policy}, T0.replace(hour=20))

        assert decision.reason == DenialReason.OUTSIDE_TIME_WINDOW
        assert decision.policy_source == PolicySource.KEY
        assert decision.policy_id == policy.id

    def test_group_default_applied(self):
        policy = night_shift()
        group = Group(name="night", default_policy_id=policy.id)
        key = make_key(group_id=group.id)

        allowed = authorize(key, {group.id: group}, {policy.id: policy}, T0.replace(hour=23))
        denied = authorize(key, {group.id: group}, {policy.id: policy}, T0)

        assert allowed.allowed
        assert allowed.policy_source == PolicySource.GROUP
        assert denied.reason == DenialReason.OUTSIDE_TIME_WINDOW

    def test_dangling_policy_fails_closed(self):
        key = make_key(policy_id=uuid4())

        decision = authorize(key, {}, {}, T0)

        assert not decision.allowed
        assert decision.reason == DenialReason.POLICY_NOT_FOUND

    def test_dangling_group_default_fails_closed(self):
        group = Group(name="staff", default_policy_id=uuid4())
        key = make_key(group_id=group.id)

        assert authorize(key, {group.id: group}, {}, T0).reason == DenialReason.POLICY_NOT_FOUND

    def test_expired_policy_denied(self):
        policy = Policy(name="trial", expiry_days=7, created_at=T0)
        key = make_key(policy_id=policy.id)

        assert authorize(key, {}, {policy.id: policy}, T0 + timedelta(days=6)).allowed
        assert authorize(key, {}, {policy.id: policy}, T0 + timedelta(days=8)).reason == DenialReason.POLICY_EXPIRED

    def test_same_inputs_same_decision(self):
        policy = office_hours()
        key = make_key(policy_id=policy.id)

        first = authorize(key, {}, {policy.id: policy}, T0)
        second = authorize(key, {}, {policy.id: policy}, T0)

        assert first == second
