"""Tests for groups and their default policies."""

from datetime import time
from uuid import uuid4

import pytest

from keywarden.core.modules.access.models import DenialReason, PolicySource
from keywarden.core.modules.key.models import KeyUpdate
from keywarden.errors import NotFoundError, ValidationError


class TestGroups:
    """Tests for group management."""

    async def test_create_and_list(self, core):
        await core.services.group.create_group("zeta")
        await core.services.group.create_group(" alpha ")

        assert [g.name for g in core.services.group.get_all_groups()] == ["alpha", "zeta"]

    async def test_duplicate_name_rejected(self, core):
        await core.services.group.create_group("staff")

        with pytest.raises(ValidationError):
            await core.services.group.create_group("staff")

    async def test_empty_name_rejected(self, core):
        with pytest.raises(ValidationError):
            await core.services.group.create_group("  ")

    async def test_unknown_default_policy_rejected(self, core):
        with pytest.raises(ValidationError):
            await core.services.group.create_group("staff", uuid4())

    async def test_rename(self, core):
        group = await core.services.group.create_group("staff")

        renamed = await core.services.group.rename_group(group.id, "crew")

        assert renamed.name == "crew"
        assert core.services.group.get_group(group.id).name == "crew"

    async def test_missing_group(self, core):
        with pytest.raises(NotFoundError):
            core.services.group.get_group(uuid4())


class TestDefaultPolicy:
    """Tests for the group default policy."""

    async def test_member_gets_group_policy(self, core, npub):
        policy = await core.services.policy.create_policy("night", [], time(22), time(6))
        group = await core.services.group.create_group("night-crew", policy.id)
        await core.services.key.create_key(npub, group_id=group.id)

        decision = await core.services.access.authorize_npub(npub)

        assert decision.reason == DenialReason.OUTSIDE_TIME_WINDOW
        assert decision.policy_source == PolicySource.GROUP

    async def test_cleared_default_policy(self, core, npub):
        policy = await core.services.policy.create_policy("night", [], time(22), time(6))
        group = await core.services.group.create_group("night-crew", policy.id)
        await core.services.key.create_key(npub, group_id=group.id)

        await core.services.group.set_default_policy(group.id, None)

        assert (await core.services.access.authorize_npub(npub)).allowed


class TestDeleteGroup:
    """Tests for deletion with members."""

    async def test_empty_group_deleted(self, core):
        group = await core.services.group.create_group("staff")

        await core.services.group.delete_group(group.id)

        assert not core.services.group.has_group(group.id)

    async def test_blocked_with_members(self, core, npub):
        group = await core.services.group.create_group("staff")
        await core.services.key.create_key(npub, group_id=group.id)

        with pytest.raises(ValidationError, match="1 member"):
            await core.services.group.delete_group(group.id)

    async def test_allowed_after_members_leave(self, core, npub):
        group = await core.services.group.create_group("staff")
        key = await core.services.key.create_key(npub, group_id=group.id)
        await core.services.key.update_key(key.id, KeyUpdate.model_validate({"group_id": None}))
        await core.services.group.delete_group(group.id)

        assert core.services.group.get_all_groups() == []
