"""Tests for key storage."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest
from fakes import T0, make_npub

from keywarden.core.modules.key.models import KeyUpdate
from keywarden.errors import NotFoundError, ValidationError


class TestCreateKey:
    """Tests for key registration."""

    async def test_created_enabled(self, core, npub):
        key = await core.services.key.create_key(npub, profile_name="  alice ")

        assert key.status
        assert key.profile_name == "alice"
        assert key.created_at == T0
        assert (await core.services.key.get_key_by_npub(npub)).id == key.id

    async def test_duplicate_rejected(self, core, npub):
        await core.services.key.create_key(npub)

        with pytest.raises(ValidationError, match="already exists"):
            await core.services.key.create_key(npub)

    async def test_unknown_policy_rejected(self, core, npub):
        with pytest.raises(ValidationError):
            await core.services.key.create_key(npub, policy_id=uuid4())

    async def test_unknown_group_rejected(self, core, npub):
        with pytest.raises(ValidationError):
            await core.services.key.create_key(npub, group_id=uuid4())


class TestUpdateKey:
    """Tests for partial updates."""

    async def test_only_present_fields_change(self, core, npub):
        key = await core.services.key.create_key(npub, profile_name="alice", nip05="alice@example.com")

        updated = await core.services.key.update_key(key.id, KeyUpdate(profile_name="bob"))

        assert updated.profile_name == "bob"
        assert updated.nip05 == "alice@example.com"

    async def test_explicit_null_clears(self, core, npub):
        key = await core.services.key.create_key(npub, expires_at=T0 + timedelta(days=1))

        updated = await core.services.key.update_key(key.id, KeyUpdate.model_validate({"expires_at": None}))

        assert updated.expires_at is None

    async def test_null_status_ignored(self, core, npub):
        key = await core.services.key.create_key(npub)

        updated = await core.services.key.update_key(key.id, KeyUpdate.model_validate({"status": None}))

        assert updated.status

    async def test_toggle(self, core, npub):
        key = await core.services.key.create_key(npub)

        assert not (await core.services.key.toggle_status(key.id)).status
        assert (await core.services.key.toggle_status(key.id)).status

    async def test_concurrent_toggles_both_apply(self, core, npub):
        key = await core.services.key.create_key(npub)

        await asyncio.gather(core.services.key.toggle_status(key.id), core.services.key.toggle_status(key.id))

        assert (await core.services.key.get_key(key.id)).status

    async def test_toggle_missing_key(self, core):
        with pytest.raises(NotFoundError):
            await core.services.key.toggle_status(uuid4())

    async def test_profile_name_stripped_on_update(self, core, npub):
        key = await core.services.key.create_key(npub)

        updated = await core.services.key.update_key(key.id, KeyUpdate(profile_name="  alice  "))

        assert updated.profile_name == "alice"

    async def test_set_status_idempotent(self, core, npub):
        key = await core.services.key.create_key(npub)

        await core.services.key.set_status(key.id, False)
        assert not (await core.services.key.set_status(key.id, False)).status

    async def test_missing_key(self, core):
        with pytest.raises(NotFoundError):
            await core.services.key.update_key(uuid4(), KeyUpdate(profile_name="x"))


class TestListKeys:
    """Tests for listing."""

    async def test_newest_first_and_group_filter(self, core, clock):
        group = await core.services.group.create_group("staff")
        for i in range(4):
            clock.set(T0 + timedelta(minutes=i))
            await core.services.key.create_key(make_npub(10 + i), group_id=group.id if i % 2 else None)

        everything = await core.services.key.list_keys()
        members = await core.services.key.list_keys(group_id=group.id)

        assert [k.npub for k in everything.items] == [make_npub(13), make_npub(12), make_npub(11), make_npub(10)]
        assert members.total == 2
        assert {k.npub for k in members.items} == {make_npub(11), make_npub(13)}

    async def test_delete_returns_key(self, core, npub):
        key = await core.services.key.create_key(npub)

        deleted = await core.services.key.delete_key(key.id)

        assert deleted.npub == npub
        assert not await core.services.key.has_npub(npub)
