"""Tests for invite creation and atomic redemption."""

import asyncio
from datetime import timedelta

import pytest
from fakes import T0, make_npub

from keywarden.core.modules.audit.models import LogResult
from keywarden.core.modules.invite.models import Invite, InviteError
from keywarden.core.modules.invite.service import check_redeemable
from keywarden.errors import StorageError, ValidationError

TOMORROW = T0 + timedelta(days=1)


async def redeem_logs(core, database) -> list[dict]:
    await core.services.audit.flush()
    return [log for log in database["logs"].docs if log["action"] == "redeem_invite"]


async def stored_uses(database, invite: Invite) -> int:
    doc = await database["invites"].find_one({"_id": invite.id})
    return doc["uses"]


class TestCreateInvite:
    """Tests for invite creation."""

    async def test_defaults_to_single_use(self, core):
        invite = await core.services.invite.create_invite(TOMORROW)

        assert invite.max_uses == 1
        assert invite.uses == 0
        assert invite.enabled
        assert len(invite.token) >= 43

    async def test_tokens_are_unique(self, core):
        tokens = {(await core.services.invite.create_invite(TOMORROW)).token for _ in range(20)}
        assert len(tokens) == 20

    async def test_past_expiry_rejected(self, core):
        with pytest.raises(ValidationError):
            await core.services.invite.create_invite(T0)

    async def test_zero_max_uses_rejected(self, core):
        with pytest.raises(ValidationError):
            await core.services.invite.create_invite(TOMORROW, max_uses=0)

    async def test_listed_newest_first(self, core, clock):
        first = await core.services.invite.create_invite(TOMORROW, comment="first")
        clock.set(T0 + timedelta(minutes=1))
        second = await core.services.invite.create_invite(TOMORROW, comment="second")

        invites = await core.services.invite.list_invites()

        assert [i.id for i in invites] == [second.id, first.id]


class TestCheckRedeemable:
    """Tests for rejection classification."""

    def test_disabled_reported_before_expired(self):
        invite = Invite(token="t", expires_at=T0, enabled=False)
        assert check_redeemable(invite, T0) == InviteError.DISABLED

    def test_expired_reported_before_exhausted(self):
        invite = Invite(token="t", expires_at=T0, uses=1)
        assert check_redeemable(invite, T0) == InviteError.EXPIRED

    def test_exhausted(self):
        invite = Invite(token="t", expires_at=TOMORROW, max_uses=2, uses=2)
        assert check_redeemable(invite, T0) == InviteError.EXHAUSTED

    def test_unlimited_never_exhausted(self):
        invite = Invite(token="t", expires_at=TOMORROW, max_uses=None, uses=10_000)
        assert check_redeemable(invite, T0) is None


class TestRedeem:
    """Tests for the compare-and-swap redemption."""

    async def test_single_use(self, core, database):
        invite = await core.services.invite.create_invite(TOMORROW)

        first = await core.services.invite.redeem(invite.token, T0)
        second = await core.services.invite.redeem(invite.token, T0)

        assert first.ok
        assert first.invite.uses == 1
        assert second.error == InviteError.EXHAUSTED
        assert await stored_uses(database, invite) == 1

    async def test_concurrent_redemptions_never_exceed_max_uses(self, core, database):
        invite = await core.services.invite.create_invite(TOMORROW, max_uses=1)

        results = await asyncio.gather(*(core.services.invite.redeem(invite.token, T0) for _ in range(50)))

        assert sum(r.ok for r in results) == 1
        assert [r.error for r in results if not r.ok] == [InviteError.EXHAUSTED] * 49
        assert await stored_uses(database, invite) == 1

    async def test_concurrent_multi_use(self, core, database):
        invite = await core.services.invite.create_invite(TOMORROW, max_uses=5)

        results = await asyncio.gather(*(core.services.invite.redeem(invite.token, T0) for _ in range(30)))

        assert sum(r.ok for r in results) == 5
        assert sorted(r.invite.uses for r in results if r.ok) == [1, 2, 3, 4, 5]
        assert await stored_uses(database, invite) == 5

    async def test_unlimited(self, core):
        invite = await core.services.invite.create_invite(TOMORROW, max_uses=None)

        results = [await core.services.invite.redeem(invite.token, T0) for _ in range(10)]

        assert all(r.ok for r in results)
        assert results[-1].invite.uses == 10
        assert results[-1].invite.remaining_uses is None

    async def test_not_found(self, core):
        result = await core.services.invite.redeem("no-such-token", T0)
        assert result.error == InviteError.NOT_FOUND

    async def test_expired(self, core, database):
        invite = await core.services.invite.create_invite(T0 + timedelta(hours=1))

        result = await core.services.invite.redeem(invite.token, T0 + timedelta(hours=1))

        assert result.error == InviteError.EXPIRED
        assert await stored_uses(database, invite) == 0

    async def test_disabled_then_enabled(self, core):
        invite = await core.services.invite.create_invite(TOMORROW)

        await core.services.invite.disable_invite(invite.id)
        assert (await core.services.invite.redeem(invite.token, T0)).error == InviteError.DISABLED

        await core.services.invite.enable_invite(invite.id)
        assert (await core.services.invite.redeem(invite.token, T0)).ok

    async def test_storage_failure_raises(self, core, database):
        invite = await core.services.invite.create_invite(TOMORROW)
        database["invites"].fail_on("find_one_and_update")

        with pytest.raises(StorageError):
            await core.services.invite.redeem(invite.token, T0)


class TestRedeemInvite:
    """Tests for provisioning keys through invites."""

    async def test_provisions_enabled_key(self, core, database, npub):
        invite = await core.services.invite.create_invite(TOMORROW, max_uses=2)

        result = await core.services.invite.redeem_invite(invite.token, npub, nip05="Alice@Example.com", profile_name="alice")

        assert result.ok
        assert result.key.npub == npub
        assert result.key.status
        assert result.key.nip05 == "alice@example.com"
        assert result.invite_remaining_uses == 1
        assert (await core.services.access.authorize_npub(npub)).allowed

        logs = await redeem_logs(core, database)
        assert [(log["result"], log["key_id"]) for log in logs] == [(LogResult.SUCCESS, result.key.id)]

    async def test_rejection_logged_with_reason(self, core, database, npub):
        result = await core.services.invite.redeem_invite("bogus", npub, ip_address="192.0.2.1")

        assert result.error == InviteError.NOT_FOUND
        assert result.key is None
        logs = await redeem_logs(core, database)
        assert len(logs) == 1
        assert logs[0]["result"] == LogResult.DENIED
        assert logs[0]["reason"] == "not_found"
        assert logs[0]["ip_address"] == "192.0.2.1"

    async def test_concurrent_provisioning(self, core, database):
        invite = await core.services.invite.create_invite(TOMORROW, max_uses=3)

        results = await asyncio.gather(
            *(core.services.invite.redeem_invite(invite.token, make_npub(100 + i)) for i in range(8))
        )

        assert sum(r.ok for r in results) == 3
        assert (await core.services.key.list_keys()).total == 3
        assert len(await redeem_logs(core, database)) == 8

    async def test_invalid_npub_does_not_consume(self, core, database):
        invite = await core.services.invite.create_invite(TOMORROW)

        with pytest.raises(ValidationError):
            await core.services.invite.redeem_invite(invite.token, "npub1invalid")

        assert await stored_uses(database, invite) == 0
        logs = await redeem_logs(core, database)
        assert logs[0]["reason"] == "invalid_key"

    async def test_registered_npub_does_not_consume(self, core, database, npub):
        await core.services.key.create_key(npub)
        invite = await core.services.invite.create_invite(TOMORROW)

        with pytest.raises(ValidationError):
            await core.services.invite.redeem_invite(invite.token, npub)

        assert await stored_uses(database, invite) == 0

    async def test_failed_key_creation_gives_use_back(self, core, database, npub):
        invite = await core.services.invite.create_invite(TOMORROW)
        database["keys"].fail_on("insert_one")

        with pytest.raises(StorageError):
            await core.services.invite.redeem_invite(invite.token, npub)

        assert await stored_uses(database, invite) == 0
        logs = await redeem_logs(core, database)
        assert [(log["result"], log["reason"]) for log in logs] == [(LogResult.ERROR, "storage_error")]

    async def test_storage_failure_logged_as_error(self, core, database, npub):
        invite = await core.services.invite.create_invite(TOMORROW)
        database["invites"].fail_on("find_one")

        with pytest.raises(StorageError):
            await core.services.invite.redeem_invite(invite.token, npub)

        logs = await redeem_logs(core, database)
        assert logs[0]["result"] == LogResult.ERROR
