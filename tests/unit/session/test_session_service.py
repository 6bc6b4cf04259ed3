"""Tests for login, renewal and logout."""

from datetime import timedelta

import pytest
from fakes import T0

from keywarden.core.modules.audit.models import LogResult
from keywarden.core.modules.session.models import SessionError
from keywarden.errors import AuthenticationError, StorageError


async def session_logs(core, database) -> list[tuple[str, str]]:
    await core.services.audit.flush()
    return [(log["action"], log["result"]) for log in database["logs"].docs]


class TestLogin:
    """Tests for the shared-password login."""

    async def test_correct_password(self, core, database):
        token = await core.services.session.login("correct horse", "127.0.0.1")

        assert core.services.session.authenticate(token).ok
        assert await session_logs(core, database) == [("login", LogResult.SUCCESS)]

    async def test_wrong_password(self, core, database):
        with pytest.raises(AuthenticationError):
            await core.services.session.login("wrong")

        await core.services.audit.flush()
        assert database["logs"].docs[0]["reason"] == "invalid_password"


class TestRenew:
    """Tests for renewal through the service clock."""

    async def test_activity_keeps_session_alive(self, core, clock):
        token = await core.services.session.login("correct horse")

        for hour in (20, 40, 60):
            clock.set(T0 + timedelta(hours=hour))
            check = core.services.session.renew(token)
            assert check.ok
            token = check.token

    async def test_idle_session_expires(self, core, clock):
        token = await core.services.session.login("correct horse")

        clock.set(T0 + timedelta(hours=24, minutes=1))

        assert core.services.session.renew(token).error == SessionError.EXPIRED


class TestLogout:
    """Tests for session revocation."""

    async def test_logout_revokes_whole_chain(self, core, clock, database):
        token = await core.services.session.login("correct horse")
        clock.set(T0 + timedelta(hours=1))
        renewed = core.services.session.renew(token).token

        await core.services.session.logout(renewed)

        assert core.services.session.authenticate(token).error == SessionError.INVALID
        assert core.services.session.authenticate(renewed).error == SessionError.INVALID
        assert await session_logs(core, database) == [("login", LogResult.SUCCESS), ("logout", LogResult.SUCCESS)]

    async def test_revocation_survives_restart(self, core, database):
        token = await core.services.session.login("correct horse")
        await core.services.session.logout(token)

        await core.services.session.update_revoked_cache()

        assert not core.services.session.authenticate(token).ok
        assert len(database["revoked_sessions"].docs) == 1

    async def test_other_sessions_unaffected(self, core):
        first = await core.services.session.login("correct horse")
        second = await core.services.session.login("correct horse")

        await core.services.session.logout(first)

        assert core.services.session.authenticate(second).ok

    async def test_logout_with_invalid_token(self, core):
        with pytest.raises(AuthenticationError):
            await core.services.session.logout("garbage")

    async def test_revocation_forgotten_after_chain_expires(self, core, clock):
        token = await core.services.session.login("correct horse")
        session_id = core.services.session.manager.validate(token, T0).claims.session_id
        await core.services.session.logout(token)
        assert core.services.session.is_revoked(session_id, clock.now())

        clock.set(T0 + timedelta(hours=25))

        assert not core.services.session.is_revoked(session_id, clock.now())

    async def test_storage_failure_reported(self, core, database):
        token = await core.services.session.login("correct horse")
        database["revoked_sessions"].fail_on("insert_one")

        with pytest.raises(StorageError):
            await core.services.session.logout(token)

        assert not core.services.session.authenticate(token).ok
        assert (await session_logs(core, database))[-1] == ("logout", LogResult.ERROR)
