from datetime import datetime, timedelta
from typing import Any

import structlog
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from keywarden.core.core import Service
from keywarden.core.modules.audit.models import LogResult
from keywarden.core.modules.session.manager import SessionManager
from keywarden.core.modules.session.models import AuthToken, RevokedSession, SessionCheck, SessionError
from keywarden.errors import AuthenticationError, StorageError

logger = structlog.get_logger(__name__)

ADMIN_SUBJECT = "admin"


class SessionService(Service):
    """Login, renewal and logout on top of the stateless token manager.

    Logout puts the session id on a denylist that lives in memory and in the
    `revoked_sessions` collection. An entry outlives every token of its chain, since
    none of them can expire later than one TTL after the logout.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("revoked_sessions")
        self._revoked: dict[str, datetime] = {}
        self._manager: SessionManager | None = None

    async def on_start(self) -> None:
        config = self.core.config
        self._manager = SessionManager(
            config.auth_password, config.session_secret_key, timedelta(hours=config.session_ttl_hours)
        )
        await self._collection.create_index([("session_id", 1)], unique=True)
        # TTL index lets MongoDB drop entries once the chain can no longer be used
        await self._collection.create_index([("expires_at", 1)], expireAfterSeconds=0)
        await self.update_revoked_cache()

    @property
    def manager(self) -> SessionManager:
        if self._manager is None:
            raise RuntimeError("Session service not started")
        return self._manager

    async def update_revoked_cache(self) -> None:
        """Reload still-relevant revocations from the database."""
        now = self.core.clock.now()
        revoked = await RevokedSession.list_cursor(self._collection.find({"expires_at": {"$gt": now}}))
        self._revoked = {r.session_id: r.expires_at for r in revoked}
        logger.debug("revoked_sessions_loaded", count=len(self._revoked))

    def is_revoked(self, session_id: str, now: datetime) -> bool:
        expires_at = self._revoked.get(session_id)
        if expires_at is None:
            return False
        if expires_at <= now:
            del self._revoked[session_id]
            return False
        return True

    async def login(self, password: str, ip_address: str | None = None) -> AuthToken:
        """Check the shared password and start a session."""
        audit = self.core.services.audit
        if not self.manager.check_password(password):
            audit.record("login", LogResult.DENIED, reason="invalid_password", ip_address=ip_address)
            raise AuthenticationError("Invalid password")

        token = self.manager.issue(ADMIN_SUBJECT, self.core.clock.now())
        audit.record("login", LogResult.SUCCESS, ip_address=ip_address)
        return token

    def authenticate(self, token: str) -> SessionCheck:
        """Validate a token, treating logged-out sessions as invalid."""
        now = self.core.clock.now()
        check = self.manager.validate(token, now)
        if check.claims is not None and self.is_revoked(check.claims.session_id, now):
            return SessionCheck.fail(SessionError.INVALID)
        return check

    def renew(self, token: str) -> SessionCheck:
        """Sliding expiry: a valid token is exchanged for one that lasts a full TTL from now."""
        check = self.authenticate(token)
        if not check.ok:
            return check
        return self.manager.revalidate(token, self.core.clock.now())

    async def logout(self, token: str, ip_address: str | None = None) -> None:
        """Revoke the session chain the token belongs to."""
        check = self.authenticate(token)
        if check.claims is None:
            raise AuthenticationError

        now = self.core.clock.now()
        revoked = RevokedSession(session_id=check.claims.session_id, expires_at=now + self.manager.ttl)
        self._revoked[revoked.session_id] = revoked.expires_at
        audit = self.core.services.audit
        try:
            await self._collection.insert_one(revoked.to_mongo())
        except DuplicateKeyError:
            pass  # Concurrent logout of the same chain
        except PyMongoError as e:
            # Still revoked in this process, but would not survive a restart
            logger.error("session_revocation_not_persisted", session_id=revoked.session_id, error=str(e))
            audit.record("logout", LogResult.ERROR, reason="storage_error", ip_address=ip_address)
            raise StorageError("Failed to persist logout") from e
        audit.record("logout", LogResult.SUCCESS, ip_address=ip_address)
