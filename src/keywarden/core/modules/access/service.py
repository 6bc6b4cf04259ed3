from datetime import datetime
from uuid import UUID

import structlog
from pymongo.errors import PyMongoError

from keywarden.core.core import Service
from keywarden.core.modules.access.engine import authorize
from keywarden.core.modules.access.models import Decision, DenialReason
from keywarden.core.modules.audit.models import LogResult
from keywarden.core.modules.key.models import Key
from keywarden.core.modules.session.models import AuthToken, SessionClaims
from keywarden.errors import AuthenticationError, StorageError

logger = structlog.get_logger(__name__)


class AccessService(Service):
    """Entry point for access checks: key decisions and the admin session guard."""

    def ensure_authenticated(self, auth_token: AuthToken) -> SessionClaims:
        """Ensure the request carries a valid, unrevoked session."""
        check = self.core.services.session.authenticate(auth_token)
        if check.claims is None:
            raise AuthenticationError
        return check.claims

    async def authorize(self, key_id: UUID, now: datetime | None = None, ip_address: str | None = None) -> Decision:
        """Decide for a key by id and record the decision."""
        try:
            key = await self.core.services.key.find_key(key_id)
        except PyMongoError as e:
            self._record_storage_error(ip_address)
            raise StorageError("Key lookup failed") from e
        return self.decide(key, now, ip_address)

    async def authorize_npub(self, npub: str, now: datetime | None = None, ip_address: str | None = None) -> Decision:
        """Decide for a key by npub and record the decision. Unknown npubs are denied."""
        npub = npub.strip()
        try:
            key = await self.core.services.key.find_key_by_npub(npub)
        except PyMongoError as e:
            self._record_storage_error(ip_address, npub)
            raise StorageError("Key lookup failed") from e
        return self.decide(key, now, ip_address, npub=npub)

    def decide(
        self, key: Key | None, now: datetime | None = None, ip_address: str | None = None, npub: str | None = None
    ) -> Decision:
        """Run the engine against the current policy and group snapshot.

        `now` overrides the instant decided for; the audit entry is always stamped
        with the current clock time. Exactly one audit entry is recorded per call.
        """
        now = self.core.clock.localize(now) if now is not None else self.core.clock.now()
        if key is None:
            decision = Decision(allowed=False, reason=DenialReason.UNKNOWN_KEY, evaluated_at=now)
        else:
            decision = authorize(
                key,
                self.core.services.group.get_group_cache(),
                self.core.services.policy.get_policy_cache(),
                now,
            )

        self.core.services.audit.record(
            "authorize",
            LogResult.SUCCESS if decision.allowed else LogResult.DENIED,
            key_id=decision.key_id,
            npub=key.npub if key is not None else npub,
            reason=decision.reason.value if decision.reason else None,
            ip_address=ip_address,
        )
        if not decision.allowed:
            logger.debug("access_denied", key_id=str(decision.key_id), reason=decision.reason)
        return decision

    def _record_storage_error(self, ip_address: str | None, npub: str | None = None) -> None:
        # Infrastructure failure, not a denial
        self.core.services.audit.record("authorize", LogResult.ERROR, npub=npub, reason="storage_error", ip_address=ip_address)
