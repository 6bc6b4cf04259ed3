import secrets
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from pydantic import AwareDatetime
from pymongo import DESCENDING, ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from keywarden.core.core import Service
from keywarden.core.modules.audit.models import LogResult
from keywarden.core.modules.invite.models import Invite, InviteError, InviteRedemption, Provisioning
from keywarden.core.modules.key.validators import validate_nip05, validate_npub
from keywarden.errors import NotFoundError, StorageError, ValidationError

logger = structlog.get_logger(__name__)

TOKEN_BYTES = 32  # 256 bits of entropy
MAX_TOKEN_ATTEMPTS = 3


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def check_redeemable(invite: Invite, now: datetime) -> InviteError | None:
    """Return why the invite cannot be used right now, or None if it can."""
    if not invite.enabled:
        return InviteError.DISABLED
    if invite.expires_at <= now:
        return InviteError.EXPIRED
    if invite.max_uses is not None and invite.uses >= invite.max_uses:
        return InviteError.EXHAUSTED
    return None


class InviteService(Service):
    """Invite ledger: creation, lookup and atomic redemption.

    Redemption is an optimistic compare-and-swap on `uses`. The increment only
    applies if `uses` still holds the value the checks ran against, so concurrent
    redemptions can never push it past `max_uses`. A lost race re-reads and checks again.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("invites")

    async def on_start(self) -> None:
        """Create indexes on startup."""
        await self._collection.create_index([("token", 1)], unique=True)
        await self._collection.create_index([("created_at", -1)])

    async def create_invite(self, expires_at: AwareDatetime, max_uses: int | None = 1, comment: str | None = None) -> Invite:
        """Create an invite with a fresh random token."""
        if expires_at <= self.core.clock.now():
            raise ValidationError("Invite expiry must be in the future")
        if max_uses is not None and max_uses < 1:
            raise ValidationError("max_uses must be at least 1, or null for unlimited")

        for _ in range(MAX_TOKEN_ATTEMPTS):
            invite = Invite(
                token=generate_token(),
                expires_at=expires_at,
                max_uses=max_uses,
                comment=comment or None,
                created_at=self.core.clock.now(),
            )
            try:
                await self._collection.insert_one(invite.to_mongo())
            except DuplicateKeyError:
                logger.warning("invite_token_collision")
                continue
            logger.info("invite_created", invite_id=str(invite.id), max_uses=max_uses, expires_at=expires_at.isoformat())
            return invite
        raise StorageError("Could not generate a unique invite token")

    async def get_invite(self, invite_id: UUID) -> Invite:
        invite = await self._collection.find_one({"_id": invite_id})
        if invite is None:
            raise NotFoundError(f"Invite '{invite_id}' not found")
        return Invite.model_validate(invite)

    async def list_invites(self) -> list[Invite]:
        """All invites, newest first."""
        return await Invite.list_cursor(self._collection.find().sort("created_at", DESCENDING))

    async def enable_invite(self, invite_id: UUID) -> Invite:
        return await self._set_enabled(invite_id, True)

    async def disable_invite(self, invite_id: UUID) -> Invite:
        return await self._set_enabled(invite_id, False)

    async def delete_invite(self, invite_id: UUID) -> Invite:
        invite = await self.get_invite(invite_id)
        await self._collection.delete_one({"_id": invite_id})
        logger.info("invite_deleted", invite_id=str(invite_id))
        return invite

    async def redeem(self, token: str, now: datetime) -> InviteRedemption:
        """Atomically consume one use of the invite.

        Raises:
            StorageError: The database failed; never reported as a denial
        """
        try:
            while True:
                doc = await self._collection.find_one({"token": token})
                if doc is None:
                    return InviteRedemption.fail(InviteError.NOT_FOUND)
                invite = Invite.model_validate(doc)

                error = check_redeemable(invite, now)
                if error is not None:
                    return InviteRedemption.fail(error)

                updated = await self._collection.find_one_and_update(
                    {"_id": invite.id, "uses": invite.uses, "enabled": True},
                    {"$inc": {"uses": 1}},
                    return_document=ReturnDocument.AFTER,
                )
                if updated is not None:
                    return InviteRedemption(invite=Invite.model_validate(updated))
                # Someone else changed the invite between read and write
                logger.debug("invite_redeem_retry", invite_id=str(invite.id))
        except PyMongoError as e:
            logger.error("invite_redeem_storage_error", error=str(e))
            raise StorageError("Invite redemption failed") from e

    async def release(self, invite_id: UUID) -> None:
        """Give back one use after provisioning failed downstream of a successful redemption."""
        try:
            await self._collection.update_one({"_id": invite_id, "uses": {"$gt": 0}}, {"$inc": {"uses": -1}})
        except PyMongoError as e:
            logger.error("invite_release_failed", invite_id=str(invite_id), error=str(e))

    async def redeem_invite(
        self,
        token: str,
        npub: str,
        nip05: str | None = None,
        profile_name: str | None = None,
        ip_address: str | None = None,
    ) -> Provisioning:
        """Redeem an invite and create an enabled key for `npub`.

        Records exactly one audit entry whatever the outcome.
        """
        audit = self.core.services.audit
        keys = self.core.services.key

        def record(result: LogResult, reason: str | None = None, key_id: UUID | None = None) -> None:
            audit.record("redeem_invite", result, key_id=key_id, npub=npub, reason=reason, ip_address=ip_address)

        try:
            npub = validate_npub(npub)
            validate_nip05(nip05)
            if await keys.has_npub(npub):
                raise ValidationError("Key already registered")
        except ValidationError:
            record(LogResult.DENIED, "invalid_key")
            raise
        except PyMongoError as e:
            record(LogResult.ERROR, "storage_error")
            raise StorageError("Key lookup failed") from e

        try:
            redemption = await self.redeem(token, self.core.clock.now())
        except StorageError:
            record(LogResult.ERROR, "storage_error")
            raise

        if redemption.invite is None:
            error = redemption.error or InviteError.NOT_FOUND
            record(LogResult.DENIED, error.value)
            return Provisioning(error=error)

        invite = redemption.invite
        try:
            key = await keys.create_key(npub, nip05=nip05, profile_name=profile_name)
        except ValidationError:
            await self.release(invite.id)
            record(LogResult.DENIED, "invalid_key")
            raise
        except PyMongoError as e:
            await self.release(invite.id)
            record(LogResult.ERROR, "storage_error")
            raise StorageError("Key creation failed") from e

        record(LogResult.SUCCESS, key_id=key.id)
        logger.info("invite_redeemed", invite_id=str(invite.id), key_id=str(key.id), uses=invite.uses)
        return Provisioning(key=key, invite_remaining_uses=invite.remaining_uses)

    async def _set_enabled(self, invite_id: UUID, enabled: bool) -> Invite:
        # Only touches the flag, uses stays as it is
        updated = await self._collection.find_one_and_update(
            {"_id": invite_id}, {"$set": {"enabled": enabled}}, return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise NotFoundError(f"Invite '{invite_id}' not found")
        return Invite.model_validate(updated)
