from typing import Any
from uuid import UUID

import structlog
from pydantic import AwareDatetime
from pymongo import DESCENDING, ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError

from keywarden.core.core import Service
from keywarden.core.modules.key.models import Key, KeyUpdate
from keywarden.core.modules.key.validators import validate_nip05, validate_npub
from keywarden.core.pagination import PaginationResult
from keywarden.errors import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class KeyService(Service):
    """Stores keys. Reads go to the database so decisions always see the latest status."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("keys")

    async def on_start(self) -> None:
        """Create indexes on startup."""
        await self._collection.create_index([("npub", 1)], unique=True)
        await self._collection.create_index([("policy_id", 1)])
        await self._collection.create_index([("group_id", 1)])
        await self._collection.create_index([("created_at", -1)])

    async def get_key(self, key_id: UUID) -> Key:
        key = await self.find_key(key_id)
        if key is None:
            raise NotFoundError(f"Key '{key_id}' not found")
        return key

    async def find_key(self, key_id: UUID) -> Key | None:
        return Key.from_mongo(await self._collection.find_one({"_id": key_id}))

    async def find_key_by_npub(self, npub: str) -> Key | None:
        return Key.from_mongo(await self._collection.find_one({"npub": npub}))

    async def get_key_by_npub(self, npub: str) -> Key:
        key = await self.find_key_by_npub(npub)
        if key is None:
            raise NotFoundError(f"Key '{npub}' not found")
        return key

    async def has_npub(self, npub: str) -> bool:
        return await self._collection.count_documents({"npub": npub}) > 0

    async def list_keys(self, limit: int = 50, offset: int = 0, group_id: UUID | None = None) -> PaginationResult[Key]:
        """List keys newest first, optionally only members of one group."""
        query: dict[str, Any] = {} if group_id is None else {"group_id": group_id}
        total = await self._collection.count_documents(query)
        cursor = self._collection.find(query).sort("created_at", DESCENDING).skip(offset).limit(limit)
        return PaginationResult[Key].page(await Key.list_cursor(cursor), total, limit, offset)

    async def count_keys_with_policy(self, policy_id: UUID) -> int:
        return await self._collection.count_documents({"policy_id": policy_id})

    async def count_keys_in_group(self, group_id: UUID) -> int:
        return await self._collection.count_documents({"group_id": group_id})

    async def create_key(
        self,
        npub: str,
        nip05: str | None = None,
        profile_name: str | None = None,
        expires_at: AwareDatetime | None = None,
        policy_id: UUID | None = None,
        group_id: UUID | None = None,
    ) -> Key:
        """Create an enabled key with validation."""
        npub = validate_npub(npub)
        if await self.has_npub(npub):
            raise ValidationError("Failed to add key. It already exists.")
        self._check_references(policy_id, group_id)

        key = Key(
            npub=npub,
            nip05=validate_nip05(nip05),
            profile_name=(profile_name or "").strip() or None,
            expires_at=expires_at,
            policy_id=policy_id,
            group_id=group_id,
            created_at=self.core.clock.now(),
        )
        try:
            await self._collection.insert_one(key.to_mongo())
        except DuplicateKeyError as e:
            raise ValidationError("Failed to add key. It already exists.") from e
        logger.info("key_created", key_id=str(key.id), npub=key.npub)
        return key

    async def update_key(self, key_id: UUID, update: KeyUpdate) -> Key:
        """Apply the fields present in the update; explicit nulls clear values."""
        await self.get_key(key_id)
        changes = update.model_dump(exclude_unset=True)
        if "nip05" in changes:
            changes["nip05"] = validate_nip05(changes["nip05"])
        if "profile_name" in changes:
            changes["profile_name"] = (changes["profile_name"] or "").strip() or None
        if changes.get("status") is None:
            changes.pop("status", None)
        self._check_references(changes.get("policy_id"), changes.get("group_id"))
        if changes:
            await self._collection.update_one({"_id": key_id}, {"$set": changes})
            logger.info("key_updated", key_id=str(key_id), fields=sorted(changes))
        return await self.get_key(key_id)

    async def set_status(self, key_id: UUID, enabled: bool) -> Key:
        """Enable or disable a key. Idempotent."""
        return await self.update_key(key_id, KeyUpdate(status=enabled))

    async def toggle_status(self, key_id: UUID) -> Key:
        """Flip the status in a single atomic update."""
        updated = await self._collection.find_one_and_update(
            {"_id": key_id}, [{"$set": {"status": {"$not": "$status"}}}], return_document=ReturnDocument.AFTER
        )
        key = Key.from_mongo(updated)
        if key is None:
            raise NotFoundError(f"Key '{key_id}' not found")
        logger.info("key_status_toggled", key_id=str(key_id), status=key.status)
        return key

    async def delete_key(self, key_id: UUID) -> Key:
        key = await self.get_key(key_id)
        await self._collection.delete_one({"_id": key_id})
        logger.info("key_deleted", key_id=str(key_id), npub=key.npub)
        return key

    def _check_references(self, policy_id: UUID | None, group_id: UUID | None) -> None:
        if policy_id is not None and not self.core.services.policy.has_policy(policy_id):
            raise ValidationError(f"Policy '{policy_id}' does not exist")
        if group_id is not None and not self.core.services.group.has_group(group_id):
            raise ValidationError(f"Group '{group_id}' does not exist")
