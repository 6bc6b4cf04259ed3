from types import MappingProxyType
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from keywarden.core.core import Service
from keywarden.core.modules.group.models import Group
from keywarden.errors import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class GroupService(Service):
    """Service for managing key groups with in-memory caching."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("groups")
        self._groups: dict[UUID, Group] = {}

    async def on_start(self) -> None:
        await self._collection.create_index([("name", 1)], unique=True)
        await self.update_all_groups_cache()
        logger.debug("group_service_started", group_count=len(self._groups))

    async def update_all_groups_cache(self) -> None:
        """Reload all groups cache from database."""
        groups = await Group.list_cursor(self._collection.find())
        self._groups = {group.id: group for group in groups}

    async def update_group_cache(self, group_id: UUID) -> Group:
        """Reload a specific group cache from database."""
        group = await self._collection.find_one({"_id": group_id})
        if group is None:
            raise NotFoundError(f"Group '{group_id}' not found")
        self._groups[group_id] = Group.model_validate(group)
        return self._groups[group_id]

    def get_group(self, group_id: UUID) -> Group:
        """Get a group by ID."""
        if group_id not in self._groups:
            raise NotFoundError(f"Group '{group_id}' not found")
        return self._groups[group_id]

    def has_group(self, group_id: UUID) -> bool:
        return group_id in self._groups

    def has_name(self, name: str, exclude_id: UUID | None = None) -> bool:
        return any(g.name == name and g.id != exclude_id for g in self._groups.values())

    def get_all_groups(self) -> list[Group]:
        return sorted(self._groups.values(), key=lambda g: g.name)

    def get_groups_with_policy(self, policy_id: UUID) -> list[Group]:
        """Groups using the policy as their default."""
        return [g for g in self._groups.values() if g.default_policy_id == policy_id]

    def get_group_cache(self) -> MappingProxyType[UUID, Group]:
        """Get read-only view of group cache for authorization decisions."""
        return MappingProxyType(self._groups)

    async def create_group(self, name: str, default_policy_id: UUID | None = None) -> Group:
        name = self._validate_name(name)
        if self.has_name(name):
            raise ValidationError(f"Group '{name}' already exists")
        if default_policy_id is not None and not self.core.services.policy.has_policy(default_policy_id):
            raise ValidationError(f"Policy '{default_policy_id}' does not exist")

        group = Group(name=name, default_policy_id=default_policy_id, created_at=self.core.clock.now())
        res = await self._collection.insert_one(group.to_mongo())
        group = await self.update_group_cache(res.inserted_id)
        logger.info("group_created", group_id=str(group.id), name=group.name)
        return group

    async def rename_group(self, group_id: UUID, name: str) -> Group:
        self.get_group(group_id)
        name = self._validate_name(name)
        if self.has_name(name, exclude_id=group_id):
            raise ValidationError(f"Group '{name}' already exists")

        await self._collection.update_one({"_id": group_id}, {"$set": {"name": name}})
        return await self.update_group_cache(group_id)

    async def set_default_policy(self, group_id: UUID, policy_id: UUID | None) -> Group:
        """Set or clear (None) the group's default policy."""
        self.get_group(group_id)
        if policy_id is not None and not self.core.services.policy.has_policy(policy_id):
            raise ValidationError(f"Policy '{policy_id}' does not exist")

        await self._collection.update_one({"_id": group_id}, {"$set": {"default_policy_id": policy_id}})
        group = await self.update_group_cache(group_id)
        logger.info("group_policy_changed", group_id=str(group_id), policy_id=str(policy_id) if policy_id else None)
        return group

    async def delete_group(self, group_id: UUID) -> None:
        """Delete a group without member keys."""
        group = self.get_group(group_id)
        member_count = await self.core.services.key.count_keys_in_group(group_id)
        if member_count:
            raise ValidationError(f"Cannot delete group '{group.name}': has {member_count} member key(s)")

        await self._collection.delete_one({"_id": group_id})
        del self._groups[group_id]
        logger.info("group_deleted", group_id=str(group_id), name=group.name)

    @staticmethod
    def _validate_name(name: str) -> str:
        name = name.strip()
        if not name:
            raise ValidationError("Group name cannot be empty")
        return name
