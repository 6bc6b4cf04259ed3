from datetime import time
from types import MappingProxyType
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from keywarden.core.core import Service
from keywarden.core.modules.policy.models import Policy, PolicyUpdate, Weekday
from keywarden.core.modules.policy.validators import policy_warnings, validate_policy_name
from keywarden.errors import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class PolicyService(Service):
    """Manages access policies with in-memory cache.

    The cache is the snapshot the authorization engine reads, so every write reloads it.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("policies")
        self._policies: dict[UUID, Policy] = {}

    async def on_start(self) -> None:
        await self._collection.create_index([("name", 1)], unique=True)
        await self.update_all_policies_cache()
        for policy in self._policies.values():
            self._warn(policy)
        logger.debug("policy_service_started", policy_count=len(self._policies))

    async def update_all_policies_cache(self) -> None:
        """Reload all policies cache from database."""
        policies = await Policy.list_cursor(self._collection.find())
        self._policies = {policy.id: policy for policy in policies}

    async def update_policy_cache(self, policy_id: UUID) -> Policy:
        """Reload a specific policy cache from database."""
        policy = await self._collection.find_one({"_id": policy_id})
        if policy is None:
            raise NotFoundError(f"Policy '{policy_id}' not found")
        self._policies[policy_id] = Policy.model_validate(policy)
        return self._policies[policy_id]

    def get_policy(self, policy_id: UUID) -> Policy:
        """Get a policy by ID."""
        if policy_id not in self._policies:
            raise NotFoundError(f"Policy '{policy_id}' not found")
        return self._policies[policy_id]

    def has_policy(self, policy_id: UUID) -> bool:
        return policy_id in self._policies

    def has_name(self, name: str, exclude_id: UUID | None = None) -> bool:
        return any(p.name == name and p.id != exclude_id for p in self._policies.values())

    def get_all_policies(self) -> list[Policy]:
        return sorted(self._policies.values(), key=lambda p: p.name)

    def get_policy_cache(self) -> MappingProxyType[UUID, Policy]:
        """Get read-only view of policy cache for authorization decisions."""
        return MappingProxyType(self._policies)

    async def create_policy(
        self,
        name: str,
        active_days: list[Weekday],
        time_start: time,
        time_end: time,
        expiry_days: int | None = None,
    ) -> Policy:
        """Create a policy with validation."""
        name = validate_policy_name(name)
        if self.has_name(name):
            raise ValidationError(f"Policy '{name}' already exists")

        policy = Policy(
            name=name,
            active_days=active_days,
            time_start=time_start,
            time_end=time_end,
            expiry_days=expiry_days,
            created_at=self.core.clock.now(),
        )
        res = await self._collection.insert_one(policy.to_mongo())
        policy = await self.update_policy_cache(res.inserted_id)
        self._warn(policy)
        logger.info("policy_created", policy_id=str(policy.id), name=policy.name)
        return policy

    async def update_policy(self, policy_id: UUID, update: PolicyUpdate) -> Policy:
        """Apply a partial update. `created_at` never changes, so expiry keeps counting from creation."""
        current = self.get_policy(policy_id)

        changes: dict[str, Any] = update.model_dump(exclude_unset=True, exclude={"clear_expiry"})
        if "name" in changes:
            changes["name"] = validate_policy_name(changes["name"])
            if self.has_name(changes["name"], exclude_id=policy_id):
                raise ValidationError(f"Policy '{changes['name']}' already exists")
        if update.clear_expiry:
            changes["expiry_days"] = None
        if not changes:
            return current

        # Normalised and serialised the same way as on insert
        merged = Policy.model_validate({**current.model_dump(), **changes})
        await self._collection.update_one({"_id": policy_id}, {"$set": merged.to_mongo(changes)})
        policy = await self.update_policy_cache(policy_id)
        self._warn(policy)
        logger.info("policy_updated", policy_id=str(policy_id), fields=sorted(changes))
        return policy

    async def delete_policy(self, policy_id: UUID) -> None:
        """Delete a policy that no key or group references."""
        policy = self.get_policy(policy_id)

        key_count = await self.core.services.key.count_keys_with_policy(policy_id)
        if key_count:
            raise ValidationError(f"Cannot delete policy '{policy.name}': assigned to {key_count} key(s)")
        groups = self.core.services.group.get_groups_with_policy(policy_id)
        if groups:
            names = ", ".join(g.name for g in groups)
            raise ValidationError(f"Cannot delete policy '{policy.name}': default policy of group(s) {names}")

        await self._collection.delete_one({"_id": policy_id})
        del self._policies[policy_id]
        logger.info("policy_deleted", policy_id=str(policy_id), name=policy.name)

    def _warn(self, policy: Policy) -> None:
        for warning in policy_warnings(policy):
            logger.warning("policy_configuration_warning", policy_id=str(policy.id), name=policy.name, warning=warning)
