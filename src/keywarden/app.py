import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import time
from uuid import UUID

from pydantic import AwareDatetime

from keywarden.config import Config
from keywarden.core.core import Core
from keywarden.core.modules.access.models import Decision
from keywarden.core.modules.audit.models import Log, LogResult
from keywarden.core.modules.group.models import Group
from keywarden.core.modules.invite.models import Invite, Provisioning
from keywarden.core.modules.key.models import Key, KeyUpdate
from keywarden.core.modules.policy.models import Policy, PolicyUpdate, Weekday
from keywarden.core.modules.session.models import AuthToken, SessionView
from keywarden.core.pagination import PaginationResult
from keywarden.errors import AuthenticationError, InviteRejectedError


class App:
    """Facade for all application operations, checks the admin session before delegating to Core.

    Every successful administrative change is recorded in the audit log.
    """

    def __init__(self, config: Config, core: Core | None = None) -> None:
        self._core = core or Core(config)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Application lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    # === Sessions ===
    async def login(self, password: str, ip_address: str | None = None) -> AuthToken:
        """Check the shared password and issue a session token."""
        return await self._core.services.session.login(password, ip_address)

    def renew_session(self, auth_token: AuthToken) -> AuthToken:
        """Exchange a valid token for one with a fresh expiry. Raises AuthenticationError otherwise."""
        check = self._core.services.session.renew(auth_token)
        if check.token is None:
            raise AuthenticationError
        return check.token

    def get_session(self, auth_token: AuthToken) -> SessionView:
        claims = self._core.services.access.ensure_authenticated(auth_token)
        return SessionView(subject=claims.subject, expires_at=claims.expires_at)

    async def logout(self, auth_token: AuthToken, ip_address: str | None = None) -> None:
        """Revoke the current session."""
        self._core.services.access.ensure_authenticated(auth_token)
        await self._core.services.session.logout(auth_token, ip_address)

    # === Access decisions ===
    async def check_access(self, npub: str, ip_address: str | None = None) -> Decision:
        """Decide whether an npub may access the resource right now (public)."""
        return await self._core.services.access.authorize_npub(npub, ip_address=ip_address)

    async def check_key_access(
        self, auth_token: AuthToken, key_id: UUID, at: AwareDatetime | None = None, ip_address: str | None = None
    ) -> Decision:
        """Decide for a key by id, optionally at another instant (authenticated)."""
        self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.access.authorize(key_id, now=at, ip_address=ip_address)

    # === Keys ===
    async def get_keys(
        self, auth_token: AuthToken, limit: int = 50, offset: int = 0, group_id: UUID | None = None
    ) -> PaginationResult[Key]:
        self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.key.list_keys(limit, offset, group_id)

    async def get_key(self, auth_token: AuthToken, key_id: UUID) -> Key:
        self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.key.get_key(key_id)

    async def create_key(
        self,
        auth_token: AuthToken,
        npub: str,
        nip05: str | None = None,
        profile_name: str | None = None,
        expires_at: AwareDatetime | None = None,
        policy_id: UUID | None = None,
        group_id: UUID | None = None,
        ip_address: str | None = None,
    ) -> Key:
        """Register a key (enabled)."""
        self._core.services.access.ensure_authenticated(auth_token)
        key = await self._core.services.key.create_key(npub, nip05, profile_name, expires_at, policy_id, group_id)
        self._audit("create_key", ip_address, key)
        return key

    async def update_key(self, auth_token: AuthToken, key_id: UUID, update: KeyUpdate, ip_address: str | None = None) -> Key:
        """Change status, expiry, policy, group or profile fields of a key."""
        self._core.services.access.ensure_authenticated(auth_token)
        key = await self._core.services.key.update_key(key_id, update)
        self._audit("update_key", ip_address, key)
        return key

    async def toggle_key(self, auth_token: AuthToken, key_id: UUID, ip_address: str | None = None) -> Key:
        """Flip a key between enabled and disabled."""
        self._core.services.access.ensure_authenticated(auth_token)
        key = await self._core.services.key.toggle_status(key_id)
        self._audit("enable_key" if key.status else "disable_key", ip_address, key)
        return key

    async def delete_key(self, auth_token: AuthToken, key_id: UUID, ip_address: str | None = None) -> None:
        self._core.services.access.ensure_authenticated(auth_token)
        key = await self._core.services.key.delete_key(key_id)
        self._audit("delete_key", ip_address, key)

    # === Policies ===
    def get_policies(self, auth_token: AuthToken) -> list[Policy]:
        self._core.services.access.ensure_authenticated(auth_token)
        return self._core.services.policy.get_all_policies()

    def get_policy(self, auth_token: AuthToken, policy_id: UUID) -> Policy:
        self._core.services.access.ensure_authenticated(auth_token)
        return self._core.services.policy.get_policy(policy_id)

    async def create_policy(
        self,
        auth_token: AuthToken,
        name: str,
        active_days: list[Weekday],
        time_start: time,
        time_end: time,
        expiry_days: int | None = None,
        ip_address: str | None = None,
    ) -> Policy:
        self._core.services.access.ensure_authenticated(auth_token)
        policy = await self._core.services.policy.create_policy(name, active_days, time_start, time_end, expiry_days)
        self._audit("create_policy", ip_address)
        return policy

    async def update_policy(
        self, auth_token: AuthToken, policy_id: UUID, update: PolicyUpdate, ip_address: str | None = None
    ) -> Policy:
        self._core.services.access.ensure_authenticated(auth_token)
        policy = await self._core.services.policy.update_policy(policy_id, update)
        self._audit("update_policy", ip_address)
        return policy

    async def delete_policy(self, auth_token: AuthToken, policy_id: UUID, ip_address: str | None = None) -> None:
        """Delete a policy no key or group refers to."""
        self._core.services.access.ensure_authenticated(auth_token)
        await self._core.services.policy.delete_policy(policy_id)
        self._audit("delete_policy", ip_address)

    # === Groups ===
    def get_groups(self, auth_token: AuthToken) -> list[Group]:
        self._core.services.access.ensure_authenticated(auth_token)
        return self._core.services.group.get_all_groups()

    def get_group(self, auth_token: AuthToken, group_id: UUID) -> Group:
        self._core.services.access.ensure_authenticated(auth_token)
        return self._core.services.group.get_group(group_id)

    async def create_group(
        self, auth_token: AuthToken, name: str, default_policy_id: UUID | None = None, ip_address: str | None = None
    ) -> Group:
        self._core.services.access.ensure_authenticated(auth_token)
        group = await self._core.services.group.create_group(name, default_policy_id)
        self._audit("create_group", ip_address)
        return group

    async def update_group(
        self,
        auth_token: AuthToken,
        group_id: UUID,
        name: str | None = None,
        default_policy_id: UUID | None = None,
        set_default_policy: bool = False,
        ip_address: str | None = None,
    ) -> Group:
        """Rename a group and/or change its default policy.

        `set_default_policy` distinguishes clearing the policy (None) from leaving it alone.
        """
        self._core.services.access.ensure_authenticated(auth_token)
        group = self._core.services.group.get_group(group_id)
        if name is not None:
            group = await self._core.services.group.rename_group(group_id, name)
        if set_default_policy:
            group = await self._core.services.group.set_default_policy(group_id, default_policy_id)
        self._audit("update_group", ip_address)
        return group

    async def delete_group(self, auth_token: AuthToken, group_id: UUID, ip_address: str | None = None) -> None:
        """Delete a group without members."""
        self._core.services.access.ensure_authenticated(auth_token)
        await self._core.services.group.delete_group(group_id)
        self._audit("delete_group", ip_address)

    # === Invites ===
    async def get_invites(self, auth_token: AuthToken) -> list[Invite]:
        self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.invite.list_invites()

    async def create_invite(
        self,
        auth_token: AuthToken,
        expires_at: AwareDatetime,
        max_uses: int | None = 1,
        comment: str | None = None,
        ip_address: str | None = None,
    ) -> Invite:
        self._core.services.access.ensure_authenticated(auth_token)
        invite = await self._core.services.invite.create_invite(expires_at, max_uses, comment)
        self._audit("create_invite", ip_address)
        return invite

    async def set_invite_enabled(
        self, auth_token: AuthToken, invite_id: UUID, enabled: bool, ip_address: str | None = None
    ) -> Invite:
        self._core.services.access.ensure_authenticated(auth_token)
        if enabled:
            invite = await self._core.services.invite.enable_invite(invite_id)
        else:
            invite = await self._core.services.invite.disable_invite(invite_id)
        self._audit("enable_invite" if enabled else "disable_invite", ip_address)
        return invite

    async def delete_invite(self, auth_token: AuthToken, invite_id: UUID, ip_address: str | None = None) -> None:
        self._core.services.access.ensure_authenticated(auth_token)
        await self._core.services.invite.delete_invite(invite_id)
        self._audit("delete_invite", ip_address)

    async def redeem_invite(
        self,
        token: str,
        npub: str,
        nip05: str | None = None,
        profile_name: str | None = None,
        ip_address: str | None = None,
    ) -> Provisioning:
        """Provision a key with an invite token (public). Raises InviteRejectedError on denial."""
        result = await self._core.services.invite.redeem_invite(token, npub, nip05, profile_name, ip_address)
        if result.error is not None:
            raise InviteRejectedError(result.error)
        return result

    # === Audit logs ===
    async def get_logs(
        self, auth_token: AuthToken, limit: int = 50, offset: int = 0, key_id: UUID | None = None
    ) -> PaginationResult[Log]:
        self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.audit.list_logs(limit, offset, key_id)

    async def purge_logs(self, auth_token: AuthToken, before: AwareDatetime, ip_address: str | None = None) -> int:
        """Delete audit entries older than `before`. Returns the number removed."""
        self._core.services.access.ensure_authenticated(auth_token)
        count = await self._core.services.audit.purge_logs(before)
        self._audit("purge_logs", ip_address)
        return count

    def subscribe_logs(self, auth_token: AuthToken) -> asyncio.Queue[Log]:
        """Start receiving newly stored audit entries."""
        self._core.services.access.ensure_authenticated(auth_token)
        return self._core.services.audit.feed.subscribe()

    def unsubscribe_logs(self, queue: asyncio.Queue[Log]) -> None:
        self._core.services.audit.feed.unsubscribe(queue)

    # === Private helpers ===
    def _audit(self, action: str, ip_address: str | None, key: Key | None = None) -> None:
        self._core.services.audit.record(
            action,
            LogResult.SUCCESS,
            key_id=key.id if key is not None else None,
            npub=key.npub if key is not None else None,
            ip_address=ip_address,
        )
