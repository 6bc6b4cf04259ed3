from __future__ import annotations

import importlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, cast
from urllib.parse import urlparse

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from keywarden.config import Config
from keywarden.core.clock import Clock

if TYPE_CHECKING:
    from keywarden.core.modules.access.service import AccessService
    from keywarden.core.modules.audit.service import AuditService
    from keywarden.core.modules.group.service import GroupService
    from keywarden.core.modules.invite.service import InviteService
    from keywarden.core.modules.key.service import KeyService
    from keywarden.core.modules.policy.service import PolicyService
    from keywarden.core.modules.session.service import SessionService


class Service:
    """Base class for services with direct database access."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        self.database = database
        self._core: Core | None = None

    async def on_start(self) -> None:
        """Initialize service on application startup."""

    async def on_stop(self) -> None:
        """Cleanup service on application shutdown."""

    @property
    def core(self) -> Core:
        """Get the core application context."""
        if self._core is None:
            raise RuntimeError("Core not set for service")
        return self._core

    def set_core(self, core: Core) -> None:
        """Set the core application context."""
        self._core = core


class Services:
    """Service registry that automatically discovers and initializes services."""

    audit: AuditService
    policy: PolicyService
    group: GroupService
    key: KeyService
    invite: InviteService
    session: SessionService
    access: AccessService

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        """Initialize all services automatically using service configuration."""
        self._services: list[Service] = []
        self._database = database

        # Service configuration: (attribute_name, module_path, class_name)
        # Order matters: audit starts first and stops last so every other service can record entries,
        # policies load before groups and keys that reference them
        service_configs = [
            ("audit", "keywarden.core.modules.audit.service", "AuditService"),
            ("policy", "keywarden.core.modules.policy.service", "PolicyService"),
            ("group", "keywarden.core.modules.group.service", "GroupService"),
            ("key", "keywarden.core.modules.key.service", "KeyService"),
            ("invite", "keywarden.core.modules.invite.service", "InviteService"),
            ("session", "keywarden.core.modules.session.service", "SessionService"),
            ("access", "keywarden.core.modules.access.service", "AccessService"),
        ]

        # Dynamically import and instantiate services
        for attr_name, module_path, class_name in service_configs:
            module = importlib.import_module(module_path)
            service_class = cast(type[Service], getattr(module, class_name))
            service_instance = service_class(database)
            setattr(self, attr_name, service_instance)
            self._services.append(service_instance)

    def set_core(self, core: Core) -> None:
        """Set core reference for all services."""
        for service in self._services:
            service.set_core(core)

    async def start_all(self) -> None:
        """Start all services in registration order."""
        for service in self._services:
            await service.on_start()

    async def stop_all(self) -> None:
        """Stop all services in reverse registration order."""
        for service in reversed(self._services):
            await service.on_stop()


class Core:
    """Container providing config, clock, database, and all service instances."""

    config: Config
    clock: Clock
    mongo_client: AsyncMongoClient[dict[str, Any]] | None
    database: AsyncDatabase[dict[str, Any]]
    services: Services

    def __init__(
        self, config: Config, database: AsyncDatabase[dict[str, Any]] | None = None, clock: Clock | None = None
    ) -> None:
        """Initialize core with config, MongoDB, and auto-register services.

        A prepared database handle may be passed in, in which case no client is created here.
        """
        self.config = config
        self.clock = clock or Clock(config.timezone)
        self.mongo_client = None
        if database is None:
            self.mongo_client = AsyncMongoClient(
                config.database_url,
                uuidRepresentation="standard",
                tz_aware=True,
                timeoutMS=config.database_timeout_ms,
            )
            database = self.mongo_client.get_database(urlparse(config.database_url).path[1:])
        self.database = database
        self.services = Services(self.database)
        self.services.set_core(self)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage application lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        """Start all services on application startup."""
        await self.services.start_all()

    async def on_stop(self) -> None:
        """Stop services and close MongoDB connection on shutdown."""
        await self.services.stop_all()
        if self.mongo_client is not None:
            await self.mongo_client.aclose()
