"""Shared pytest fixtures."""

from collections.abc import AsyncGenerator

import pytest
from fakes import T0, FakeDatabase, make_npub

from keywarden.config import Config
from keywarden.core.clock import FixedClock
from keywarden.core.core import Core
from keywarden.core.modules.audit.service import AuditService


@pytest.fixture
def config() -> Config:
    return Config(
        database_url="mongodb://localhost:27017/keywarden_test",
        host="127.0.0.1",
        port=3100,
        debug=True,
        auth_password="correct horse",
        session_secret_key="test-secret-key-with-enough-length-for-hs256",
        audit_queue_size=1000,
        _env_file=None,
    )


@pytest.fixture
def database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
async def core(config: Config, database: FakeDatabase, clock: FixedClock, monkeypatch) -> AsyncGenerator[Core]:
    """Started core backed by the in-memory database."""
    monkeypatch.setattr(AuditService, "retry_delays", (0, 0))
    monkeypatch.setattr(AuditService, "stop_timeout", 0.5)
    core = Core(config, database=database, clock=clock)  # type: ignore[arg-type]
    async with core.lifespan():
        yield core


@pytest.fixture
def npub() -> str:
    return make_npub(1)
