"""Audit log entries."""

from enum import StrEnum
from uuid import UUID

from pydantic import AwareDatetime, Field

from keywarden.core.db import MongoModel
from keywarden.utils import now


class LogResult(StrEnum):
    SUCCESS = "success"
    DENIED = "denied"
    ERROR = "error"


class Log(MongoModel):
    """Immutable record of one decision or administrative change.

    Entries are only ever inserted; the retention purge is the only delete.
    Indexed on timestamp, key_id.
    """

    key_id: UUID | None = None  # None for session and administrative events
    npub: str | None = None  # Kept alongside key_id so the entry stays readable after the key is deleted
    timestamp: AwareDatetime = Field(default_factory=now)
    action: str
    result: LogResult
    reason: str | None = None  # Machine-readable reason code
    ip_address: str | None = None
