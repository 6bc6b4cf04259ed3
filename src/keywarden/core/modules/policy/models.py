"""Time-window access policies."""

from datetime import datetime, time
from enum import StrEnum
from typing import Self

from pydantic import AwareDatetime, BaseModel, Field, field_serializer, field_validator

from keywarden.core.db import MongoModel
from keywarden.utils import now


class Weekday(StrEnum):
    """Day of week, ordered Monday first to match `datetime.weekday()`."""

    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"

    @classmethod
    def of(cls, instant: datetime) -> Self:
        return list(cls)[instant.weekday()]


class Policy(MongoModel):
    """Reusable day-of-week and time-of-day access rule.

    `time_end` earlier than `time_start` is an overnight window, equal bounds mean all day.
    Empty `active_days` places no restriction on the day.
    Indexed on name - unique.
    """

    name: str
    active_days: list[Weekday] = Field(default_factory=list)
    time_start: time = time(0, 0)
    time_end: time = time(0, 0)
    expiry_days: int | None = Field(None, ge=1)  # Policy stops allowing anyone this many days after creation
    created_at: AwareDatetime = Field(default_factory=now)

    @field_validator("active_days")
    @classmethod
    def _normalize_days(cls, value: list[Weekday]) -> list[Weekday]:
        order = list(Weekday)
        return sorted(set(value), key=order.index)

    @field_validator("time_start", "time_end")
    @classmethod
    def _strip_time(cls, value: time) -> time:
        if value.tzinfo is not None:
            raise ValueError("Policy times are local to the configured zone and must not carry an offset")
        return value.replace(microsecond=0)

    @field_serializer("time_start", "time_end")
    def _serialize_time(self, value: time) -> str:
        # BSON has no time-of-day type
        return value.isoformat()

    @property
    def is_all_day(self) -> bool:
        return self.time_start == self.time_end


class PolicyUpdate(BaseModel):
    """Partial policy update, unset fields are left as they are."""

    name: str | None = None
    active_days: list[Weekday] | None = None
    time_start: time | None = None
    time_end: time | None = None
    expiry_days: int | None = Field(None, ge=1)
    clear_expiry: bool = False  # Remove expiry_days entirely
