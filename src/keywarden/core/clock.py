"""Time source for access decisions."""

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Clock:
    """Supplies the current instant in the zone policies are written for.

    Policy days and time windows are local to this zone, so every instant
    handed to the evaluator should come from `now()` or `localize()`.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        try:
            self.zone = ZoneInfo(timezone)
        except ZoneInfoNotFoundError as e:
            raise ValueError(f"Unknown time zone: '{timezone}'") from e

    def now(self) -> datetime:
        return datetime.now(self.zone)

    def localize(self, instant: datetime) -> datetime:
        """Express an aware instant in the configured zone."""
        if instant.tzinfo is None:
            raise ValueError("Naive datetimes are not accepted")
        return instant.astimezone(self.zone)


class FixedClock(Clock):
    """Clock frozen at a given instant, advanced manually."""

    def __init__(self, instant: datetime, timezone: str = "UTC") -> None:
        super().__init__(timezone)
        self._instant = self.localize(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = self.localize(instant)
