"""Tests for the decision clock."""

from datetime import UTC, datetime, timedelta

import pytest
from fakes import T0

from keywarden.core.clock import Clock, FixedClock


class TestClock:
    """Tests for zone handling."""

    def test_now_is_aware_in_zone(self):
        clock = Clock("Asia/Tokyo")
        assert clock.now().utcoffset() == timedelta(hours=9)

    def test_localize_keeps_instant(self):
        clock = Clock("America/New_York")

        local = clock.localize(T0)

        assert local == T0
        assert local.hour == 7

    def test_naive_rejected(self):
        with pytest.raises(ValueError):
            Clock().localize(datetime(2026, 1, 5, 12, 0))

    def test_unknown_zone_rejected(self):
        with pytest.raises(ValueError):
            Clock("Mars/Olympus_Mons")

    def test_fixed_clock(self):
        clock = FixedClock(T0)
        clock.set(T0 + timedelta(hours=1))

        assert clock.now() == datetime(2026, 1, 5, 13, 0, tzinfo=UTC)
