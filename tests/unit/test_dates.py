"""
Unit tests for calendar-day normalization.
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfoNotFoundError

import pytest

from practica.core import dates


class TestNormalize:
    @pytest.mark.parametrize(
        "value",
        [
            date(2025, 3, 14),
            datetime(2025, 3, 14, 8, 45),
            datetime(2025, 3, 14, 23, 59, 59),
            "2025-03-14",
            "2025-03-14T17:30:00",
        ],
    )
    def test_strips_time_of_day(self, value):
        assert dates.normalize(value) == date(2025, 3, 14)

    @pytest.mark.parametrize(
        "value",
        [
            date(2025, 3, 14),
            datetime(2025, 3, 14, 12, 0),
            datetime(2025, 3, 14, 23, 30, tzinfo=timezone.utc),
            "2025-03-14T23:30:00Z",
        ],
    )
    def test_idempotent(self, value):
        once = dates.normalize(value)
        assert dates.normalize(once) == once

    def test_aware_datetime_uses_reference_zone(self):
        # 23:30 UTC is already the next day in Brussels (UTC+1 in March)
        instant = datetime(2025, 3, 14, 23, 30, tzinfo=timezone.utc)
        assert dates.normalize(instant) == date(2025, 3, 15)
        assert dates.normalize(instant, tz="UTC") == date(2025, 3, 14)

    def test_naive_datetime_taken_at_face_value(self):
        assert dates.normalize(datetime(2025, 3, 14, 23, 30)) == date(2025, 3, 14)

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            dates.normalize(20250314)

    def test_optional_preserves_none(self):
        assert dates.normalize_optional(None) is None
        assert dates.normalize_optional("") is None
        assert dates.normalize_optional("2025-01-02") == date(2025, 1, 2)


class TestArithmetic:
    def test_is_today(self):
        today = date(2025, 3, 14)
        assert dates.is_today(datetime(2025, 3, 14, 6, 0), today)
        assert not dates.is_today(date(2025, 3, 13), today)

    def test_add_days(self):
        assert dates.add_days(datetime(2025, 2, 27, 22, 0), 2) == date(2025, 3, 1)

    def test_days_between(self):
        assert dates.days_between(date(2025, 3, 1), date(2025, 3, 14)) == 13
        assert dates.days_between(date(2025, 3, 14), date(2025, 3, 1)) == -13

    def test_today_in_zone(self):
        current = dates.today("UTC")
        assert abs((current - datetime.now(timezone.utc).date()).days) <= 1
        assert isinstance(current, date) and not isinstance(current, datetime)
        assert dates.today() - current <= timedelta(days=1)


class TestReferenceZone:
    def test_configured_zone_drives_normalization(self):
        # 03:00 UTC on the 15th is still the evening of the 14th in Los Angeles
        instant = datetime(2025, 3, 15, 3, 0, tzinfo=timezone.utc)
        assert dates.normalize(instant) == date(2025, 3, 15)

        dates.set_reference_zone("America/Los_Angeles")

        assert dates.reference_zone().key == "America/Los_Angeles"
        assert dates.normalize(instant) == date(2025, 3, 14)
        assert dates.normalize("2025-03-15T03:00:00Z") == date(2025, 3, 14)

    def test_none_restores_default(self):
        dates.set_reference_zone("UTC")
        dates.set_reference_zone(None)
        assert dates.reference_zone().key == dates.DEFAULT_TIMEZONE

    def test_unknown_zone_rejected(self):
        with pytest.raises(ZoneInfoNotFoundError):
            dates.set_reference_zone("Mars/Olympus_Mons")
        assert dates.reference_zone().key == dates.DEFAULT_TIMEZONE


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "text",
        [
            "2025-03-20T18:45:00.1234567",
            "2025-03-20T18:45:00.12",
            "2025-03-20T18:45:00.1234567+01:00",
        ],
    )
    def test_fraction_lengths(self, text):
        assert dates.normalize(text) == date(2025, 3, 20)

    def test_seven_digit_fraction_truncated(self):
        parsed = dates.parse_timestamp("2025-03-20T18:45:00.1234567Z")
        assert parsed.microsecond == 123456
        assert parsed.tzinfo is not None
