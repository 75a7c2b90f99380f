"""
Tests for DateService.

Tests cover:
1. Deadline resolution for each customization mode
2. Range and error handling of deadline values
3. Deadline helpers (past deadline, time remaining)
4. Time string parsing and day ranges
"""
import pytest
from datetime import date, datetime, timedelta
from unittest.mock import patch

from morningproof.services.date_service import DateService
from morningproof.exceptions import InvalidDeadlineException, InvalidTimeFormatException
from morningproof.constants import (
    DEADLINE_MODE_SAME_EVERY_DAY, DEADLINE_MODE_WEEKDAY_WEEKEND, DEADLINE_MODE_EACH_DAY
)

MONDAY = date(2025, 3, 10)
SATURDAY = date(2025, 3, 15)
SUNDAY = date(2025, 3, 16)


class TestWeekdayIndex:
    """Per-day deadlines are indexed Sunday=0 ... Saturday=6"""

    def test_sunday_is_zero(self):
        assert DateService.weekday_index(SUNDAY) == 0

    def test_monday_is_one_and_saturday_is_six(self):
        assert DateService.weekday_index(MONDAY) == 1
        assert DateService.weekday_index(SATURDAY) == 6

    def test_weekend_detection(self):
        assert DateService.is_weekend(SATURDAY)
        assert DateService.is_weekend(SUNDAY)
        assert not DateService.is_weekend(MONDAY)


class TestResolveDeadline:
    """Tests for resolve_deadline / resolve_deadline_minutes"""

    def test_same_every_day_uses_cutoff(self, default_settings):
        """Mode 0 uses morning_cutoff_minutes for every date"""
        default_settings.deadline_mode = DEADLINE_MODE_SAME_EVERY_DAY
        default_settings.morning_cutoff_minutes = 480

        assert DateService.resolve_deadline(MONDAY, default_settings) == datetime(2025, 3, 10, 8, 0)
        assert DateService.resolve_deadline(SATURDAY, default_settings) == datetime(2025, 3, 15, 8, 0)

    def test_weekday_weekend_mode(self, default_settings):
        """Mode 1 with weekday 540 and weekend 660: Monday 9:00, Saturday 11:00"""
        default_settings.deadline_mode = DEADLINE_MODE_WEEKDAY_WEEKEND
        default_settings.weekday_deadline_minutes = 540
        default_settings.weekend_deadline_minutes = 660

        assert DateService.resolve_deadline(MONDAY, default_settings) == datetime(2025, 3, 10, 9, 0)
        assert DateService.resolve_deadline(SATURDAY, default_settings) == datetime(2025, 3, 15, 11, 0)
        assert DateService.resolve_deadline(SUNDAY, default_settings) == datetime(2025, 3, 16, 11, 0)

    def test_each_day_mode_indexes_by_weekday(self, default_settings):
        """Mode 2 reads per_day_deadline_minutes[weekday], Sunday first"""
        default_settings.deadline_mode = DEADLINE_MODE_EACH_DAY
        default_settings.per_day_deadlines = [600, 420, 430, 440, 450, 460, 720]

        assert DateService.resolve_deadline_minutes(SUNDAY, default_settings) == 600
        assert DateService.resolve_deadline_minutes(MONDAY, default_settings) == 420
        assert DateService.resolve_deadline_minutes(SATURDAY, default_settings) == 720

    def test_deadline_is_on_the_requested_date(self, default_settings):
        """Every mode resolves to an instant on the date itself, at second 0"""
        default_settings.per_day_deadlines = [0, 1, 100, 500, 1000, 1400, 1439]
        for mode in (DEADLINE_MODE_SAME_EVERY_DAY, DEADLINE_MODE_WEEKDAY_WEEKEND, DEADLINE_MODE_EACH_DAY):
            default_settings.deadline_mode = mode
            for offset in range(7):
                day = MONDAY + timedelta(days=offset)
                minutes = DateService.resolve_deadline_minutes(day, default_settings)
                deadline = DateService.resolve_deadline(day, default_settings)

                assert 0 <= minutes < 1440
                assert deadline.date() == day
                assert deadline.second == 0
                assert deadline == DateService.resolve_deadline(day, default_settings)

    def test_legacy_flag_follows_mode(self, default_settings):
        """custom_deadlines_enabled is only true for weekday/weekend mode"""
        default_settings.deadline_mode = DEADLINE_MODE_WEEKDAY_WEEKEND
        assert default_settings.custom_deadlines_enabled is True

        default_settings.deadline_mode = DEADLINE_MODE_EACH_DAY
        assert default_settings.custom_deadlines_enabled is False

    def test_missing_mode_treated_as_same_every_day(self, default_settings):
        default_settings.deadline_mode = None
        default_settings.morning_cutoff_minutes = 500

        assert DateService.resolve_deadline_minutes(MONDAY, default_settings) == 500


class TestDeadlineValidation:
    """Invalid deadline configuration is rejected"""

    def test_out_of_range_minutes_rejected(self, default_settings):
        default_settings.deadline_mode = DEADLINE_MODE_SAME_EVERY_DAY
        default_settings.morning_cutoff_minutes = 1440

        with pytest.raises(InvalidDeadlineException):
            DateService.resolve_deadline(MONDAY, default_settings)

    def test_negative_minutes_rejected(self, default_settings):
        default_settings.deadline_mode = DEADLINE_MODE_WEEKDAY_WEEKEND
        default_settings.weekend_deadline_minutes = -1

        with pytest.raises(InvalidDeadlineException):
            DateService.resolve_deadline(SATURDAY, default_settings)

    def test_short_per_day_list_rejected(self, default_settings):
        default_settings.deadline_mode = DEADLINE_MODE_EACH_DAY
        default_settings.per_day_deadlines = [540, 540, 540]

        with pytest.raises(InvalidDeadlineException):
            DateService.resolve_deadline_minutes(MONDAY, default_settings)

    def test_unknown_mode_rejected(self, default_settings):
        default_settings.deadline_mode = 7

        with pytest.raises(InvalidDeadlineException):
            DateService.resolve_deadline_minutes(MONDAY, default_settings)

    def test_boolean_is_not_minutes(self):
        with pytest.raises(InvalidDeadlineException):
            DateService.validate_minutes(True)


class TestDeadlineHelpers:
    """Tests for is_past_deadline / time_until_deadline"""

    def test_before_and_after_deadline(self, default_settings):
        default_settings.deadline_mode = DEADLINE_MODE_SAME_EVERY_DAY
        default_settings.morning_cutoff_minutes = 540

        assert not DateService.is_past_deadline(default_settings, datetime(2025, 3, 10, 8, 59))
        assert not DateService.is_past_deadline(default_settings, datetime(2025, 3, 10, 9, 0))
        assert DateService.is_past_deadline(default_settings, datetime(2025, 3, 10, 9, 1))

    def test_time_until_deadline_never_negative(self, default_settings):
        default_settings.deadline_mode = DEADLINE_MODE_SAME_EVERY_DAY
        default_settings.morning_cutoff_minutes = 540

        assert DateService.time_until_deadline(default_settings, datetime(2025, 3, 10, 8, 30)) == timedelta(minutes=30)
        assert DateService.time_until_deadline(default_settings, datetime(2025, 3, 10, 12, 0)) == timedelta(0)


class TestTimeHelpers:
    """Tests for time string helpers and day ranges"""

    def test_parse_time(self):
        assert DateService.parse_time("06:30") == (6, 30)
        assert DateService.time_str_to_minutes("09:00") == 540

    @pytest.mark.parametrize("value", ["25:00", "9", "ab:cd", "", None])
    def test_parse_time_rejects_garbage(self, value):
        with pytest.raises(InvalidTimeFormatException):
            DateService.parse_time(value)

    def test_minutes_to_time_str(self):
        assert DateService.minutes_to_time_str(0) == "00:00"
        assert DateService.minutes_to_time_str(660) == "11:00"
        assert DateService.minutes_to_time_str(1439) == "23:59"

    def test_day_range_is_midnight_to_midnight(self):
        start, end = DateService.get_day_range(MONDAY)

        assert start == datetime(2025, 3, 10, 0, 0)
        assert end == datetime(2025, 3, 11, 0, 0)

    def test_normalize_to_midnight(self):
        assert DateService.normalize_to_midnight(datetime(2025, 3, 10, 14, 5)) == datetime(2025, 3, 10)

    def test_month_key(self):
        assert DateService.month_key(date(2025, 1, 31)) == "2025-01"

    def test_today_uses_wall_clock(self):
        with patch('morningproof.services.date_service.datetime') as mock_dt:
            mock_dt.now.return_value = datetime(2026, 1, 30, 10, 0, 0)
            assert DateService.today() == date(2026, 1, 30)
