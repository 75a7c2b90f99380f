"""
Date calculation and deadline resolution service.
Handles calendar-day normalization and per-day cutoff (deadline) policy.
"""
from datetime import datetime, timedelta, date, time
from typing import Optional

from morningproof.models import Settings
from morningproof.constants import (
    MINUTES_PER_DAY, DAYS_PER_WEEK, WEEKEND_INDEXES,
    DEADLINE_MODE_SAME_EVERY_DAY, DEADLINE_MODE_WEEKDAY_WEEKEND, DEADLINE_MODE_EACH_DAY,
)
from morningproof.exceptions import InvalidDeadlineException, InvalidTimeFormatException


class DateService:
    """Service for date-related operations"""

    @staticmethod
    def today() -> date:
        return datetime.now().date()

    @staticmethod
    def weekday_index(target_date: date) -> int:
        """
        Weekday index used by per-day deadlines.

        Python's weekday() is Monday=0; deadlines are indexed Sunday=0 ... Saturday=6.
        """
        return (target_date.weekday() + 1) % DAYS_PER_WEEK

    @staticmethod
    def is_weekend(target_date: date) -> bool:
        return DateService.weekday_index(target_date) in WEEKEND_INDEXES

    @staticmethod
    def validate_minutes(minutes, field: str = "deadline") -> int:
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            raise InvalidDeadlineException(f"{field} must be an integer, got {minutes!r}")
        if not 0 <= minutes < MINUTES_PER_DAY:
            raise InvalidDeadlineException(
                f"{field} must be within [0, {MINUTES_PER_DAY}), got {minutes}"
            )
        return minutes

    @staticmethod
    def resolve_deadline_minutes(target_date: date, settings: Settings) -> int:
        """
        Resolve the cutoff for a calendar date as minutes from midnight.

        Mode 0 uses morning_cutoff_minutes for every date.
        Mode 1 uses weekend_deadline_minutes on Saturday/Sunday and
        weekday_deadline_minutes otherwise.
        Mode 2 indexes per_day_deadline_minutes by weekday (0 = Sunday).

        Raises:
            InvalidDeadlineException: unknown mode or out-of-range value
        """
        mode = settings.deadline_mode
        if mode is None:
            mode = DEADLINE_MODE_SAME_EVERY_DAY

        if mode == DEADLINE_MODE_SAME_EVERY_DAY:
            return DateService.validate_minutes(settings.morning_cutoff_minutes, "morning_cutoff_minutes")

        if mode == DEADLINE_MODE_WEEKDAY_WEEKEND:
            if DateService.is_weekend(target_date):
                return DateService.validate_minutes(settings.weekend_deadline_minutes, "weekend_deadline_minutes")
            return DateService.validate_minutes(settings.weekday_deadline_minutes, "weekday_deadline_minutes")

        if mode == DEADLINE_MODE_EACH_DAY:
            per_day = settings.per_day_deadlines
            if len(per_day) != DAYS_PER_WEEK:
                raise InvalidDeadlineException(
                    f"per_day_deadline_minutes must have {DAYS_PER_WEEK} entries, got {len(per_day)}"
                )
            index = DateService.weekday_index(target_date)
            return DateService.validate_minutes(per_day[index], f"per_day_deadline_minutes[{index}]")

        raise InvalidDeadlineException(f"unknown deadline mode {mode}")

    @staticmethod
    def resolve_deadline(target_date: date, settings: Settings) -> datetime:
        """Absolute cutoff instant for a calendar date"""
        minutes = DateService.resolve_deadline_minutes(target_date, settings)
        return datetime.combine(target_date, time(hour=minutes // 60, minute=minutes % 60))

    @staticmethod
    def is_past_deadline(settings: Settings, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return now > DateService.resolve_deadline(now.date(), settings)

    @staticmethod
    def time_until_deadline(settings: Settings, now: Optional[datetime] = None) -> timedelta:
        """Time left until today's cutoff (zero once it has passed)"""
        now = now or datetime.now()
        remaining = DateService.resolve_deadline(now.date(), settings) - now
        return max(remaining, timedelta(0))

    @staticmethod
    def parse_time(time_str: str) -> tuple[int, int]:
        """
        Parse time string into hour and minute.

        Args:
            time_str: Time string in "HH:MM" format

        Returns:
            Tuple of (hour, minute)

        Raises:
            InvalidTimeFormatException: If time string is invalid
        """
        try:
            hour_str, minute_str = time_str.split(":")
            hour, minute = int(hour_str), int(minute_str)
        except (ValueError, AttributeError):
            raise InvalidTimeFormatException(str(time_str))
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise InvalidTimeFormatException(time_str)
        return hour, minute

    @staticmethod
    def time_str_to_minutes(time_str: str) -> int:
        hour, minute = DateService.parse_time(time_str)
        return hour * 60 + minute

    @staticmethod
    def minutes_to_time_str(minutes: int) -> str:
        DateService.validate_minutes(minutes, "minutes")
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @staticmethod
    def normalize_to_midnight(dt: datetime) -> datetime:
        """
        Normalize datetime to midnight (remove time component).

        Args:
            dt: Datetime to normalize

        Returns:
            Datetime set to midnight
        """
        return datetime.combine(dt.date(), datetime.min.time())

    @staticmethod
    def get_day_range(target_date: date) -> tuple[datetime, datetime]:
        """
        Get datetime range for a full day (midnight to midnight).

        Args:
            target_date: Date to get range for

        Returns:
            Tuple of (day_start, day_end) datetimes
        """
        day_start = datetime.combine(target_date, datetime.min.time())
        day_end = datetime.combine(target_date + timedelta(days=1), datetime.min.time())
        return day_start, day_end

    @staticmethod
    def month_key(target_date: date) -> str:
        return f"{target_date.year:04d}-{target_date.month:02d}"
