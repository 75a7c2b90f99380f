import json
from datetime import datetime, date

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Float, Date, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from morningproof.database import Base
from morningproof.constants import (
    DEFAULT_CUTOFF_MINUTES, DEFAULT_WEEKDAY_DEADLINE, DEFAULT_WEEKEND_DEADLINE,
    DEFAULT_MORNING_REMINDER, DEFAULT_COUNTDOWN_WARNINGS, DEADLINE_MODE_SAME_EVERY_DAY,
    DEADLINE_MODE_WEEKDAY_WEEKEND, DAYS_PER_WEEK, ALL_DAYS, CUSTOM_HABIT_PREFIX,
    DEFAULT_CUSTOM_HABIT_ICON, TIER_HONOR_SYSTEM,
)


def _load_json_list(raw, fallback):
    if not raw:
        return list(fallback)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return list(fallback)
    return value if isinstance(value, list) else list(fallback)


class Settings(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)

    # User info
    user_name = Column(String, default="")
    wake_time_minutes = Column(Integer, default=420)  # 7:00

    # Deadline policy (minutes from midnight)
    morning_cutoff_minutes = Column(Integer, default=DEFAULT_CUTOFF_MINUTES)
    deadline_mode = Column(Integer, default=DEADLINE_MODE_SAME_EVERY_DAY)  # 0 same, 1 weekday/weekend, 2 each day
    weekday_deadline_minutes = Column(Integer, default=DEFAULT_WEEKDAY_DEADLINE)
    weekend_deadline_minutes = Column(Integer, default=DEFAULT_WEEKEND_DEADLINE)
    per_day_deadline_minutes = Column(
        String, default=json.dumps([DEFAULT_CUTOFF_MINUTES] * DAYS_PER_WEEK)
    )  # JSON array, index 0 = Sunday

    # Notifications
    notifications_enabled = Column(Boolean, default=True)
    morning_reminder_minutes = Column(Integer, default=DEFAULT_MORNING_REMINDER)
    countdown_warnings = Column(String, default=json.dumps(DEFAULT_COUNTDOWN_WARNINGS))  # JSON array of minutes

    # Streak counters
    current_streak = Column(Integer, default=0)
    longest_streak = Column(Integer, default=0)
    total_perfect_mornings = Column(Integer, default=0)
    last_perfect_morning_date = Column(Date, nullable=True)

    # App locking
    app_locking_enabled = Column(Boolean, default=False)
    locked_apps = Column(String, default="[]")  # JSON array of app identifiers
    blocking_start_minutes = Column(Integer, default=0)  # 0 = not configured
    lock_grace_period = Column(Integer, default=5)
    emergency_unlock_date = Column(Date, nullable=True)  # Day the user bypassed the shields

    # Accountability
    strict_mode_enabled = Column(Boolean, default=False)
    allow_streak_recovery = Column(Boolean, default=True)

    # Subscription tier and recovery allowance
    is_premium = Column(Boolean, default=False)
    recoveries_used_this_month = Column(Integer, default=0)
    recoveries_month = Column(String, nullable=True)  # "YYYY-MM" the counter belongs to
    purchased_recovery_tokens = Column(Integer, default=0)

    # Goals
    weekly_perfect_mornings_goal = Column(Integer, default=5)

    install_date = Column(Date, default=date.today)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def custom_deadlines_enabled(self) -> bool:
        """Legacy view over deadline_mode: true only for weekday/weekend mode"""
        return self.deadline_mode == DEADLINE_MODE_WEEKDAY_WEEKEND

    @property
    def per_day_deadlines(self) -> list:
        return _load_json_list(self.per_day_deadline_minutes, [DEFAULT_CUTOFF_MINUTES] * DAYS_PER_WEEK)

    @per_day_deadlines.setter
    def per_day_deadlines(self, value: list) -> None:
        self.per_day_deadline_minutes = json.dumps(list(value))

    @property
    def warning_minutes(self) -> list:
        return _load_json_list(self.countdown_warnings, DEFAULT_COUNTDOWN_WARNINGS)

    @warning_minutes.setter
    def warning_minutes(self, value: list) -> None:
        self.countdown_warnings = json.dumps(list(value))

    @property
    def locked_app_ids(self) -> list:
        return _load_json_list(self.locked_apps, [])

    @locked_app_ids.setter
    def locked_app_ids(self, value: list) -> None:
        self.locked_apps = json.dumps(list(value))


class ScheduleMixin:
    """Weekdays a habit is due on, index 0 = Sunday"""

    schedule_days = Column(String, default=json.dumps(ALL_DAYS))  # JSON array

    @property
    def active_days(self) -> list:
        return _load_json_list(self.schedule_days, ALL_DAYS)

    @active_days.setter
    def active_days(self, value: list) -> None:
        self.schedule_days = json.dumps(sorted(set(value)))

    def is_active_on(self, day: date) -> bool:
        return (day.weekday() + 1) % DAYS_PER_WEEK in self.active_days


class HabitConfig(ScheduleMixin, Base):
    __tablename__ = "habit_configs"

    habit_type = Column(String, primary_key=True)
    is_enabled = Column(Boolean, default=True)
    goal = Column(Integer, nullable=False)
    display_order = Column(Integer, default=0)


class CustomHabit(ScheduleMixin, Base):
    __tablename__ = "custom_habits"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    icon = Column(String, default=DEFAULT_CUSTOM_HABIT_ICON)
    verification_type = Column(String, default=TIER_HONOR_SYSTEM)  # honor_system or ai_verified
    ai_prompt = Column(String, nullable=True)  # What the photo check should look for
    is_enabled = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.now)

    @property
    def habit_key(self) -> str:
        """Key of this habit's entries in daily logs"""
        return f"{CUSTOM_HABIT_PREFIX}{self.id}"


class DailyLog(Base):
    __tablename__ = "daily_logs"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    morning_score = Column(Integer, default=0)  # 0-100
    all_completed_before_cutoff = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)

    completions = relationship(
        "HabitCompletion",
        back_populates="daily_log",
        cascade="all, delete-orphan",
        order_by="HabitCompletion.id",
    )

    def get_completion(self, habit_type: str):
        for completion in self.completions:
            if completion.habit_type == habit_type:
                return completion
        return None


class HabitCompletion(Base):
    __tablename__ = "habit_completions"
    __table_args__ = (UniqueConstraint("daily_log_id", "habit_type", name="uq_log_habit"),)

    id = Column(Integer, primary_key=True, index=True)
    daily_log_id = Column(Integer, ForeignKey("daily_logs.id"), nullable=False, index=True)
    habit_type = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    is_completed = Column(Boolean, default=False)
    score = Column(Integer, default=0)  # 0-100, percentage of goal achieved
    completed_at = Column(DateTime, nullable=True)

    # Verification payload (flattened)
    photo_url = Column(String, nullable=True)
    ai_score = Column(Integer, nullable=True)
    ai_feedback = Column(String, nullable=True)
    step_count = Column(Integer, nullable=True)
    sleep_hours = Column(Float, nullable=True)
    text_entry = Column(String, nullable=True)

    daily_log = relationship("DailyLog", back_populates="completions")


class StreakRecord(Base):
    __tablename__ = "streak_records"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    was_completed = Column(Boolean, default=True)
    was_recovered = Column(Boolean, default=False)  # Missed day repaired by a recovery token
    created_at = Column(DateTime, default=datetime.now)


class UnlockedAchievement(Base):
    __tablename__ = "unlocked_achievements"

    achievement_id = Column(String, primary_key=True)
    unlocked_date = Column(DateTime, default=datetime.now)
