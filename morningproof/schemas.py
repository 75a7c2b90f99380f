from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import List, Optional

from morningproof.constants import HabitType


# Habit schemas
class HabitCatalogEntry(BaseModel):
    habit_type: HabitType
    display_name: str
    icon: str
    tier: str
    default_goal: int
    requires_hold_to_confirm: bool = False
    requires_text_entry: bool = False
    minimum_text_length: int = 0


class HabitConfigUpdate(BaseModel):
    is_enabled: Optional[bool] = None
    goal: Optional[int] = Field(None, ge=1, le=100000)
    display_order: Optional[int] = Field(None, ge=0, le=100)
    active_days: Optional[List[int]] = Field(None, min_length=1, max_length=7)  # 0 = Sunday


class HabitConfigResponse(BaseModel):
    habit_type: HabitType
    is_enabled: bool
    goal: int
    display_order: int
    active_days: List[int] = []

    # Catalog metadata (populated by API)
    display_name: Optional[str] = None
    icon: Optional[str] = None
    tier: Optional[str] = None

    class Config:
        from_attributes = True


# Custom habit schemas
_VERIFICATION_TYPE = "^(honor_system|ai_verified)$"


class CustomHabitCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    icon: str = Field(default="star.fill", max_length=100)
    verification_type: str = Field(default="honor_system", pattern=_VERIFICATION_TYPE)
    ai_prompt: Optional[str] = Field(None, max_length=500)
    is_enabled: bool = True
    active_days: List[int] = Field(default=[0, 1, 2, 3, 4, 5, 6], min_length=1, max_length=7)


class CustomHabitUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    icon: Optional[str] = Field(None, max_length=100)
    verification_type: Optional[str] = Field(None, pattern=_VERIFICATION_TYPE)
    ai_prompt: Optional[str] = Field(None, max_length=500)
    is_enabled: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0, le=100)
    active_days: Optional[List[int]] = Field(None, min_length=1, max_length=7)


class CustomHabitResponse(BaseModel):
    id: int
    habit_key: str
    name: str
    icon: str
    verification_type: str
    ai_prompt: Optional[str] = None
    is_enabled: bool
    display_order: int
    active_days: List[int] = []
    created_at: datetime

    class Config:
        from_attributes = True


# Completion request payloads
class CompleteHabitRequest(BaseModel):
    completed_at: Optional[datetime] = None  # Defaults to now


class BedVerificationRequest(BaseModel):
    """Result of the external AI photo check"""
    is_made: bool
    score: int = Field(..., ge=1, le=10)
    feedback: str = Field(default="", max_length=1000)
    improvements: List[str] = []
    photo_url: Optional[str] = None
    completed_at: Optional[datetime] = None


class CustomVerificationRequest(BaseModel):
    """Result of the external AI photo check against the habit's own prompt"""
    is_verified: bool
    feedback: str = Field(default="", max_length=1000)
    photo_url: Optional[str] = None
    completed_at: Optional[datetime] = None


class JournalEntryRequest(BaseModel):
    text: str = Field(..., max_length=5000)
    completed_at: Optional[datetime] = None


class SleepUpdateRequest(BaseModel):
    hours: float = Field(..., ge=0, le=24)
    completed_at: Optional[datetime] = None


class StepsUpdateRequest(BaseModel):
    steps: int = Field(..., ge=0)
    completed_at: Optional[datetime] = None


# Daily log schemas
class HabitCompletionResponse(BaseModel):
    id: int
    habit_type: str  # catalog habit type or custom_<id>
    date: date
    is_completed: bool
    score: int
    completed_at: Optional[datetime] = None
    photo_url: Optional[str] = None
    ai_score: Optional[int] = None
    ai_feedback: Optional[str] = None
    step_count: Optional[int] = None
    sleep_hours: Optional[float] = None
    text_entry: Optional[str] = None

    class Config:
        from_attributes = True


class DailyLogResponse(BaseModel):
    id: int
    date: date
    morning_score: int
    all_completed_before_cutoff: bool
    created_at: datetime
    completions: List[HabitCompletionResponse] = []

    class Config:
        from_attributes = True


class TodayResponse(BaseModel):
    log: DailyLogResponse
    deadline: datetime
    is_past_deadline: bool
    seconds_until_deadline: int
    completed_count: int
    enabled_count: int
    is_day_locked_in: bool


class DeadlineResponse(BaseModel):
    date: date
    deadline_mode: int
    deadline_minutes: int
    deadline_time: str  # "HH:MM"
    deadline: datetime


# Streak schemas
class StreakEvaluation(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    broken_date: Optional[date] = None  # Missed day a recovery would repair
    streak_if_recovered: int = 0


class StreakStatusResponse(BaseModel):
    current_streak: int
    longest_streak: int
    total_perfect_mornings: int
    last_perfect_morning_date: Optional[date] = None
    recoverable: bool = False
    broken_date: Optional[date] = None
    streak_if_recovered: int = 0
    recovery_tokens_available: int = 0


class StreakRecordResponse(BaseModel):
    id: int
    date: date
    was_completed: bool
    was_recovered: bool

    class Config:
        from_attributes = True


class FinalizeResponse(BaseModel):
    finalized: List[StreakRecordResponse]
    streak: StreakStatusResponse


# Settings schemas
_MINUTES = dict(ge=0, lt=1440)


class SettingsBase(BaseModel):
    user_name: str = Field(default="", max_length=100)
    wake_time_minutes: int = Field(default=420, **_MINUTES)

    # Deadline policy
    morning_cutoff_minutes: int = Field(default=540, **_MINUTES)
    deadline_mode: int = Field(default=0, ge=0, le=2)  # 0 same, 1 weekday/weekend, 2 each day
    weekday_deadline_minutes: int = Field(default=540, **_MINUTES)
    weekend_deadline_minutes: int = Field(default=660, **_MINUTES)
    per_day_deadlines: List[int] = Field(default=[540] * 7, min_length=7, max_length=7)  # index 0 = Sunday

    # Notifications
    notifications_enabled: bool = True
    morning_reminder_minutes: int = Field(default=420, **_MINUTES)
    warning_minutes: List[int] = [15, 5, 1]

    # App locking
    app_locking_enabled: bool = False
    locked_app_ids: List[str] = []
    blocking_start_minutes: int = Field(default=0, **_MINUTES)
    lock_grace_period: int = Field(default=5, ge=0, le=60)

    # Accountability
    strict_mode_enabled: bool = False
    allow_streak_recovery: bool = True
    is_premium: bool = False
    weekly_perfect_mornings_goal: int = Field(default=5, ge=1, le=7)


class SettingsUpdate(BaseModel):
    user_name: Optional[str] = Field(None, max_length=100)
    wake_time_minutes: Optional[int] = Field(None, **_MINUTES)

    morning_cutoff_minutes: Optional[int] = Field(None, **_MINUTES)
    deadline_mode: Optional[int] = Field(None, ge=0, le=2)
    weekday_deadline_minutes: Optional[int] = Field(None, **_MINUTES)
    weekend_deadline_minutes: Optional[int] = Field(None, **_MINUTES)
    per_day_deadlines: Optional[List[int]] = Field(None, min_length=7, max_length=7)

    notifications_enabled: Optional[bool] = None
    morning_reminder_minutes: Optional[int] = Field(None, **_MINUTES)
    warning_minutes: Optional[List[int]] = None

    app_locking_enabled: Optional[bool] = None
    locked_app_ids: Optional[List[str]] = None
    blocking_start_minutes: Optional[int] = Field(None, **_MINUTES)
    lock_grace_period: Optional[int] = Field(None, ge=0, le=60)

    strict_mode_enabled: Optional[bool] = None
    allow_streak_recovery: Optional[bool] = None
    is_premium: Optional[bool] = None
    weekly_perfect_mornings_goal: Optional[int] = Field(None, ge=1, le=7)


class SettingsResponse(SettingsBase):
    id: int
    custom_deadlines_enabled: bool  # Legacy view over deadline_mode
    current_streak: int = 0
    longest_streak: int = 0
    total_perfect_mornings: int = 0
    last_perfect_morning_date: Optional[date] = None
    emergency_unlock_date: Optional[date] = None
    recoveries_used_this_month: int = 0
    purchased_recovery_tokens: int = 0
    install_date: Optional[date] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecoveryTokenPurchase(BaseModel):
    count: int = Field(default=1, ge=1, le=10)


# Achievement schemas
class AchievementResponse(BaseModel):
    id: str
    title: str
    description: str
    icon: str
    category: str
    requirement: int
    is_hidden: bool = False
    is_unlocked: bool = False
    unlocked_date: Optional[datetime] = None


class AchievementProgressResponse(BaseModel):
    unlocked: int
    total: int
    newly_unlocked: List[str] = []


# Widget schemas
class WidgetHabitStatus(BaseModel):
    name: str
    icon: str
    is_completed: bool


class WidgetDataResponse(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    completed_habits: int = 0
    total_habits: int = 0
    cutoff_time: Optional[datetime] = None
    last_perfect_morning: Optional[date] = None
    habit_statuses: List[WidgetHabitStatus] = []
    last_updated: Optional[datetime] = None
    is_placeholder: bool = False


# App lock schemas
class AppLockStatusResponse(BaseModel):
    is_enabled: bool
    locked_app_ids: List[str] = []
    blocking_start_minutes: int = 0
    is_day_locked_in: bool = False
    last_lock_in_date: Optional[date] = None
    was_emergency_unlock: bool = False
    should_apply_shields: bool = False


# Notification schemas
class PlannedNotification(BaseModel):
    identifier: str
    title: str
    body: str
    fire_at: datetime
