"""
Application constants and habit catalog.
"""
import os
from enum import Enum


# Environment configuration
DATABASE_URL = os.getenv("MORNINGPROOF_DATABASE_URL", "sqlite:///./morningproof.db")
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/morningproof"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"
DEFAULT_SHARED_DIRECTORY = "./shared"
SHARED_STORE_FILENAME = "shared_defaults.json"
API_KEY = os.getenv("MORNINGPROOF_API_KEY", "your-secret-key-change-me")
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "MORNINGPROOF_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    if origin.strip()
]

# Day arithmetic
MINUTES_PER_DAY = 1440
DAYS_PER_WEEK = 7

# Deadline customization modes
DEADLINE_MODE_SAME_EVERY_DAY = 0
DEADLINE_MODE_WEEKDAY_WEEKEND = 1
DEADLINE_MODE_EACH_DAY = 2
DEADLINE_MODES = (
    DEADLINE_MODE_SAME_EVERY_DAY,
    DEADLINE_MODE_WEEKDAY_WEEKEND,
    DEADLINE_MODE_EACH_DAY,
)

# Deadline defaults (minutes from midnight)
DEFAULT_CUTOFF_MINUTES = 540        # 9:00
DEFAULT_WEEKDAY_DEADLINE = 540      # 9:00
DEFAULT_WEEKEND_DEADLINE = 660      # 11:00
DEFAULT_MORNING_REMINDER = 420      # 7:00
DEFAULT_COUNTDOWN_WARNINGS = [15, 5, 1]

# Weekday index used by per-day deadlines: 0 = Sunday ... 6 = Saturday
WEEKEND_INDEXES = (0, 6)
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# Streak recovery allowance per calendar month
FREE_STREAK_RECOVERIES_PER_MONTH = 0
PREMIUM_STREAK_RECOVERIES_PER_MONTH = 1

# Habit scoring
FULL_SCORE = 100
AI_SCORE_SCALE = 10                 # AI returns 1-10, stored as percentage
MIN_JOURNAL_LENGTH = 10

# Widget refresh cadence (minutes)
WIDGET_REFRESH_MINUTES = 15

# Notification identifiers
NOTIFICATION_MORNING_REMINDER = "morning_reminder"
NOTIFICATION_CUTOFF_PASSED = "cutoff_passed"


class HabitType(str, Enum):
    MADE_BED = "made_bed"
    MORNING_STEPS = "morning_steps"
    SLEEP_DURATION = "sleep_duration"
    DRANK_WATER = "drank_water"
    MORNING_STRETCH = "morning_stretch"
    NO_SNOOZE = "no_snooze"
    JOURNALING = "journaling"
    MEDITATION = "meditation"
    BREAKFAST = "breakfast"


# Verification tiers
TIER_AI_VERIFIED = "ai_verified"
TIER_AUTO_TRACKED = "auto_tracked"
TIER_HONOR_SYSTEM = "honor_system"


# Immutable reference data, in display order
HABIT_CATALOG = {
    HabitType.MADE_BED: {
        "display_name": "Made Bed",
        "icon": "bed.double.fill",
        "tier": TIER_AI_VERIFIED,
        "default_goal": 7,  # score out of 10
    },
    HabitType.MORNING_STEPS: {
        "display_name": "Morning Walk",
        "icon": "figure.walk",
        "tier": TIER_AUTO_TRACKED,
        "default_goal": 500,  # steps
    },
    HabitType.SLEEP_DURATION: {
        "display_name": "Sleep Goal",
        "icon": "moon.zzz.fill",
        "tier": TIER_AUTO_TRACKED,
        "default_goal": 7,  # hours
    },
    HabitType.DRANK_WATER: {
        "display_name": "Drank Water",
        "icon": "drop.fill",
        "tier": TIER_HONOR_SYSTEM,
        "default_goal": 1,
        "requires_hold_to_confirm": True,
    },
    HabitType.MORNING_STRETCH: {
        "display_name": "Morning Stretch",
        "icon": "figure.flexibility",
        "tier": TIER_HONOR_SYSTEM,
        "default_goal": 1,
        "requires_hold_to_confirm": True,
    },
    HabitType.NO_SNOOZE: {
        "display_name": "No Snooze",
        "icon": "alarm.fill",
        "tier": TIER_HONOR_SYSTEM,
        "default_goal": 1,
    },
    HabitType.JOURNALING: {
        "display_name": "Journaling",
        "icon": "book.fill",
        "tier": TIER_HONOR_SYSTEM,
        "default_goal": 1,
        "requires_text_entry": True,
        "minimum_text_length": MIN_JOURNAL_LENGTH,
    },
    HabitType.MEDITATION: {
        "display_name": "Meditation",
        "icon": "brain.head.profile",
        "tier": TIER_HONOR_SYSTEM,
        "default_goal": 1,
    },
    HabitType.BREAKFAST: {
        "display_name": "Made Breakfast",
        "icon": "fork.knife",
        "tier": TIER_HONOR_SYSTEM,
        "default_goal": 1,
    },
}

DEFAULT_ENABLED_HABITS = (
    HabitType.MADE_BED,
    HabitType.MORNING_STEPS,
    HabitType.SLEEP_DURATION,
    HabitType.DRANK_WATER,
)

# Custom habits; log entries are keyed "custom_<id>"
CUSTOM_HABIT_PREFIX = "custom_"
DEFAULT_CUSTOM_HABIT_ICON = "star.fill"

# Active-day schedules, index 0 = Sunday
ALL_DAYS = list(range(DAYS_PER_WEEK))
