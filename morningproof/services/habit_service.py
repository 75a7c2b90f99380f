"""
Habit and daily log service.
Handles the habit registry, user-created habits, active-day schedules, lazy
daily logs, habit completions and the morning score / perfect-morning flag.
"""
import logging
from datetime import datetime, date
from typing import List, Optional
from sqlalchemy.orm import Session

from morningproof.models import DailyLog, HabitCompletion, HabitConfig, CustomHabit, Settings
from morningproof.schemas import (
    HabitCatalogEntry, HabitConfigUpdate, BedVerificationRequest,
    CustomHabitCreate, CustomHabitUpdate, CustomVerificationRequest
)
from morningproof.repositories.habit_repository import HabitConfigRepository, CustomHabitRepository
from morningproof.repositories.log_repository import DailyLogRepository
from morningproof.repositories.settings_repository import SettingsRepository
from morningproof.services.date_service import DateService
from morningproof.exceptions import (
    HabitNotFoundException, HabitNotEnabledException, VerificationFailedException,
    ValidationException
)
from morningproof.constants import (
    HabitType, HABIT_CATALOG, TIER_AI_VERIFIED, TIER_HONOR_SYSTEM, FULL_SCORE, AI_SCORE_SCALE,
    MIN_JOURNAL_LENGTH, CUSTOM_HABIT_PREFIX, DAYS_PER_WEEK
)

logger = logging.getLogger("morningproof.habits")

# Catalog habits whose entry is scored against a numeric goal
GOAL_TRACKED = {
    HabitType.SLEEP_DURATION.value: "sleep_hours",
    HabitType.MORNING_STEPS.value: "step_count",
}


class HabitService:
    """Service for habits and daily logs"""

    def __init__(self, db: Session):
        self.db = db
        self.config_repo = HabitConfigRepository()
        self.custom_repo = CustomHabitRepository()
        self.log_repo = DailyLogRepository()
        self.settings_repo = SettingsRepository()
        self.date_service = DateService()

    # --- Registry ---

    @staticmethod
    def parse_habit_type(value) -> HabitType:
        try:
            return HabitType(value)
        except ValueError:
            raise HabitNotFoundException(str(value))

    @staticmethod
    def catalog_entry(habit_type) -> dict:
        return HABIT_CATALOG[HabitService.parse_habit_type(habit_type)]

    @staticmethod
    def get_catalog() -> List[HabitCatalogEntry]:
        """Immutable catalog of every habit type, in display order"""
        return [
            HabitCatalogEntry(
                habit_type=habit_type,
                display_name=entry["display_name"],
                icon=entry["icon"],
                tier=entry["tier"],
                default_goal=entry["default_goal"],
                requires_hold_to_confirm=entry.get("requires_hold_to_confirm", False),
                requires_text_entry=entry.get("requires_text_entry", False),
                minimum_text_length=entry.get("minimum_text_length", 0),
            )
            for habit_type, entry in HABIT_CATALOG.items()
        ]

    def resolve_habit_key(self, value) -> str:
        """Log key for a catalog habit type or a custom_<id> key"""
        if isinstance(value, str) and value.startswith(CUSTOM_HABIT_PREFIX):
            suffix = value[len(CUSTOM_HABIT_PREFIX):]
            if not suffix.isdigit():
                raise HabitNotFoundException(value)
            return self.get_custom_habit(int(suffix)).habit_key
        return self.parse_habit_type(value).value

    def get_configs(self) -> List[HabitConfig]:
        return self.config_repo.get_all(self.db)

    def get_enabled_configs(self) -> List[HabitConfig]:
        return self.config_repo.get_enabled(self.db)

    def get_config(self, habit_type) -> HabitConfig:
        habit_type = self.parse_habit_type(habit_type)
        config = self.config_repo.get_by_type(self.db, habit_type.value)
        if not config:
            raise HabitNotFoundException(habit_type.value)
        return config

    def update_habit_config(self, habit_type, update: HabitConfigUpdate, day: Optional[date] = None) -> HabitConfig:
        """
        Update a habit config.

        Enabling, disabling or rescheduling a habit adds or removes its entry
        in the day's log (today by default). A new goal re-scores the day's
        tracked value against it.
        """
        config = self.get_config(habit_type)
        update_data = update.model_dump(exclude_unset=True)
        if update_data.get("active_days") is not None:
            update_data["active_days"] = self.validate_active_days(update_data["active_days"])
        goal_changed = update_data.get("goal") is not None and update_data["goal"] != config.goal
        for key, value in update_data.items():
            if value is not None:
                setattr(config, key, value)
        config = self.config_repo.update(self.db, config)

        log = self.log_repo.get_by_date(self.db, day or self.date_service.today())
        if log:
            self.sync_log_entries(log)
            if goal_changed:
                self._rescore_goal_entry(log, config)
            self.recalculate(log)

        logger.info(f"Habit config updated: {config.habit_type} {update_data}")
        return config

    # --- Schedules ---

    @staticmethod
    def validate_active_days(days) -> List[int]:
        """Sorted, de-duplicated weekday indexes (0 = Sunday)"""
        if not days or any(
            isinstance(day, bool) or not isinstance(day, int) or not 0 <= day < DAYS_PER_WEEK
            for day in days
        ):
            raise ValidationException("active_days", f"expected weekday indexes 0-6 (0 = Sunday), got {days!r}")
        return sorted(set(days))

    def scheduled_habits(self, day: date) -> List[tuple]:
        """(log key, name, icon) for every enabled habit due on the day, catalog habits first"""
        habits = []
        for config in self.get_enabled_configs():
            if config.is_active_on(day):
                entry = self.catalog_entry(config.habit_type)
                habits.append((config.habit_type, entry["display_name"], entry["icon"]))
        for custom in self.custom_repo.get_enabled(self.db):
            if custom.is_active_on(day):
                habits.append((custom.habit_key, custom.name, custom.icon))
        return habits

    def scheduled_habit_types(self, day: date) -> List[str]:
        return [key for key, _, _ in self.scheduled_habits(day)]

    def sync_log_entries(self, log: DailyLog) -> None:
        """Add entries for habits now due on the log's day and drop entries no longer due"""
        scheduled = self.scheduled_habit_types(log.date)
        for key in scheduled:
            if log.get_completion(key) is None:
                log.completions.append(HabitCompletion(habit_type=key, date=log.date))
        for completion in list(log.completions):
            if completion.habit_type not in scheduled:
                log.completions.remove(completion)

    def _sync_open_log(self, day: Optional[date]) -> None:
        log = self.log_repo.get_by_date(self.db, day or self.date_service.today())
        if log:
            self.sync_log_entries(log)
            self.recalculate(log)

    # --- Custom habits ---

    def get_custom_habits(self) -> List[CustomHabit]:
        return self.custom_repo.get_all(self.db)

    def get_custom_habit(self, habit_id: int) -> CustomHabit:
        habit = self.custom_repo.get_by_id(self.db, habit_id)
        if not habit:
            raise HabitNotFoundException(f"{CUSTOM_HABIT_PREFIX}{habit_id}")
        return habit

    def create_custom_habit(self, data: CustomHabitCreate, day: Optional[date] = None) -> CustomHabit:
        """Create a user habit; it joins the day's open log when due that day"""
        name = data.name.strip()
        if not name:
            raise ValidationException("name", "must not be blank")
        habit = CustomHabit(
            name=name,
            icon=data.icon,
            verification_type=data.verification_type,
            ai_prompt=(data.ai_prompt or "").strip() or None,
            is_enabled=data.is_enabled,
            display_order=self.custom_repo.next_display_order(self.db),
        )
        habit.active_days = self.validate_active_days(data.active_days)
        habit = self.custom_repo.create(self.db, habit)
        self._sync_open_log(day)
        logger.info(f"Custom habit created: {habit.habit_key} '{habit.name}' ({habit.verification_type})")
        return habit

    def update_custom_habit(self, habit_id: int, update: CustomHabitUpdate, day: Optional[date] = None) -> CustomHabit:
        habit = self.get_custom_habit(habit_id)
        update_data = update.model_dump(exclude_unset=True)
        if update_data.get("active_days") is not None:
            update_data["active_days"] = self.validate_active_days(update_data["active_days"])
        if update_data.get("name") is not None:
            update_data["name"] = update_data["name"].strip()
            if not update_data["name"]:
                raise ValidationException("name", "must not be blank")
        for key, value in update_data.items():
            if value is not None:
                setattr(habit, key, value)
        habit = self.custom_repo.update(self.db, habit)
        self._sync_open_log(day)
        logger.info(f"Custom habit updated: {habit.habit_key} {sorted(update_data)}")
        return habit

    def complete_custom_habit(self, habit_id: int, completed_at: Optional[datetime] = None, day: Optional[date] = None) -> DailyLog:
        """
        Mark an honor-system custom habit completed with a full score.

        Raises:
            HabitNotFoundException: no custom habit with that id
            HabitNotEnabledException: habit has no entry in the day's log
            ValidationException: habit is photo-verified
        """
        habit = self.get_custom_habit(habit_id)
        if habit.verification_type == TIER_AI_VERIFIED:
            raise ValidationException(habit.habit_key, "requires photo verification")

        log = self.get_or_create_log(self._resolve_day(day, completed_at))
        completion = self._completion_for(log, habit.habit_key)
        completion.is_completed = True
        completion.score = FULL_SCORE
        completion.completed_at = completed_at or datetime.now()
        return self.recalculate(log)

    def complete_custom_verification(self, habit_id: int, result: CustomVerificationRequest, day: Optional[date] = None) -> DailyLog:
        """Apply an AI photo check of a custom habit; a failed check raises like an unmade bed"""
        habit = self.get_custom_habit(habit_id)
        if habit.verification_type != TIER_AI_VERIFIED:
            raise ValidationException(habit.habit_key, f"is verified by {TIER_HONOR_SYSTEM}")

        log = self.get_or_create_log(self._resolve_day(day, result.completed_at))
        completion = self._completion_for(log, habit.habit_key)

        if not result.is_verified:
            logger.info(f"Verification rejected for {habit.habit_key}")
            raise VerificationFailedException(habit.habit_key, result.feedback)

        completion.is_completed = True
        completion.score = FULL_SCORE
        completion.completed_at = result.completed_at or datetime.now()
        completion.photo_url = result.photo_url
        completion.ai_feedback = result.feedback
        return self.recalculate(log)

    # --- Daily logs ---

    def get_log(self, day: date) -> Optional[DailyLog]:
        return self.log_repo.get_by_date(self.db, day)

    def get_or_create_log(self, day: Optional[date] = None) -> DailyLog:
        """Get the day's log, creating it with one entry per habit due that day"""
        day = day or self.date_service.today()
        log = self.log_repo.get_by_date(self.db, day)
        if log:
            return log

        log = DailyLog(date=day, morning_score=0, all_completed_before_cutoff=False)
        for key in self.scheduled_habit_types(day):
            log.completions.append(HabitCompletion(habit_type=key, date=day))
        log = self.log_repo.create(self.db, log)
        logger.info(f"Created daily log for {day} with {len(log.completions)} habit(s)")
        return log

    def get_history(self, days: int = 30, from_date: Optional[date] = None) -> List[DailyLog]:
        return self.log_repo.get_history(self.db, days, from_date or self.date_service.today())

    # --- Completions ---

    def _completion_for(self, log: DailyLog, habit_key: str) -> HabitCompletion:
        completion = log.get_completion(habit_key)
        if completion is None:
            raise HabitNotEnabledException(habit_key)
        return completion

    def _resolve_day(self, day: Optional[date], completed_at: Optional[datetime]) -> date:
        if day:
            return day
        if completed_at:
            return completed_at.date()
        return self.date_service.today()

    def complete_habit(self, habit_type, completed_at: Optional[datetime] = None, day: Optional[date] = None) -> DailyLog:
        """
        Mark an honor-system habit completed with a full score.

        Raises:
            HabitNotFoundException: unknown habit type
            HabitNotEnabledException: habit has no entry in the day's log
            ValidationException: habit needs photo verification or a text entry
        """
        habit_type = self.parse_habit_type(habit_type)
        entry = HABIT_CATALOG[habit_type]
        if entry["tier"] == TIER_AI_VERIFIED:
            raise ValidationException(habit_type.value, "requires photo verification")
        if entry.get("requires_text_entry"):
            raise ValidationException(habit_type.value, "requires a text entry")

        log = self.get_or_create_log(self._resolve_day(day, completed_at))
        completion = self._completion_for(log, habit_type.value)
        completion.is_completed = True
        completion.score = FULL_SCORE
        completion.completed_at = completed_at or datetime.now()
        return self.recalculate(log)

    def complete_bed_verification(self, result: BedVerificationRequest, day: Optional[date] = None) -> DailyLog:
        """
        Apply an AI bed-photo verification result.

        A bed judged not made leaves the log untouched and raises so the
        client can prompt a retake.
        """
        log = self.get_or_create_log(self._resolve_day(day, result.completed_at))
        completion = self._completion_for(log, HabitType.MADE_BED.value)

        if not result.is_made:
            logger.info(f"Bed verification rejected (score {result.score})")
            raise VerificationFailedException(HabitType.MADE_BED.value, result.feedback)

        completion.is_completed = True
        completion.score = min(FULL_SCORE, result.score * AI_SCORE_SCALE)
        completion.completed_at = result.completed_at or datetime.now()
        completion.photo_url = result.photo_url
        completion.ai_score = result.score
        completion.ai_feedback = result.feedback
        return self.recalculate(log)

    def complete_journaling(self, text: str, completed_at: Optional[datetime] = None, day: Optional[date] = None) -> DailyLog:
        text = (text or "").strip()
        if len(text) < MIN_JOURNAL_LENGTH:
            raise ValidationException(
                "text", f"journal entry needs at least {MIN_JOURNAL_LENGTH} characters"
            )

        log = self.get_or_create_log(self._resolve_day(day, completed_at))
        completion = self._completion_for(log, HabitType.JOURNALING.value)
        completion.is_completed = True
        completion.score = FULL_SCORE
        completion.completed_at = completed_at or datetime.now()
        completion.text_entry = text
        return self.recalculate(log)

    def _apply_goal_progress(self, completion: HabitCompletion, value: float, goal: int, completed_at: Optional[datetime]) -> None:
        """Score as a percentage of goal; completed_at is stamped the first time the goal is met and cleared below it"""
        goal = max(goal or 1, 1)
        completion.score = min(FULL_SCORE, int(value * FULL_SCORE / goal))
        completion.is_completed = value >= goal
        if not completion.is_completed:
            completion.completed_at = None
        elif completion.completed_at is None:
            completion.completed_at = completed_at or datetime.now()

    def _rescore_goal_entry(self, log: DailyLog, config: HabitConfig) -> None:
        field = GOAL_TRACKED.get(config.habit_type)
        completion = log.get_completion(config.habit_type)
        if field is None or completion is None:
            return
        value = getattr(completion, field)
        if value is not None:
            self._apply_goal_progress(completion, value, config.goal, completion.completed_at)

    def update_sleep(self, hours: float, completed_at: Optional[datetime] = None, day: Optional[date] = None) -> DailyLog:
        if hours < 0:
            raise ValidationException("hours", "must not be negative")
        log = self.get_or_create_log(self._resolve_day(day, completed_at))
        completion = self._completion_for(log, HabitType.SLEEP_DURATION.value)
        completion.sleep_hours = hours
        self._apply_goal_progress(
            completion, hours, self.get_config(HabitType.SLEEP_DURATION).goal, completed_at
        )
        return self.recalculate(log)

    def update_steps(self, steps: int, completed_at: Optional[datetime] = None, day: Optional[date] = None) -> DailyLog:
        if steps < 0:
            raise ValidationException("steps", "must not be negative")
        log = self.get_or_create_log(self._resolve_day(day, completed_at))
        completion = self._completion_for(log, HabitType.MORNING_STEPS.value)
        completion.step_count = steps
        self._apply_goal_progress(
            completion, steps, self.get_config(HabitType.MORNING_STEPS).goal, completed_at
        )
        return self.recalculate(log)

    def undo_completion(self, habit_type, day: Optional[date] = None) -> DailyLog:
        """Corrective edit: put a catalog or custom habit back to not completed, dropping its evidence"""
        habit_key = self.resolve_habit_key(habit_type)
        log = self.get_or_create_log(day)
        completion = self._completion_for(log, habit_key)
        completion.is_completed = False
        completion.score = 0
        completion.completed_at = None
        completion.photo_url = None
        completion.ai_score = None
        completion.ai_feedback = None
        completion.step_count = None
        completion.sleep_hours = None
        completion.text_entry = None
        return self.recalculate(log)

    # --- Score ---

    @staticmethod
    def _completed_before(completion: Optional[HabitCompletion], deadline: datetime) -> bool:
        if completion is None or not completion.is_completed or completion.completed_at is None:
            return False
        return completion.completed_at <= deadline

    def evaluate_log(self, log: DailyLog, scheduled: List[str], settings: Settings) -> tuple[int, bool]:
        """
        Morning score and perfect-morning flag for a log.

        Args:
            scheduled: log keys of the habits due on the log's day

        Returns:
            (mean score of the scheduled habits' entries, whether every
            scheduled habit was completed at or before the day's deadline)
        """
        relevant = [c for c in log.completions if c.habit_type in scheduled]
        score = sum(c.score or 0 for c in relevant) // len(relevant) if relevant else 0

        if not scheduled:
            return score, False
        deadline = self.date_service.resolve_deadline(log.date, settings)
        perfect = all(
            self._completed_before(log.get_completion(habit_key), deadline)
            for habit_key in scheduled
        )
        return score, perfect

    def recalculate(self, log: DailyLog) -> DailyLog:
        """Recompute morning score and the perfect-morning flag, then commit"""
        settings = self.settings_repo.get(self.db)
        score, perfect = self.evaluate_log(log, self.scheduled_habit_types(log.date), settings)
        log.morning_score = score
        log.all_completed_before_cutoff = perfect
        return self.log_repo.update(self.db, log)

    def all_enabled_completed(self, log: DailyLog) -> bool:
        """Every habit due on the log's day is done, regardless of the deadline (lock-in condition)"""
        scheduled = self.scheduled_habit_types(log.date)
        if not scheduled:
            return False
        for habit_key in scheduled:
            completion = log.get_completion(habit_key)
            if completion is None or not completion.is_completed:
                return False
        return True

    def completed_count(self, log: DailyLog) -> int:
        scheduled = set(self.scheduled_habit_types(log.date))
        return sum(1 for c in log.completions if c.is_completed and c.habit_type in scheduled)
