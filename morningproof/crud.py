"""
Orchestration layer used by the API routes and the scheduler.
Each mutation runs the day's follow-up steps: lock-in, perfect-morning
bookkeeping, achievements and the widget snapshot.
"""
import logging
from datetime import datetime, date, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from morningproof.models import (
    Settings, DailyLog, HabitCompletion, HabitConfig, CustomHabit, StreakRecord
)
from morningproof.schemas import (
    SettingsUpdate, HabitConfigUpdate, HabitConfigResponse, BedVerificationRequest,
    TodayResponse, DailyLogResponse, DeadlineResponse, StreakStatusResponse, StreakRecordResponse,
    FinalizeResponse, AchievementResponse, AchievementProgressResponse,
    WidgetDataResponse, AppLockStatusResponse, PlannedNotification, HabitCatalogEntry,
    CustomHabitCreate, CustomHabitUpdate, CustomVerificationRequest
)
from morningproof.repositories.settings_repository import SettingsRepository
from morningproof.repositories.habit_repository import HabitConfigRepository, CustomHabitRepository
from morningproof.repositories.log_repository import DailyLogRepository, HabitCompletionRepository
from morningproof.repositories.streak_repository import StreakRecordRepository, UnlockedAchievementRepository
from morningproof.services.date_service import DateService
from morningproof.services.habit_service import HabitService
from morningproof.services.streak_service import StreakService
from morningproof.services.achievement_service import AchievementService
from morningproof.services.widget_service import WidgetService
from morningproof.services.app_lock_service import AppLockService
from morningproof.services.notification_service import NotificationService
from morningproof.shared_store import SharedStore
from morningproof.exceptions import (
    LogNotFoundException, HabitNotEnabledException, ValidationException,
    InvalidDeadlineException, DatabaseException
)
from morningproof.constants import HABIT_CATALOG, MINUTES_PER_DAY, DAYS_PER_WEEK

logger = logging.getLogger("morningproof.crud")


# ===== SETTINGS =====

def get_settings(db: Session) -> Settings:
    return SettingsRepository.get(db)


def _validate_settings(settings: Settings) -> None:
    """Every weekday must resolve to a valid deadline"""
    start = date.today()
    for offset in range(DAYS_PER_WEEK):
        DateService.resolve_deadline_minutes(start + timedelta(days=offset), settings)
    for warning in settings.warning_minutes:
        if isinstance(warning, bool) or not isinstance(warning, int) or not 0 < warning < MINUTES_PER_DAY:
            raise ValidationException("warning_minutes", f"{warning!r} is not a minute count in (0, {MINUTES_PER_DAY})")


def update_settings(db: Session, settings_update: SettingsUpdate, now: Optional[datetime] = None) -> Settings:
    """
    Apply a partial settings update.

    Deadline changes re-evaluate today's perfect-morning flag.

    Raises:
        InvalidDeadlineException: deadline values that cannot be resolved
        ValidationException: malformed countdown warnings
    """
    settings = get_settings(db)
    update_data = settings_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if value is not None:
            setattr(settings, key, value)

    try:
        _validate_settings(settings)
    except (InvalidDeadlineException, ValidationException):
        db.rollback()
        raise

    settings = SettingsRepository.save(db, settings)
    logger.info(f"Settings updated: {sorted(update_data)}")

    now = now or datetime.now()
    _sync_app_lock(db, settings, now)
    log = DailyLogRepository.get_by_date(db, now.date())
    if log:
        log = HabitService(db).recalculate(log)
        _after_log_change(db, log, now)
    return settings


def get_deadline(db: Session, target_date: date) -> DeadlineResponse:
    settings = get_settings(db)
    minutes = DateService.resolve_deadline_minutes(target_date, settings)
    return DeadlineResponse(
        date=target_date,
        deadline_mode=settings.deadline_mode,
        deadline_minutes=minutes,
        deadline_time=DateService.minutes_to_time_str(minutes),
        deadline=DateService.resolve_deadline(target_date, settings),
    )


# ===== HABITS =====

def get_habit_catalog() -> List[HabitCatalogEntry]:
    return HabitService.get_catalog()


def _config_response(config: HabitConfig) -> HabitConfigResponse:
    entry = HABIT_CATALOG[HabitService.parse_habit_type(config.habit_type)]
    response = HabitConfigResponse.model_validate(config)
    response.display_name = entry["display_name"]
    response.icon = entry["icon"]
    response.tier = entry["tier"]
    return response


def get_habit_configs(db: Session) -> List[HabitConfigResponse]:
    return [_config_response(config) for config in HabitService(db).get_configs()]


def _after_habit_change(db: Session, now: datetime) -> None:
    """Rerun the follow-up steps when a habit change reshaped today's log"""
    log = DailyLogRepository.get_by_date(db, now.date())
    if log:
        _after_log_change(db, log, now)


def update_habit_config(db: Session, habit_type: str, update: HabitConfigUpdate, now: Optional[datetime] = None) -> HabitConfigResponse:
    now = now or datetime.now()
    config = HabitService(db).update_habit_config(habit_type, update, now.date())
    _after_habit_change(db, now)
    return _config_response(config)


# ===== CUSTOM HABITS =====

def get_custom_habits(db: Session) -> List[CustomHabit]:
    return HabitService(db).get_custom_habits()


def create_custom_habit(db: Session, data: CustomHabitCreate, now: Optional[datetime] = None) -> CustomHabit:
    now = now or datetime.now()
    habit = HabitService(db).create_custom_habit(data, now.date())
    _after_habit_change(db, now)
    return habit


def update_custom_habit(db: Session, habit_id: int, update: CustomHabitUpdate, now: Optional[datetime] = None) -> CustomHabit:
    now = now or datetime.now()
    habit = HabitService(db).update_custom_habit(habit_id, update, now.date())
    _after_habit_change(db, now)
    return habit


def complete_custom_habit(db: Session, habit_id: int, completed_at: Optional[datetime] = None, now: Optional[datetime] = None) -> DailyLog:
    now = now or datetime.now()
    log = HabitService(db).complete_custom_habit(habit_id, completed_at or now, now.date())
    _after_log_change(db, log, now)
    return log


def complete_custom_verification(db: Session, habit_id: int, result: CustomVerificationRequest, now: Optional[datetime] = None) -> DailyLog:
    now = now or datetime.now()
    if result.completed_at is None:
        result = result.model_copy(update={"completed_at": now})
    log = HabitService(db).complete_custom_verification(habit_id, result, now.date())
    _after_log_change(db, log, now)
    return log


# ===== TODAY / COMPLETIONS =====

def _best_effort(action: str, func, *args, **kwargs):
    """Run a shared-store write; a failed write is logged and does not fail the caller"""
    try:
        return func(*args, **kwargs)
    except OSError as e:
        logger.error(f"Shared store {action} failed: {e}")
        return None


def _sync_app_lock(db: Session, settings: Settings, now: datetime) -> None:
    try:
        _best_effort("app lock sync", AppLockService(db).sync_settings, settings, now)
    except InvalidDeadlineException as e:
        logger.error(f"App lock settings not synced: {e}")


def _after_log_change(db: Session, log: DailyLog, now: Optional[datetime] = None) -> None:
    """Follow-up steps after today's log changed; past days are already finalized"""
    now = now or datetime.now()
    if log.date != now.date():
        return

    habit_service = HabitService(db)
    streak_service = StreakService(db)

    if habit_service.all_enabled_completed(log):
        _best_effort("lock-in", AppLockService(db).lock_in_day, now)

    if log.all_completed_before_cutoff:
        streak_service.record_perfect_morning(log.date)
    else:
        streak_service.revoke_perfect_morning(log.date)

    AchievementService(db).check_and_unlock(now)
    WidgetService(db).refresh(now)


def get_today(db: Session, now: Optional[datetime] = None) -> TodayResponse:
    now = now or datetime.now()
    settings = get_settings(db)
    habit_service = HabitService(db)
    log = habit_service.get_or_create_log(now.date())
    return TodayResponse(
        log=DailyLogResponse.model_validate(log),
        deadline=DateService.resolve_deadline(now.date(), settings),
        is_past_deadline=DateService.is_past_deadline(settings, now),
        seconds_until_deadline=int(DateService.time_until_deadline(settings, now).total_seconds()),
        completed_count=habit_service.completed_count(log),
        enabled_count=len(habit_service.scheduled_habit_types(now.date())),
        is_day_locked_in=AppLockService(db).has_locked_in_today(now),
    )


def complete_habit(db: Session, habit_type: str, completed_at: Optional[datetime] = None, now: Optional[datetime] = None) -> DailyLog:
    now = now or datetime.now()
    log = HabitService(db).complete_habit(habit_type, completed_at or now, now.date())
    _after_log_change(db, log, now)
    return log


def complete_bed_verification(db: Session, result: BedVerificationRequest, now: Optional[datetime] = None) -> DailyLog:
    now = now or datetime.now()
    if result.completed_at is None:
        result = result.model_copy(update={"completed_at": now})
    log = HabitService(db).complete_bed_verification(result, now.date())
    _after_log_change(db, log, now)
    return log


def complete_journaling(db: Session, text: str, completed_at: Optional[datetime] = None, now: Optional[datetime] = None) -> DailyLog:
    now = now or datetime.now()
    log = HabitService(db).complete_journaling(text, completed_at or now, now.date())
    _after_log_change(db, log, now)
    return log


def update_sleep(db: Session, hours: float, completed_at: Optional[datetime] = None, now: Optional[datetime] = None) -> DailyLog:
    now = now or datetime.now()
    log = HabitService(db).update_sleep(hours, completed_at or now, now.date())
    _after_log_change(db, log, now)
    return log


def update_steps(db: Session, steps: int, completed_at: Optional[datetime] = None, now: Optional[datetime] = None) -> DailyLog:
    now = now or datetime.now()
    log = HabitService(db).update_steps(steps, completed_at or now, now.date())
    _after_log_change(db, log, now)
    return log


def undo_completion(db: Session, habit_type: str, now: Optional[datetime] = None) -> DailyLog:
    now = now or datetime.now()
    log = HabitService(db).undo_completion(habit_type, now.date())
    _after_log_change(db, log, now)
    return log


# ===== LOG HISTORY =====

def get_log(db: Session, target_date: date) -> DailyLog:
    log = DailyLogRepository.get_by_date(db, target_date)
    if not log:
        raise LogNotFoundException(target_date)
    return log


def get_logs(db: Session, days: int = 30, from_date: Optional[date] = None) -> List[DailyLog]:
    return HabitService(db).get_history(days, from_date)


def get_completion(db: Session, target_date: date, habit_type: str) -> HabitCompletion:
    habit_key = HabitService(db).resolve_habit_key(habit_type)
    get_log(db, target_date)
    completion = HabitCompletionRepository.get(db, target_date, habit_key)
    if not completion:
        raise HabitNotEnabledException(habit_key)
    return completion


# ===== STREAK =====

def get_streak_status(db: Session, now: Optional[datetime] = None) -> StreakStatusResponse:
    now = now or datetime.now()
    return StreakService(db).get_status(now.date())


def get_streak_records(db: Session) -> List[StreakRecord]:
    return StreakRecordRepository.get_all(db)


def finalize_days(db: Session, now: Optional[datetime] = None) -> FinalizeResponse:
    now = now or datetime.now()
    streak_service = StreakService(db)
    created = streak_service.finalize_days(now.date())
    if created:
        AchievementService(db).check_and_unlock(now)
        WidgetService(db).refresh(now)
    return FinalizeResponse(
        finalized=[StreakRecordResponse.model_validate(record) for record in created],
        streak=streak_service.get_status(now.date()),
    )


def recover_streak(db: Session, now: Optional[datetime] = None) -> StreakStatusResponse:
    now = now or datetime.now()
    status = StreakService(db).recover_streak(now.date())
    AchievementService(db).check_and_unlock(now)
    WidgetService(db).refresh(now)
    return status


def add_recovery_tokens(db: Session, count: int, now: Optional[datetime] = None) -> StreakStatusResponse:
    now = now or datetime.now()
    streak_service = StreakService(db)
    streak_service.add_purchased_tokens(count)
    logger.info(f"Added {count} purchased recovery token(s)")
    return streak_service.get_status(now.date())


# ===== ACHIEVEMENTS =====

def get_achievements(db: Session) -> List[AchievementResponse]:
    return AchievementService(db).list_achievements()


def check_achievements(db: Session, now: Optional[datetime] = None) -> AchievementProgressResponse:
    service = AchievementService(db)
    newly_unlocked = service.check_and_unlock(now)
    return AchievementProgressResponse(
        unlocked=len(UnlockedAchievementRepository.get_unlocked_ids(db)),
        total=len(service.list_achievements()),
        newly_unlocked=newly_unlocked,
    )


# ===== WIDGET / APP LOCK / NOTIFICATIONS =====

def get_widget_data(db: Session, now: Optional[datetime] = None) -> WidgetDataResponse:
    return WidgetService(db).load_widget_data(now)


def refresh_widget(db: Session, now: Optional[datetime] = None) -> Optional[WidgetDataResponse]:
    return WidgetService(db).refresh(now)


def get_app_lock_status(db: Session, now: Optional[datetime] = None) -> AppLockStatusResponse:
    return AppLockService(db).status(now)


def emergency_unlock(db: Session, now: Optional[datetime] = None) -> AppLockStatusResponse:
    """Bypass the shields; today can no longer count as a perfect morning"""
    now = now or datetime.now()
    app_lock = AppLockService(db)
    app_lock.emergency_unlock(now)
    StreakService(db).revoke_perfect_morning(now.date())
    WidgetService(db).refresh(now)
    return app_lock.status(now)


def get_notification_plan(db: Session, target_date: Optional[date] = None, now: Optional[datetime] = None) -> List[PlannedNotification]:
    return NotificationService(db).plan_for(target_date, now)


# ===== SCHEDULED =====

def run_day_rollover(db: Session, now: Optional[datetime] = None) -> dict:
    """Finalize past days and clear yesterday's lock-in"""
    now = now or datetime.now()
    created = StreakService(db).finalize_days(now.date())
    was_reset = _best_effort("lock reset", AppLockService(db).reset_for_new_day, now)
    if created:
        AchievementService(db).check_and_unlock(now)
        WidgetService(db).refresh(now)
    return {"finalized": len(created), "lock_reset": bool(was_reset)}


# ===== RESET =====

def reset_all_data(db: Session) -> Settings:
    """
    Delete every log, streak record, achievement, habit config, custom habit and the
    settings row, then recreate defaults.

    Raises:
        DatabaseException: if the delete fails (nothing is removed)
    """
    try:
        DailyLogRepository.delete_all(db)
        StreakRecordRepository.delete_all(db)
        UnlockedAchievementRepository.delete_all(db)
        HabitConfigRepository.delete_all(db)
        CustomHabitRepository.delete_all(db)
        SettingsRepository.delete_all(db)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Reset failed: {e}")
        raise DatabaseException("reset", str(e))

    _best_effort("clear", SharedStore().clear)
    HabitConfigRepository.ensure_defaults(db)
    logger.warning("All Morning Proof data was reset")
    return SettingsRepository.get(db)
