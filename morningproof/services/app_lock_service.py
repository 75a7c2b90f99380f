"""
App lock state service.
Keeps the lock-in state that shield extensions read from the shared store
in step with settings and the day's progress.
"""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from morningproof.shared_store import SharedStore
from morningproof.models import Settings
from morningproof.schemas import AppLockStatusResponse
from morningproof.repositories.settings_repository import SettingsRepository
from morningproof.services.date_service import DateService

logger = logging.getLogger("morningproof.app_lock")

# Shared store keys
KEY_IS_DAY_LOCKED_IN = "appLocking_isDayLockedIn"
KEY_CUTOFF_MINUTES = "appLocking_cutoffMinutes"
KEY_BLOCKING_START_MINUTES = "appLocking_blockingStartMinutes"
KEY_ENABLED = "appLocking_enabled"
KEY_LAST_LOCK_IN_DATE = "appLocking_lastLockInDate"
KEY_SELECTED_APPS = "appLocking_selectedApps"
KEY_WAS_EMERGENCY_UNLOCK = "appLocking_wasEmergencyUnlock"
KEY_DEADLINE_MODE = "appLocking_deadlineMode"
KEY_CUSTOM_DEADLINES_ENABLED = "appLocking_customDeadlinesEnabled"
KEY_WEEKDAY_DEADLINE_MINUTES = "appLocking_weekdayDeadlineMinutes"
KEY_WEEKEND_DEADLINE_MINUTES = "appLocking_weekendDeadlineMinutes"
KEY_PER_DAY_DEADLINE_MINUTES = "appLocking_perDayDeadlineMinutes"


class AppLockService:
    """Service for app lock state"""

    def __init__(self, db: Session, store: Optional[SharedStore] = None):
        self.db = db
        self.store = store or SharedStore()
        self.settings_repo = SettingsRepository()
        self.date_service = DateService()

    def sync_settings(self, settings: Optional[Settings] = None, now: Optional[datetime] = None) -> None:
        """Mirror app lock and deadline settings into the shared store"""
        settings = settings or self.settings_repo.get(self.db)
        now = now or datetime.now()
        self.store.set_many({
            KEY_ENABLED: bool(settings.app_locking_enabled),
            KEY_BLOCKING_START_MINUTES: settings.blocking_start_minutes or 0,
            KEY_SELECTED_APPS: settings.locked_app_ids,
            KEY_CUTOFF_MINUTES: self.date_service.resolve_deadline_minutes(now.date(), settings),
            KEY_DEADLINE_MODE: settings.deadline_mode,
            KEY_CUSTOM_DEADLINES_ENABLED: settings.custom_deadlines_enabled,
            KEY_WEEKDAY_DEADLINE_MINUTES: settings.weekday_deadline_minutes,
            KEY_WEEKEND_DEADLINE_MINUTES: settings.weekend_deadline_minutes,
            KEY_PER_DAY_DEADLINE_MINUTES: settings.per_day_deadlines,
        })

    def _last_lock_in(self, data: dict) -> Optional[datetime]:
        raw = data.get(KEY_LAST_LOCK_IN_DATE)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed lock-in date {raw!r}")
            return None

    def has_locked_in_today(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        data = self.store.load()
        last_lock_in = self._last_lock_in(data)
        return bool(data.get(KEY_IS_DAY_LOCKED_IN)) and last_lock_in is not None and last_lock_in.date() == now.date()

    def lock_in_day(self, now: Optional[datetime] = None) -> bool:
        """
        Lift the shields for the rest of the day.

        Returns:
            True if the day was not locked in before this call
        """
        now = now or datetime.now()
        if self.has_locked_in_today(now):
            return False
        self.store.set_many({
            KEY_IS_DAY_LOCKED_IN: True,
            KEY_LAST_LOCK_IN_DATE: now.isoformat(),
        })
        logger.info(f"Day locked in at {now:%H:%M}")
        return True

    def should_apply_shields(self, now: Optional[datetime] = None) -> bool:
        """
        Shields apply when locking is enabled, a blocking start is configured,
        the day is not locked in, and the current time is past the blocking start.
        Shields stay up past the cutoff until the habits are done.
        """
        now = now or datetime.now()
        data = self.store.load()
        if not data.get(KEY_ENABLED):
            return False
        blocking_start = data.get(KEY_BLOCKING_START_MINUTES) or 0
        if blocking_start <= 0:
            return False
        if self.has_locked_in_today(now):
            return False
        return now.hour * 60 + now.minute >= blocking_start

    def emergency_unlock(self, now: Optional[datetime] = None) -> Settings:
        """
        Remove the shields without completing the habits.

        The bypass is recorded on settings so the day is finalized as missed.
        """
        now = now or datetime.now()
        self.store.set_many({
            KEY_WAS_EMERGENCY_UNLOCK: True,
            KEY_IS_DAY_LOCKED_IN: True,
            KEY_LAST_LOCK_IN_DATE: now.isoformat(),
        })
        settings = self.settings_repo.get(self.db)
        settings.emergency_unlock_date = now.date()
        settings = self.settings_repo.save(self.db, settings)
        logger.warning(f"Emergency unlock used on {now.date()}; the day will not count toward the streak")
        return settings

    def reset_for_new_day(self, now: Optional[datetime] = None) -> bool:
        """
        Clear a lock-in left over from a previous day.

        Returns:
            True if stale lock state was cleared
        """
        now = now or datetime.now()
        data = self.store.load()
        if not data.get(KEY_IS_DAY_LOCKED_IN) and not data.get(KEY_WAS_EMERGENCY_UNLOCK):
            return False
        last_lock_in = self._last_lock_in(data)
        if last_lock_in is not None and last_lock_in.date() == now.date():
            return False
        self.store.set_many({
            KEY_IS_DAY_LOCKED_IN: False,
            KEY_WAS_EMERGENCY_UNLOCK: False,
        })
        logger.info(f"Lock state reset for {now.date()}")
        return True

    def status(self, now: Optional[datetime] = None) -> AppLockStatusResponse:
        now = now or datetime.now()
        data = self.store.load()
        last_lock_in = self._last_lock_in(data)
        return AppLockStatusResponse(
            is_enabled=bool(data.get(KEY_ENABLED)),
            locked_app_ids=data.get(KEY_SELECTED_APPS) or [],
            blocking_start_minutes=data.get(KEY_BLOCKING_START_MINUTES) or 0,
            is_day_locked_in=self.has_locked_in_today(now),
            last_lock_in_date=last_lock_in.date() if last_lock_in else None,
            was_emergency_unlock=bool(data.get(KEY_WAS_EMERGENCY_UNLOCK)),
            should_apply_shields=self.should_apply_shields(now),
        )
