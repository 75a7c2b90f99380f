"""
Widget data bridge.
Writes a snapshot of today's progress into the shared store for the home
screen widget and reads it back the way the widget does.
"""
import json
import logging
from datetime import datetime, date, time
from typing import List, Optional
from sqlalchemy.orm import Session

from morningproof.shared_store import SharedStore
from morningproof.schemas import WidgetDataResponse, WidgetHabitStatus
from morningproof.repositories.settings_repository import SettingsRepository
from morningproof.services.date_service import DateService
from morningproof.services.habit_service import HabitService
from morningproof.exceptions import InvalidDeadlineException

logger = logging.getLogger("morningproof.widget")

# Shared store keys
KEY_CURRENT_STREAK = "widget_current_streak"
KEY_LONGEST_STREAK = "widget_longest_streak"
KEY_COMPLETED_HABITS = "widget_completed_habits"
KEY_TOTAL_HABITS = "widget_total_habits"
KEY_CUTOFF_TIME = "widget_cutoff_time"
KEY_LAST_PERFECT = "widget_last_perfect"
KEY_HABIT_STATUSES = "widget_habit_statuses"
KEY_LAST_UPDATED = "widget_last_updated"

WIDGET_KEYS = (
    KEY_CURRENT_STREAK, KEY_LONGEST_STREAK, KEY_COMPLETED_HABITS, KEY_TOTAL_HABITS,
    KEY_CUTOFF_TIME, KEY_LAST_PERFECT, KEY_HABIT_STATUSES, KEY_LAST_UPDATED,
)


def _placeholder(now: datetime) -> WidgetDataResponse:
    """Sample data shown before the app has written a real snapshot"""
    return WidgetDataResponse(
        current_streak=7,
        longest_streak=14,
        completed_habits=3,
        total_habits=5,
        cutoff_time=datetime.combine(now.date(), time(hour=9)),
        last_perfect_morning=now.date(),
        habit_statuses=[
            WidgetHabitStatus(name="Made Bed", icon="bed.double.fill", is_completed=True),
            WidgetHabitStatus(name="Morning Walk", icon="figure.walk", is_completed=True),
            WidgetHabitStatus(name="Drank Water", icon="drop.fill", is_completed=True),
            WidgetHabitStatus(name="Journaling", icon="book.fill", is_completed=False),
            WidgetHabitStatus(name="Meditation", icon="brain.head.profile", is_completed=False),
        ],
        last_updated=now,
        is_placeholder=True,
    )


def _parse_datetime(raw) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except (TypeError, ValueError):
        return None


class WidgetService:
    """Service for the widget snapshot"""

    def __init__(self, db: Session, store: Optional[SharedStore] = None):
        self.db = db
        self.store = store or SharedStore()
        self.settings_repo = SettingsRepository()
        self.date_service = DateService()
        self.habit_service = HabitService(db)

    def save_snapshot(
        self,
        current_streak: int,
        longest_streak: int,
        completed_habits: int,
        total_habits: int,
        cutoff_minutes: int,
        last_perfect_morning: Optional[date],
        habit_statuses: List[WidgetHabitStatus],
        now: Optional[datetime] = None,
    ) -> None:
        """Write every widget key in one atomic store update"""
        now = now or datetime.now()
        cutoff_time = datetime.combine(now.date(), time(hour=cutoff_minutes // 60, minute=cutoff_minutes % 60))
        self.store.set_many({
            KEY_CURRENT_STREAK: current_streak,
            KEY_LONGEST_STREAK: longest_streak,
            KEY_COMPLETED_HABITS: completed_habits,
            KEY_TOTAL_HABITS: total_habits,
            KEY_CUTOFF_TIME: cutoff_time.isoformat(),
            KEY_LAST_PERFECT: last_perfect_morning.isoformat() if last_perfect_morning else None,
            KEY_HABIT_STATUSES: json.dumps([status.model_dump() for status in habit_statuses]),
            KEY_LAST_UPDATED: now.isoformat(),
        })

    def refresh(self, now: Optional[datetime] = None) -> Optional[WidgetDataResponse]:
        """
        Rebuild the snapshot from today's log and the streak counters.

        Failures are logged and swallowed; the widget keeps its last snapshot.

        Returns:
            The snapshot written, or None if it could not be written
        """
        now = now or datetime.now()
        try:
            settings = self.settings_repo.get(self.db)
            log = self.habit_service.get_log(now.date())
            statuses = []
            for habit_key, name, icon in self.habit_service.scheduled_habits(now.date()):
                completion = log.get_completion(habit_key) if log else None
                statuses.append(WidgetHabitStatus(
                    name=name,
                    icon=icon,
                    is_completed=bool(completion and completion.is_completed),
                ))

            self.save_snapshot(
                current_streak=settings.current_streak or 0,
                longest_streak=settings.longest_streak or 0,
                completed_habits=sum(1 for status in statuses if status.is_completed),
                total_habits=len(statuses),
                cutoff_minutes=self.date_service.resolve_deadline_minutes(now.date(), settings),
                last_perfect_morning=settings.last_perfect_morning_date,
                habit_statuses=statuses,
                now=now,
            )
        except (OSError, InvalidDeadlineException) as e:
            logger.error(f"Widget snapshot not written: {e}")
            return None
        return self.load_widget_data(now)

    def load_widget_data(self, now: Optional[datetime] = None) -> WidgetDataResponse:
        """Read the snapshot; placeholder data when nothing has been written yet"""
        now = now or datetime.now()
        data = self.store.load()
        total_habits = data.get(KEY_TOTAL_HABITS) or 0
        if total_habits == 0:
            return _placeholder(now)

        statuses = []
        raw_statuses = data.get(KEY_HABIT_STATUSES)
        if raw_statuses:
            try:
                statuses = [WidgetHabitStatus(**item) for item in json.loads(raw_statuses)]
            except (TypeError, ValueError) as e:
                logger.warning(f"Ignoring malformed habit statuses in widget snapshot: {e}")

        last_perfect = data.get(KEY_LAST_PERFECT)
        return WidgetDataResponse(
            current_streak=data.get(KEY_CURRENT_STREAK) or 0,
            longest_streak=data.get(KEY_LONGEST_STREAK) or 0,
            completed_habits=data.get(KEY_COMPLETED_HABITS) or 0,
            total_habits=total_habits,
            cutoff_time=_parse_datetime(data.get(KEY_CUTOFF_TIME)),
            last_perfect_morning=date.fromisoformat(last_perfect) if last_perfect else None,
            habit_statuses=statuses,
            last_updated=_parse_datetime(data.get(KEY_LAST_UPDATED)) or now,
        )

    def clear(self) -> None:
        self.store.remove(*WIDGET_KEYS)
