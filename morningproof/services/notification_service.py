"""
Notification planning service.
Works out which reminders the client should schedule for a day.
"""
from datetime import datetime, date, time, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session

from morningproof.schemas import PlannedNotification
from morningproof.repositories.settings_repository import SettingsRepository
from morningproof.services.date_service import DateService
from morningproof.constants import NOTIFICATION_MORNING_REMINDER, NOTIFICATION_CUTOFF_PASSED

WARNING_TEXT = {
    15: ("15 Minutes Left!", "15 minutes until your morning cutoff. Finish strong!"),
    5: ("5 Minutes Left!", "Only 5 minutes to complete your habits!"),
    1: ("Last Minute!", "1 minute left! Finish your morning routine now!"),
}


class NotificationService:
    """Service for the daily notification plan"""

    def __init__(self, db: Session):
        self.db = db
        self.settings_repo = SettingsRepository()
        self.date_service = DateService()

    def plan_for(self, day: Optional[date] = None, now: Optional[datetime] = None) -> List[PlannedNotification]:
        """
        Notifications still to fire for a day, in firing order.

        Includes the morning reminder, a countdown warning N minutes before the
        day's deadline for each configured N, and a cutoff-passed notice.
        Instants already past `now` are left out; nothing is planned when
        notifications are disabled.
        """
        settings = self.settings_repo.get(self.db)
        now = now or datetime.now()
        day = day or now.date()
        if not settings.notifications_enabled:
            return []

        deadline = self.date_service.resolve_deadline(day, settings)
        midnight = datetime.combine(day, time())
        plan = []

        reminder = settings.morning_reminder_minutes
        if reminder is not None:
            plan.append(PlannedNotification(
                identifier=NOTIFICATION_MORNING_REMINDER,
                title="Good Morning!",
                body="Time to start your morning routine. Let's make it a great day!",
                fire_at=midnight + timedelta(minutes=reminder),
            ))

        for warning in sorted(set(settings.warning_minutes), reverse=True):
            if warning <= 0:
                continue
            fire_at = deadline - timedelta(minutes=warning)
            if fire_at <= midnight:
                continue
            title, body = WARNING_TEXT.get(
                warning, (f"{warning} Minutes Left", f"{warning} minutes until your morning cutoff.")
            )
            plan.append(PlannedNotification(
                identifier=f"countdown_{warning}", title=title, body=body, fire_at=fire_at
            ))

        plan.append(PlannedNotification(
            identifier=NOTIFICATION_CUTOFF_PASSED,
            title="Morning Cutoff Passed",
            body="Keep the streak going tomorrow! Every morning is a fresh start.",
            fire_at=deadline,
        ))

        return sorted((n for n in plan if n.fire_at > now), key=lambda n: n.fire_at)
