"""
Streak calculation service.
Derives current/longest streak from the StreakRecord ledger, finalizes past
days, and applies streak recovery tokens.
"""
import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session

from morningproof.models import Settings, StreakRecord
from morningproof.repositories.settings_repository import SettingsRepository
from morningproof.repositories.streak_repository import StreakRecordRepository
from morningproof.repositories.log_repository import DailyLogRepository
from morningproof.services.date_service import DateService
from morningproof.schemas import StreakEvaluation, StreakStatusResponse
from morningproof.exceptions import StreakNotRecoverableException
from morningproof.constants import (
    FREE_STREAK_RECOVERIES_PER_MONTH, PREMIUM_STREAK_RECOVERIES_PER_MONTH
)

logger = logging.getLogger("morningproof.streaks")

ONE_DAY = timedelta(days=1)


class StreakEvaluator:
    """Pure streak arithmetic over (date, was_completed) records"""

    @staticmethod
    def _by_day(records: Iterable) -> dict:
        by_day = {}
        for record in sorted(records, key=lambda r: r.date):
            by_day[record.date] = bool(record.was_completed)
        return by_day

    @staticmethod
    def _start_cursor(by_day: dict, anchor: date) -> date:
        # A day without a record is still open, so the run is judged from the day before
        if anchor in by_day:
            return anchor
        return anchor - ONE_DAY

    @staticmethod
    def trailing_run(by_day: dict, anchor: date, tolerance: int = 0) -> int:
        """
        Count completed days walking back from the anchor.

        Up to `tolerance` single missed days are skipped when the day below
        the miss was completed; two misses in a row end the run.
        """
        if not by_day:
            return 0
        earliest = min(by_day)
        cursor = StreakEvaluator._start_cursor(by_day, anchor)
        count = 0
        skipped = 0
        while cursor >= earliest:
            if by_day.get(cursor):
                count += 1
            elif skipped < tolerance and by_day.get(cursor - ONE_DAY):
                skipped += 1
            else:
                break
            cursor -= ONE_DAY
        return count

    @staticmethod
    def longest_run(by_day: dict) -> int:
        longest = 0
        run = 0
        last_day: Optional[date] = None
        for day in sorted(by_day):
            if not by_day[day]:
                run = 0
            elif last_day is not None and run > 0 and day == last_day + ONE_DAY:
                run += 1
            else:
                run = 1
            longest = max(longest, run)
            last_day = day
        return longest

    @staticmethod
    def broken_date(by_day: dict, anchor: date) -> Optional[date]:
        """The first missed day below the completed head run, if a completed day sits directly under it"""
        if not by_day:
            return None
        earliest = min(by_day)
        cursor = StreakEvaluator._start_cursor(by_day, anchor)
        while cursor >= earliest and by_day.get(cursor):
            cursor -= ONE_DAY
        if cursor > earliest and by_day.get(cursor - ONE_DAY):
            return cursor
        return None

    @classmethod
    def evaluate(cls, records: Iterable, as_of: Optional[date] = None, tolerance: int = 0) -> StreakEvaluation:
        """
        Evaluate a streak ledger.

        Args:
            records: objects with `date` and `was_completed`
            as_of: the current day; defaults to the latest record's date
            tolerance: single missed days to skip (1 while a recovery is available)

        Returns:
            StreakEvaluation with current/longest streak and recovery target
        """
        by_day = cls._by_day(records)
        if not by_day:
            return StreakEvaluation(current_streak=0, longest_streak=0)

        anchor = as_of or max(by_day)
        broken = cls.broken_date(by_day, anchor)
        streak_if_recovered = 0
        if broken is not None:
            repaired = dict(by_day)
            repaired[broken] = True
            streak_if_recovered = cls.trailing_run(repaired, anchor)

        return StreakEvaluation(
            current_streak=cls.trailing_run(by_day, anchor, tolerance),
            longest_streak=cls.longest_run(by_day),
            broken_date=broken,
            streak_if_recovered=streak_if_recovered,
        )


class StreakService:
    """Service for streak bookkeeping"""

    def __init__(self, db: Session):
        self.db = db
        self.settings_repo = SettingsRepository()
        self.record_repo = StreakRecordRepository()
        self.log_repo = DailyLogRepository()
        self.date_service = DateService()

    # --- Recovery allowance ---

    def _roll_recovery_month(self, settings: Settings, today: date) -> None:
        """Reset the monthly recovery counter when a new month starts"""
        month_key = self.date_service.month_key(today)
        if settings.recoveries_month != month_key:
            settings.recoveries_month = month_key
            settings.recoveries_used_this_month = 0

    def monthly_recovery_allowance(self, settings: Settings) -> int:
        if settings.is_premium:
            return PREMIUM_STREAK_RECOVERIES_PER_MONTH
        return FREE_STREAK_RECOVERIES_PER_MONTH

    def recovery_tokens_available(self, settings: Settings, today: date) -> int:
        used = settings.recoveries_used_this_month or 0
        if settings.recoveries_month != self.date_service.month_key(today):
            used = 0
        monthly_left = max(0, self.monthly_recovery_allowance(settings) - used)
        return monthly_left + (settings.purchased_recovery_tokens or 0)

    def tolerance(self, settings: Settings, today: date) -> int:
        if settings.allow_streak_recovery and self.recovery_tokens_available(settings, today) > 0:
            return 1
        return 0

    # --- Evaluation ---

    def evaluate(self, as_of: Optional[date] = None) -> StreakEvaluation:
        settings = self.settings_repo.get(self.db)
        as_of = as_of or self.date_service.today()
        return StreakEvaluator.evaluate(
            self.record_repo.get_all(self.db), as_of, self.tolerance(settings, as_of)
        )

    def refresh_counters(self, as_of: Optional[date] = None) -> Settings:
        """Recompute current/longest streak on the settings row and commit"""
        settings = self.settings_repo.get(self.db)
        as_of = as_of or self.date_service.today()
        evaluation = self.evaluate(as_of)
        settings.current_streak = evaluation.current_streak
        settings.longest_streak = max(
            settings.longest_streak or 0, evaluation.longest_streak, evaluation.current_streak
        )
        return self.settings_repo.save(self.db, settings)

    def get_status(self, as_of: Optional[date] = None) -> StreakStatusResponse:
        settings = self.settings_repo.get(self.db)
        as_of = as_of or self.date_service.today()
        evaluation = self.evaluate(as_of)
        tokens = self.recovery_tokens_available(settings, as_of)
        recoverable = (
            bool(settings.allow_streak_recovery)
            and tokens > 0
            and evaluation.broken_date is not None
        )
        return StreakStatusResponse(
            current_streak=evaluation.current_streak,
            longest_streak=max(settings.longest_streak or 0, evaluation.longest_streak),
            total_perfect_mornings=settings.total_perfect_mornings or 0,
            last_perfect_morning_date=settings.last_perfect_morning_date,
            recoverable=recoverable,
            broken_date=evaluation.broken_date,
            streak_if_recovered=evaluation.streak_if_recovered,
            recovery_tokens_available=tokens,
        )

    # --- Ledger writes ---

    def finalize_days(self, as_of: Optional[date] = None) -> List[StreakRecord]:
        """
        Append a record for every past day that has none.

        Days run from the day after the latest record (or the first log) up to
        yesterday. A day counts as completed only when its log was a perfect
        morning and the shields were not bypassed with an emergency unlock.
        Idempotent.

        Returns:
            Newly written records, oldest first
        """
        settings = self.settings_repo.get(self.db)
        as_of = as_of or self.date_service.today()

        last = self.record_repo.get_most_recent(self.db, before_date=as_of)
        if last:
            cursor = last.date + ONE_DAY
        else:
            first_log = self.log_repo.get_first(self.db)
            if not first_log:
                return []
            cursor = first_log.date

        created = []
        while cursor < as_of:
            if not self.record_repo.get_by_date(self.db, cursor):
                log = self.log_repo.get_by_date(self.db, cursor)
                completed = bool(log and log.all_completed_before_cutoff)
                if settings.emergency_unlock_date == cursor:
                    completed = False
                created.append(self.record_repo.add(
                    self.db, StreakRecord(date=cursor, was_completed=completed)
                ))
            cursor += ONE_DAY

        if created:
            self.db.commit()
            logger.info(
                f"Finalized {len(created)} day(s) up to {as_of - ONE_DAY}: "
                f"{sum(1 for r in created if r.was_completed)} perfect"
            )
            self.refresh_counters(as_of)
        return created

    def record_perfect_morning(self, day: date) -> bool:
        """
        Record a perfect morning for a day.

        Returns:
            True if the day was newly recorded, False if already recorded or
            blocked by an emergency unlock
        """
        settings = self.settings_repo.get(self.db)
        if settings.emergency_unlock_date == day:
            logger.info(f"Perfect morning on {day} not counted: emergency unlock used")
            return False

        self.finalize_days(day)

        record = self.record_repo.get_by_date(self.db, day)
        if record and record.was_completed:
            return False
        if record:
            record.was_completed = True
        else:
            self.record_repo.add(self.db, StreakRecord(date=day, was_completed=True))

        settings.total_perfect_mornings = (settings.total_perfect_mornings or 0) + 1
        if settings.last_perfect_morning_date is None or settings.last_perfect_morning_date < day:
            settings.last_perfect_morning_date = day
        self.db.commit()
        settings = self.refresh_counters(day)
        logger.info(f"Perfect morning recorded for {day}; streak is now {settings.current_streak}")
        return True

    def revoke_perfect_morning(self, day: date) -> bool:
        """
        Undo an open day's perfect-morning record after a corrective edit.

        Recovered records are never revoked.
        """
        record = self.record_repo.get_by_date(self.db, day)
        if not record or not record.was_completed or record.was_recovered:
            return False

        settings = self.settings_repo.get(self.db)
        self.db.delete(record)
        settings.total_perfect_mornings = max(0, (settings.total_perfect_mornings or 0) - 1)
        previous = self.db.query(StreakRecord).filter(
            StreakRecord.was_completed == True,
            StreakRecord.was_recovered == False,
            StreakRecord.date != day
        ).order_by(StreakRecord.date.desc()).first()
        settings.last_perfect_morning_date = previous.date if previous else None
        self.db.commit()

        # Longest streak may have been raised by the revoked day; rebuild it from the ledger
        evaluation = self.evaluate(day)
        settings.current_streak = evaluation.current_streak
        settings.longest_streak = evaluation.longest_streak
        self.settings_repo.save(self.db, settings)
        logger.info(f"Perfect morning for {day} revoked")
        return True

    def recover_streak(self, as_of: Optional[date] = None) -> StreakStatusResponse:
        """
        Repair the missed day under the completed head run with a recovery token.

        Raises:
            StreakNotRecoverableException: recovery disabled, no token, or
                nothing repairable
        """
        settings = self.settings_repo.get(self.db)
        as_of = as_of or self.date_service.today()

        if not settings.allow_streak_recovery:
            raise StreakNotRecoverableException("streak recovery is disabled")
        if self.recovery_tokens_available(settings, as_of) <= 0:
            raise StreakNotRecoverableException("no recovery tokens left this month")

        self.finalize_days(as_of)
        evaluation = StreakEvaluator.evaluate(self.record_repo.get_all(self.db), as_of)
        if evaluation.broken_date is None:
            raise StreakNotRecoverableException("no single missed day to recover")

        missed = evaluation.broken_date
        record = self.record_repo.get_by_date(self.db, missed)
        if record:
            record.was_completed = True
            record.was_recovered = True
        else:
            self.record_repo.add(
                self.db, StreakRecord(date=missed, was_completed=True, was_recovered=True)
            )

        self._roll_recovery_month(settings, as_of)
        if settings.recoveries_used_this_month < self.monthly_recovery_allowance(settings):
            settings.recoveries_used_this_month += 1
        else:
            settings.purchased_recovery_tokens = max(0, (settings.purchased_recovery_tokens or 0) - 1)
        self.db.commit()

        self.refresh_counters(as_of)
        logger.info(f"Streak recovered by repairing {missed}")
        return self.get_status(as_of)

    def add_purchased_tokens(self, count: int = 1) -> Settings:
        """Credit one-off recovery tokens bought outside the monthly allowance"""
        settings = self.settings_repo.get(self.db)
        settings.purchased_recovery_tokens = (settings.purchased_recovery_tokens or 0) + count
        return self.settings_repo.save(self.db, settings)
