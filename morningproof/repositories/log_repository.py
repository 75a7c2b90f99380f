"""
Log repository - Data access layer for daily logs and habit completions.
"""
from datetime import date, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session

from morningproof.models import DailyLog, HabitCompletion


class DailyLogRepository:
    """Repository for DailyLog data access"""

    @staticmethod
    def get_by_date(db: Session, target_date: date) -> Optional[DailyLog]:
        """Get the log for a specific calendar day"""
        return db.query(DailyLog).filter(DailyLog.date == target_date).first()

    @staticmethod
    def get_history(db: Session, days: int, from_date: date) -> List[DailyLog]:
        """Logs for the last N days up to from_date, newest first"""
        start_date = from_date - timedelta(days=days)
        return db.query(DailyLog).filter(
            DailyLog.date >= start_date,
            DailyLog.date <= from_date
        ).order_by(DailyLog.date.desc()).all()

    @staticmethod
    def get_first(db: Session) -> Optional[DailyLog]:
        return db.query(DailyLog).order_by(DailyLog.date).first()

    @staticmethod
    def get_perfect(db: Session) -> List[DailyLog]:
        return db.query(DailyLog).filter(
            DailyLog.all_completed_before_cutoff == True
        ).order_by(DailyLog.date).all()

    @staticmethod
    def create(db: Session, log: DailyLog) -> DailyLog:
        db.add(log)
        db.commit()
        db.refresh(log)
        return log

    @staticmethod
    def update(db: Session, log: DailyLog) -> DailyLog:
        db.commit()
        db.refresh(log)
        return log

    @staticmethod
    def delete_all(db: Session) -> int:
        # Query-level delete skips ORM cascades, so completions go first
        db.query(HabitCompletion).delete()
        return db.query(DailyLog).delete()


class HabitCompletionRepository:
    """Repository for HabitCompletion data access"""

    @staticmethod
    def get(db: Session, target_date: date, habit_type: str) -> Optional[HabitCompletion]:
        return db.query(HabitCompletion).filter(
            HabitCompletion.date == target_date,
            HabitCompletion.habit_type == habit_type
        ).first()
