"""
Streak repository - Data access layer for the streak ledger and achievements.
"""
from datetime import date, datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from morningproof.models import StreakRecord, UnlockedAchievement


class StreakRecordRepository:
    """Repository for StreakRecord data access"""

    @staticmethod
    def get_all(db: Session) -> List[StreakRecord]:
        """All records, oldest first"""
        return db.query(StreakRecord).order_by(StreakRecord.date).all()

    @staticmethod
    def get_by_date(db: Session, target_date: date) -> Optional[StreakRecord]:
        return db.query(StreakRecord).filter(StreakRecord.date == target_date).first()

    @staticmethod
    def get_most_recent(db: Session, before_date: Optional[date] = None) -> Optional[StreakRecord]:
        """Most recent record, optionally strictly before a date"""
        query = db.query(StreakRecord)
        if before_date is not None:
            query = query.filter(StreakRecord.date < before_date)
        return query.order_by(StreakRecord.date.desc()).first()

    @staticmethod
    def add(db: Session, record: StreakRecord) -> StreakRecord:
        """Append a record. Caller commits."""
        db.add(record)
        db.flush()
        return record

    @staticmethod
    def delete_all(db: Session) -> int:
        return db.query(StreakRecord).delete()


class UnlockedAchievementRepository:
    """Repository for UnlockedAchievement data access"""

    @staticmethod
    def get_all(db: Session) -> List[UnlockedAchievement]:
        return db.query(UnlockedAchievement).order_by(UnlockedAchievement.unlocked_date).all()

    @staticmethod
    def get_unlocked_ids(db: Session) -> set:
        return {row.achievement_id for row in db.query(UnlockedAchievement.achievement_id).all()}

    @staticmethod
    def unlock(db: Session, achievement_id: str, unlocked_date: Optional[datetime] = None) -> UnlockedAchievement:
        """Write an unlock once; an existing row is returned untouched"""
        existing = db.query(UnlockedAchievement).filter(
            UnlockedAchievement.achievement_id == achievement_id
        ).first()
        if existing:
            return existing
        unlocked = UnlockedAchievement(
            achievement_id=achievement_id,
            unlocked_date=unlocked_date or datetime.now()
        )
        db.add(unlocked)
        db.flush()
        return unlocked

    @staticmethod
    def delete_all(db: Session) -> int:
        return db.query(UnlockedAchievement).delete()
