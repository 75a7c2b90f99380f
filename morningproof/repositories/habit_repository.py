"""
Habit repository - Data access layer for HabitConfig and custom habits.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from morningproof.models import HabitConfig, CustomHabit
from morningproof.constants import HABIT_CATALOG, DEFAULT_ENABLED_HABITS


class HabitConfigRepository:
    """Repository for HabitConfig data access"""

    @staticmethod
    def ensure_defaults(db: Session) -> None:
        """Create a config row for every catalog habit that has none yet"""
        existing = {row.habit_type for row in db.query(HabitConfig.habit_type).all()}
        added = False
        for order, (habit_type, entry) in enumerate(HABIT_CATALOG.items()):
            if habit_type.value in existing:
                continue
            db.add(HabitConfig(
                habit_type=habit_type.value,
                is_enabled=habit_type in DEFAULT_ENABLED_HABITS,
                goal=entry["default_goal"],
                display_order=order,
            ))
            added = True
        if added:
            db.commit()

    @staticmethod
    def get_all(db: Session) -> List[HabitConfig]:
        """All habit configs in display order"""
        HabitConfigRepository.ensure_defaults(db)
        return db.query(HabitConfig).order_by(HabitConfig.display_order, HabitConfig.habit_type).all()

    @staticmethod
    def get_enabled(db: Session) -> List[HabitConfig]:
        """Enabled habit configs in display order"""
        return [config for config in HabitConfigRepository.get_all(db) if config.is_enabled]

    @staticmethod
    def get_by_type(db: Session, habit_type: str) -> Optional[HabitConfig]:
        HabitConfigRepository.ensure_defaults(db)
        return db.query(HabitConfig).filter(HabitConfig.habit_type == habit_type).first()

    @staticmethod
    def update(db: Session, config: HabitConfig) -> HabitConfig:
        db.commit()
        db.refresh(config)
        return config

    @staticmethod
    def delete_all(db: Session) -> int:
        return db.query(HabitConfig).delete()


class CustomHabitRepository:
    """Repository for user-created habits"""

    @staticmethod
    def get_all(db: Session) -> List[CustomHabit]:
        return db.query(CustomHabit).order_by(CustomHabit.display_order, CustomHabit.id).all()

    @staticmethod
    def get_enabled(db: Session) -> List[CustomHabit]:
        return db.query(CustomHabit).filter(
            CustomHabit.is_enabled == True
        ).order_by(CustomHabit.display_order, CustomHabit.id).all()

    @staticmethod
    def get_by_id(db: Session, habit_id: int) -> Optional[CustomHabit]:
        return db.query(CustomHabit).filter(CustomHabit.id == habit_id).first()

    @staticmethod
    def next_display_order(db: Session) -> int:
        last = db.query(CustomHabit).order_by(CustomHabit.display_order.desc()).first()
        return last.display_order + 1 if last else 0

    @staticmethod
    def create(db: Session, habit: CustomHabit) -> CustomHabit:
        db.add(habit)
        db.commit()
        db.refresh(habit)
        return habit

    @staticmethod
    def update(db: Session, habit: CustomHabit) -> CustomHabit:
        db.commit()
        db.refresh(habit)
        return habit

    @staticmethod
    def delete_all(db: Session) -> int:
        return db.query(CustomHabit).delete()
