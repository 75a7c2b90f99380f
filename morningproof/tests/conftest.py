"""
Shared fixtures for Morning Proof tests.
"""
import os
import tempfile

# Configure before any morningproof module reads the environment
os.environ["MORNINGPROOF_DATABASE_URL"] = "sqlite://"
os.environ.setdefault("MORNINGPROOF_API_KEY", "test-api-key")
os.environ.setdefault("MORNINGPROOF_LOG_DIR", tempfile.mkdtemp(prefix="morningproof-logs-"))

import pytest
from datetime import date, datetime, time, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from morningproof.database import Base
from morningproof import models  # noqa: F401
from morningproof.models import StreakRecord, DailyLog, HabitCompletion
from morningproof.repositories.settings_repository import SettingsRepository
from morningproof.repositories.habit_repository import HabitConfigRepository
from morningproof.shared_store import SharedStore

# A Wednesday, so weekday/weekend tests have fixed neighbours
TODAY = date(2025, 3, 12)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def tmp_shared_store(tmp_path, monkeypatch):
    """Point the shared store at a per-test directory"""
    monkeypatch.setenv("MORNINGPROOF_SHARED_DIR", str(tmp_path / "shared"))
    return SharedStore()


@pytest.fixture
def default_settings(db_session):
    settings = SettingsRepository.get(db_session)
    HabitConfigRepository.ensure_defaults(db_session)
    return settings


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def yesterday():
    return TODAY - timedelta(days=1)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour=hour, minute=minute))


def add_streak_records(db_session, last_day: date, pattern, recovered=()):
    """
    Write one StreakRecord per entry of pattern, oldest first, ending on last_day.

    Returns the dates written, oldest first.
    """
    days = [last_day - timedelta(days=offset) for offset in range(len(pattern) - 1, -1, -1)]
    for day, completed in zip(days, pattern):
        db_session.add(StreakRecord(
            date=day,
            was_completed=completed,
            was_recovered=day in recovered,
        ))
    db_session.commit()
    return days


def create_log(db_session, day: date, perfect: bool = False, completed_at: datetime = None, habit_types=()):
    """Daily log with completed entries for the given habit types"""
    log = DailyLog(date=day, morning_score=100 if perfect else 0, all_completed_before_cutoff=perfect)
    for habit_type in habit_types:
        log.completions.append(HabitCompletion(
            habit_type=habit_type,
            date=day,
            is_completed=True,
            score=100,
            completed_at=completed_at or at(day, 8),
        ))
    db_session.add(log)
    db_session.commit()
    return log
