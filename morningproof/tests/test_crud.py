"""
Tests for the orchestration layer: follow-up steps after a log change,
settings updates, day rollover and reset.
"""
import pytest

from morningproof import crud
from morningproof.models import StreakRecord, HabitConfig, CustomHabit, DailyLog
from morningproof.schemas import (
    BedVerificationRequest, SettingsUpdate, HabitConfigUpdate, CustomHabitCreate, CustomVerificationRequest
)
from morningproof.services.app_lock_service import AppLockService
from morningproof.repositories.streak_repository import UnlockedAchievementRepository
from morningproof.services.widget_service import KEY_COMPLETED_HABITS, KEY_TOTAL_HABITS
from morningproof.exceptions import ValidationException, VerificationFailedException
from morningproof.tests.conftest import at, create_log, add_streak_records


def finish_morning(db, day, hour=7):
    """Complete every default-enabled habit through the orchestration layer"""
    crud.complete_bed_verification(db, BedVerificationRequest(is_made=True, score=9), now=at(day, hour))
    crud.update_steps(db, 800, now=at(day, hour, 5))
    crud.update_sleep(db, 7.5, now=at(day, hour, 10))
    return crud.complete_habit(db, "drank_water", now=at(day, hour, 15))


def today_record(db, day):
    return db.query(StreakRecord).filter(StreakRecord.date == day).first()


class TestAfterLogChange:

    def test_perfect_morning_runs_follow_ups(self, db_session, default_settings, tmp_shared_store, today):
        log = finish_morning(db_session, today)

        assert log.all_completed_before_cutoff is True
        assert today_record(db_session, today).was_completed is True
        assert default_settings.current_streak == 1
        assert default_settings.total_perfect_mornings == 1
        assert AppLockService(db_session, tmp_shared_store).has_locked_in_today(at(today, 8))
        assert "first_bed" in UnlockedAchievementRepository.get_unlocked_ids(db_session)
        assert tmp_shared_store.get(KEY_COMPLETED_HABITS) == 4

    def test_perfect_morning_after_a_miss_keeps_prior_streak(self, db_session, default_settings, today, yesterday):
        default_settings.is_premium = True
        db_session.commit()
        add_streak_records(db_session, yesterday, [True] * 5 + [False])

        finish_morning(db_session, today)
        status = crud.get_streak_status(db_session, now=at(today, 8))

        assert default_settings.current_streak == 6
        assert status.recoverable is True
        assert status.broken_date == yesterday

        assert crud.recover_streak(db_session, now=at(today, 8)).current_streak == 7

    def test_late_finish_locks_in_without_streak(self, db_session, default_settings, tmp_shared_store, today):
        log = finish_morning(db_session, today, hour=9)

        assert log.all_completed_before_cutoff is False
        assert today_record(db_session, today) is None
        assert AppLockService(db_session, tmp_shared_store).has_locked_in_today(at(today, 10))

    def test_undo_revokes_todays_record(self, db_session, default_settings, today):
        finish_morning(db_session, today)

        crud.undo_completion(db_session, "drank_water", now=at(today, 8))

        assert today_record(db_session, today) is None
        assert default_settings.total_perfect_mornings == 0
        assert default_settings.current_streak == 0

    def test_past_day_edit_does_not_touch_ledger(self, db_session, default_settings, today, yesterday):
        log = create_log(db_session, yesterday, perfect=True)

        crud._after_log_change(db_session, log, at(today, 8))

        assert db_session.query(StreakRecord).count() == 0

    def test_emergency_unlock_voids_today(self, db_session, default_settings, today):
        finish_morning(db_session, today)

        status = crud.emergency_unlock(db_session, now=at(today, 8))

        assert status.was_emergency_unlock is True
        assert today_record(db_session, today) is None
        assert default_settings.emergency_unlock_date == today

        crud.complete_habit(db_session, "drank_water", now=at(today, 8, 30))
        assert today_record(db_session, today) is None


class TestHabitChanges:

    def test_new_custom_habit_reopens_the_morning(self, db_session, default_settings, tmp_shared_store, today):
        finish_morning(db_session, today)

        habit = crud.create_custom_habit(db_session, CustomHabitCreate(name="Cold shower"), now=at(today, 7, 30))

        assert today_record(db_session, today) is None
        assert tmp_shared_store.get(KEY_TOTAL_HABITS) == 5

        crud.complete_custom_habit(db_session, habit.id, now=at(today, 7, 45))

        assert today_record(db_session, today).was_completed is True
        assert default_settings.current_streak == 1
        assert default_settings.total_perfect_mornings == 1

    def test_failed_custom_verification_changes_nothing(self, db_session, default_settings, today):
        habit = crud.create_custom_habit(
            db_session, CustomHabitCreate(name="Plants", verification_type="ai_verified"), now=at(today, 6)
        )

        with pytest.raises(VerificationFailedException):
            crud.complete_custom_verification(
                db_session, habit.id, CustomVerificationRequest(is_verified=False), now=at(today, 7)
            )

        completion = crud.get_completion(db_session, today, habit.habit_key)
        assert completion.is_completed is False

    def test_raised_step_goal_revokes_perfect_morning(self, db_session, default_settings, today):
        finish_morning(db_session, today)

        crud.update_habit_config(db_session, "morning_steps", HabitConfigUpdate(goal=1000), now=at(today, 8))

        assert today_record(db_session, today) is None
        assert default_settings.current_streak == 0

    def test_today_counts_only_scheduled_habits(self, db_session, default_settings, today):
        crud.update_habit_config(db_session, "drank_water", HabitConfigUpdate(active_days=[0, 6]), now=at(today, 6))

        response = crud.get_today(db_session, now=at(today, 6))

        assert response.enabled_count == 3
        assert "drank_water" not in [c.habit_type for c in response.log.completions]


class TestUpdateSettings:

    def test_earlier_deadline_revokes_perfect_morning(self, db_session, default_settings, today):
        finish_morning(db_session, today, hour=8)
        assert today_record(db_session, today) is not None

        crud.update_settings(db_session, SettingsUpdate(morning_cutoff_minutes=480), now=at(today, 8, 45))

        assert today_record(db_session, today) is None
        assert db_session.query(DailyLog).filter(DailyLog.date == today).one().all_completed_before_cutoff is False

    def test_invalid_warning_rolls_back(self, db_session, default_settings, today):
        with pytest.raises(ValidationException):
            crud.update_settings(
                db_session, SettingsUpdate(user_name="Sam", warning_minutes=[0]), now=at(today, 6)
            )

        settings = crud.get_settings(db_session)
        assert settings.warning_minutes == [15, 5, 1]
        assert settings.user_name == ""

    def test_deadline_mode_round_trip(self, db_session, default_settings, today):
        settings = crud.update_settings(
            db_session,
            SettingsUpdate(deadline_mode=2, per_day_deadlines=[600, 420, 430, 440, 450, 460, 720]),
            now=at(today, 6),
        )

        assert settings.deadline_mode == 2
        assert settings.custom_deadlines_enabled is False
        assert crud.get_deadline(db_session, today).deadline_minutes == 440


class TestDayRollover:

    def test_finalizes_and_resets_lock(self, db_session, default_settings, tmp_shared_store, today, yesterday):
        create_log(db_session, yesterday, perfect=True)
        AppLockService(db_session, tmp_shared_store).lock_in_day(at(yesterday, 8))

        result = crud.run_day_rollover(db_session, at(today, 0, 1))

        assert result == {"finalized": 1, "lock_reset": True}
        assert default_settings.current_streak == 1
        assert crud.run_day_rollover(db_session, at(today, 0, 2)) == {"finalized": 0, "lock_reset": False}

    def test_finalize_response(self, db_session, default_settings, today, yesterday):
        create_log(db_session, yesterday, perfect=False)

        response = crud.finalize_days(db_session, at(today, 6))

        assert [(r.date, r.was_completed) for r in response.finalized] == [(yesterday, False)]
        assert response.streak.current_streak == 0


class TestReset:

    def test_reset_clears_everything(self, db_session, default_settings, tmp_shared_store, today):
        finish_morning(db_session, today)
        crud.create_custom_habit(db_session, CustomHabitCreate(name="Cold shower"), now=at(today, 8))

        settings = crud.reset_all_data(db_session)

        assert settings.current_streak == 0
        assert settings.total_perfect_mornings == 0
        assert db_session.query(StreakRecord).count() == 0
        assert db_session.query(DailyLog).count() == 0
        assert UnlockedAchievementRepository.get_unlocked_ids(db_session) == set()
        assert db_session.query(HabitConfig).count() == 9
        assert db_session.query(CustomHabit).count() == 0
        assert tmp_shared_store.load() == {}
