"""
Tests for StreakEvaluator and StreakService.

Tests cover:
1. Current/longest streak from a record ledger
2. Open-day grace and single-miss recovery tolerance
3. Recovery allowance and recover_streak
4. Perfect-morning recording and revocation
5. Day finalization and idempotency
"""
import pytest
from datetime import date, timedelta

from morningproof.services.streak_service import StreakEvaluator, StreakService
from morningproof.services.date_service import DateService
from morningproof.models import StreakRecord
from morningproof.exceptions import StreakNotRecoverableException
from morningproof.tests.conftest import add_streak_records, create_log


def rec(day: date, completed: bool) -> StreakRecord:
    return StreakRecord(date=day, was_completed=completed)


def pattern(last_day: date, values):
    """Unsaved records oldest first, ending on last_day"""
    start = last_day - timedelta(days=len(values) - 1)
    return [rec(start + timedelta(days=i), value) for i, value in enumerate(values)]


class TestStreakEvaluator:
    """Pure streak arithmetic"""

    def test_missed_last_day_breaks_streak(self, today, yesterday):
        """{T, T, F} ending yesterday gives 0"""
        result = StreakEvaluator.evaluate(pattern(yesterday, [True, True, False]), today)

        assert result.current_streak == 0
        assert result.longest_streak == 2

    def test_trailing_completed_days_count(self, today, yesterday):
        """{F, T, T} ending yesterday gives 2"""
        result = StreakEvaluator.evaluate(pattern(yesterday, [False, True, True]), today)

        assert result.current_streak == 2
        assert result.broken_date is None

    def test_today_counts_once_recorded(self, today):
        result = StreakEvaluator.evaluate(pattern(today, [True, True, True]), today)

        assert result.current_streak == 3

    def test_open_today_does_not_break_streak(self, today, yesterday):
        """No record for today yet: the streak is judged from yesterday"""
        result = StreakEvaluator.evaluate(pattern(yesterday, [True, True]), today)

        assert result.current_streak == 2

    def test_gap_in_dates_is_a_miss(self, today, yesterday):
        records = [rec(yesterday - timedelta(days=3), True), rec(yesterday, True)]

        result = StreakEvaluator.evaluate(records, today)

        assert result.current_streak == 1
        assert result.longest_streak == 1

    def test_longest_run(self, today, yesterday):
        result = StreakEvaluator.evaluate(pattern(yesterday, [True, True, True, False, True]), today)

        assert result.longest_streak == 3
        assert result.current_streak == 1

    def test_duplicate_dates_last_wins(self, today, yesterday):
        records = [rec(yesterday, False), rec(yesterday, True)]

        result = StreakEvaluator.evaluate(records, today)

        assert result.current_streak == 1

    def test_empty_ledger(self, today):
        result = StreakEvaluator.evaluate([], today)

        assert result.current_streak == 0
        assert result.longest_streak == 0
        assert result.broken_date is None

    def test_tolerance_keeps_prior_value_over_one_miss(self, today, yesterday):
        """With a recovery available a single missed head day is skipped"""
        result = StreakEvaluator.evaluate(pattern(yesterday, [True, True, False]), today, tolerance=1)

        assert result.current_streak == 2
        assert result.broken_date == yesterday
        assert result.streak_if_recovered == 3

    def test_two_consecutive_misses_break_even_with_tolerance(self, today, yesterday):
        """Missed day N followed by missed N+1 gives 0"""
        result = StreakEvaluator.evaluate(pattern(yesterday, [True, True, False, False]), today, tolerance=1)

        assert result.current_streak == 0
        assert result.broken_date is None

    def test_tolerance_skips_a_single_miss_inside_the_run(self, today, yesterday):
        """{T, F, T, T} ending yesterday gives 3 while a recovery is available"""
        result = StreakEvaluator.evaluate(pattern(yesterday, [True, False, True, True]), today, tolerance=1)

        assert result.current_streak == 3
        assert result.broken_date == yesterday - timedelta(days=2)
        assert result.streak_if_recovered == 4

    def test_miss_inside_the_run_ends_it_without_tolerance(self, today, yesterday):
        result = StreakEvaluator.evaluate(pattern(yesterday, [True, False, True, True]), today)

        assert result.current_streak == 2

    def test_completed_day_after_a_miss_keeps_it_recoverable(self, today, yesterday):
        """{T, T, T, F, T} ending today: the missed day stays repairable"""
        result = StreakEvaluator.evaluate(pattern(today, [True, True, True, False, True]), today, tolerance=1)

        assert result.current_streak == 4
        assert result.broken_date == yesterday
        assert result.streak_if_recovered == 5

    def test_only_one_miss_is_tolerated(self, today, yesterday):
        result = StreakEvaluator.evaluate(
            pattern(yesterday, [True, False, True, False, True]), today, tolerance=1
        )

        assert result.current_streak == 2
        assert result.broken_date == yesterday - timedelta(days=1)

    def test_recovered_days_count(self, today, yesterday):
        records = pattern(yesterday, [True, True, True])
        records[1].was_recovered = True

        result = StreakEvaluator.evaluate(records, today)

        assert result.current_streak == 3


class TestRecoveryAllowance:
    """Tests for recovery token bookkeeping"""

    def test_free_tier_has_no_monthly_token(self, db_session, default_settings, today):
        service = StreakService(db_session)

        assert service.recovery_tokens_available(default_settings, today) == 0
        assert service.tolerance(default_settings, today) == 0

    def test_premium_tier_gets_one_per_month(self, db_session, default_settings, today):
        default_settings.is_premium = True
        service = StreakService(db_session)

        assert service.recovery_tokens_available(default_settings, today) == 1
        assert service.tolerance(default_settings, today) == 1

    def test_used_token_resets_next_month(self, db_session, default_settings, today):
        default_settings.is_premium = True
        default_settings.recoveries_used_this_month = 1
        default_settings.recoveries_month = DateService.month_key(today)
        service = StreakService(db_session)

        assert service.recovery_tokens_available(default_settings, today) == 0
        assert service.recovery_tokens_available(default_settings, today + timedelta(days=31)) == 1

    def test_purchased_tokens_add_to_allowance(self, db_session, default_settings, today):
        default_settings.purchased_recovery_tokens = 2
        service = StreakService(db_session)

        assert service.recovery_tokens_available(default_settings, today) == 2

    def test_disabled_recovery_means_no_tolerance(self, db_session, default_settings, today):
        default_settings.is_premium = True
        default_settings.allow_streak_recovery = False
        service = StreakService(db_session)

        assert service.tolerance(default_settings, today) == 0


class TestRecoverStreak:
    """Tests for recover_streak"""

    def test_recover_repairs_missed_day(self, db_session, default_settings, today, yesterday):
        default_settings.is_premium = True
        db_session.commit()
        add_streak_records(db_session, yesterday, [True, True, False])
        service = StreakService(db_session)

        status = service.recover_streak(today)

        record = db_session.query(StreakRecord).filter(StreakRecord.date == yesterday).one()
        assert record.was_completed is True
        assert record.was_recovered is True
        assert status.current_streak == 3
        assert default_settings.recoveries_used_this_month == 1
        assert default_settings.recoveries_month == DateService.month_key(today)

    def test_perfect_morning_after_a_miss_stays_recoverable(self, db_session, default_settings, today, yesterday):
        default_settings.is_premium = True
        db_session.commit()
        add_streak_records(db_session, yesterday, [True] * 5 + [False])
        service = StreakService(db_session)

        service.record_perfect_morning(today)
        status = service.get_status(today)

        assert status.current_streak == 6
        assert status.recoverable is True
        assert status.broken_date == yesterday
        assert status.streak_if_recovered == 7

        assert service.recover_streak(today).current_streak == 7
        assert default_settings.current_streak == 7

    def test_prior_value_kept_only_while_token_unused(self, db_session, default_settings, today, yesterday):
        default_settings.is_premium = True
        db_session.commit()
        add_streak_records(db_session, yesterday, [True, True, False])
        service = StreakService(db_session)

        assert service.evaluate(today).current_streak == 2

        default_settings.recoveries_used_this_month = 1
        default_settings.recoveries_month = DateService.month_key(today)
        db_session.commit()

        assert service.evaluate(today).current_streak == 0

    def test_second_recovery_in_month_rejected(self, db_session, default_settings, today, yesterday):
        default_settings.is_premium = True
        db_session.commit()
        add_streak_records(db_session, yesterday - timedelta(days=2), [True, False])
        service = StreakService(db_session)
        service.recover_streak(yesterday - timedelta(days=1))

        with pytest.raises(StreakNotRecoverableException):
            service.recover_streak(yesterday - timedelta(days=1))

    def test_purchased_token_used_after_monthly(self, db_session, default_settings, today, yesterday):
        default_settings.purchased_recovery_tokens = 1
        db_session.commit()
        add_streak_records(db_session, yesterday, [True, False])
        service = StreakService(db_session)

        service.recover_streak(today)

        assert default_settings.purchased_recovery_tokens == 0
        assert default_settings.recoveries_used_this_month == 0

    def test_nothing_to_recover(self, db_session, default_settings, today, yesterday):
        default_settings.is_premium = True
        db_session.commit()
        add_streak_records(db_session, yesterday, [True, True])
        service = StreakService(db_session)

        with pytest.raises(StreakNotRecoverableException):
            service.recover_streak(today)

    def test_recovery_disabled(self, db_session, default_settings, today, yesterday):
        default_settings.is_premium = True
        default_settings.allow_streak_recovery = False
        db_session.commit()
        add_streak_records(db_session, yesterday, [True, False])

        with pytest.raises(StreakNotRecoverableException):
            StreakService(db_session).recover_streak(today)

    def test_no_tokens(self, db_session, default_settings, today, yesterday):
        add_streak_records(db_session, yesterday, [True, False])

        with pytest.raises(StreakNotRecoverableException):
            StreakService(db_session).recover_streak(today)


class TestPerfectMorningRecording:
    """Tests for record_perfect_morning / revoke_perfect_morning"""

    def test_record_is_idempotent(self, db_session, default_settings, today, yesterday):
        add_streak_records(db_session, yesterday, [True, True])
        service = StreakService(db_session)

        assert service.record_perfect_morning(today) is True
        assert service.record_perfect_morning(today) is False

        assert default_settings.total_perfect_mornings == 1
        assert default_settings.last_perfect_morning_date == today
        assert default_settings.current_streak == 3
        assert default_settings.longest_streak == 3

    def test_emergency_unlock_blocks_recording(self, db_session, default_settings, today):
        default_settings.emergency_unlock_date = today
        db_session.commit()

        assert StreakService(db_session).record_perfect_morning(today) is False
        assert db_session.query(StreakRecord).count() == 0

    def test_longest_streak_never_decreases(self, db_session, default_settings, today, yesterday):
        default_settings.longest_streak = 10
        db_session.commit()
        add_streak_records(db_session, yesterday, [True, True])

        settings = StreakService(db_session).refresh_counters(today)

        assert settings.current_streak == 2
        assert settings.longest_streak == 10

    def test_revoke_removes_open_day(self, db_session, default_settings, today, yesterday):
        add_streak_records(db_session, yesterday, [True])
        service = StreakService(db_session)
        service.record_perfect_morning(today)

        assert service.revoke_perfect_morning(today) is True

        assert db_session.query(StreakRecord).filter(StreakRecord.date == today).count() == 0
        assert default_settings.total_perfect_mornings == 0
        assert default_settings.current_streak == 1
        assert default_settings.last_perfect_morning_date == yesterday

    def test_revoke_without_record(self, db_session, default_settings, today):
        assert StreakService(db_session).revoke_perfect_morning(today) is False


class TestFinalizeDays:
    """Tests for finalize_days"""

    def test_writes_record_per_past_day(self, db_session, default_settings, today, yesterday):
        create_log(db_session, yesterday - timedelta(days=2), perfect=True)
        create_log(db_session, yesterday - timedelta(days=1), perfect=False)
        service = StreakService(db_session)

        created = service.finalize_days(today)

        assert [r.date for r in created] == [
            yesterday - timedelta(days=2), yesterday - timedelta(days=1), yesterday
        ]
        assert [r.was_completed for r in created] == [True, False, False]
        assert default_settings.current_streak == 0
        assert default_settings.longest_streak == 1

    def test_idempotent(self, db_session, default_settings, today, yesterday):
        create_log(db_session, yesterday, perfect=True)
        service = StreakService(db_session)

        service.finalize_days(today)
        assert service.finalize_days(today) == []
        assert db_session.query(StreakRecord).count() == 1

    def test_continues_after_last_record(self, db_session, default_settings, today, yesterday):
        add_streak_records(db_session, yesterday - timedelta(days=2), [True])
        create_log(db_session, yesterday, perfect=True)

        created = StreakService(db_session).finalize_days(today)

        assert [(r.date, r.was_completed) for r in created] == [
            (yesterday - timedelta(days=1), False), (yesterday, True)
        ]

    def test_emergency_unlocked_day_is_missed(self, db_session, default_settings, today, yesterday):
        create_log(db_session, yesterday, perfect=True)
        default_settings.emergency_unlock_date = yesterday
        db_session.commit()

        created = StreakService(db_session).finalize_days(today)

        assert created[0].was_completed is False

    def test_nothing_without_history(self, db_session, default_settings, today):
        assert StreakService(db_session).finalize_days(today) == []

    def test_today_is_never_finalized(self, db_session, default_settings, today):
        create_log(db_session, today, perfect=False)

        assert StreakService(db_session).finalize_days(today) == []
