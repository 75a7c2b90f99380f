"""
Tests for AchievementService.
"""
from datetime import date, timedelta

from morningproof.services.achievement_service import AchievementService, ACHIEVEMENTS
from morningproof.tests.conftest import add_streak_records, create_log, at


class TestUnlocking:
    """Tests for check_and_unlock"""

    def test_streak_milestones(self, db_session, default_settings, today):
        default_settings.current_streak = 3
        db_session.commit()
        service = AchievementService(db_session)

        unlocked = service.check_and_unlock(at(today, 8))

        assert "first_bed" in unlocked
        assert "three_days" in unlocked
        assert "one_week" not in unlocked

    def test_already_unlocked_not_reported_again(self, db_session, default_settings, today):
        default_settings.current_streak = 1
        db_session.commit()
        service = AchievementService(db_session)

        assert service.check_and_unlock(at(today, 8)) == ["first_bed"]
        assert service.check_and_unlock(at(today, 9)) == []

    def test_total_completions(self, db_session, default_settings, today):
        default_settings.total_perfect_mornings = 10
        db_session.commit()

        unlocked = AchievementService(db_session).check_and_unlock(at(today, 8))

        assert "total_10" in unlocked
        assert "total_25" not in unlocked

    def test_bounce_back_after_lost_week(self, db_session, default_settings, today, yesterday):
        add_streak_records(db_session, yesterday, [True] * 7 + [False, True])
        default_settings.current_streak = 1
        db_session.commit()
        service = AchievementService(db_session)

        stats = service.collect_stats()
        unlocked = service.check_and_unlock(at(today, 8))

        assert stats.comeback_count == 1
        assert stats.last_lost_streak == 7
        assert "bounce_back" in unlocked
        assert "phoenix_rising" not in unlocked

    def test_weekend_warrior(self, db_session, default_settings, today):
        saturday = date(2025, 3, 15)
        add_streak_records(db_session, saturday + timedelta(days=1), [True, True])

        unlocked = AchievementService(db_session).check_and_unlock(at(today, 8))

        assert "weekend_warrior_1" in unlocked

    def test_early_bird_uses_last_completion_time(self, db_session, default_settings, today, yesterday):
        create_log(db_session, yesterday, perfect=True, completed_at=at(yesterday, 6, 30),
                   habit_types=["drank_water", "no_snooze"])
        service = AchievementService(db_session)

        stats = service.collect_stats()
        unlocked = service.check_and_unlock(at(today, 8))

        assert stats.early_completions == {7: 1, 6: 0}
        assert "early_bird_1" in unlocked
        assert "super_early_1" not in unlocked

    def test_imperfect_logs_do_not_count_as_early(self, db_session, default_settings, yesterday):
        create_log(db_session, yesterday, perfect=False, completed_at=at(yesterday, 5),
                   habit_types=["drank_water"])

        assert AchievementService(db_session).collect_stats().early_completions[6] == 0


class TestListing:
    """Tests for list_achievements / next_streak_achievement"""

    def test_hidden_achievement_listed_only_once_unlocked(self, db_session, default_settings, today):
        service = AchievementService(db_session)
        assert "new_year" not in [a.id for a in service.list_achievements()]

        add_streak_records(db_session, date(2025, 1, 1), [True])
        service.check_and_unlock(at(today, 8))

        listed = {a.id: a for a in service.list_achievements()}
        assert listed["new_year"].is_unlocked is True
        assert listed["new_year"].is_hidden is True

    def test_visible_catalog(self, db_session, default_settings):
        listed = AchievementService(db_session).list_achievements()

        assert len(listed) == len([a for a in ACHIEVEMENTS if not a["is_hidden"]])
        assert not any(a.is_unlocked for a in listed)

    def test_next_streak_achievement(self, db_session, default_settings, today):
        service = AchievementService(db_session)
        assert service.next_streak_achievement().id == "first_bed"

        default_settings.current_streak = 1
        db_session.commit()
        service.check_and_unlock(at(today, 8))

        assert service.next_streak_achievement().id == "three_days"
