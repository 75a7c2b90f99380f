"""
Achievement service.
Derives achievement stats from the streak ledger and daily logs and unlocks
achievements once their condition holds.
"""
import logging
from datetime import datetime, date, time, timedelta
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from morningproof.schemas import AchievementResponse
from morningproof.repositories.settings_repository import SettingsRepository
from morningproof.repositories.streak_repository import StreakRecordRepository, UnlockedAchievementRepository
from morningproof.repositories.log_repository import DailyLogRepository

logger = logging.getLogger("morningproof.achievements")

# Categories
CATEGORY_STREAK = "streak"
CATEGORY_CUMULATIVE = "cumulative"
CATEGORY_TIMING = "timing"
CATEGORY_COMEBACK = "comeback"
CATEGORY_SPECIAL = "special"

# Unlock rules
RULE_STREAK = "streak"
RULE_TOTAL = "total_completions"
RULE_EARLY = "early_completion"
RULE_COMEBACK = "comeback"
RULE_PERFECT_WEEK = "perfect_week"
RULE_WEEKEND = "weekend_warrior"
RULE_MONDAY = "monday_motivation"
RULE_SPECIAL = "special"

EARLY_HOURS = (7, 6)


def _achievement(id, title, description, icon, category, rule, requirement, hour=None, hidden=False):
    return {
        "id": id, "title": title, "description": description, "icon": icon,
        "category": category, "rule": rule, "requirement": requirement,
        "hour": hour, "is_hidden": hidden,
    }


ACHIEVEMENTS = [
    # Streak milestones
    _achievement("first_bed", "First Step", "Completed your first perfect morning", "bed.double.fill", CATEGORY_STREAK, RULE_STREAK, 1),
    _achievement("three_days", "Getting Started", "3 day streak", "flame", CATEGORY_STREAK, RULE_STREAK, 3),
    _achievement("one_week", "One Week Wonder", "7 day streak", "flame.fill", CATEGORY_STREAK, RULE_STREAK, 7),
    _achievement("two_weeks", "Habit Forming", "14 day streak", "star.fill", CATEGORY_STREAK, RULE_STREAK, 14),
    _achievement("three_weeks", "Committed", "21 day streak - it's a habit now!", "star.circle.fill", CATEGORY_STREAK, RULE_STREAK, 21),
    _achievement("one_month", "Monthly Master", "30 day streak", "crown", CATEGORY_STREAK, RULE_STREAK, 30),
    _achievement("sixty_days", "Unstoppable", "60 day streak", "crown.fill", CATEGORY_STREAK, RULE_STREAK, 60),
    _achievement("ninety_days", "Quarter Champion", "90 day streak", "trophy", CATEGORY_STREAK, RULE_STREAK, 90),
    _achievement("half_year", "Half Year Hero", "180 day streak", "trophy.fill", CATEGORY_STREAK, RULE_STREAK, 180),
    _achievement("one_year", "Legendary", "365 day streak - You're a legend!", "medal.fill", CATEGORY_STREAK, RULE_STREAK, 365),

    # Total perfect mornings
    _achievement("total_10", "Getting Consistent", "10 total completions", "10.circle.fill", CATEGORY_CUMULATIVE, RULE_TOTAL, 10),
    _achievement("total_25", "Quarter Century", "25 total completions", "25.circle.fill", CATEGORY_CUMULATIVE, RULE_TOTAL, 25),
    _achievement("total_50", "Fifty Strong", "50 total completions", "50.circle.fill", CATEGORY_CUMULATIVE, RULE_TOTAL, 50),
    _achievement("total_100", "Century Club", "100 total completions", "100.circle.fill", CATEGORY_CUMULATIVE, RULE_TOTAL, 100),
    _achievement("total_250", "Dedicated", "250 total completions", "chart.line.uptrend.xyaxis", CATEGORY_CUMULATIVE, RULE_TOTAL, 250),
    _achievement("total_500", "500 Strong", "500 total completions", "star.leadinghalf.filled", CATEGORY_CUMULATIVE, RULE_TOTAL, 500),
    _achievement("total_1000", "Thousand Days", "1000 total completions - incredible!", "diamond.fill", CATEGORY_CUMULATIVE, RULE_TOTAL, 1000),

    # Early bird
    _achievement("early_bird_1", "Early Bird", "Complete before 7 AM", "sunrise", CATEGORY_TIMING, RULE_EARLY, 1, hour=7),
    _achievement("early_bird_7", "Dawn Patrol", "Complete before 7 AM, 7 times", "sunrise.fill", CATEGORY_TIMING, RULE_EARLY, 7, hour=7),
    _achievement("early_bird_30", "Rise and Shine", "Complete before 7 AM, 30 times", "sun.max.fill", CATEGORY_TIMING, RULE_EARLY, 30, hour=7),
    _achievement("super_early_1", "Before Dawn", "Complete before 6 AM", "moon.stars", CATEGORY_TIMING, RULE_EARLY, 1, hour=6),
    _achievement("super_early_10", "Night Owl Reformed", "Complete before 6 AM, 10 times", "moon.stars.fill", CATEGORY_TIMING, RULE_EARLY, 10, hour=6),

    # Resilience
    _achievement("bounce_back", "Bounce Back", "Complete a day after losing a 7+ day streak", "arrow.uturn.up", CATEGORY_COMEBACK, RULE_COMEBACK, 7),
    _achievement("phoenix_rising", "Phoenix Rising", "Rebuild to a 14-day streak after losing one", "flame.circle.fill", CATEGORY_COMEBACK, RULE_COMEBACK, 14),
    _achievement("never_give_up", "Never Give Up", "Comeback 3 times after losing streaks", "heart.circle.fill", CATEGORY_COMEBACK, RULE_COMEBACK, 3),
    _achievement("resilient", "Resilient", "Comeback 5 times after losing streaks", "shield.fill", CATEGORY_COMEBACK, RULE_COMEBACK, 5),
    _achievement("unbreakable_spirit", "Unbreakable Spirit", "Comeback 10 times - nothing stops you!", "bolt.shield.fill", CATEGORY_COMEBACK, RULE_COMEBACK, 10),

    # Special
    _achievement("perfect_week", "Perfect Week", "Complete every day for 7 days straight", "checkmark.seal.fill", CATEGORY_SPECIAL, RULE_PERFECT_WEEK, 7),
    _achievement("weekend_warrior_1", "Weekend Warrior", "Complete on both Saturday and Sunday", "calendar.badge.checkmark", CATEGORY_SPECIAL, RULE_WEEKEND, 1),
    _achievement("weekend_warrior_4", "Weekend Champion", "Complete 4 full weekends", "calendar.badge.checkmark", CATEGORY_SPECIAL, RULE_WEEKEND, 4),
    _achievement("monday_motivation_5", "Monday Motivation", "Complete on 5 Mondays", "1.circle.fill", CATEGORY_SPECIAL, RULE_MONDAY, 5),
    _achievement("monday_motivation_10", "Monday Master", "Complete on 10 Mondays", "1.square.fill", CATEGORY_SPECIAL, RULE_MONDAY, 10),
    _achievement("new_year", "New Year, New You", "Complete on January 1st", "party.popper.fill", CATEGORY_SPECIAL, RULE_SPECIAL, 1, hidden=True),
]

ACHIEVEMENTS_BY_ID = {a["id"]: a for a in ACHIEVEMENTS}


class AchievementStats:
    """Counters the unlock rules are evaluated against"""

    def __init__(self):
        self.current_streak = 0
        self.longest_streak = 0
        self.total_completions = 0
        self.early_completions: Dict[int, int] = {}  # hour -> mornings finished before it
        self.comeback_count = 0
        self.last_lost_streak = 0
        self.completed_weekends = 0
        self.monday_completions = 0
        self.completed_on_new_year = False


class AchievementService:
    """Service for achievements"""

    def __init__(self, db: Session):
        self.db = db
        self.settings_repo = SettingsRepository()
        self.record_repo = StreakRecordRepository()
        self.unlocked_repo = UnlockedAchievementRepository()
        self.log_repo = DailyLogRepository()

    def collect_stats(self) -> AchievementStats:
        """Build stats from the settings counters, streak ledger and perfect logs"""
        settings = self.settings_repo.get(self.db)
        stats = AchievementStats()
        stats.current_streak = settings.current_streak or 0
        stats.longest_streak = settings.longest_streak or 0
        stats.total_completions = settings.total_perfect_mornings or 0

        completed_days = sorted(r.date for r in self.record_repo.get_all(self.db) if r.was_completed)
        completed_set = set(completed_days)

        # Runs of consecutive completed days; each run after the first is a comeback
        runs = []
        previous: Optional[date] = None
        for day in completed_days:
            if previous is not None and day == previous + timedelta(days=1):
                runs[-1] += 1
            else:
                runs.append(1)
            previous = day
        stats.comeback_count = max(0, len(runs) - 1)
        stats.last_lost_streak = runs[-2] if len(runs) >= 2 else 0

        stats.completed_weekends = sum(
            1 for day in completed_days
            if day.weekday() == 5 and day + timedelta(days=1) in completed_set
        )
        stats.monday_completions = sum(1 for day in completed_days if day.weekday() == 0)
        stats.completed_on_new_year = any(day.month == 1 and day.day == 1 for day in completed_days)

        for hour in EARLY_HOURS:
            stats.early_completions[hour] = 0
        for log in self.log_repo.get_perfect(self.db):
            finished = [c.completed_at for c in log.completions if c.is_completed and c.completed_at]
            if not finished:
                continue
            finished_at = max(finished).time()
            for hour in EARLY_HOURS:
                if finished_at < time(hour=hour):
                    stats.early_completions[hour] += 1
        return stats

    @staticmethod
    def should_unlock(achievement: dict, stats: AchievementStats) -> bool:
        rule = achievement["rule"]
        requirement = achievement["requirement"]

        if rule == RULE_STREAK:
            return stats.current_streak >= requirement
        if rule == RULE_TOTAL:
            return stats.total_completions >= requirement
        if rule == RULE_EARLY:
            return stats.early_completions.get(achievement["hour"], 0) >= requirement
        if rule == RULE_COMEBACK:
            if achievement["id"] == "bounce_back":
                return stats.last_lost_streak >= requirement and stats.current_streak >= 1
            if achievement["id"] == "phoenix_rising":
                return stats.comeback_count >= 1 and stats.current_streak >= requirement
            return stats.comeback_count >= requirement
        if rule == RULE_PERFECT_WEEK:
            return stats.current_streak >= requirement
        if rule == RULE_WEEKEND:
            return stats.completed_weekends >= requirement
        if rule == RULE_MONDAY:
            return stats.monday_completions >= requirement
        if rule == RULE_SPECIAL and achievement["id"] == "new_year":
            return stats.completed_on_new_year
        return False

    def check_and_unlock(self, now: Optional[datetime] = None) -> List[str]:
        """
        Unlock every achievement whose condition now holds.

        Returns:
            Ids unlocked by this call (already-unlocked ids are never rewritten)
        """
        stats = self.collect_stats()
        unlocked_ids = self.unlocked_repo.get_unlocked_ids(self.db)
        newly_unlocked = []
        for achievement in ACHIEVEMENTS:
            if achievement["id"] in unlocked_ids:
                continue
            if self.should_unlock(achievement, stats):
                self.unlocked_repo.unlock(self.db, achievement["id"], now or datetime.now())
                newly_unlocked.append(achievement["id"])

        if newly_unlocked:
            self.db.commit()
            logger.info(f"Achievements unlocked: {', '.join(newly_unlocked)}")
        return newly_unlocked

    def list_achievements(self) -> List[AchievementResponse]:
        """Catalog with unlock state; hidden achievements appear only once unlocked"""
        unlocked = {row.achievement_id: row.unlocked_date for row in self.unlocked_repo.get_all(self.db)}
        return [
            AchievementResponse(
                id=a["id"],
                title=a["title"],
                description=a["description"],
                icon=a["icon"],
                category=a["category"],
                requirement=a["requirement"],
                is_hidden=a["is_hidden"],
                is_unlocked=a["id"] in unlocked,
                unlocked_date=unlocked.get(a["id"]),
            )
            for a in ACHIEVEMENTS
            if not a["is_hidden"] or a["id"] in unlocked
        ]

    def next_streak_achievement(self) -> Optional[AchievementResponse]:
        unlocked_ids = self.unlocked_repo.get_unlocked_ids(self.db)
        for achievement in self.list_achievements():
            if achievement.category == CATEGORY_STREAK and achievement.id not in unlocked_ids:
                return achievement
        return None
