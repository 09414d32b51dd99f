"""
Achievement service.
Evaluates the fixed achievement catalog against aggregate stats and unlocks
each achievement at most once.
"""
import logging
from typing import List, Optional, Tuple

from touchwood.constants import KEY_ACHIEVEMENTS
from touchwood.repositories.state_repository import StateRepository
from touchwood.schemas import (
    Achievement, AchievementCategory, AchievementRecord, AchievementRequirement,
    AchievementState, AchievementUnlockedEvent, AggregateStats,
    ConsecutiveDaysRequirement, CustomRitualsRequirement, MoodAverageRequirement,
    PerfectWeekRequirement, ShareCountRequirement, StreakDaysRequirement,
    TotalRitualsRequirement
)
from touchwood.services.date_service import DateService
from touchwood.services.notification_service import NotificationSink

logger = logging.getLogger("touchwood.achievements")


def default_catalog() -> List[Achievement]:
    """Achievements in display order"""
    return [
        # Streak
        Achievement(id="first_streak", name_key="achievement_first_streak", icon="flame.fill",
                    category=AchievementCategory.STREAK, requirement=StreakDaysRequirement(days=3), points=10),
        Achievement(id="week_warrior", name_key="achievement_week_warrior", icon="calendar",
                    category=AchievementCategory.STREAK, requirement=StreakDaysRequirement(days=7), points=25),
        Achievement(id="month_master", name_key="achievement_month_master", icon="calendar.circle.fill",
                    category=AchievementCategory.STREAK, requirement=StreakDaysRequirement(days=30), points=100),
        # Rituals
        Achievement(id="first_ritual", name_key="achievement_first_ritual", icon="star.fill",
                    category=AchievementCategory.RITUALS, requirement=TotalRitualsRequirement(count=1), points=5),
        Achievement(id="ritual_collector", name_key="achievement_ritual_collector", icon="cube.fill",
                    category=AchievementCategory.RITUALS, requirement=TotalRitualsRequirement(count=50), points=50),
        Achievement(id="ritual_master", name_key="achievement_ritual_master", icon="crown.fill",
                    category=AchievementCategory.RITUALS, requirement=TotalRitualsRequirement(count=100), points=200),
        # Mood
        Achievement(id="positive_thinker", name_key="achievement_positive_thinker", icon="heart.fill",
                    category=AchievementCategory.MOOD, requirement=MoodAverageRequirement(average=4.0), points=30),
        Achievement(id="perfect_week", name_key="achievement_perfect_week", icon="sun.max.fill",
                    category=AchievementCategory.MOOD, requirement=PerfectWeekRequirement(), points=75),
        # Social
        Achievement(id="social_butterfly", name_key="achievement_social_butterfly", icon="person.2.fill",
                    category=AchievementCategory.SOCIAL, requirement=ShareCountRequirement(count=5), points=20),
        # Special
        Achievement(id="early_bird", name_key="achievement_early_bird", icon="sunrise.fill",
                    category=AchievementCategory.SPECIAL, requirement=ConsecutiveDaysRequirement(days=7), points=40),
        Achievement(id="creator", name_key="achievement_creator", icon="paintbrush.fill",
                    category=AchievementCategory.SPECIAL, requirement=CustomRitualsRequirement(count=3), points=60),
    ]


def requirement_met(requirement: AchievementRequirement, stats: AggregateStats) -> bool:
    """Test one requirement against a stats snapshot"""
    if isinstance(requirement, StreakDaysRequirement):
        return stats.current_streak >= requirement.days
    if isinstance(requirement, TotalRitualsRequirement):
        return stats.total_rituals >= requirement.count
    if isinstance(requirement, PerfectWeekRequirement):
        return stats.has_perfect_week
    if isinstance(requirement, MoodAverageRequirement):
        return stats.average_mood >= requirement.average
    if isinstance(requirement, ShareCountRequirement):
        return stats.share_count >= requirement.count
    if isinstance(requirement, CustomRitualsRequirement):
        return stats.custom_ritual_count >= requirement.count
    if isinstance(requirement, ConsecutiveDaysRequirement):
        return stats.consecutive_days >= requirement.days
    raise TypeError(f"Unknown achievement requirement: {type(requirement).__name__}")


def requirement_progress(requirement: AchievementRequirement, stats: AggregateStats) -> Tuple[float, float]:
    """(current, target) pair for progress display"""
    if isinstance(requirement, StreakDaysRequirement):
        return stats.current_streak, requirement.days
    if isinstance(requirement, TotalRitualsRequirement):
        return stats.total_rituals, requirement.count
    if isinstance(requirement, PerfectWeekRequirement):
        return (1 if stats.has_perfect_week else 0), 1
    if isinstance(requirement, MoodAverageRequirement):
        return stats.average_mood, requirement.average
    if isinstance(requirement, ShareCountRequirement):
        return stats.share_count, requirement.count
    if isinstance(requirement, CustomRitualsRequirement):
        return stats.custom_ritual_count, requirement.count
    if isinstance(requirement, ConsecutiveDaysRequirement):
        return stats.consecutive_days, requirement.days
    raise TypeError(f"Unknown achievement requirement: {type(requirement).__name__}")


class AchievementService:
    """Service for achievement unlocks and point totals"""

    def __init__(
        self,
        state_repo: StateRepository,
        date_service: DateService,
        sink: Optional[NotificationSink] = None,
        catalog: Optional[List[Achievement]] = None
    ):
        self.state_repo = state_repo
        self.date_service = date_service
        self.sink = sink
        self.achievements: List[Achievement] = catalog if catalog is not None else default_catalog()
        self.newly_unlocked: List[Achievement] = []

        state = state_repo.load(KEY_ACHIEVEMENTS, AchievementState, AchievementState)
        self.total_points = state.total_points
        unlocked = {record.id: record.unlocked_at for record in state.unlocked}
        for achievement in self.achievements:
            if achievement.id in unlocked:
                achievement.unlocked = True
                achievement.unlocked_at = unlocked[achievement.id]

    def evaluate(self, stats: AggregateStats) -> List[Achievement]:
        """
        Unlock every locked achievement whose requirement the stats meet.

        Already unlocked achievements are skipped, so evaluating the same
        snapshot twice unlocks nothing the second time.

        Args:
            stats: Current aggregate stats

        Returns:
            Newly unlocked achievements in catalog order
        """
        now = self.date_service.now()
        new_unlocks = []

        for achievement in self.achievements:
            if achievement.unlocked:
                continue
            if not requirement_met(achievement.requirement, stats):
                continue

            achievement.unlocked = True
            achievement.unlocked_at = now
            self.total_points += achievement.points
            new_unlocks.append(achievement)
            logger.info(f"Achievement unlocked: {achievement.id} (+{achievement.points} points)")

        if new_unlocks:
            self.newly_unlocked = list(new_unlocks)
            self._persist()
            if self.sink is not None:
                for achievement in new_unlocks:
                    self.sink.emit(AchievementUnlockedEvent(
                        occurred_at=now,
                        achievement_id=achievement.id,
                        points=achievement.points
                    ))

        return new_unlocks

    def clear_newly_unlocked(self) -> None:
        self.newly_unlocked = []

    def progress(self, achievement_id: str, stats: AggregateStats) -> Optional[Tuple[float, float]]:
        achievement = self.get(achievement_id)
        if achievement is None:
            return None
        return requirement_progress(achievement.requirement, stats)

    def get(self, achievement_id: str) -> Optional[Achievement]:
        return next((a for a in self.achievements if a.id == achievement_id), None)

    @property
    def unlocked_achievements(self) -> List[Achievement]:
        return [a for a in self.achievements if a.unlocked]

    @property
    def unlocked_ids(self) -> List[str]:
        return [a.id for a in self.achievements if a.unlocked]

    def _persist(self) -> None:
        state = AchievementState(
            unlocked=[
                AchievementRecord(id=a.id, unlocked_at=a.unlocked_at)
                for a in self.achievements if a.unlocked
            ],
            total_points=self.total_points
        )
        self.state_repo.save(KEY_ACHIEVEMENTS, AchievementState, state)
