"""
Gamification service.
Wires the engines together and routes every ritual completion through them
in order: progress, daily challenges, achievements, seasonal events, mood.
"""
import logging
import random
from datetime import datetime
from typing import List, Optional

from touchwood.constants import PERFECT_WEEK_DAYS, POINTS_PER_LEVEL, RECENT_MOOD_WINDOW_DAYS
from touchwood.exceptions import RitualNotFoundException, ValidationException
from touchwood.repositories.state_repository import StateRepository
from touchwood.schemas import (
    AggregateStats, ChallengeType, CompletionResult, DomainEvent, ProgressResponse,
    Ritual, RitualCategory, SharePayload, ShareType, UnlockContext
)
from touchwood.services.achievement_service import AchievementService
from touchwood.services.challenge_service import ChallengeService
from touchwood.services.date_service import DateService
from touchwood.services.mood_analytics_service import MoodAnalyticsService
from touchwood.services.notification_service import (
    CollectingNotificationSink, LoggingNotificationSink, NotificationSink
)
from touchwood.services.progress_tracker import ProgressTracker
from touchwood.services.ritual_catalog import RitualCatalog, WoodStyleStats
from touchwood.services.seasonal_event_service import SeasonalEventService, SeasonalUpdate
from touchwood.services.social_service import (
    SocialService, achievement_share_text, challenge_share_text,
    ritual_share_text, streak_share_text
)

logger = logging.getLogger("touchwood.gamification")


class GamificationService:
    """Facade over all progress and gamification engines"""

    def __init__(
        self,
        state_repo: StateRepository,
        date_service: DateService,
        rng: Optional[random.Random] = None,
        sink: Optional[NotificationSink] = None,
        strict: bool = False
    ):
        self.date_service = date_service
        self.notifications = CollectingNotificationSink(forward=sink or LoggingNotificationSink())

        self.progress = ProgressTracker(state_repo, date_service, self.notifications)
        self.challenges = ChallengeService(state_repo, date_service, rng, self.notifications, strict=strict)
        self.achievements = AchievementService(state_repo, date_service, self.notifications)
        self.social = SocialService(state_repo, date_service)
        self.catalog = RitualCatalog(state_repo, date_service)
        self.seasonal = SeasonalEventService(
            state_repo, date_service, self.notifications,
            context_provider=self.unlock_context, strict=strict
        )
        self.mood = MoodAnalyticsService(state_repo, date_service)

    # ----- Snapshots -----

    @property
    def total_points(self) -> int:
        return self.challenges.total_points + self.achievements.total_points

    @property
    def level(self) -> int:
        return 1 + self.total_points // POINTS_PER_LEVEL

    def aggregate_stats(self) -> AggregateStats:
        return AggregateStats(
            current_streak=self.progress.current_streak,
            total_rituals=self.progress.total_count,
            average_mood=self.progress.recent_average_mood(RECENT_MOOD_WINDOW_DAYS),
            has_perfect_week=self.progress.has_perfect_week(PERFECT_WEEK_DAYS),
            share_count=self.social.current_share_count(),
            custom_ritual_count=self.catalog.custom_ritual_count,
            consecutive_days=self.progress.best_streak
        )

    def unlock_context(self) -> UnlockContext:
        return UnlockContext(
            level=self.level,
            current_streak=self.progress.current_streak,
            unlocked_achievement_ids=self.achievements.unlocked_ids,
            share_count=self.social.current_share_count()
        )

    def wood_style_stats(self) -> WoodStyleStats:
        return WoodStyleStats(
            total_rituals=self.progress.total_count,
            best_streak=self.progress.best_streak,
            unlocked_achievements=len(self.achievements.unlocked_achievements),
            share_count=self.social.current_share_count(),
            completed_events=self.seasonal.completed_events_count
        )

    def progress_summary(self) -> ProgressResponse:
        return ProgressResponse(
            streak=self.progress.streak,
            today_count=self.progress.today_count,
            total_count=self.progress.total_count,
            level=self.level,
            total_points=self.total_points,
            ritual_counts=dict(self.progress.state.ritual_counts)
        )

    # ----- Completion pipeline -----

    def complete_ritual(
        self,
        ritual_id: str,
        mood: Optional[int] = None,
        note: Optional[str] = None,
        ritual_name: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> CompletionResult:
        """
        Record a ritual completion and let every engine react to it.

        A special ritual is usable only while unlocked, in season and under
        its usage cap; completing one spends a use.

        Args:
            ritual_id: Built-in, custom or special ritual id (unknown ids
                are recorded but match no challenge)
            mood: Optional mood 1..5
            note: Optional note
            ritual_name: Display name for mood analytics (looked up if omitted)
            at: Completion time (defaults to now)

        Returns:
            Completion outcome with every challenge, achievement and ritual
            it unlocked and the notifications it produced

        Raises:
            ValidationException: If mood is outside 1..5
            RitualUnavailableException: If a special ritual cannot be used now
        """
        if mood is not None and not 1 <= mood <= 5:
            raise ValidationException("mood", "must be between 1 and 5")

        emitted_before = self.notifications.emitted

        special = self.seasonal.find_special_ritual(ritual_id)
        if special is not None:
            self.seasonal.use_special_ritual(ritual_id)

        self.challenges.refresh_daily_challenges()
        first_today = self.progress.today_count == 0

        # Progress
        event = self.progress.record_completion(ritual_id, mood=mood, note=note, at=at)

        # Daily challenges
        completed = self.challenges.update_progress(ChallengeType.RITUALS)
        if first_today:
            completed += self.challenges.update_progress(ChallengeType.STREAK)
        if mood is not None:
            completed += self.challenges.update_mood_progress(mood)
        completed += self.challenges.update_variety_progress(self.progress.distinct_rituals_today())
        completed += self.challenges.update_time_progress(event.timestamp.hour)

        # Achievements
        unlocked_achievements = self.achievements.evaluate(self.aggregate_stats())

        # Seasonal events
        seasonal = SeasonalUpdate()
        seasonal.merge(self.seasonal.complete_ritual(ritual_id))
        seasonal.merge(self.seasonal.update_streak(self.progress.current_streak))
        seasonal.merge(self.seasonal.evaluate_unlocks(self.unlock_context()))

        # Mood
        if mood is not None:
            if ritual_name is None:
                ritual_name = special[1].name_key if special else self.catalog.ritual_name(ritual_id)
            self.mood.add_entry(ritual_id, ritual_name, mood, note=note, at=event.timestamp)

        self.catalog.refresh_wood_styles(self.wood_style_stats())

        logger.info(
            f"Ritual {ritual_id} completed: streak {self.progress.streak.current_count}, "
            f"{len(completed)} challenge(s), {len(unlocked_achievements)} achievement(s), "
            f"{len(seasonal.unlocked_rituals)} ritual unlock(s)"
        )

        return CompletionResult(
            event=event,
            streak=self.progress.streak,
            today_count=self.progress.today_count,
            completed_challenges=completed,
            unlocked_achievements=unlocked_achievements,
            unlocked_rituals=seasonal.unlocked_rituals,
            notifications=self.notifications.events_since(emitted_before)
        )

    def perform_special_ritual(
        self,
        ritual_id: str,
        mood: Optional[int] = None,
        note: Optional[str] = None
    ) -> CompletionResult:
        """
        Complete a seasonal special ritual.

        Raises:
            RitualNotFoundException: If no seasonal event owns the ritual
        """
        if self.seasonal.find_special_ritual(ritual_id) is None:
            raise RitualNotFoundException(ritual_id)
        return self.complete_ritual(ritual_id, mood=mood, note=note)

    def refresh_daily_challenges(self) -> bool:
        return self.challenges.refresh_daily_challenges()

    # ----- Social -----

    def share(self, share_type: ShareType, item_id: Optional[str] = None) -> SharePayload:
        """
        Share an item and count it toward share-gated unlocks.

        Raises:
            ValidationException: If the shared achievement or challenge is unknown
        """
        text = self._share_text(share_type, item_id)
        payload = self.social.record_share(share_type, text, item_id)

        self.seasonal.record_share()
        self.achievements.evaluate(self.aggregate_stats())
        self.seasonal.evaluate_unlocks(self.unlock_context())
        self.catalog.refresh_wood_styles(self.wood_style_stats())
        return payload

    def _share_text(self, share_type: ShareType, item_id: Optional[str]) -> str:
        if share_type == ShareType.ACHIEVEMENT:
            achievement = self.achievements.get(item_id) if item_id else None
            if achievement is None:
                raise ValidationException("item_id", "unknown achievement")
            return achievement_share_text(achievement, self.progress.current_streak)
        if share_type == ShareType.STREAK:
            return streak_share_text(self.progress.current_streak)
        if share_type == ShareType.RITUAL:
            return ritual_share_text(self.catalog.ritual_name(item_id) if item_id else "a ritual")
        if share_type == ShareType.CHALLENGE:
            challenge = next((c for c in self.challenges.current_challenges if c.id == item_id), None)
            if challenge is None:
                raise ValidationException("item_id", "unknown challenge")
            return challenge_share_text(challenge)
        raise TypeError(f"Unknown share type: {share_type}")

    # ----- Custom rituals -----

    def create_custom_ritual(
        self,
        name: str,
        description: str = "",
        icon: str = "star",
        category: RitualCategory = RitualCategory.CUSTOM
    ) -> Ritual:
        ritual = self.catalog.create_custom_ritual(name, description, icon, category)
        self.achievements.evaluate(self.aggregate_stats())
        return ritual

    def drain_notifications(self) -> List[DomainEvent]:
        return self.notifications.drain()
