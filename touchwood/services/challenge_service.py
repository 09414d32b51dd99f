"""
Daily challenge service.
Draws a fresh set of challenges each calendar day, advances them from
completion events and grants each challenge's reward exactly once.
"""
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from touchwood.constants import (
    CHALLENGES_PER_DAY_MIN, CHALLENGES_PER_DAY_MAX,
    MORNING_WINDOW, EVENING_WINDOW,
    CHALLENGE_KIND_MORNING, CHALLENGE_KIND_EVENING,
    KEY_DAILY_CHALLENGES
)
from touchwood.exceptions import InvariantViolation
from touchwood.repositories.state_repository import StateRepository
from touchwood.schemas import (
    ChallengeCompletedEvent, ChallengeReward, ChallengeState, ChallengeType, DailyChallenge
)
from touchwood.services.date_service import DateService
from touchwood.services.notification_service import NotificationSink

logger = logging.getLogger("touchwood.challenges")


@dataclass(frozen=True)
class ChallengeTemplate:
    template_id: str
    title_key: str
    type: ChallengeType
    target: int
    reward: ChallengeReward
    kind: Optional[str] = None


CHALLENGE_TEMPLATES = (
    ChallengeTemplate("daily_rituals_3", "challenge_daily_3_title", ChallengeType.RITUALS, 3,
                      ChallengeReward(points=10)),
    ChallengeTemplate("daily_rituals_5", "challenge_daily_5_title", ChallengeType.RITUALS, 5,
                      ChallengeReward(points=25, badge="Daily Devoted")),
    ChallengeTemplate("maintain_streak", "challenge_streak_title", ChallengeType.STREAK, 1,
                      ChallengeReward(points=15, badge="Streak Keeper")),
    ChallengeTemplate("positive_mood", "challenge_mood_title", ChallengeType.MOOD, 4,
                      ChallengeReward(points=20, badge="Positive Mind")),
    ChallengeTemplate("ritual_variety", "challenge_variety_title", ChallengeType.VARIETY, 2,
                      ChallengeReward(points=30, badge="Variety Master", custom_ritual_unlock="Lucky Charm")),
    ChallengeTemplate("morning_ritual", "challenge_morning_title", ChallengeType.TIME, 1,
                      ChallengeReward(points=15, badge="Early Bird"), kind=CHALLENGE_KIND_MORNING),
    ChallengeTemplate("evening_ritual", "challenge_evening_title", ChallengeType.TIME, 1,
                      ChallengeReward(points=15, badge="Night Owl"), kind=CHALLENGE_KIND_EVENING),
)


class ChallengeService:
    """Service for daily challenges"""

    def __init__(
        self,
        state_repo: StateRepository,
        date_service: DateService,
        rng: Optional[random.Random] = None,
        sink: Optional[NotificationSink] = None,
        templates: Iterable[ChallengeTemplate] = CHALLENGE_TEMPLATES,
        strict: bool = False
    ):
        self.state_repo = state_repo
        self.date_service = date_service
        self.rng = rng or random.Random()
        self.sink = sink
        self.templates = tuple(templates)
        self.strict = strict
        self.state: ChallengeState = state_repo.load(KEY_DAILY_CHALLENGES, ChallengeState, ChallengeState)

    # ----- Daily refresh -----

    def refresh_daily_challenges(self, now: Optional[datetime] = None) -> bool:
        """
        Replace the challenge set when a new calendar day has started.

        Draws 2-3 challenge types without replacement, then one template
        per type. Yesterday's unfinished challenges are discarded without
        reward.

        Args:
            now: Reference time (defaults to now)

        Returns:
            True if a new set was generated, False if today's set is kept
        """
        now = now or self.date_service.now()
        today = self.date_service.calendar_day(now)

        if self.state.last_refresh_day == today:
            return False

        expired = [c for c in self.state.current if not c.completed]
        if expired:
            logger.info(f"Discarding {len(expired)} unfinished challenge(s) from {self.state.last_refresh_day}")

        count = self.rng.randint(CHALLENGES_PER_DAY_MIN, CHALLENGES_PER_DAY_MAX)
        types = self.rng.sample(list(ChallengeType), count)

        challenges = []
        for challenge_type in types:
            candidates = [t for t in self.templates if t.type == challenge_type]
            if not candidates:
                continue
            template = self.rng.choice(candidates)
            challenges.append(self._instantiate(template, today))

        self.state.current = challenges
        self.state.last_refresh_day = today
        self._persist()

        logger.info(f"New daily challenges for {today}: {[c.template_id for c in challenges]}")
        return True

    def _instantiate(self, template: ChallengeTemplate, today) -> DailyChallenge:
        return DailyChallenge(
            id=str(uuid.UUID(int=self.rng.getrandbits(128), version=4)),
            template_id=template.template_id,
            title_key=template.title_key,
            type=template.type,
            kind=template.kind,
            target=template.target,
            reward=template.reward,
            day=today
        )

    # ----- Progress -----

    def _active(self, challenge_type: ChallengeType) -> List[DailyChallenge]:
        """Today's not-yet-completed challenges of a type"""
        today = self.date_service.today()
        return [
            c for c in self.state.current
            if c.type == challenge_type and not c.completed and c.day == today
        ]

    def update_progress(self, challenge_type: ChallengeType, increment: int = 1) -> List[DailyChallenge]:
        """
        Add progress to every active challenge of a type.

        Args:
            challenge_type: Type of challenge to advance
            increment: Amount to add

        Returns:
            Challenges completed by this update
        """
        completed = []
        for challenge in self._active(challenge_type):
            challenge.progress += increment
            if challenge.progress >= challenge.target:
                self._complete(challenge)
                completed.append(challenge)

        self._persist()
        return completed

    def update_mood_progress(self, mood: int) -> List[DailyChallenge]:
        """
        Pass/fail check for mood challenges.

        The challenge completes at once when the mood reaches its target;
        a lower mood changes nothing.
        """
        completed = []
        for challenge in self._active(ChallengeType.MOOD):
            if mood >= challenge.target:
                challenge.progress = challenge.target
                self._complete(challenge)
                completed.append(challenge)

        self._persist()
        return completed

    def update_variety_progress(self, ritual_ids: Iterable[str]) -> List[DailyChallenge]:
        """
        Set variety progress to the number of distinct rituals performed.

        This is a measurement, so repeating the call with the same set is
        idempotent.
        """
        distinct = len(set(ritual_ids))
        completed = []
        for challenge in self._active(ChallengeType.VARIETY):
            challenge.progress = distinct
            if challenge.progress >= challenge.target:
                self._complete(challenge)
                completed.append(challenge)

        self._persist()
        return completed

    def update_time_progress(self, completion_hour: int) -> List[DailyChallenge]:
        """
        Complete morning/evening challenges for a ritual at the given hour.

        Morning is [6, 12) and evening is [18, 24).
        """
        is_morning = MORNING_WINDOW[0] <= completion_hour < MORNING_WINDOW[1]
        is_evening = EVENING_WINDOW[0] <= completion_hour < EVENING_WINDOW[1]

        completed = []
        for challenge in self._active(ChallengeType.TIME):
            if (challenge.kind == CHALLENGE_KIND_MORNING and is_morning) or \
                    (challenge.kind == CHALLENGE_KIND_EVENING and is_evening):
                challenge.progress = challenge.target
                self._complete(challenge)
                completed.append(challenge)

        self._persist()
        return completed

    def _complete(self, challenge: DailyChallenge) -> None:
        """Flip a challenge to completed and grant its reward"""
        if challenge.completed:
            if self.strict:
                raise InvariantViolation(f"challenge {challenge.id} rewarded twice")
            logger.error(f"Challenge {challenge.id} already completed; reward not granted again")
            return

        now = self.date_service.now()
        challenge.progress = min(challenge.progress, challenge.target)
        challenge.completed = True
        challenge.completed_at = now

        reward = challenge.reward
        self.state.total_points += reward.points
        if reward.badge and reward.badge not in self.state.badges:
            self.state.badges.append(reward.badge)
        if reward.custom_ritual_unlock and reward.custom_ritual_unlock not in self.state.unlocked_custom_rituals:
            self.state.unlocked_custom_rituals.append(reward.custom_ritual_unlock)
        self.state.history.append(challenge.model_copy(deep=True))

        logger.info(f"Challenge {challenge.template_id} completed (+{reward.points} points)")
        if self.sink is not None:
            self.sink.emit(ChallengeCompletedEvent(
                occurred_at=now,
                challenge_id=challenge.id,
                title_key=challenge.title_key,
                points=reward.points
            ))

    def _persist(self) -> None:
        self.state_repo.save(KEY_DAILY_CHALLENGES, ChallengeState, self.state)

    # ----- Statistics -----

    @property
    def current_challenges(self) -> List[DailyChallenge]:
        today = self.date_service.today()
        return [c for c in self.state.current if c.day == today]

    @property
    def completed_challenges(self) -> List[DailyChallenge]:
        return list(self.state.history)

    @property
    def total_points(self) -> int:
        return self.state.total_points

    @property
    def total_completed_today(self) -> int:
        return sum(1 for c in self.current_challenges if c.completed)

    @property
    def total_available_today(self) -> int:
        return len(self.current_challenges)

    @property
    def completion_rate_today(self) -> float:
        if self.total_available_today == 0:
            return 0.0
        return self.total_completed_today / self.total_available_today
