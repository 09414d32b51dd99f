"""
Seasonal event service.
Builds the yearly event calendar, partitions events into current, upcoming
and past, advances event challenges and gates special rituals behind unlock
requirements.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple

from touchwood.constants import KEY_SEASONAL_EVENTS
from touchwood.exceptions import (
    EventNotFoundException, InvariantViolation, RitualNotFoundException, RitualUnavailableException
)
from touchwood.repositories.state_repository import StateRepository
from touchwood.schemas import (
    AchievementUnlock, ChallengeCompletedEvent, EffectType, EventChallenge,
    EventChallengeRecord, EventChallengeType, EventProgressUnlock, EventReward,
    EventType, LevelUnlock, RewardType, RitualEffect, RitualRarity,
    RitualUnlockedEvent, SeasonalEvent, SeasonalState, SocialShareUnlock,
    SpecialRitual, StreakUnlock, UnlockContext, UnlockRequirement
)
from touchwood.services.date_service import DateService
from touchwood.services.notification_service import NotificationSink

logger = logging.getLogger("touchwood.events")


@dataclass
class SeasonalUpdate:
    """What one call changed"""
    completed_challenges: List[EventChallenge] = field(default_factory=list)
    unlocked_rituals: List[SpecialRitual] = field(default_factory=list)

    def merge(self, other: "SeasonalUpdate") -> None:
        self.completed_challenges.extend(other.completed_challenges)
        self.unlocked_rituals.extend(other.unlocked_rituals)


# ===== Event calendar =====

def _window(year: int, start: Tuple[int, int], end: Tuple[int, int]) -> Tuple[datetime, datetime]:
    start_at = datetime(year, start[0], start[1])
    end_at = DateService.end_of_day(date(year, end[0], end[1]))
    return start_at, end_at


def _ritual(event_id: str, slug: str, icon: str, category: str, rarity: RitualRarity,
            effects: List[RitualEffect], requirement: Optional[UnlockRequirement],
            usage_limit: Optional[int] = None) -> SpecialRitual:
    return SpecialRitual(
        id=f"{event_id}.{slug}",
        event_id=event_id,
        name_key=f"ritual_{slug}",
        icon=icon,
        category=category,
        rarity=rarity,
        effects=effects,
        unlock_requirement=requirement,
        is_limited=usage_limit is not None,
        usage_limit=usage_limit
    )


def _challenge(event_id: str, slug: str, challenge_type: EventChallengeType, target: int,
               reward: EventReward) -> EventChallenge:
    return EventChallenge(
        id=f"{event_id}.{slug}",
        title_key=f"challenge_{slug}",
        type=challenge_type,
        target=target,
        reward=reward
    )


def build_event_calendar(year: int) -> List[SeasonalEvent]:
    """
    Create the seasonal events of one calendar year.

    Each named event exists once per year; its window covers the start day
    from midnight through the whole end day.
    """
    events = []

    event_id = f"chinese_new_year_{year}"
    start_at, end_at = _window(year, (2, 1), (2, 15))
    events.append(SeasonalEvent(
        id=event_id,
        slug="chinese_new_year",
        name_key="event_chinese_new_year",
        type=EventType.CULTURAL,
        start_date=start_at,
        end_date=end_at,
        special_rituals=[
            _ritual(event_id, "dragon_dance", "dragon", "prosperity", RitualRarity.LEGENDARY,
                    [RitualEffect(type=EffectType.PROSPERITY, value=2.0, duration_seconds=86400),
                     RitualEffect(type=EffectType.STREAK_BONUS, value=2.0)],
                    EventProgressUnlock(fraction=0.5), usage_limit=10),
            _ritual(event_id, "red_envelope", "envelope.fill", "luck", RitualRarity.EPIC,
                    [RitualEffect(type=EffectType.LUCKY_CHARM, value=1.5, duration_seconds=43200)],
                    LevelUnlock(level=5)),
            _ritual(event_id, "lantern_lighting", "lightbulb.fill", "guidance", RitualRarity.RARE,
                    [RitualEffect(type=EffectType.MOOD_BOOST, value=1.3, duration_seconds=21600)],
                    StreakUnlock(days=3)),
        ],
        challenges=[
            _challenge(event_id, "dragon_dance", EventChallengeType.SPECIAL_RITUALS, 5,
                       EventReward(name_key="reward_dragon_essence", type=RewardType.RITUAL, value="dragon_essence")),
            _challenge(event_id, "lantern_collection", EventChallengeType.RITUALS, 10,
                       EventReward(name_key="reward_lantern_avatar", type=RewardType.AVATAR, value="lantern_avatar")),
        ],
        rewards=[
            EventReward(name_key="reward_dragon_master", type=RewardType.BADGE, value="dragon_master_badge"),
            EventReward(name_key="reward_prosperity_title", type=RewardType.TITLE, value="prosperity_title"),
        ]
    ))

    event_id = f"spring_equinox_{year}"
    start_at, end_at = _window(year, (3, 20), (3, 23))
    events.append(SeasonalEvent(
        id=event_id,
        slug="spring_equinox",
        name_key="event_spring_equinox",
        type=EventType.SEASONAL,
        start_date=start_at,
        end_date=end_at,
        special_rituals=[
            _ritual(event_id, "seed_planting", "leaf.fill", "growth", RitualRarity.RARE,
                    [RitualEffect(type=EffectType.MOOD_BOOST, value=1.5, duration_seconds=43200)],
                    LevelUnlock(level=3)),
        ],
        challenges=[
            _challenge(event_id, "spring_growth", EventChallengeType.STREAK, 3,
                       EventReward(name_key="reward_growth_charm", type=RewardType.RITUAL, value="growth_charm")),
        ],
        rewards=[
            EventReward(name_key="reward_spring_guardian", type=RewardType.BADGE, value="spring_guardian_badge"),
        ]
    ))

    event_id = f"halloween_{year}"
    start_at, end_at = _window(year, (10, 25), (10, 31))
    events.append(SeasonalEvent(
        id=event_id,
        slug="halloween",
        name_key="event_halloween",
        type=EventType.HOLIDAY,
        start_date=start_at,
        end_date=end_at,
        special_rituals=[
            _ritual(event_id, "pumpkin_carving", "pumpkin.fill", "protection", RitualRarity.EPIC,
                    [RitualEffect(type=EffectType.PROTECTION, value=2.0, duration_seconds=86400)],
                    EventProgressUnlock(fraction=0.3), usage_limit=7),
        ],
        challenges=[
            _challenge(event_id, "spooky_rituals", EventChallengeType.RITUALS, 15,
                       EventReward(name_key="reward_ghost_charm", type=RewardType.RITUAL, value="ghost_charm")),
        ],
        rewards=[
            EventReward(name_key="reward_halloween_master", type=RewardType.BADGE, value="halloween_master_badge"),
        ]
    ))

    event_id = f"christmas_{year}"
    start_at, end_at = _window(year, (12, 20), (12, 31))
    events.append(SeasonalEvent(
        id=event_id,
        slug="christmas",
        name_key="event_christmas",
        type=EventType.HOLIDAY,
        start_date=start_at,
        end_date=end_at,
        special_rituals=[
            _ritual(event_id, "bell_ringing", "bell.fill", "joy", RitualRarity.RARE,
                    [RitualEffect(type=EffectType.MOOD_BOOST, value=2.0, duration_seconds=43200)],
                    LevelUnlock(level=2)),
        ],
        challenges=[
            _challenge(event_id, "twelve_days", EventChallengeType.STREAK, 12,
                       EventReward(name_key="reward_holiday_spirit", type=RewardType.RITUAL, value="holiday_spirit")),
        ],
        rewards=[
            EventReward(name_key="reward_christmas_angel", type=RewardType.BADGE, value="christmas_angel_badge"),
        ]
    ))

    return events


def unlock_requirement_met(
    requirement: UnlockRequirement,
    event_progress: float,
    context: Optional[UnlockContext]
) -> bool:
    """
    Evaluate an unlock gate.

    Event progress is owned by this engine; every other kind is checked
    against the externally supplied snapshot and fails without one.
    """
    if isinstance(requirement, EventProgressUnlock):
        return event_progress >= requirement.fraction
    if context is None:
        return False
    if isinstance(requirement, LevelUnlock):
        return context.level >= requirement.level
    if isinstance(requirement, StreakUnlock):
        return context.current_streak >= requirement.days
    if isinstance(requirement, AchievementUnlock):
        return requirement.achievement_id in context.unlocked_achievement_ids
    if isinstance(requirement, SocialShareUnlock):
        return context.share_count >= requirement.count
    raise TypeError(f"Unknown unlock requirement: {type(requirement).__name__}")


class SeasonalEventService:
    """Service for seasonal events and special rituals"""

    def __init__(
        self,
        state_repo: StateRepository,
        date_service: DateService,
        sink: Optional[NotificationSink] = None,
        context_provider: Optional[Callable[[], UnlockContext]] = None,
        calendar_builder: Callable[[int], List[SeasonalEvent]] = build_event_calendar,
        strict: bool = False
    ):
        self.state_repo = state_repo
        self.date_service = date_service
        self.sink = sink
        self.context_provider = context_provider
        self.calendar_builder = calendar_builder
        self.strict = strict
        self.state: SeasonalState = state_repo.load(KEY_SEASONAL_EVENTS, SeasonalState, SeasonalState)
        self.year: Optional[int] = None
        self.all_events: List[SeasonalEvent] = []
        self._ensure_calendar()

    # ----- Calendar -----

    def _ensure_calendar(self) -> None:
        """Rebuild the calendar when the clock has moved into another year"""
        year = self.date_service.now().year
        if year == self.year:
            return

        self.year = year
        self.all_events = self.calendar_builder(year)
        for event in self.all_events:
            for challenge in event.challenges:
                record = self.state.challenges.get(challenge.id)
                if record is not None:
                    challenge.progress = record.progress
                    challenge.completed = record.completed
                    challenge.completed_at = record.completed_at
            for ritual in event.special_rituals:
                ritual.current_usage = self.state.ritual_usage.get(ritual.id, 0)
        logger.info(f"Seasonal calendar built for {year}: {[e.id for e in self.all_events]}")

    def current_events(self) -> List[SeasonalEvent]:
        self._ensure_calendar()
        now = self.date_service.now()
        return [e for e in self.all_events if e.start_date <= now <= e.end_date]

    def upcoming_events(self) -> List[SeasonalEvent]:
        self._ensure_calendar()
        now = self.date_service.now()
        return sorted((e for e in self.all_events if e.start_date > now), key=lambda e: e.start_date)

    def past_events(self) -> List[SeasonalEvent]:
        self._ensure_calendar()
        now = self.date_service.now()
        return sorted((e for e in self.all_events if e.end_date < now), key=lambda e: e.end_date, reverse=True)

    def get_event(self, event_id: str) -> Optional[SeasonalEvent]:
        self._ensure_calendar()
        return next((e for e in self.all_events if e.id == event_id), None)

    def require_event(self, event_id: str) -> SeasonalEvent:
        """
        Raises:
            EventNotFoundException: If this year has no such event
        """
        event = self.get_event(event_id)
        if event is None:
            raise EventNotFoundException(event_id)
        return event

    def find_special_ritual(self, ritual_id: str) -> Optional[Tuple[SeasonalEvent, SpecialRitual]]:
        self._ensure_calendar()
        for event in self.all_events:
            for ritual in event.special_rituals:
                if ritual.id == ritual_id:
                    return event, ritual
        return None

    # ----- Challenge progress -----

    def complete_ritual(self, ritual_id: str) -> SeasonalUpdate:
        """
        Advance the challenges of every active event for one ritual.

        `rituals` challenges count any ritual; `special_rituals` challenges
        count only rituals belonging to the event. Afterwards the event's
        progress fraction is recomputed and event-progress unlocks are
        re-checked.

        Args:
            ritual_id: Ritual that was performed

        Returns:
            Completed challenges and unlocked rituals
        """
        update = SeasonalUpdate()
        for event in self.current_events():
            special_ids = {r.id for r in event.special_rituals}
            for challenge in event.challenges:
                if challenge.completed:
                    continue
                if challenge.type == EventChallengeType.RITUALS:
                    self._advance(event, challenge, challenge.progress + 1, update)
                elif challenge.type == EventChallengeType.SPECIAL_RITUALS and ritual_id in special_ids:
                    self._advance(event, challenge, challenge.progress + 1, update)

            update.merge(self._refresh_event_progress(event))

        self._persist()
        return update

    def update_streak(self, current_streak: int) -> SeasonalUpdate:
        """Measure streak challenges of active events against the current streak"""
        update = SeasonalUpdate()
        for event in self.current_events():
            for challenge in event.challenges:
                if not challenge.completed and challenge.type == EventChallengeType.STREAK:
                    self._advance(event, challenge, current_streak, update)
            update.merge(self._refresh_event_progress(event))

        self._persist()
        return update

    def record_share(self) -> SeasonalUpdate:
        """Count one social share toward social challenges of active events"""
        update = SeasonalUpdate()
        for event in self.current_events():
            for challenge in event.challenges:
                if not challenge.completed and challenge.type == EventChallengeType.SOCIAL:
                    self._advance(event, challenge, challenge.progress + 1, update)
            update.merge(self._refresh_event_progress(event))

        self._persist()
        return update

    def _advance(self, event: SeasonalEvent, challenge: EventChallenge, progress: int,
                 update: SeasonalUpdate) -> None:
        challenge.progress = max(0, progress)
        if challenge.progress >= challenge.target:
            self._complete_challenge(event, challenge)
            update.completed_challenges.append(challenge)
        self._store_challenge(challenge)

    def _complete_challenge(self, event: SeasonalEvent, challenge: EventChallenge) -> None:
        if challenge.completed:
            if self.strict:
                raise InvariantViolation(f"event challenge {challenge.id} rewarded twice")
            logger.error(f"Event challenge {challenge.id} already completed; reward not granted again")
            return

        now = self.date_service.now()
        challenge.progress = min(challenge.progress, challenge.target)
        challenge.completed = True
        challenge.completed_at = now
        self.state.claimed_rewards.append(challenge.reward)

        logger.info(f"Event challenge {challenge.id} completed, reward {challenge.reward.value}")
        if self.sink is not None:
            self.sink.emit(ChallengeCompletedEvent(
                occurred_at=now,
                challenge_id=challenge.id,
                title_key=challenge.title_key,
                points=int(challenge.reward.value) if challenge.reward.type == RewardType.POINTS else 0,
                seasonal_event_id=event.id
            ))

    def _store_challenge(self, challenge: EventChallenge) -> None:
        self.state.challenges[challenge.id] = EventChallengeRecord(
            progress=challenge.progress,
            completed=challenge.completed,
            completed_at=challenge.completed_at
        )

    def _refresh_event_progress(self, event: SeasonalEvent) -> SeasonalUpdate:
        """Recompute the completion fraction and re-run event-progress unlocks"""
        update = SeasonalUpdate()
        fraction = event.completion_fraction
        self.state.event_progress[event.id] = fraction

        for ritual in event.special_rituals:
            if self.is_ritual_unlocked(ritual.id):
                continue
            requirement = ritual.unlock_requirement
            if isinstance(requirement, EventProgressUnlock) and fraction >= requirement.fraction:
                if self.unlock_ritual(ritual.id):
                    update.unlocked_rituals.append(ritual)

        if update.unlocked_rituals:
            update.merge(self._refresh_collection(event))
        return update

    def _refresh_collection(self, event: SeasonalEvent) -> SeasonalUpdate:
        """Collection challenges measure how many of the event's rituals are unlocked"""
        update = SeasonalUpdate()
        unlocked = sum(1 for r in event.special_rituals if self.is_ritual_unlocked(r.id))
        for challenge in event.challenges:
            if not challenge.completed and challenge.type == EventChallengeType.COLLECTION:
                self._advance(event, challenge, unlocked, update)
        if update.completed_challenges:
            self.state.event_progress[event.id] = event.completion_fraction
        return update

    def event_progress(self, event_id: str) -> float:
        return self.state.event_progress.get(event_id, 0.0)

    # ----- Unlocks -----

    def evaluate_unlocks(self, context: Optional[UnlockContext] = None) -> SeasonalUpdate:
        """
        Check every locked special ritual of the active events.

        Args:
            context: Stats snapshot for level/streak/achievement/share gates;
                taken from the context provider when omitted

        Returns:
            Rituals unlocked by this check
        """
        if context is None and self.context_provider is not None:
            context = self.context_provider()

        update = SeasonalUpdate()
        for event in self.current_events():
            newly = []
            for ritual in event.special_rituals:
                if self.is_ritual_unlocked(ritual.id):
                    continue
                requirement = ritual.unlock_requirement
                if requirement is None or unlock_requirement_met(
                    requirement, self.event_progress(event.id), context
                ):
                    if self.unlock_ritual(ritual.id):
                        newly.append(ritual)
            if newly:
                update.unlocked_rituals.extend(newly)
                update.merge(self._refresh_collection(event))

        self._persist()
        return update

    def unlock_ritual(self, ritual_id: str) -> bool:
        """
        Mark a special ritual unlocked. Unlocks are permanent.

        Returns:
            True if the ritual was locked before; False for unknown ids
        """
        found = self.find_special_ritual(ritual_id)
        if found is None:
            logger.warning(f"Ignoring unlock of unknown special ritual: {ritual_id}")
            return False
        if ritual_id in self.state.unlocked_ritual_ids:
            return False

        self.state.unlocked_ritual_ids.append(ritual_id)
        self._persist()

        event_id = found[0].id
        logger.info(f"Special ritual unlocked: {ritual_id}")
        if self.sink is not None:
            self.sink.emit(RitualUnlockedEvent(
                occurred_at=self.date_service.now(),
                ritual_id=ritual_id,
                seasonal_event_id=event_id
            ))
        return True

    def is_ritual_unlocked(self, ritual_id: str) -> bool:
        return ritual_id in self.state.unlocked_ritual_ids

    def get_available_rituals(self) -> List[SpecialRitual]:
        """Unlocked special rituals of active events that still have uses left"""
        available = []
        for event in self.current_events():
            for ritual in event.special_rituals:
                if self.is_ritual_unlocked(ritual.id) and ritual.has_uses_left():
                    available.append(ritual)
        return available

    def use_special_ritual(self, ritual_id: str) -> SpecialRitual:
        """
        Spend one use of a special ritual.

        Raises:
            RitualNotFoundException: If no event owns the ritual
            RitualUnavailableException: If it is locked, out of season or used up
        """
        found = self.find_special_ritual(ritual_id)
        if found is None:
            raise RitualNotFoundException(ritual_id)
        event, ritual = found

        if not self.is_ritual_unlocked(ritual_id):
            raise RitualUnavailableException(ritual_id, "locked")
        if not event.is_active(self.date_service.now()):
            raise RitualUnavailableException(ritual_id, "event is not active")
        if not ritual.has_uses_left():
            raise RitualUnavailableException(ritual_id, "usage limit reached")

        ritual.current_usage += 1
        self.state.ritual_usage[ritual_id] = ritual.current_usage
        self._persist()
        return ritual

    # ----- Statistics -----

    @property
    def completed_events_count(self) -> int:
        self._ensure_calendar()
        return sum(
            1 for e in self.all_events
            if e.challenges and all(c.completed for c in e.challenges)
        )

    @property
    def claimed_rewards(self) -> List[EventReward]:
        return list(self.state.claimed_rewards)

    def _persist(self) -> None:
        self.state_repo.save(KEY_SEASONAL_EVENTS, SeasonalState, self.state)
