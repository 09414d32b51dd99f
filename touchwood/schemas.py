from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from touchwood.constants import MOOD_MIN, MOOD_MAX


# ===== Completion log & streaks =====

class CompletionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    ritual_id: str
    timestamp: datetime
    mood: Optional[int] = Field(default=None, ge=MOOD_MIN, le=MOOD_MAX)
    note: Optional[str] = None


class Streak(BaseModel):
    current_count: int = Field(default=0, ge=0)
    last_completed_day: Optional[date] = None
    best_count: int = Field(default=0, ge=0)


class ProgressState(BaseModel):
    streak: Streak = Field(default_factory=Streak)
    ritual_streaks: Dict[str, Streak] = Field(default_factory=dict)
    today: Optional[date] = None
    today_count: int = 0
    today_ritual_ids: List[str] = Field(default_factory=list)
    total_count: int = 0
    ritual_counts: Dict[str, int] = Field(default_factory=dict)


# ===== Daily challenges =====

class ChallengeType(str, Enum):
    RITUALS = "rituals"
    STREAK = "streak"
    MOOD = "mood"
    VARIETY = "variety"
    TIME = "time"


class ChallengeReward(BaseModel):
    points: int = Field(ge=0)
    badge: Optional[str] = None
    custom_ritual_unlock: Optional[str] = None


class DailyChallenge(BaseModel):
    id: str
    template_id: str
    title_key: str
    type: ChallengeType
    kind: Optional[str] = None  # morning / evening for time challenges
    target: int = Field(gt=0)
    reward: ChallengeReward
    day: date
    progress: int = Field(default=0, ge=0)
    completed: bool = False
    completed_at: Optional[datetime] = None

class ChallengeState(BaseModel):
    last_refresh_day: Optional[date] = None
    current: List[DailyChallenge] = Field(default_factory=list)
    history: List[DailyChallenge] = Field(default_factory=list)
    total_points: int = 0
    badges: List[str] = Field(default_factory=list)
    unlocked_custom_rituals: List[str] = Field(default_factory=list)


# ===== Achievements =====

class AchievementCategory(str, Enum):
    STREAK = "streak"
    RITUALS = "rituals"
    MOOD = "mood"
    SOCIAL = "social"
    SPECIAL = "special"


class StreakDaysRequirement(BaseModel):
    kind: Literal["streak_days"] = "streak_days"
    days: int = Field(gt=0)


class TotalRitualsRequirement(BaseModel):
    kind: Literal["total_rituals"] = "total_rituals"
    count: int = Field(gt=0)


class PerfectWeekRequirement(BaseModel):
    kind: Literal["perfect_week"] = "perfect_week"


class MoodAverageRequirement(BaseModel):
    kind: Literal["mood_average"] = "mood_average"
    average: float


class ShareCountRequirement(BaseModel):
    kind: Literal["share_count"] = "share_count"
    count: int = Field(gt=0)


class CustomRitualsRequirement(BaseModel):
    kind: Literal["custom_rituals"] = "custom_rituals"
    count: int = Field(gt=0)


class ConsecutiveDaysRequirement(BaseModel):
    kind: Literal["consecutive_days"] = "consecutive_days"
    days: int = Field(gt=0)


AchievementRequirement = Annotated[
    Union[
        StreakDaysRequirement,
        TotalRitualsRequirement,
        PerfectWeekRequirement,
        MoodAverageRequirement,
        ShareCountRequirement,
        CustomRitualsRequirement,
        ConsecutiveDaysRequirement,
    ],
    Field(discriminator="kind"),
]


class Achievement(BaseModel):
    id: str
    name_key: str
    icon: str
    category: AchievementCategory
    requirement: AchievementRequirement
    points: int = Field(gt=0)
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class AchievementRecord(BaseModel):
    id: str
    unlocked_at: datetime


class AchievementState(BaseModel):
    unlocked: List[AchievementRecord] = Field(default_factory=list)
    total_points: int = 0


class AggregateStats(BaseModel):
    """Snapshot of the numbers achievement requirements are tested against"""
    current_streak: int = 0
    total_rituals: int = 0
    average_mood: float = 0.0
    has_perfect_week: bool = False
    share_count: int = 0
    custom_ritual_count: int = 0
    consecutive_days: int = 0


# ===== Seasonal events =====

class EventType(str, Enum):
    HOLIDAY = "holiday"
    SEASONAL = "seasonal"
    CULTURAL = "cultural"
    SPECIAL = "special"


class RitualRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class EffectType(str, Enum):
    MOOD_BOOST = "mood_boost"
    STREAK_BONUS = "streak_bonus"
    DOUBLE_POINTS = "double_points"
    LUCKY_CHARM = "lucky_charm"
    PROTECTION = "protection"
    PROSPERITY = "prosperity"


class RitualEffect(BaseModel):
    type: EffectType
    value: float
    duration_seconds: Optional[int] = None


class LevelUnlock(BaseModel):
    kind: Literal["level"] = "level"
    level: int = Field(gt=0)


class StreakUnlock(BaseModel):
    kind: Literal["streak"] = "streak"
    days: int = Field(gt=0)


class AchievementUnlock(BaseModel):
    kind: Literal["achievement"] = "achievement"
    achievement_id: str


class EventProgressUnlock(BaseModel):
    kind: Literal["event_progress"] = "event_progress"
    fraction: float = Field(ge=0.0, le=1.0)


class SocialShareUnlock(BaseModel):
    kind: Literal["social_share"] = "social_share"
    count: int = Field(gt=0)


UnlockRequirement = Annotated[
    Union[LevelUnlock, StreakUnlock, AchievementUnlock, EventProgressUnlock, SocialShareUnlock],
    Field(discriminator="kind"),
]


class RewardType(str, Enum):
    BADGE = "badge"
    RITUAL = "ritual"
    POINTS = "points"
    TITLE = "title"
    AVATAR = "avatar"
    THEME = "theme"


class EventReward(BaseModel):
    name_key: str
    type: RewardType
    value: str


class SpecialRitual(BaseModel):
    id: str
    event_id: str
    name_key: str
    icon: str
    category: str
    rarity: RitualRarity
    effects: List[RitualEffect] = Field(default_factory=list)
    unlock_requirement: Optional[UnlockRequirement] = None
    is_limited: bool = False
    usage_limit: Optional[int] = None
    current_usage: int = 0

    def has_uses_left(self) -> bool:
        return not self.is_limited or self.current_usage < (self.usage_limit or 0)


class EventChallengeType(str, Enum):
    RITUALS = "rituals"
    SPECIAL_RITUALS = "special_rituals"
    STREAK = "streak"
    SOCIAL = "social"
    COLLECTION = "collection"


class EventChallenge(BaseModel):
    id: str
    title_key: str
    type: EventChallengeType
    target: int = Field(gt=0)
    reward: EventReward
    progress: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None

class SeasonalEvent(BaseModel):
    id: str
    slug: str
    name_key: str
    type: EventType
    start_date: datetime
    end_date: datetime
    special_rituals: List[SpecialRitual] = Field(default_factory=list)
    challenges: List[EventChallenge] = Field(default_factory=list)
    rewards: List[EventReward] = Field(default_factory=list)

    def is_active(self, now: datetime) -> bool:
        return self.start_date <= now <= self.end_date

    def days_remaining(self, now: datetime) -> int:
        return max(0, (self.end_date - now).days)

    def elapsed_fraction(self, now: datetime) -> float:
        total = (self.end_date - self.start_date).total_seconds()
        if total <= 0:
            return 1.0
        elapsed = (now - self.start_date).total_seconds()
        return max(0.0, min(elapsed / total, 1.0))

    @property
    def completion_fraction(self) -> float:
        if not self.challenges:
            return 0.0
        completed = sum(1 for c in self.challenges if c.completed)
        return completed / len(self.challenges)


class EventChallengeRecord(BaseModel):
    progress: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None


class SeasonalState(BaseModel):
    unlocked_ritual_ids: List[str] = Field(default_factory=list)
    event_progress: Dict[str, float] = Field(default_factory=dict)
    challenges: Dict[str, EventChallengeRecord] = Field(default_factory=dict)
    ritual_usage: Dict[str, int] = Field(default_factory=dict)
    claimed_rewards: List[EventReward] = Field(default_factory=list)


class UnlockContext(BaseModel):
    """Snapshot of externally owned stats consulted by unlock gates"""
    level: int = 1
    current_streak: int = 0
    unlocked_achievement_ids: List[str] = Field(default_factory=list)
    share_count: int = 0


# ===== Mood analytics =====

class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class MoodEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    ritual_id: str
    ritual_name: str
    mood: int = Field(ge=MOOD_MIN, le=MOOD_MAX)
    note: Optional[str] = None
    timestamp: datetime


class MoodTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class MoodDataPoint(BaseModel):
    day: date
    average_mood: float
    count: int


class RitualMoodData(BaseModel):
    ritual_name: str
    average_mood: float
    count: int
    trend: MoodTrend


class TimeMoodData(BaseModel):
    time_of_day: TimeOfDay
    average_mood: float
    count: int


class MoodStreakType(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    # Catch-all bucket for runs averaging below 3.0
    IMPROVING = "improving"


class MoodStreak(BaseModel):
    start_date: datetime
    end_date: datetime
    duration: int
    average_mood: float
    type: MoodStreakType


class InsightType(str, Enum):
    PATTERN = "pattern"
    RECOMMENDATION = "recommendation"
    ACHIEVEMENT = "achievement"
    WARNING = "warning"


class InsightPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MoodInsight(BaseModel):
    title_key: str
    description_key: str
    params: Dict[str, str] = Field(default_factory=dict)
    type: InsightType
    actionable: bool
    priority: InsightPriority


class MoodSummary(BaseModel):
    average_mood: float
    total_entries: int
    improvement_rate: float
    most_productive_time: Optional[TimeOfDay] = None
    weekly_trend: List[MoodDataPoint]
    monthly_trend: List[MoodDataPoint]
    ritual_correlation: List[RitualMoodData]
    time_of_day: List[TimeMoodData]
    streaks: List[MoodStreak]
    insights: List[MoodInsight]


# ===== Social =====

class ShareType(str, Enum):
    ACHIEVEMENT = "achievement"
    STREAK = "streak"
    RITUAL = "ritual"
    CHALLENGE = "challenge"


class SocialState(BaseModel):
    share_count: int = 0
    last_shared_at: Optional[datetime] = None


class SharePayload(BaseModel):
    type: ShareType
    text: str
    item_id: Optional[str] = None


# ===== Ritual catalog =====

class RitualCategory(str, Enum):
    LUCK = "luck"
    GRATITUDE = "gratitude"
    PROTECTION = "protection"
    PROSPERITY = "prosperity"
    HEALTH = "health"
    LOVE = "love"
    WISDOM = "wisdom"
    CUSTOM = "custom"


class Ritual(BaseModel):
    id: str
    name: str
    description: str = ""
    icon: str = "star"
    category: RitualCategory = RitualCategory.LUCK
    is_custom: bool = False
    created_at: Optional[datetime] = None


class CustomRitualState(BaseModel):
    rituals: List[Ritual] = Field(default_factory=list)


class WoodStyle(BaseModel):
    name: str
    color: str
    rarity: RitualRarity
    unlock_requirement: Optional[str] = None

    @property
    def unlocked_by_default(self) -> bool:
        return self.unlock_requirement is None


class WoodStyleState(BaseModel):
    unlocked: List[str] = Field(default_factory=list)
    selected: Optional[str] = None


# ===== Domain events =====

class ChallengeCompletedEvent(BaseModel):
    kind: Literal["challenge_completed"] = "challenge_completed"
    occurred_at: datetime
    challenge_id: str
    title_key: str
    points: int
    seasonal_event_id: Optional[str] = None


class AchievementUnlockedEvent(BaseModel):
    kind: Literal["achievement_unlocked"] = "achievement_unlocked"
    occurred_at: datetime
    achievement_id: str
    points: int


class RitualUnlockedEvent(BaseModel):
    kind: Literal["ritual_unlocked"] = "ritual_unlocked"
    occurred_at: datetime
    ritual_id: str
    seasonal_event_id: Optional[str] = None


class StreakMilestoneEvent(BaseModel):
    kind: Literal["streak_milestone"] = "streak_milestone"
    occurred_at: datetime
    streak: int


DomainEvent = Annotated[
    Union[ChallengeCompletedEvent, AchievementUnlockedEvent, RitualUnlockedEvent, StreakMilestoneEvent],
    Field(discriminator="kind"),
]


# ===== API =====

class CompletionRequest(BaseModel):
    mood: Optional[int] = Field(default=None, ge=MOOD_MIN, le=MOOD_MAX)
    note: Optional[str] = Field(default=None, max_length=500)
    ritual_name: Optional[str] = None


class ShareRequest(BaseModel):
    type: ShareType
    item_id: Optional[str] = None


class CustomRitualCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    icon: str = "star"
    category: RitualCategory = RitualCategory.CUSTOM


class CompletionResult(BaseModel):
    event: CompletionEvent
    streak: Streak
    today_count: int
    completed_challenges: List[DailyChallenge] = Field(default_factory=list)
    unlocked_achievements: List[Achievement] = Field(default_factory=list)
    unlocked_rituals: List[SpecialRitual] = Field(default_factory=list)
    notifications: List[DomainEvent] = Field(default_factory=list)


class ProgressResponse(BaseModel):
    streak: Streak
    today_count: int
    total_count: int
    level: int
    total_points: int
    ritual_counts: Dict[str, int]


class ChallengesResponse(BaseModel):
    challenges: List[DailyChallenge]
    completed_today: int
    available_today: int
    completion_rate: float
    total_points: int
    badges: List[str]


class AchievementsResponse(BaseModel):
    achievements: List[Achievement]
    total_points: int
    newly_unlocked: List[Achievement]


class EventsResponse(BaseModel):
    current: List[SeasonalEvent]
    upcoming: List[SeasonalEvent]
    past: List[SeasonalEvent]
    event_progress: Dict[str, float]
    completed_events: int
