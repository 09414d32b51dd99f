"""
Mood analytics service.
Keeps the mood log and recomputes trend windows, per-ritual correlation,
time-of-day buckets, mood streaks and insights from it.
"""
import logging
from collections import OrderedDict
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from touchwood.constants import (
    CONCERN_TREND_AVERAGE, IMPROVEMENT_RATE_SAMPLE, INSIGHT_MIN_TREND_POINTS,
    KEY_MOOD_ENTRIES, MONTHLY_WINDOW_DAYS, MOOD_MAX, MOOD_MIN,
    MOOD_STREAK_MAX_GAP_DAYS, MOOD_STREAK_MIN_LENGTH, NEUTRAL_STREAK_AVERAGE,
    POSITIVE_STREAK_AVERAGE, POSITIVE_TREND_AVERAGE, TIME_OF_DAY_BUCKETS,
    TREND_MIN_SAMPLES, TREND_THRESHOLD, WEEKLY_WINDOW_DAYS
)
from touchwood.exceptions import ValidationException
from touchwood.repositories.state_repository import StateRepository
from touchwood.schemas import (
    InsightPriority, InsightType, MoodDataPoint, MoodEntry, MoodInsight,
    MoodStreak, MoodStreakType, MoodSummary, MoodTrend, RitualMoodData,
    TimeMoodData, TimeOfDay
)
from touchwood.services.date_service import DateService

logger = logging.getLogger("touchwood.mood")


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def calculate_trend(moods: Sequence[int]) -> MoodTrend:
    """
    Classify a mood sequence by comparing its halves.

    The split is positional; on odd counts the first half is the smaller
    one. Fewer than three samples are always stable.

    Args:
        moods: Mood samples in chronological order

    Returns:
        improving, declining or stable
    """
    if len(moods) < TREND_MIN_SAMPLES:
        return MoodTrend.STABLE

    middle = len(moods) // 2
    difference = _mean(moods[middle:]) - _mean(moods[:middle])

    if difference > TREND_THRESHOLD:
        return MoodTrend.IMPROVING
    if difference < -TREND_THRESHOLD:
        return MoodTrend.DECLINING
    return MoodTrend.STABLE


def time_of_day(timestamp: datetime) -> TimeOfDay:
    """Bucket a timestamp by hour; night wraps past midnight"""
    hour = timestamp.hour
    for name, start, end in TIME_OF_DAY_BUCKETS:
        if start <= end:
            if start <= hour <= end:
                return TimeOfDay(name)
        elif hour >= start or hour <= end:
            return TimeOfDay(name)
    return TimeOfDay.MORNING


def classify_streak(average: float) -> MoodStreakType:
    if average >= POSITIVE_STREAK_AVERAGE:
        return MoodStreakType.POSITIVE
    if average >= NEUTRAL_STREAK_AVERAGE:
        return MoodStreakType.NEUTRAL
    return MoodStreakType.IMPROVING


class MoodAnalyticsService:
    """Service for mood log analytics"""

    def __init__(self, state_repo: StateRepository, date_service: DateService):
        self.state_repo = state_repo
        self.date_service = date_service
        self.entries: List[MoodEntry] = state_repo.load(KEY_MOOD_ENTRIES, List[MoodEntry], list)

        self.weekly_trend: List[MoodDataPoint] = []
        self.monthly_trend: List[MoodDataPoint] = []
        self.ritual_correlation: List[RitualMoodData] = []
        self.time_of_day_data: List[TimeMoodData] = []
        self.streaks: List[MoodStreak] = []
        self.insights: List[MoodInsight] = []
        self.analyze()

    def add_entry(
        self,
        ritual_id: str,
        ritual_name: str,
        mood: int,
        note: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> MoodEntry:
        """
        Append a mood entry and recompute every derived series.

        Args:
            ritual_id: Ritual the mood was recorded for
            ritual_name: Display name used for correlation grouping
            mood: Mood on a 1..5 scale
            note: Optional free text
            at: Entry time (defaults to now)

        Returns:
            The stored entry

        Raises:
            ValidationException: If mood is outside 1..5
        """
        if not MOOD_MIN <= mood <= MOOD_MAX:
            raise ValidationException("mood", "must be between 1 and 5")

        entry = MoodEntry(
            ritual_id=ritual_id,
            ritual_name=ritual_name,
            mood=mood,
            note=note,
            timestamp=at or self.date_service.now()
        )
        self.entries.append(entry)
        self.state_repo.save(KEY_MOOD_ENTRIES, List[MoodEntry], self.entries)
        self.analyze()
        return entry

    def analyze(self) -> None:
        """Recompute all derived series from the log"""
        self.weekly_trend = self._window_trend(WEEKLY_WINDOW_DAYS)
        self.monthly_trend = self._window_trend(MONTHLY_WINDOW_DAYS)
        self.ritual_correlation = self._ritual_correlation()
        self.time_of_day_data = self._time_of_day_analysis()
        self.streaks = self._mood_streaks()
        self.insights = self._generate_insights()
        logger.debug(f"Mood analytics recomputed over {len(self.entries)} entries")

    # ----- Derived series -----

    def _window_trend(self, days: int) -> List[MoodDataPoint]:
        """Daily averages for the last `days` calendar days, today included"""
        today = self.date_service.today()
        by_day: Dict[date, List[int]] = {}
        for entry in self.entries:
            day = self.date_service.calendar_day(entry.timestamp)
            if 0 <= self.date_service.day_difference(day, today) < days:
                by_day.setdefault(day, []).append(entry.mood)

        return [
            MoodDataPoint(day=day, average_mood=_mean(moods), count=len(moods))
            for day, moods in sorted(by_day.items())
        ]

    def _ritual_correlation(self) -> List[RitualMoodData]:
        grouped: Dict[str, List[int]] = OrderedDict()
        for entry in self._chronological():
            grouped.setdefault(entry.ritual_name, []).append(entry.mood)

        data = [
            RitualMoodData(
                ritual_name=name,
                average_mood=_mean(moods),
                count=len(moods),
                trend=calculate_trend(moods)
            )
            for name, moods in grouped.items()
        ]
        return sorted(data, key=lambda d: d.average_mood, reverse=True)

    def _time_of_day_analysis(self) -> List[TimeMoodData]:
        grouped: Dict[TimeOfDay, List[int]] = {}
        for entry in self.entries:
            grouped.setdefault(time_of_day(entry.timestamp), []).append(entry.mood)

        data = [
            TimeMoodData(time_of_day=bucket, average_mood=_mean(grouped[bucket]), count=len(grouped[bucket]))
            for bucket in TimeOfDay if bucket in grouped
        ]
        return sorted(data, key=lambda d: d.average_mood, reverse=True)

    def _mood_streaks(self) -> List[MoodStreak]:
        """
        Runs of entries at most one calendar day apart.

        Runs shorter than three entries are dropped; the rest are sorted
        longest first.
        """
        streaks = []
        run: List[MoodEntry] = []
        for entry in self._chronological():
            if run and self.date_service.day_difference(
                run[-1].timestamp, entry.timestamp
            ) > MOOD_STREAK_MAX_GAP_DAYS:
                streaks.extend(self._close_run(run))
                run = []
            run.append(entry)
        streaks.extend(self._close_run(run))

        return sorted(streaks, key=lambda s: s.duration, reverse=True)

    @staticmethod
    def _close_run(run: List[MoodEntry]) -> List[MoodStreak]:
        if len(run) < MOOD_STREAK_MIN_LENGTH:
            return []
        average = _mean([e.mood for e in run])
        return [MoodStreak(
            start_date=run[0].timestamp,
            end_date=run[-1].timestamp,
            duration=len(run),
            average_mood=average,
            type=classify_streak(average)
        )]

    def _generate_insights(self) -> List[MoodInsight]:
        insights = []

        if self.time_of_day_data:
            best_time = self.time_of_day_data[0]
            insights.append(MoodInsight(
                title_key="insight_best_time_title",
                description_key="insight_best_time_desc",
                params={"time_of_day": best_time.time_of_day.value},
                type=InsightType.PATTERN,
                actionable=True,
                priority=InsightPriority.MEDIUM
            ))

        if self.ritual_correlation:
            best_ritual = self.ritual_correlation[0]
            insights.append(MoodInsight(
                title_key="insight_best_ritual_title",
                description_key="insight_best_ritual_desc",
                params={"ritual_name": best_ritual.ritual_name},
                type=InsightType.RECOMMENDATION,
                actionable=True,
                priority=InsightPriority.HIGH
            ))

        recent = self.weekly_trend[-WEEKLY_WINDOW_DAYS:]
        if len(recent) >= INSIGHT_MIN_TREND_POINTS:
            recent_average = _mean([p.average_mood for p in recent])
            if recent_average >= POSITIVE_TREND_AVERAGE:
                insights.append(MoodInsight(
                    title_key="insight_positive_trend_title",
                    description_key="insight_positive_trend_desc",
                    type=InsightType.ACHIEVEMENT,
                    actionable=False,
                    priority=InsightPriority.LOW
                ))
            elif recent_average <= CONCERN_TREND_AVERAGE:
                insights.append(MoodInsight(
                    title_key="insight_concern_title",
                    description_key="insight_concern_desc",
                    type=InsightType.WARNING,
                    actionable=True,
                    priority=InsightPriority.HIGH
                ))

        # Stable partition: high first, everything else keeps its order
        return sorted(insights, key=lambda i: i.priority != InsightPriority.HIGH)

    def _chronological(self) -> List[MoodEntry]:
        return sorted(self.entries, key=lambda e: e.timestamp)

    # ----- Statistics -----

    @property
    def average_mood(self) -> float:
        if not self.entries:
            return 0.0
        return _mean([e.mood for e in self.entries])

    def recent_average(self, days: int = WEEKLY_WINDOW_DAYS) -> float:
        """Average mood over the last `days` calendar days; 0.0 without entries"""
        today = self.date_service.today()
        moods = [
            e.mood for e in self.entries
            if 0 <= self.date_service.day_difference(e.timestamp, today) < days
        ]
        return _mean(moods) if moods else 0.0

    @property
    def improvement_rate(self) -> float:
        """Mean of the latest ten entries minus mean of the first ten"""
        if len(self.entries) < IMPROVEMENT_RATE_SAMPLE:
            return 0.0
        moods = [e.mood for e in self._chronological()]
        return _mean(moods[-IMPROVEMENT_RATE_SAMPLE:]) - _mean(moods[:IMPROVEMENT_RATE_SAMPLE])

    @property
    def most_productive_time(self) -> Optional[TimeOfDay]:
        return self.time_of_day_data[0].time_of_day if self.time_of_day_data else None

    @property
    def total_entries(self) -> int:
        return len(self.entries)

    def summary(self) -> MoodSummary:
        return MoodSummary(
            average_mood=self.average_mood,
            total_entries=self.total_entries,
            improvement_rate=self.improvement_rate,
            most_productive_time=self.most_productive_time,
            weekly_trend=self.weekly_trend,
            monthly_trend=self.monthly_trend,
            ritual_correlation=self.ritual_correlation,
            time_of_day=self.time_of_day_data,
            streaks=self.streaks,
            insights=self.insights
        )
