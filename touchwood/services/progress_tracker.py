"""
Progress tracking service.
Records ritual completions in the append-only log and keeps running totals
and streaks up to date.
"""
import logging
from datetime import date, datetime
from typing import List, Optional, Set

from touchwood.constants import (
    KEY_COMPLETION_EVENTS, KEY_PROGRESS, STREAK_MILESTONE_DIVISORS
)
from touchwood.exceptions import ValidationException
from touchwood.repositories.state_repository import StateRepository
from touchwood.schemas import CompletionEvent, ProgressState, Streak, StreakMilestoneEvent
from touchwood.services.date_service import DateService
from touchwood.services.notification_service import NotificationSink

logger = logging.getLogger("touchwood.progress")


class ProgressTracker:
    """Service for completion events, totals and streaks"""

    def __init__(
        self,
        state_repo: StateRepository,
        date_service: DateService,
        sink: Optional[NotificationSink] = None
    ):
        self.state_repo = state_repo
        self.date_service = date_service
        self.sink = sink
        self.events: List[CompletionEvent] = state_repo.load(
            KEY_COMPLETION_EVENTS, List[CompletionEvent], list
        )
        self.state: ProgressState = state_repo.load(KEY_PROGRESS, ProgressState, ProgressState)
        if self.state.total_count != len(self.events):
            logger.warning(
                f"Progress totals ({self.state.total_count}) disagree with the completion log "
                f"({len(self.events)} events), rebuilding"
            )
            self.state = self._rebuild()
            self.state_repo.save(KEY_PROGRESS, ProgressState, self.state)

    # ----- Recording -----

    def record_completion(
        self,
        ritual_id: str,
        mood: Optional[int] = None,
        note: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> CompletionEvent:
        """
        Record one ritual performance.

        Appends to the event log, rolls the today-count over on a new
        calendar day, and updates the global and per-ritual streaks.

        Args:
            ritual_id: Ritual that was performed (unknown ids are accepted)
            mood: Optional mood on a 1..5 scale
            note: Optional free text
            at: Completion time (defaults to now)

        Returns:
            The recorded completion event

        Raises:
            ValidationException: If mood is outside 1..5
        """
        if mood is not None and not 1 <= mood <= 5:
            raise ValidationException("mood", "must be between 1 and 5")

        timestamp = at or self.date_service.now()
        event = CompletionEvent(ritual_id=ritual_id, timestamp=timestamp, mood=mood, note=note)

        self.events.append(event)
        previous = self.state.streak.current_count
        self._apply(self.state, event)

        current = self.state.streak.current_count
        if current > previous and self._is_milestone(current):
            logger.info(f"Streak milestone: {current} days")
            if self.sink is not None:
                self.sink.emit(StreakMilestoneEvent(occurred_at=timestamp, streak=current))

        self._persist()
        return event

    def _apply(self, state: ProgressState, event: CompletionEvent) -> None:
        """Fold one completion into the running totals and streaks"""
        day = self.date_service.calendar_day(event.timestamp)
        ritual_id = event.ritual_id

        self._roll_today(state, day)
        if state.today == day:
            state.today_count += 1
            if ritual_id not in state.today_ritual_ids:
                state.today_ritual_ids.append(ritual_id)
        state.total_count += 1
        state.ritual_counts[ritual_id] = state.ritual_counts.get(ritual_id, 0) + 1

        state.streak = self._advance_streak(state.streak, day)
        ritual_streak = state.ritual_streaks.get(ritual_id, Streak())
        state.ritual_streaks[ritual_id] = self._advance_streak(ritual_streak, day)

    def _rebuild(self) -> ProgressState:
        """Replay the completion log, oldest first, into a fresh state"""
        state = ProgressState()
        for event in sorted(self.events, key=lambda e: e.timestamp):
            self._apply(state, event)
        return state

    @staticmethod
    def _roll_today(state: ProgressState, day: date) -> None:
        """Reset today's counters when a later calendar day starts"""
        if state.today is None or day > state.today:
            state.today = day
            state.today_count = 0
            state.today_ritual_ids = []

    def _advance_streak(self, streak: Streak, day: date) -> Streak:
        """
        Apply one completion on `day` to a streak.

        Same day: unchanged. Exactly one day after the last completion:
        increment. Any larger gap (or first completion): reset to 1.
        Completions dated before the last completed day do not move the
        streak.
        """
        if streak.last_completed_day is None:
            current = 1
        else:
            gap = self.date_service.day_difference(streak.last_completed_day, day)
            if gap <= 0:
                return streak
            current = streak.current_count + 1 if gap == 1 else 1

        return Streak(
            current_count=current,
            last_completed_day=day,
            best_count=max(streak.best_count, current)
        )

    @staticmethod
    def _is_milestone(count: int) -> bool:
        return any(count % divisor == 0 for divisor in STREAK_MILESTONE_DIVISORS)

    def _persist(self) -> None:
        self.state_repo.save(KEY_COMPLETION_EVENTS, List[CompletionEvent], self.events)
        self.state_repo.save(KEY_PROGRESS, ProgressState, self.state)

    # ----- Queries -----

    @property
    def streak(self) -> Streak:
        return self.state.streak

    @property
    def current_streak(self) -> int:
        """
        Current streak as of now.

        A streak whose last completion is more than one day old is already
        broken even though the stored count has not been reset yet.
        """
        last = self.state.streak.last_completed_day
        if last is None:
            return 0
        if self.date_service.day_difference(last, self.date_service.today()) > 1:
            return 0
        return self.state.streak.current_count

    @property
    def best_streak(self) -> int:
        return self.state.streak.best_count

    @property
    def today_count(self) -> int:
        if self.state.today != self.date_service.today():
            return 0
        return self.state.today_count

    @property
    def total_count(self) -> int:
        return self.state.total_count

    def ritual_streak(self, ritual_id: str) -> Streak:
        return self.state.ritual_streaks.get(ritual_id, Streak())

    def ritual_count(self, ritual_id: str) -> int:
        return self.state.ritual_counts.get(ritual_id, 0)

    def distinct_rituals_today(self) -> Set[str]:
        if self.state.today != self.date_service.today():
            return set()
        return set(self.state.today_ritual_ids)

    def completion_days(self) -> Set[date]:
        """Calendar days with at least one completion"""
        return {self.date_service.calendar_day(e.timestamp) for e in self.events}

    def recent_average_mood(self, days: int = 7) -> float:
        """Average of recorded moods over the last `days` calendar days; 0.0 if none"""
        today = self.date_service.today()
        moods = [
            e.mood for e in self.events
            if e.mood is not None and 0 <= self.date_service.day_difference(e.timestamp, today) < days
        ]
        if not moods:
            return 0.0
        return sum(moods) / len(moods)

    def has_perfect_week(self, days: int = 7) -> bool:
        """True if every one of the last `days` days (today included) has a completion"""
        today = self.date_service.today()
        completed = self.completion_days()
        return all(
            date.fromordinal(today.toordinal() - offset) in completed
            for offset in range(days)
        )
