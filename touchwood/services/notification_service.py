"""
Notification sinks.
Engines emit domain events (challenge completed, achievement unlocked,
ritual unlocked, streak milestone) into a sink; presentation code renders them.
"""
import logging
from collections import deque
from typing import Deque, List, Optional, Protocol

from touchwood.constants import NOTIFICATION_BUFFER_SIZE
from touchwood.schemas import (
    AchievementUnlockedEvent, ChallengeCompletedEvent, DomainEvent,
    RitualUnlockedEvent, StreakMilestoneEvent
)

logger = logging.getLogger("touchwood.notifications")


class NotificationSink(Protocol):
    def emit(self, event: DomainEvent) -> None:
        ...


class LoggingNotificationSink:
    """Writes every domain event to the log"""

    def emit(self, event: DomainEvent) -> None:
        if isinstance(event, ChallengeCompletedEvent):
            logger.info(f"Challenge completed: {event.title_key} (+{event.points} points)")
        elif isinstance(event, AchievementUnlockedEvent):
            logger.info(f"Achievement unlocked: {event.achievement_id} (+{event.points} points)")
        elif isinstance(event, RitualUnlockedEvent):
            logger.info(f"Ritual unlocked: {event.ritual_id}")
        elif isinstance(event, StreakMilestoneEvent):
            logger.info(f"Streak milestone reached: {event.streak} days")
        else:
            raise TypeError(f"Unknown domain event: {type(event).__name__}")


class CollectingNotificationSink:
    """
    Buffers domain events until the presentation layer polls them.

    An optional downstream sink receives every event as well. Only the
    newest `max_events` undelivered events are kept.
    """

    def __init__(
        self,
        forward: Optional[NotificationSink] = None,
        max_events: int = NOTIFICATION_BUFFER_SIZE
    ):
        self.forward = forward
        self._events: Deque[DomainEvent] = deque(maxlen=max_events)
        # Total events ever emitted; never reset by drain
        self.emitted = 0

    def emit(self, event: DomainEvent) -> None:
        self._events.append(event)
        self.emitted += 1
        if self.forward is not None:
            self.forward.emit(event)

    @property
    def events(self) -> List[DomainEvent]:
        return list(self._events)

    def events_since(self, mark: int) -> List[DomainEvent]:
        """Buffered events emitted after `emitted` was equal to `mark`"""
        count = min(self.emitted - mark, len(self._events))
        return [self._events[-i] for i in range(count, 0, -1)]

    def drain(self) -> List[DomainEvent]:
        """Return buffered events and clear the buffer"""
        events = list(self._events)
        self._events.clear()
        return events
