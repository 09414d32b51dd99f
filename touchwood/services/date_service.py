"""
Date calculation service.
Supplies "now", calendar-day boundaries and day-difference arithmetic to every
engine. Day boundaries honour an optional day start hour.
"""
from datetime import datetime, timedelta, date
from typing import Callable, Optional, Union

from touchwood.constants import DEFAULT_DAY_START_HOUR

DayLike = Union[date, datetime]


class DateService:
    """Clock and calendar helper"""

    def __init__(
        self,
        now_provider: Optional[Callable[[], datetime]] = None,
        day_start_hour: int = DEFAULT_DAY_START_HOUR
    ):
        self._now_provider = now_provider or datetime.now
        self.day_start_hour = day_start_hour

    def now(self) -> datetime:
        """Current local time"""
        return self._now_provider()

    def calendar_day(self, timestamp: Optional[datetime] = None) -> date:
        """
        Get the effective calendar day of a timestamp.

        If day_start_hour is set and the timestamp falls before that hour,
        the timestamp still belongs to the previous day.

        Example: with day_start_hour = 4, a ritual at 02:30 on the 10th
        counts for the 9th.

        Args:
            timestamp: Point in time (defaults to now)

        Returns:
            Effective date
        """
        if timestamp is None:
            timestamp = self.now()

        if timestamp.hour < self.day_start_hour:
            return timestamp.date() - timedelta(days=1)

        return timestamp.date()

    def today(self) -> date:
        """Effective calendar day of now"""
        return self.calendar_day(self.now())

    def day_difference(self, a: DayLike, b: DayLike) -> int:
        """
        Count calendar days from a to b.

        Timestamps are reduced to their effective calendar day first, so
        23:59 and 00:01 the next day are one day apart.

        Args:
            a: Earlier day or timestamp
            b: Later day or timestamp

        Returns:
            Whole days between them (negative if b is before a)
        """
        return (self._as_day(b) - self._as_day(a)).days

    def _as_day(self, value: DayLike) -> date:
        if isinstance(value, datetime):
            return self.calendar_day(value)
        return value

    @staticmethod
    def end_of_day(target_date: date) -> datetime:
        """Last representable instant of a calendar date"""
        return datetime.combine(target_date, datetime.max.time())
