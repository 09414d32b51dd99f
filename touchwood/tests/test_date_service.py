"""
Tests for DateService.

Tests cover:
1. Effective calendar day with and without a day start hour
2. Day differences across midnight
3. Day range and end-of-day helpers
"""
from datetime import date, datetime, timedelta

from touchwood.services.date_service import DateService


class TestCalendarDay:
    """Tests for calendar_day"""

    def test_midnight_start_uses_plain_date(self):
        """Without a day start hour the calendar day is the date"""
        service = DateService()
        assert service.calendar_day(datetime(2026, 3, 10, 0, 5)) == date(2026, 3, 10)

    def test_before_day_start_belongs_to_previous_day(self):
        """A ritual at 02:30 with day start 04:00 counts for yesterday"""
        service = DateService(day_start_hour=4)
        assert service.calendar_day(datetime(2026, 3, 10, 2, 30)) == date(2026, 3, 9)

    def test_after_day_start_belongs_to_same_day(self):
        """At or after the day start hour the date is unchanged"""
        service = DateService(day_start_hour=4)
        assert service.calendar_day(datetime(2026, 3, 10, 4, 0)) == date(2026, 3, 10)

    def test_today_uses_now_provider(self, clock, date_service):
        """today() follows the injected clock"""
        assert date_service.today() == date(2026, 3, 10)
        clock.advance(days=1)
        assert date_service.today() == date(2026, 3, 11)


class TestDayDifference:
    """Tests for day_difference"""

    def test_minutes_apart_across_midnight_is_one_day(self):
        """23:59 and 00:01 the next day are one calendar day apart"""
        service = DateService()
        assert service.day_difference(datetime(2026, 3, 10, 23, 59), datetime(2026, 3, 11, 0, 1)) == 1

    def test_same_day_is_zero(self):
        """Timestamps on one day are zero days apart even 20 hours apart"""
        service = DateService()
        assert service.day_difference(datetime(2026, 3, 10, 1, 0), datetime(2026, 3, 10, 21, 0)) == 0

    def test_reverse_order_is_negative(self):
        """Earlier second argument gives a negative difference"""
        service = DateService()
        assert service.day_difference(date(2026, 3, 10), date(2026, 3, 7)) == -3

    def test_day_start_hour_applies(self):
        """03:00 with day start 04:00 is still the previous day"""
        service = DateService(day_start_hour=4)
        assert service.day_difference(datetime(2026, 3, 10, 22, 0), datetime(2026, 3, 11, 3, 0)) == 0


class TestRanges:
    """Tests for end_of_day"""

    def test_end_of_day_is_last_instant(self):
        """end_of_day is one microsecond before the next midnight"""
        end = DateService.end_of_day(date(2026, 10, 31))
        assert end + timedelta(microseconds=1) == datetime(2026, 11, 1)
