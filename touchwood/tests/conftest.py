"""
Shared fixtures: a controllable clock, an in-memory store, a seeded random
source and a collecting notification sink.
"""
import random
from datetime import datetime, timedelta

import pytest

from touchwood.repositories.state_repository import MemoryStore, StateRepository
from touchwood.services.date_service import DateService
from touchwood.services.notification_service import CollectingNotificationSink


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    # 10 March: outside every seasonal event window
    return FakeClock(datetime(2026, 3, 10, 9, 0, 0))


@pytest.fixture
def date_service(clock):
    return DateService(now_provider=clock)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def state_repo(store):
    return StateRepository(store)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def sink():
    return CollectingNotificationSink()
