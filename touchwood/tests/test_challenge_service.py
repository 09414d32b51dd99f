"""
Tests for ChallengeService.

Tests cover:
1. Daily refresh (2-3 distinct types, same-day no-op, day rollover)
2. Cumulative, pass/fail, measured and time-window progress
3. Exactly-once reward grant and strict mode
4. Daily statistics and persistence
"""
import random
import pytest
from datetime import date, timedelta

from touchwood.exceptions import InvariantViolation
from touchwood.repositories.state_repository import MemoryStore, StateRepository
from touchwood.schemas import (
    ChallengeCompletedEvent, ChallengeReward, ChallengeType, DailyChallenge
)
from touchwood.services.challenge_service import CHALLENGE_TEMPLATES, ChallengeService


@pytest.fixture
def service(state_repo, date_service, rng, sink):
    return ChallengeService(state_repo, date_service, rng=rng, sink=sink)


def make_challenge(challenge_type, target, day, kind=None, points=10, badge=None, unlock=None, suffix="1"):
    return DailyChallenge(
        id=f"{challenge_type.value}-{suffix}",
        template_id=f"test_{challenge_type.value}",
        title_key="challenge_test_title",
        type=challenge_type,
        kind=kind,
        target=target,
        reward=ChallengeReward(points=points, badge=badge, custom_ritual_unlock=unlock),
        day=day
    )


class TestDailyRefresh:
    """Tests for refresh_daily_challenges"""

    def test_draws_two_or_three_distinct_types(self, service):
        """A fresh set has 2-3 challenges of distinct fixed types"""
        assert service.refresh_daily_challenges() is True

        challenges = service.current_challenges
        types = [c.type for c in challenges]
        assert 2 <= len(challenges) <= 3
        assert len(set(types)) == len(types)
        assert set(types) <= set(ChallengeType)
        assert all(c.day == date(2026, 3, 10) for c in challenges)
        assert all(c.progress == 0 and not c.completed for c in challenges)

    def test_same_day_refresh_is_noop(self, service, clock):
        """A second refresh on the same day keeps the set"""
        service.refresh_daily_challenges()
        ids = [c.id for c in service.current_challenges]

        clock.advance(hours=10)
        assert service.refresh_daily_challenges() is False
        assert [c.id for c in service.current_challenges] == ids

    def test_new_day_discards_previous_set(self, service, clock):
        """After a day boundary the previous instances are gone"""
        service.refresh_daily_challenges()
        old_ids = {c.id for c in service.state.current}

        clock.advance(days=1)
        assert service.refresh_daily_challenges() is True

        new_ids = {c.id for c in service.state.current}
        assert old_ids.isdisjoint(new_ids)
        assert all(c.day == date(2026, 3, 11) for c in service.state.current)

    def test_seeded_random_source_is_deterministic(self, state_repo, date_service):
        """Equal seeds draw equal sets"""
        first = ChallengeService(state_repo, date_service, rng=random.Random(7))
        first.refresh_daily_challenges()

        second = ChallengeService(StateRepository(MemoryStore()), date_service, rng=random.Random(7))
        second.refresh_daily_challenges()

        assert [(c.id, c.template_id) for c in first.current_challenges] == \
            [(c.id, c.template_id) for c in second.current_challenges]

    def test_templates_cover_every_type(self):
        """Every challenge type has at least one template"""
        assert {t.type for t in CHALLENGE_TEMPLATES} == set(ChallengeType)


class TestCumulativeProgress:
    """Tests for update_progress"""

    def test_completes_exactly_at_target(self, service, date_service):
        """target=5 completes on the fifth increment"""
        service.state.current = [make_challenge(ChallengeType.RITUALS, 5, date_service.today())]

        for _ in range(4):
            assert service.update_progress(ChallengeType.RITUALS) == []
        assert service.state.current[0].completed is False

        completed = service.update_progress(ChallengeType.RITUALS)
        assert len(completed) == 1
        assert completed[0].completed is True
        assert completed[0].completed_at == date_service.now()

    def test_reward_granted_once(self, service, date_service, sink):
        """Ten more updates after completion grant nothing more"""
        service.state.current = [make_challenge(ChallengeType.RITUALS, 5, date_service.today(), points=25)]

        for _ in range(15):
            service.update_progress(ChallengeType.RITUALS)

        assert service.total_points == 25
        assert len(service.completed_challenges) == 1
        assert service.state.current[0].progress == 5
        assert len([e for e in sink.events if isinstance(e, ChallengeCompletedEvent)]) == 1

    def test_only_matching_type_advances(self, service, date_service):
        """Updates of one type leave other types alone"""
        today = date_service.today()
        service.state.current = [
            make_challenge(ChallengeType.RITUALS, 3, today),
            make_challenge(ChallengeType.STREAK, 1, today),
        ]

        service.update_progress(ChallengeType.RITUALS)

        assert service.state.current[0].progress == 1
        assert service.state.current[1].progress == 0

    def test_all_active_challenges_of_type_advance(self, service, date_service):
        """Two active challenges of one type both receive the update"""
        today = date_service.today()
        service.state.current = [
            make_challenge(ChallengeType.RITUALS, 1, today, suffix="a"),
            make_challenge(ChallengeType.RITUALS, 2, today, suffix="b"),
        ]

        completed = service.update_progress(ChallengeType.RITUALS)

        assert [c.id for c in completed] == ["rituals-a"]
        assert service.state.current[1].progress == 1

    def test_yesterdays_challenge_is_not_advanced(self, service, date_service):
        """Expired challenges receive no progress"""
        yesterday = date_service.today() - timedelta(days=1)
        service.state.current = [make_challenge(ChallengeType.RITUALS, 1, yesterday)]

        assert service.update_progress(ChallengeType.RITUALS) == []
        assert service.state.current[0].progress == 0


class TestMoodProgress:
    """Tests for update_mood_progress"""

    def test_low_mood_changes_nothing(self, service, date_service):
        """Mood below target leaves the challenge untouched"""
        service.state.current = [make_challenge(ChallengeType.MOOD, 4, date_service.today())]

        assert service.update_mood_progress(3) == []
        assert service.state.current[0].progress == 0

    def test_mood_at_target_completes(self, service, date_service):
        """Mood at target completes at once with progress = target"""
        service.state.current = [make_challenge(ChallengeType.MOOD, 4, date_service.today())]

        completed = service.update_mood_progress(4)

        assert len(completed) == 1
        assert completed[0].progress == 4


class TestVarietyProgress:
    """Tests for update_variety_progress"""

    def test_progress_is_set_cardinality(self, service, date_service):
        """Progress equals the number of distinct rituals"""
        service.state.current = [make_challenge(ChallengeType.VARIETY, 3, date_service.today())]

        service.update_variety_progress(["a", "a", "b"])

        assert service.state.current[0].progress == 2

    def test_measurement_is_idempotent(self, service, date_service):
        """Repeating the same set does not accumulate"""
        service.state.current = [make_challenge(ChallengeType.VARIETY, 3, date_service.today())]

        service.update_variety_progress({"a"})
        service.update_variety_progress({"a"})

        assert service.state.current[0].progress == 1

    def test_completes_at_target(self, service, date_service):
        """Two distinct rituals complete a target-2 challenge"""
        service.state.current = [make_challenge(ChallengeType.VARIETY, 2, date_service.today())]

        assert len(service.update_variety_progress({"a", "b"})) == 1


class TestTimeProgress:
    """Tests for update_time_progress"""

    @pytest.mark.parametrize("hour,expected", [(6, True), (11, True), (12, False), (5, False)])
    def test_morning_window(self, service, date_service, hour, expected):
        """Morning is [6, 12)"""
        service.state.current = [make_challenge(ChallengeType.TIME, 1, date_service.today(), kind="morning")]

        completed = service.update_time_progress(hour)

        assert bool(completed) is expected

    @pytest.mark.parametrize("hour,expected", [(18, True), (23, True), (17, False), (0, False)])
    def test_evening_window(self, service, date_service, hour, expected):
        """Evening is [18, 24)"""
        service.state.current = [make_challenge(ChallengeType.TIME, 1, date_service.today(), kind="evening")]

        completed = service.update_time_progress(hour)

        assert bool(completed) is expected


class TestRewards:
    """Tests for reward collection and strict mode"""

    def test_badge_and_custom_ritual_collected(self, service, date_service):
        """Badges and custom ritual unlocks are collected once"""
        today = date_service.today()
        service.state.current = [
            make_challenge(ChallengeType.VARIETY, 2, today, points=30, badge="Variety Master", unlock="Lucky Charm"),
        ]

        service.update_variety_progress({"a", "b"})

        assert service.total_points == 30
        assert service.state.badges == ["Variety Master"]
        assert service.state.unlocked_custom_rituals == ["Lucky Charm"]

    def test_double_grant_logged_and_skipped(self, service, date_service):
        """Completing a completed challenge grants nothing outside strict mode"""
        service.state.current = [make_challenge(ChallengeType.STREAK, 1, date_service.today(), points=15)]
        service.update_progress(ChallengeType.STREAK)

        service._complete(service.state.current[0])

        assert service.total_points == 15

    def test_double_grant_raises_in_strict_mode(self, state_repo, date_service, rng):
        """Strict mode fails fast on a double grant"""
        service = ChallengeService(state_repo, date_service, rng=rng, strict=True)
        service.state.current = [make_challenge(ChallengeType.STREAK, 1, date_service.today())]
        service.update_progress(ChallengeType.STREAK)

        with pytest.raises(InvariantViolation):
            service._complete(service.state.current[0])


class TestStatistics:
    """Tests for daily statistics and persistence"""

    def test_completion_rate(self, service, date_service):
        """Completed over available for today"""
        today = date_service.today()
        service.state.current = [
            make_challenge(ChallengeType.STREAK, 1, today),
            make_challenge(ChallengeType.MOOD, 4, today),
        ]
        service.update_progress(ChallengeType.STREAK)

        assert service.total_completed_today == 1
        assert service.total_available_today == 2
        assert service.completion_rate_today == 0.5

    def test_rate_without_challenges(self, service):
        """No challenges gives a 0.0 rate"""
        assert service.completion_rate_today == 0.0

    def test_state_survives_reload(self, service, state_repo, date_service):
        """Points, history and the current set persist"""
        service.refresh_daily_challenges()
        service.state.current.append(make_challenge(ChallengeType.STREAK, 1, date_service.today(), points=15))
        service.update_progress(ChallengeType.STREAK)

        reloaded = ChallengeService(state_repo, date_service)

        assert reloaded.total_points >= 15
        assert len(reloaded.completed_challenges) >= 1
        assert reloaded.refresh_daily_challenges() is False
