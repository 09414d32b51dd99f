"""
Tests for GamificationService.

Tests cover:
1. The completion pipeline across all engines
2. Level and points
3. Shares and custom rituals feeding achievements
4. Seasonal special rituals end to end
5. Wood style unlocks
"""
import pytest
from datetime import datetime

from touchwood.exceptions import (
    RitualNotFoundException, RitualUnavailableException, ValidationException
)
from touchwood.schemas import AchievementUnlockedEvent, ShareType
from touchwood.services.gamification_service import GamificationService

PUMPKIN = "halloween_2026.pumpkin_carving"


@pytest.fixture
def service(state_repo, date_service, rng, sink):
    return GamificationService(state_repo, date_service, rng=rng, sink=sink)


class TestCompletionPipeline:
    """Tests for complete_ritual"""

    def test_first_completion(self, service):
        """The first ritual starts a streak and unlocks first_ritual"""
        result = service.complete_ritual("knock_on_wood", mood=3)

        assert result.streak.current_count == 1
        assert result.today_count == 1
        assert [a.id for a in result.unlocked_achievements] == ["first_ritual"]
        assert service.mood.total_entries == 1
        assert service.challenges.total_available_today >= 2

    def test_result_carries_this_calls_notifications(self, service):
        """Notifications in the result are the ones this call produced"""
        first = service.complete_ritual("knock_on_wood")
        second = service.complete_ritual("knock_on_wood")

        assert any(isinstance(e, AchievementUnlockedEvent) for e in first.notifications)
        assert not any(isinstance(e, AchievementUnlockedEvent) for e in second.notifications)

    def test_invalid_mood_records_nothing(self, service):
        """A rejected mood leaves every engine untouched"""
        with pytest.raises(ValidationException):
            service.complete_ritual("knock_on_wood", mood=9)

        assert service.progress.total_count == 0
        assert service.mood.total_entries == 0
        assert service.achievements.unlocked_achievements == []

    def test_mood_entry_uses_catalog_name(self, service):
        """Mood analytics group by the catalog display name"""
        service.complete_ritual("cross_fingers", mood=5)

        assert service.mood.entries[0].ritual_name == "Cross Fingers"

    def test_explicit_ritual_name_wins(self, service):
        """A supplied name overrides the catalog"""
        service.complete_ritual("cross_fingers", mood=5, ritual_name="Fingers")

        assert service.mood.entries[0].ritual_name == "Fingers"

    def test_no_mood_no_mood_entry(self, service):
        """Completions without a mood skip mood analytics"""
        service.complete_ritual("knock_on_wood")

        assert service.mood.total_entries == 0

    def test_drain_notifications(self, service):
        """Draining returns pending notifications once"""
        service.complete_ritual("knock_on_wood")

        assert service.drain_notifications()
        assert service.drain_notifications() == []


class TestLevel:
    """Tests for level and points"""

    def test_level_from_points(self, service):
        """Level is 1 + points // 100"""
        assert service.level == 1

        service.achievements.total_points = 250
        assert service.total_points == 250 + service.challenges.total_points
        assert service.level == 1 + service.total_points // 100

    def test_progress_summary(self, service):
        """The summary reflects counts and points"""
        service.complete_ritual("knock_on_wood")
        service.complete_ritual("cross_fingers")

        summary = service.progress_summary()
        assert summary.total_count == 2
        assert summary.ritual_counts == {"knock_on_wood": 1, "cross_fingers": 1}
        assert summary.total_points == service.total_points


class TestSharesAndCustomRituals:
    """Tests for share and custom ritual hooks"""

    def test_five_shares_unlock_social_butterfly(self, service):
        """Share count feeds the social achievement and wood style"""
        for _ in range(5):
            payload = service.share(ShareType.STREAK)

        assert "Touch Wood" in payload.text
        assert service.achievements.get("social_butterfly").unlocked is True
        assert service.catalog.is_style_unlocked("rosewood") is True

    def test_share_unknown_achievement_rejected(self, service):
        """Sharing an achievement needs a known id"""
        with pytest.raises(ValidationException):
            service.share(ShareType.ACHIEVEMENT, "nope")

        assert service.social.current_share_count() == 0

    def test_share_achievement_text(self, service):
        """Achievement shares mention the achievement and its points"""
        payload = service.share(ShareType.ACHIEVEMENT, "first_ritual")

        assert "achievement_first_ritual" in payload.text
        assert payload.item_id == "first_ritual"

    def test_three_custom_rituals_unlock_creator(self, service):
        """Custom ritual count feeds the creator achievement"""
        for name in ("Touch Iron", "Lucky Coin", "Horseshoe"):
            service.create_custom_ritual(name)

        assert service.achievements.get("creator").unlocked is True
        assert len(service.catalog.all_rituals()) == 6

    def test_blank_custom_ritual_rejected(self, service):
        """Whitespace-only names are refused"""
        with pytest.raises(ValidationException):
            service.create_custom_ritual("   ")


class TestSeasonalRituals:
    """Tests for special rituals through the facade"""

    def test_unknown_special_ritual(self, service):
        """Non-seasonal ids are not special rituals"""
        with pytest.raises(RitualNotFoundException):
            service.perform_special_ritual("knock_on_wood")

    def test_locked_special_ritual_records_nothing(self, service, clock):
        """A locked special ritual is refused before anything is recorded"""
        clock.set(datetime(2026, 10, 27, 10, 0))

        with pytest.raises(RitualUnavailableException):
            service.perform_special_ritual(PUMPKIN)

        assert service.progress.total_count == 0

    def test_event_progress_unlocks_and_spends_uses(self, service, clock):
        """Fifteen Halloween rituals unlock the pumpkin, which then counts as a ritual"""
        clock.set(datetime(2026, 10, 27, 10, 0))

        unlocked = []
        for _ in range(15):
            unlocked += service.complete_ritual("knock_on_wood").unlocked_rituals
        assert [r.id for r in unlocked] == [PUMPKIN]

        service.perform_special_ritual(PUMPKIN, mood=5)

        assert service.seasonal.find_special_ritual(PUMPKIN)[1].current_usage == 1
        assert service.progress.ritual_count(PUMPKIN) == 1
        assert service.mood.entries[-1].ritual_name == "ritual_pumpkin_carving"

    def test_level_gate_uses_live_context(self, service, clock):
        """Christmas bell ringing unlocks once the level reaches 2"""
        clock.set(datetime(2026, 12, 22, 10, 0))
        service.complete_ritual("knock_on_wood")
        assert service.seasonal.is_ritual_unlocked("christmas_2026.bell_ringing") is (service.level >= 2)

        service.achievements.total_points += 100
        service.complete_ritual("knock_on_wood")

        assert service.seasonal.is_ritual_unlocked("christmas_2026.bell_ringing") is True


class TestWoodStyles:
    """Tests for wood style unlocks"""

    def test_cherry_after_five_rituals(self, service):
        """Five completions unlock cherry"""
        for _ in range(4):
            service.complete_ritual("knock_on_wood")
        assert service.catalog.is_style_unlocked("cherry") is False

        service.complete_ritual("knock_on_wood")
        assert service.catalog.is_style_unlocked("cherry") is True

    def test_locked_style_cannot_be_selected(self, service):
        """Selecting a locked style is refused"""
        with pytest.raises(ValidationException):
            service.catalog.select_style("dragonwood")

        assert service.catalog.selected_style.name == "oak"
