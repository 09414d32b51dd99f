"""
Tests for RitualCatalog.

Tests cover:
1. Built-in and custom rituals
2. Wood style unlock rules and progress
3. Style selection and persistence
"""
import pytest

from touchwood.exceptions import RitualNotFoundException, ValidationException
from touchwood.schemas import RitualCategory
from touchwood.services.ritual_catalog import (
    BUILT_IN_RITUALS, WOOD_STYLES, RitualCatalog, WoodStyleStats, wood_style_progress
)


@pytest.fixture
def catalog(state_repo, date_service):
    return RitualCatalog(state_repo, date_service)


class TestRituals:
    """Tests for built-in and custom rituals"""

    def test_built_in_rituals(self, catalog):
        """Three built-in rituals are always present"""
        assert [r.id for r in catalog.all_rituals()] == [r.id for r in BUILT_IN_RITUALS]
        assert catalog.ritual_name("salt_over_shoulder") == "Salt Over Shoulder"

    def test_unknown_ritual_name_is_id(self, catalog):
        """Unknown ids fall back to the id"""
        assert catalog.ritual_name("mystery") == "mystery"
        assert catalog.get_ritual("mystery") is None

    def test_create_custom_ritual(self, catalog, clock):
        """Custom rituals get an id, the trimmed name and a creation time"""
        ritual = catalog.create_custom_ritual("  Lucky Coin ", category=RitualCategory.PROSPERITY)

        assert ritual.id.startswith("custom_")
        assert ritual.name == "Lucky Coin"
        assert ritual.is_custom is True
        assert ritual.created_at == clock()
        assert catalog.custom_ritual_count == 1

    def test_blank_name_rejected(self, catalog):
        """Empty names are refused"""
        with pytest.raises(ValidationException):
            catalog.create_custom_ritual("")

    def test_delete_custom_ritual(self, catalog):
        """Deleting removes the ritual; deleting again raises"""
        ritual = catalog.create_custom_ritual("Horseshoe")
        catalog.delete_custom_ritual(ritual.id)

        assert catalog.custom_ritual_count == 0
        with pytest.raises(RitualNotFoundException):
            catalog.delete_custom_ritual(ritual.id)

    def test_built_in_rituals_cannot_be_deleted(self, catalog):
        """Only custom rituals are deletable"""
        with pytest.raises(RitualNotFoundException):
            catalog.delete_custom_ritual("knock_on_wood")

    def test_custom_rituals_survive_reload(self, catalog, state_repo, date_service):
        """Custom rituals persist"""
        catalog.create_custom_ritual("Horseshoe")

        assert RitualCatalog(state_repo, date_service).custom_ritual_count == 1


class TestWoodStyles:
    """Tests for wood style unlocks"""

    def test_defaults_unlocked(self, catalog):
        """Common styles start unlocked, the rest locked"""
        unlocked = [s.name for s in WOOD_STYLES if catalog.is_style_unlocked(s.name)]
        assert unlocked == ["oak", "pine", "maple"]

    @pytest.mark.parametrize("stats,style", [
        (WoodStyleStats(total_rituals=5), "cherry"),
        (WoodStyleStats(best_streak=3), "walnut"),
        (WoodStyleStats(total_rituals=25), "ebony"),
        (WoodStyleStats(unlocked_achievements=3), "bamboo"),
        (WoodStyleStats(best_streak=14), "sandalwood"),
        (WoodStyleStats(share_count=5), "rosewood"),
        (WoodStyleStats(completed_events=1), "dragonwood"),
    ])
    def test_rule_unlocks_style(self, catalog, stats, style):
        """Each rule unlocks its style"""
        newly = catalog.refresh_wood_styles(stats)

        assert style in [s.name for s in newly]
        assert catalog.is_style_unlocked(style) is True

    def test_refresh_reports_only_new(self, catalog):
        """A second refresh with the same stats unlocks nothing"""
        stats = WoodStyleStats(total_rituals=25)
        assert [s.name for s in catalog.refresh_wood_styles(stats)] == ["cherry", "ebony"]
        assert catalog.refresh_wood_styles(stats) == []

    def test_progress_is_capped(self):
        """Progress never exceeds the target"""
        assert wood_style_progress("complete_5_rituals", WoodStyleStats(total_rituals=2)) == (2, 5)
        assert wood_style_progress("complete_5_rituals", WoodStyleStats(total_rituals=9)) == (5, 5)
        assert wood_style_progress("no_such_rule", WoodStyleStats()) == (0, 1)

    def test_select_style(self, catalog, state_repo, date_service):
        """Selecting an unlocked style persists the choice"""
        assert catalog.selected_style.name == "oak"
        catalog.select_style("maple")

        assert RitualCatalog(state_repo, date_service).selected_style.name == "maple"

    @pytest.mark.parametrize("name", ["cherry", "plywood"])
    def test_select_locked_or_unknown(self, catalog, name):
        """Locked and unknown styles cannot be selected"""
        with pytest.raises(ValidationException):
            catalog.select_style(name)
