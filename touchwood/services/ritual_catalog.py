"""
Ritual catalog service.
Built-in and custom rituals plus the wood styles unlocked by progress.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from touchwood.constants import KEY_CUSTOM_RITUALS, KEY_WOOD_STYLES
from touchwood.exceptions import RitualNotFoundException, ValidationException
from touchwood.repositories.state_repository import StateRepository
from touchwood.schemas import (
    CustomRitualState, Ritual, RitualCategory, RitualRarity, WoodStyle, WoodStyleState
)
from touchwood.services.date_service import DateService

logger = logging.getLogger("touchwood.catalog")

BUILT_IN_RITUALS = (
    Ritual(id="knock_on_wood", name="Knock on Wood", description="Tap wood for good luck",
           icon="tree.fill", category=RitualCategory.LUCK),
    Ritual(id="cross_fingers", name="Cross Fingers", description="Cross fingers for good fortune",
           icon="hand.tap.fill", category=RitualCategory.LUCK),
    Ritual(id="salt_over_shoulder", name="Salt Over Shoulder", description="Toss salt to ward off bad luck",
           icon="drop.fill", category=RitualCategory.PROTECTION),
)

WOOD_STYLES = (
    WoodStyle(name="oak", color="#8B4513", rarity=RitualRarity.COMMON),
    WoodStyle(name="pine", color="#DEB887", rarity=RitualRarity.COMMON),
    WoodStyle(name="maple", color="#A0522D", rarity=RitualRarity.COMMON),
    WoodStyle(name="cherry", color="#8B3A3A", rarity=RitualRarity.UNCOMMON, unlock_requirement="complete_5_rituals"),
    WoodStyle(name="walnut", color="#654321", rarity=RitualRarity.UNCOMMON, unlock_requirement="maintain_3_day_streak"),
    WoodStyle(name="ebony", color="#1C1C1C", rarity=RitualRarity.RARE, unlock_requirement="complete_25_rituals"),
    WoodStyle(name="bamboo", color="#6B8E23", rarity=RitualRarity.RARE, unlock_requirement="unlock_3_achievements"),
    WoodStyle(name="sandalwood", color="#CD853F", rarity=RitualRarity.EPIC, unlock_requirement="maintain_14_day_streak"),
    WoodStyle(name="rosewood", color="#8B4513", rarity=RitualRarity.EPIC, unlock_requirement="share_5_times"),
    WoodStyle(name="dragonwood", color="#B22222", rarity=RitualRarity.LEGENDARY,
              unlock_requirement="complete_seasonal_event"),
)

DEFAULT_WOOD_STYLE = "oak"


@dataclass
class WoodStyleStats:
    total_rituals: int = 0
    best_streak: int = 0
    unlocked_achievements: int = 0
    share_count: int = 0
    completed_events: int = 0


# requirement -> (stat, threshold)
WOOD_STYLE_RULES: Dict[str, Tuple[str, int]] = {
    "complete_5_rituals": ("total_rituals", 5),
    "maintain_3_day_streak": ("best_streak", 3),
    "complete_25_rituals": ("total_rituals", 25),
    "unlock_3_achievements": ("unlocked_achievements", 3),
    "maintain_14_day_streak": ("best_streak", 14),
    "share_5_times": ("share_count", 5),
    "complete_seasonal_event": ("completed_events", 1),
}


def wood_style_progress(requirement: str, stats: WoodStyleStats) -> Tuple[int, int]:
    """(current, target) for a wood-style rule; unknown rules are never met"""
    rule = WOOD_STYLE_RULES.get(requirement)
    if rule is None:
        return 0, 1
    stat, threshold = rule
    return min(getattr(stats, stat), threshold), threshold


class RitualCatalog:
    """Service for rituals and wood styles"""

    def __init__(self, state_repo: StateRepository, date_service: DateService):
        self.state_repo = state_repo
        self.date_service = date_service
        self.custom: CustomRitualState = state_repo.load(KEY_CUSTOM_RITUALS, CustomRitualState, CustomRitualState)
        self.styles: WoodStyleState = state_repo.load(KEY_WOOD_STYLES, WoodStyleState, WoodStyleState)

    # ----- Rituals -----

    def all_rituals(self) -> List[Ritual]:
        return list(BUILT_IN_RITUALS) + list(self.custom.rituals)

    def get_ritual(self, ritual_id: str) -> Optional[Ritual]:
        return next((r for r in self.all_rituals() if r.id == ritual_id), None)

    def ritual_name(self, ritual_id: str) -> str:
        """Display name, or the id itself for rituals the catalog does not know"""
        ritual = self.get_ritual(ritual_id)
        return ritual.name if ritual else ritual_id

    def create_custom_ritual(
        self,
        name: str,
        description: str = "",
        icon: str = "star",
        category: RitualCategory = RitualCategory.CUSTOM
    ) -> Ritual:
        """
        Add a user-defined ritual.

        Raises:
            ValidationException: If the name is blank
        """
        name = name.strip()
        if not name:
            raise ValidationException("name", "must not be empty")

        ritual = Ritual(
            id=f"custom_{uuid.uuid4().hex}",
            name=name,
            description=description,
            icon=icon,
            category=category,
            is_custom=True,
            created_at=self.date_service.now()
        )
        self.custom.rituals.append(ritual)
        self.state_repo.save(KEY_CUSTOM_RITUALS, CustomRitualState, self.custom)

        logger.info(f"Custom ritual created: {ritual.id} ({name})")
        return ritual

    def delete_custom_ritual(self, ritual_id: str) -> None:
        """
        Raises:
            RitualNotFoundException: If no custom ritual has this id
        """
        remaining = [r for r in self.custom.rituals if r.id != ritual_id]
        if len(remaining) == len(self.custom.rituals):
            raise RitualNotFoundException(ritual_id)

        self.custom.rituals = remaining
        self.state_repo.save(KEY_CUSTOM_RITUALS, CustomRitualState, self.custom)
        logger.info(f"Custom ritual deleted: {ritual_id}")

    @property
    def custom_ritual_count(self) -> int:
        return len(self.custom.rituals)

    # ----- Wood styles -----

    def is_style_unlocked(self, name: str) -> bool:
        style = self._style(name)
        return style.unlocked_by_default or name in self.styles.unlocked

    def refresh_wood_styles(self, stats: WoodStyleStats) -> List[WoodStyle]:
        """Unlock every style whose rule the stats satisfy; returns the new ones"""
        newly = []
        for style in WOOD_STYLES:
            if self.is_style_unlocked(style.name):
                continue
            current, target = wood_style_progress(style.unlock_requirement, stats)
            if current >= target:
                self.styles.unlocked.append(style.name)
                newly.append(style)
                logger.info(f"Wood style unlocked: {style.name}")

        if newly:
            self.state_repo.save(KEY_WOOD_STYLES, WoodStyleState, self.styles)
        return newly

    def select_style(self, name: str) -> WoodStyle:
        """
        Raises:
            ValidationException: If the style is unknown or still locked
        """
        style = self._style(name)
        if not self.is_style_unlocked(name):
            raise ValidationException("wood_style", f"{name} is locked")

        self.styles.selected = name
        self.state_repo.save(KEY_WOOD_STYLES, WoodStyleState, self.styles)
        return style

    @property
    def selected_style(self) -> WoodStyle:
        return self._style(self.styles.selected or DEFAULT_WOOD_STYLE)

    def _style(self, name: str) -> WoodStyle:
        style = next((s for s in WOOD_STYLES if s.name == name), None)
        if style is None:
            raise ValidationException("wood_style", f"unknown style {name}")
        return style
