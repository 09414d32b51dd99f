"""
Social sharing service.
Counts shares (the share count gates achievements and special rituals)
and builds the text of a share.
"""
import logging
from typing import Optional

from touchwood.constants import KEY_SOCIAL
from touchwood.repositories.state_repository import StateRepository
from touchwood.schemas import Achievement, DailyChallenge, SharePayload, ShareType, SocialState
from touchwood.services.date_service import DateService

logger = logging.getLogger("touchwood.social")

APP_NAME = "Touch Wood"
MOOD_EMOJI = {1: "😢", 2: "😕", 3: "😐", 4: "🙂", 5: "😄"}


def achievement_share_text(achievement: Achievement, current_streak: int) -> str:
    return (
        f"{APP_NAME}: I unlocked \"{achievement.name_key}\"! "
        f"Current streak: {current_streak} days. +{achievement.points} points"
    )


def streak_share_text(streak: int) -> str:
    return f"{APP_NAME}: {streak} days in a row of good-luck rituals!"


def ritual_share_text(ritual_name: str, mood: Optional[int] = None, note: Optional[str] = None) -> str:
    text = f"{APP_NAME}: I just performed {ritual_name}"
    if mood is not None:
        text += f" {MOOD_EMOJI.get(mood, '')}"
    if note:
        text += f"\n\n{note}"
    return text


def challenge_share_text(challenge: DailyChallenge) -> str:
    return (
        f"{APP_NAME}: daily challenge \"{challenge.title_key}\" "
        f"{challenge.progress}/{challenge.target}"
    )


class SocialService:
    """Share counter; acts as the share-count source for unlock checks"""

    def __init__(self, state_repo: StateRepository, date_service: DateService):
        self.state_repo = state_repo
        self.date_service = date_service
        self.state: SocialState = state_repo.load(KEY_SOCIAL, SocialState, SocialState)

    def record_share(self, share_type: ShareType, text: str, item_id: Optional[str] = None) -> SharePayload:
        """
        Count one completed share.

        Args:
            share_type: What was shared
            text: Share text
            item_id: Shared item, if any

        Returns:
            The share payload
        """
        self.state.share_count += 1
        self.state.last_shared_at = self.date_service.now()
        self.state_repo.save(KEY_SOCIAL, SocialState, self.state)

        logger.info(f"Share #{self.state.share_count}: {share_type.value} {item_id or ''}".rstrip())
        return SharePayload(type=share_type, text=text, item_id=item_id)

    def current_share_count(self) -> int:
        return self.state.share_count
