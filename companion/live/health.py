"""
Health event extraction

A cheap keyword gate decides whether a segment is worth a model call; the
model's events are kept only when they name a known character. Nothing here
touches hit points: that happens on explicit confirmation.
"""

import re
from typing import Optional

from pydantic import ValidationError

from companion.core.logging import get_logger
from companion.schemas.campaign import CampaignContext, PlayerInfo
from companion.schemas.replies import ExtractedHealthEvent, HealthEventsReply
from companion.services.llm_clients.openai_client import OpenAIClient

logger = get_logger(__name__)

HEALTH_KEYWORDS = re.compile(
    r"damage|hit|heal|hp|hit point|unconscious|poison|charm|stun|blind|deaf|prone|"
    r"restrain|frighten|takes?\s+\d+|loses?\s+\d+|regains?\s+\d+",
    re.IGNORECASE,
)


def mentions_health(text: str) -> bool:
    return bool(HEALTH_KEYWORDS.search(text))


def apply_health_delta(event_type: str, value: Optional[int], current_hp: int, max_hp: int) -> int:
    """New HP after a confirmed event, clamped to [0, max_hp]"""
    if value is None:
        return current_hp
    if event_type == "damage":
        return max(0, current_hp - value)
    if event_type == "healing":
        return min(max_hp, current_hp + value)
    return current_hp


class HealthEventExtractor:
    def __init__(self, campaign: CampaignContext, llm: OpenAIClient):
        self.campaign = campaign
        self.llm = llm

    async def extract(self, text: str) -> list[tuple[PlayerInfo, ExtractedHealthEvent]]:
        if not mentions_health(text):
            return []

        names = ", ".join(p.character_name for p in self.campaign.players)
        prompt = (
            "Analyze this D&D session dialogue and extract any health-related events.\n\n"
            f"Known characters: {names}\n\n"
            f"Dialogue:\n{text}\n\n"
            "Look for damage taken, healing, and status effects (poisoned, unconscious, charmed).\n"
            'Respond with JSON: {"events": [{"characterName": "name", "type": "damage|healing|status", '
            '"value": number, "statusEffect": "effect", "description": "brief"}]}\n'
            'If there are none, respond with {"events": []}'
        )
        reply = await self.llm.complete_json(
            [{"role": "user", "content": prompt}],
            HealthEventsReply,
            temperature=0.2,
        )
        if reply is None:
            return []

        accepted: list[tuple[PlayerInfo, ExtractedHealthEvent]] = []
        for raw in reply.events:
            try:
                event = ExtractedHealthEvent.model_validate(raw)
            except ValidationError as e:
                logger.info(f"Dropped malformed health event: {e.error_count()} errors")
                continue
            player = self.campaign.find_player_by_character(event.character_name)
            if player is None:
                logger.info(f"Dropped health event for unknown character {event.character_name!r}")
                continue
            accepted.append((player, event))
        return accepted
