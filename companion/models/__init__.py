from companion.models.base import Base
from companion.models.campaign import Campaign, Npc, Player, SoundMapping
from companion.models.session import GameSession, HealthEvent

__all__ = [
    "Base",
    "Campaign",
    "Player",
    "Npc",
    "SoundMapping",
    "GameSession",
    "HealthEvent",
]
