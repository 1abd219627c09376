"""
Campaign context schemas

Read-only snapshot of a campaign handed to the live pipeline at session start.
"""

from typing import Literal, Optional

from companion.schemas.base import CamelModel

TriggerType = Literal["keyword", "scene", "manual"]


class PlayerInfo(CamelModel):
    id: str
    player_name: str
    character_name: str
    character_class: Optional[str] = None
    race: Optional[str] = None
    max_hp: int = 10
    current_hp: int = 10


class NpcInfo(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    speech_patterns: Optional[str] = None


class SoundMappingInfo(CamelModel):
    id: str
    name: str
    trigger_type: TriggerType
    trigger_value: str
    audio_file: str
    volume: int = 80
    loop: bool = False
    crossfade_duration: int = 1000


class CampaignContext(CamelModel):
    session_id: str
    campaign_id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    world_context: Optional[str] = None
    players: list[PlayerInfo] = []
    npcs: list[NpcInfo] = []
    sound_mappings: list[SoundMappingInfo] = []

    def known_names(self) -> list[str]:
        """Names the correction pass may substitute in"""
        names = [p.character_name for p in self.players]
        names += [p.player_name for p in self.players]
        names += [n.name for n in self.npcs]
        names.append(self.name)
        return [n for n in names if n]

    def find_player_by_character(self, character_name: str) -> Optional[PlayerInfo]:
        wanted = character_name.strip().lower()
        for player in self.players:
            if player.character_name.lower() == wanted:
                return player
        return None

    def prompt_context(self) -> str:
        players = "\n".join(
            f"- {p.player_name} plays {p.character_name} "
            f"({p.race or 'Unknown race'} {p.character_class or 'Unknown class'})"
            for p in self.players
        )
        npcs = "\n".join(
            f"- {n.name}: {n.description or 'No description'}"
            + (f" (speaks: {n.speech_patterns})" if n.speech_patterns else "")
            for n in self.npcs
        )
        lines = ["CAMPAIGN CONTEXT:", f"Campaign: {self.name}"]
        if self.description:
            lines.append(f"Description: {self.description}")
        if self.world_context:
            lines.append(f"World: {self.world_context}")
        lines += [
            "",
            "PLAYERS:",
            players or "No players defined",
            "",
            "NPCs (all played by DM):",
            npcs or "No NPCs defined",
        ]
        return "\n".join(lines)
