"""
Audio Schemas
"""

from typing import Literal, Optional, get_args

from pydantic import Field

from companion.schemas.base import CamelModel

SceneType = Literal[
    "combat",
    "exploration",
    "social",
    "tense",
    "dramatic",
    "tavern",
    "forest",
    "dungeon",
    "ambient",
]
SCENES: tuple[str, ...] = get_args(SceneType)

TriggerAction = Literal["play", "stop", "crossfade"]
TrackSource = Literal["tabletop", "jamendo", "freesound"]


class AudioTriggerEvent(CamelModel):
    mapping_id: str
    action: TriggerAction
    manual: Optional[bool] = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class AutoAudioTrack(CamelModel):
    id: str
    name: str
    src: str
    type: Literal["music", "effect"]
    source: TrackSource
    duration: Optional[float] = None
    attribution: Optional[str] = None
    loop: bool = False
    volume: float = 0.5


class AutoAudioEvent(CamelModel):
    track: AutoAudioTrack
    action: Literal["play", "stop", "crossfade"] = "play"
    reason: str = ""


class AutoAudioSettings(CamelModel):
    enabled: bool = True
    effect_frequency: int = Field(default=50, ge=0, le=100)
    music_enabled: bool = True
    effects_enabled: bool = True


class AutoAudioSettingsUpdate(CamelModel):
    enabled: Optional[bool] = None
    effect_frequency: Optional[int] = Field(default=None, ge=0, le=100)
    music_enabled: Optional[bool] = None
    effects_enabled: Optional[bool] = None


class SceneDetected(CamelModel):
    scene: SceneType
    confidence: float
