"""
Language-model reply shapes

Each model call site validates the JSON reply against one of these models and
falls back to its own default when validation fails.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from companion.schemas.audio import SceneType
from companion.schemas.base import CamelModel
from companion.schemas.health import HealthEventType


class SpeakerAssignment(BaseModel):
    index: int
    speaker: Optional[str] = None
    reasoning: Optional[str] = None


class AttributionReply(BaseModel):
    speakers: list[SpeakerAssignment] = Field(
        default_factory=list,
        validation_alias=AliasChoices("speakers", "attributions"),
    )


class SceneReply(BaseModel):
    scene: SceneType
    confidence: float = Field(ge=0.0, le=1.0)


class SceneChangeSuggestion(CamelModel):
    new_scene: Optional[SceneType] = None
    intensity: float = Field(default=0.5, ge=0.0, le=1.0)
    reason: str = ""


class EffectSuggestion(CamelModel):
    type: Optional[str] = None
    urgency: float = Field(default=0.5, ge=0.0, le=1.0)
    reason: str = ""


class AudioSuggestionReply(CamelModel):
    scene_change: Optional[SceneChangeSuggestion] = None
    sound_effect: Optional[EffectSuggestion] = None

    @field_validator("scene_change", "sound_effect", mode="before")
    @classmethod
    def empty_as_none(cls, v: Any) -> Any:
        # Models sometimes answer {} instead of null
        if v == {}:
            return None
        return v


class MusicQueriesReply(CamelModel):
    jamendo_query: Optional[str] = None
    freesound_query: Optional[str] = None
    tabletop_tags: Optional[list[str]] = None
    reasoning: Optional[str] = None


class ExtractedHealthEvent(CamelModel):
    character_name: str
    type: HealthEventType
    value: Optional[int] = None
    status_effect: Optional[str] = None
    description: str = ""


class HealthEventsReply(BaseModel):
    events: list[dict[str, Any]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_bare_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"events": data}
        return data
