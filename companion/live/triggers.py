"""
Audio trigger engine

Single-slot state machine over a campaign's configured sound mappings:
idle -> playing(mapping) on any trigger, playing -> playing(other) as a
crossfade, playing -> idle on stop. Methods return the decided event (or None)
and the caller delivers it.
"""

import re
from typing import Optional

from companion.core.logging import get_logger
from companion.schemas.audio import AudioTriggerEvent
from companion.schemas.campaign import SoundMappingInfo

logger = get_logger(__name__)

SCENE_CONFIDENCE_THRESHOLD = 0.6


def compile_trigger(pattern: str) -> re.Pattern:
    """Case-insensitive regex, or an escaped literal if ``pattern`` is not valid regex"""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return re.compile(re.escape(pattern), re.IGNORECASE)


class AudioTriggerEngine:
    def __init__(self, mappings: list[SoundMappingInfo]):
        # List order is the tie-break when several keyword mappings match
        self.mappings = list(mappings)
        self._by_id = {m.id: m for m in self.mappings}
        self._keyword_patterns: list[tuple[str, re.Pattern]] = [
            (m.id, compile_trigger(m.trigger_value))
            for m in self.mappings
            if m.trigger_type == "keyword"
        ]
        self.currently_playing: Optional[str] = None

    def check_keyword_triggers(self, text: str) -> Optional[AudioTriggerEvent]:
        for mapping_id, pattern in self._keyword_patterns:
            if pattern.search(text):
                return self._trigger(mapping_id)
        return None

    def handle_scene_change(self, scene: str, confidence: float) -> Optional[AudioTriggerEvent]:
        if confidence < SCENE_CONFIDENCE_THRESHOLD:
            return None
        mapping = next(
            (m for m in self.mappings if m.trigger_type == "scene" and m.trigger_value == scene),
            None,
        )
        if mapping is None or mapping.id == self.currently_playing:
            return None
        return self._trigger(mapping.id)

    def manual_trigger(self, mapping_id: str) -> Optional[AudioTriggerEvent]:
        return self._trigger(mapping_id)

    def stop_audio(self) -> Optional[AudioTriggerEvent]:
        if self.currently_playing is None:
            return None
        event = AudioTriggerEvent(mapping_id=self.currently_playing, action="stop")
        self.currently_playing = None
        return event

    def _trigger(self, mapping_id: str) -> Optional[AudioTriggerEvent]:
        if mapping_id not in self._by_id:
            logger.warning(f"Unknown sound mapping {mapping_id}")
            return None
        action = "crossfade" if self.currently_playing else "play"
        self.currently_playing = mapping_id
        return AudioTriggerEvent(mapping_id=mapping_id, action=action)
