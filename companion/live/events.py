"""
Live session event names

Inbound names arrive from the client as ``{"event": ..., "data": ...}``;
outbound names are what the session pushes back on the same socket.
"""

from enum import Enum
from typing import Any


class InboundEvent(str, Enum):
    SESSION_START = "session:start"
    SESSION_PAUSE = "session:pause"
    SESSION_RESUME = "session:resume"
    SESSION_END = "session:end"
    AUDIO_CHUNK = "audio:chunk"
    SPEAKER_ATTRIBUTE = "speaker:attribute"
    AUDIO_MANUAL_TRIGGER = "audio:manual-trigger"
    AUDIO_STOP = "audio:stop"
    AUTO_AUDIO_SETTINGS = "auto-audio:settings"
    AUTO_AUDIO_GET_SETTINGS = "auto-audio:get-settings"
    AUTO_AUDIO_SET_SCENE = "auto-audio:set-scene"
    AUTO_AUDIO_PLAYBACK_FAILED = "auto-audio:playback-failed"
    HEALTH_CONFIRM = "health:confirm"


class ServerEvent(str, Enum):
    CONNECTED = "connected"
    SESSION_STARTED = "session:started"
    SESSION_PAUSED = "session:paused"
    SESSION_RESUMED = "session:resumed"
    SESSION_ENDED = "session:ended"
    TRANSCRIPT_SEGMENT = "transcript:segment"
    TRANSCRIPT_CORRECTED = "transcript:corrected"
    TRANSCRIPT_MERGED = "transcript:merged"
    SPEAKER_UPDATED = "speaker:updated"
    AUDIO_TRIGGER = "audio:trigger"
    AUTO_AUDIO_PLAY = "auto-audio:play"
    AUTO_AUDIO_SETTINGS_UPDATED = "auto-audio:settings-updated"
    SCENE_DETECTED = "scene:detected"
    HEALTH_EVENT = "health:event"
    PLAYER_UPDATED = "player:updated"
    ERROR = "error"


def server_message(event: ServerEvent, data: dict[str, Any]) -> dict[str, Any]:
    return {"event": event.value, "data": data}
