"""
Transcript Schemas
"""

import uuid
from typing import Optional

from pydantic import Field

from companion.schemas.base import CamelModel

PLACEHOLDER_SPEAKER_PREFIX = "Speaker "


def speaker_label_for(index: int) -> str:
    """Map a diarization index to a letter label, cycling after Z"""
    return f"{PLACEHOLDER_SPEAKER_PREFIX}{chr(65 + index % 26)}"


def is_confirmed_speaker(name: str) -> bool:
    return bool(name) and not name.startswith(PLACEHOLDER_SPEAKER_PREFIX)


class TranscriptSegment(CamelModel):
    """
    One finalized utterance.

    ``speaker_label`` is frozen: assigning to it raises a ValidationError.
    Only ``speaker_name``, ``text`` and ``is_edited`` change after creation.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: int = 0  # ms since session start
    speaker_label: str = Field(frozen=True)
    speaker_name: Optional[str] = None
    text: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    is_edited: bool = False

    @property
    def effective_speaker(self) -> str:
        return self.speaker_name or self.speaker_label


class SegmentCorrected(CamelModel):
    segment_id: str
    text: str


class SegmentMerged(CamelModel):
    target_id: str
    merged_id: str
    new_text: str


class SpeakerUpdated(CamelModel):
    segment_id: str
    speaker_name: str
