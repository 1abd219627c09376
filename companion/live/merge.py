"""
Segment merging

Coalesces adjacent settled segments spoken by the same confirmed speaker.
"""

from dataclasses import dataclass

from companion.live.transcript import TranscriptBuffer
from companion.schemas.transcript import is_confirmed_speaker


@dataclass(frozen=True)
class MergeResult:
    target_id: str
    merged_id: str
    new_text: str


def merge_key(current_id: str, next_id: str) -> str:
    return f"{current_id}:{next_id}"


def merge_settled_segments(
    buffer: TranscriptBuffer,
    settled_end: int,
    merged_keys: set[str],
) -> list[MergeResult]:
    """
    Merge runs of same-speaker segments in ``buffer[:settled_end]``.

    The surviving segment keeps absorbing while the run continues. A pair
    whose key is already in ``merged_keys`` is never merged again. Absorbed
    segments are removed from the buffer after the pass.
    """
    settled = buffer.snapshot()[:settled_end]
    if len(settled) < 2:
        return []

    results: list[MergeResult] = []
    absorbed: set[str] = set()
    current = settled[0]

    for following in settled[1:]:
        speaker = current.effective_speaker
        if speaker == following.effective_speaker and is_confirmed_speaker(speaker):
            key = merge_key(current.id, following.id)
            if key not in merged_keys:
                current.text = f"{current.text} {following.text}".strip()
                merged_keys.add(key)
                absorbed.add(following.id)
                results.append(MergeResult(current.id, following.id, current.text))
                continue
        current = following

    if absorbed:
        buffer.remove_ids(absorbed)
    return results
