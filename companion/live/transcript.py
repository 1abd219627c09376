"""
In-memory transcript buffer

Segments are kept in emission order (which is also the persisted order) with
an id index, so background tasks resolve segments by identity instead of by a
list position captured before an await.
"""

from typing import Iterator, Optional

from companion.schemas.transcript import TranscriptSegment


class TranscriptBuffer:
    def __init__(self, segments: Optional[list[TranscriptSegment]] = None):
        self._segments: list[TranscriptSegment] = []
        self._by_id: dict[str, TranscriptSegment] = {}
        for segment in segments or []:
            self.append(segment)

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[TranscriptSegment]:
        return iter(list(self._segments))

    def __getitem__(self, index: int) -> TranscriptSegment:
        return self._segments[index]

    def __contains__(self, segment_id: object) -> bool:
        return segment_id in self._by_id

    def append(self, segment: TranscriptSegment) -> None:
        if segment.id in self._by_id:
            raise ValueError(f"Duplicate segment id {segment.id}")
        self._segments.append(segment)
        self._by_id[segment.id] = segment

    def get(self, segment_id: str) -> Optional[TranscriptSegment]:
        return self._by_id.get(segment_id)

    def remove_ids(self, segment_ids: set[str]) -> int:
        """Drop absorbed segments, walking backwards so indices stay valid"""
        removed = 0
        for index in range(len(self._segments) - 1, -1, -1):
            segment = self._segments[index]
            if segment.id in segment_ids:
                del self._segments[index]
                del self._by_id[segment.id]
                removed += 1
        return removed

    def recent(self, count: int, *, before: Optional[str] = None) -> list[TranscriptSegment]:
        """
        Last ``count`` segments, optionally only those preceding ``before``.
        """
        segments = self._segments
        if before is not None:
            for index, segment in enumerate(segments):
                if segment.id == before:
                    segments = segments[:index]
                    break
        if count <= 0:
            return []
        return list(segments[-count:])

    def settled_end(self, unsettled: int) -> int:
        """Index one past the last segment eligible for merging"""
        return max(0, len(self._segments) - unsettled)

    def snapshot(self) -> list[TranscriptSegment]:
        return list(self._segments)

    def to_wire(self) -> list[dict]:
        return [segment.to_wire() for segment in self._segments]
