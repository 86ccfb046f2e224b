"""Map flattened text offsets onto the text nodes of a structured surface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

from ..core.errors import SegmentMappingError
from .document_model import Element, TextNode


@dataclass(slots=True, frozen=True)
class Segment:
    """A text node and its ``[start, end)`` bounds in the flattened text."""

    node: TextNode
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start

    def local_offset(self, offset: int) -> int:
        """Translate a flattened offset into an offset within :attr:`node`."""

        return offset - self.start


@dataclass(slots=True, frozen=True)
class SegmentMap:
    """Ordered segments of a structured surface plus their concatenated text.

    Built fresh for every resolution.
    """

    segments: tuple[Segment, ...]
    text: str

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    def segment_containing(self, offset: int) -> Segment:
        """Return the first segment with ``start <= offset <= end``.

        Offsets on a boundary between two segments resolve to the earlier one.

        Raises:
            SegmentMappingError: If no segment contains ``offset``.
        """

        for segment in self.segments:
            if segment.start <= offset <= segment.end:
                return segment
        raise SegmentMappingError(offset=offset)


def build_segments(root: Element) -> SegmentMap:
    """Walk ``root``'s text nodes in document order and record their bounds."""

    segments: list[Segment] = []
    pieces: list[str] = []
    cursor = 0
    for node in root.iter_text_nodes():
        data = node.data or ""
        segments.append(Segment(node=node, start=cursor, end=cursor + len(data)))
        pieces.append(data)
        cursor += len(data)
    return SegmentMap(segments=tuple(segments), text="".join(pieces))


def is_contiguous(segments: Sequence[Segment]) -> bool:
    """Return ``True`` when each segment starts where the previous one ended."""

    cursor = 0
    for segment in segments:
        if segment.start != cursor or segment.end < segment.start:
            return False
        cursor = segment.end
    return True


__all__ = ["Segment", "SegmentMap", "build_segments", "is_contiguous"]
