"""Flat and structured editable surfaces sharing one capability contract."""

from __future__ import annotations

import logging
from typing import Callable, Protocol, Sequence

from ..core.errors import ErrorCode, RelayError, TargetUnavailableError
from .document_model import Element, InputEvent, NodeRange, Page, TextField, TextNode
from .segments import SegmentMap, build_segments

LOGGER = logging.getLogger(__name__)

INPUT_TYPE_REPLACEMENT = "insertReplacementText"

ReplaceStrategy = tuple[str, Callable[[], bool]]


class EditableSurface(Protocol):
    """Capabilities the replace engine needs from any editable surface."""

    kind: str

    def read_text(self) -> str:
        ...

    def current_selection(self) -> tuple[int, int]:
        ...

    def replace_range(self, start: int, end: int, new_text: str) -> str:
        """Replace ``[start, end)`` with ``new_text`` and return the method used."""
        ...

    def notify(self, new_text: str) -> None:
        ...


def run_strategies(strategies: Sequence[ReplaceStrategy]) -> str:
    """Try ``strategies`` in order and return the name of the first that succeeds."""

    for name, attempt in strategies:
        if attempt():
            return name
        LOGGER.debug("Replace strategy %s reported failure; trying next", name)
    raise RelayError(ErrorCode.EXCEPTION, "No replace strategy succeeded")


class FlatSurface:
    """A single text buffer such as ``<input>`` or ``<textarea>``."""

    kind = "flat"

    def __init__(self, field: TextField) -> None:
        self.field = field

    def read_text(self) -> str:
        return self.field.value or ""

    def current_selection(self) -> tuple[int, int]:
        return (self.field.selection_start, self.field.selection_end)

    def replace_range(self, start: int, end: int, new_text: str) -> str:
        return run_strategies(
            (
                ("set-range-text", lambda: self._set_range_text(start, end, new_text)),
                ("value-assign", lambda: self._assign_value(start, end, new_text)),
            )
        )

    def _set_range_text(self, start: int, end: int, new_text: str) -> bool:
        # Preserves the field's own undo history.
        if not getattr(self.field, "supports_range_text", False):
            return False
        self.field.set_selection_range(start, end)
        self.field.set_range_text(new_text, start, end, "end")
        return True

    def _assign_value(self, start: int, end: int, new_text: str) -> bool:
        text = self.read_text()
        head = text[:start]
        self.field.value = head + new_text + text[end:]
        caret = len(head) + len(new_text)
        self.field.set_selection_range(caret, caret)
        return True

    def notify(self, new_text: str) -> None:
        self.field.dispatch_event(
            InputEvent("input", input_type=INPUT_TYPE_REPLACEMENT, data=new_text, bubbles=True)
        )
        self.field.dispatch_event(InputEvent("change", bubbles=True))


class StructuredSurface:
    """A tree of text nodes under a ``contenteditable`` editing host."""

    kind = "structured"

    def __init__(self, page: Page, root: Element) -> None:
        self.page = page
        self.root = root

    def segment_map(self) -> SegmentMap:
        return build_segments(self.root)

    def read_text(self) -> str:
        return self.segment_map().text

    def current_selection(self) -> tuple[int, int]:
        node_range = self.page.selection.range
        if node_range is None or node_range.start is None or node_range.end is None:
            return (0, 0)
        start = end = None
        for segment in self.segment_map():
            if start is None and segment.node is node_range.start.node:
                start = segment.start + node_range.start.offset
            if end is None and segment.node is node_range.end.node:
                end = segment.start + node_range.end.offset
        if start is None or end is None:
            return (0, 0)
        return (start, end)

    def replace_range(self, start: int, end: int, new_text: str) -> str:
        mapping = self.segment_map()
        first = mapping.segment_containing(start)
        last = mapping.segment_containing(end)

        node_range = NodeRange()
        node_range.set_start(first.node, first.local_offset(start))
        node_range.set_end(last.node, last.local_offset(end))
        selection = self.page.selection
        selection.remove_all_ranges()
        selection.add_range(node_range)

        return run_strategies(
            (
                ("insert-text", lambda: self.page.insert_text(new_text)),
                ("range-insert", lambda: self._insert_node(node_range, new_text)),
            )
        )

    def _insert_node(self, node_range: NodeRange, new_text: str) -> bool:
        node_range.delete_contents()
        inserted = TextNode(new_text)
        node_range.insert_node(inserted)
        self.page.selection.collapse(inserted, len(new_text))
        return True

    def notify(self, new_text: str) -> None:
        self.root.dispatch_event(
            InputEvent("input", input_type=INPUT_TYPE_REPLACEMENT, data=new_text, bubbles=True)
        )


def resolve_surface(page: Page) -> EditableSurface:
    """Classify the page's focused element as a flat or structured surface.

    Raises:
        TargetUnavailableError: ``no-active-editable`` when nothing is focused,
            ``no-contenteditable`` when the focus is not inside an editing host.
    """

    active = page.active_element
    if active is None:
        raise TargetUnavailableError()
    if isinstance(active, TextField) and (active.multiline or not active.read_only):
        return FlatSurface(active)
    root = active.closest_editing_host()
    if root is None:
        raise TargetUnavailableError(ErrorCode.NO_CONTENTEDITABLE)
    return StructuredSurface(page, root)


__all__ = [
    "EditableSurface",
    "FlatSurface",
    "ReplaceStrategy",
    "StructuredSurface",
    "resolve_surface",
    "run_strategies",
]
