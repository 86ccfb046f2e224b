"""In-memory host model of editable surfaces.

The replace engine only talks to a page through the small surface used
here: an active element, text fields with a value and selection, element
trees carrying text nodes, node ranges, a page selection and an optional
``insert_text`` editing command.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

LOGGER = logging.getLogger(__name__)

CONTENTEDITABLE_ATTRIBUTE = "contenteditable"

EventListener = Callable[["InputEvent"], None]


@dataclass(slots=True)
class InputEvent:
    """Change notification dispatched on a surface after an edit."""

    type: str
    input_type: Optional[str] = None
    data: Optional[str] = None
    bubbles: bool = True
    target: Optional["Node"] = field(default=None, repr=False)


class Node:
    """Base tree node with a parent pointer and bubbling event listeners."""

    def __init__(self) -> None:
        self.parent: Optional[Element] = None
        self._listeners: Dict[str, List[EventListener]] = {}

    def add_event_listener(self, event_type: str, listener: EventListener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def remove_event_listener(self, event_type: str, listener: EventListener) -> None:
        listeners = self._listeners.get(event_type)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def dispatch_event(self, event: InputEvent) -> None:
        event.target = self
        node: Optional[Node] = self
        while node is not None:
            for listener in list(node._listeners.get(event.type, ())):
                listener(event)
            if not event.bubbles:
                break
            node = node.parent

    def closest(self, predicate: Callable[["Element"], bool]) -> Optional["Element"]:
        """Return the nearest element (self included) satisfying ``predicate``."""

        node: Optional[Node] = self
        while node is not None:
            if isinstance(node, Element) and predicate(node):
                return node
            node = node.parent
        return None

    def root(self) -> "Node":
        node: Node = self
        while node.parent is not None:
            node = node.parent
        return node

    def iter_text_nodes(self) -> Iterator["TextNode"]:
        return iter(())

    @property
    def text_content(self) -> str:
        return "".join(node.data for node in self.iter_text_nodes())


class TextNode(Node):
    """Leaf node carrying a run of text."""

    def __init__(self, data: str = "") -> None:
        super().__init__()
        self.data = data

    def __len__(self) -> int:
        return len(self.data)

    def iter_text_nodes(self) -> Iterator["TextNode"]:
        yield self

    def __repr__(self) -> str:
        return f"TextNode({self.data!r})"


class Element(Node):
    """Element with attributes and ordered children."""

    def __init__(
        self,
        tag: str = "div",
        *children: Node | str,
        attributes: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__()
        self.tag = tag
        self.attributes: Dict[str, str] = dict(attributes or {})
        self.children: List[Node] = []
        for child in children:
            self.append_child(TextNode(child) if isinstance(child, str) else child)

    def append_child(self, child: Node) -> Node:
        self._detach(child)
        child.parent = self
        self.children.append(child)
        return child

    def insert_after(self, child: Node, reference: Node) -> Node:
        self._detach(child)
        index = self.children.index(reference)
        child.parent = self
        self.children.insert(index + 1, child)
        return child

    def remove_child(self, child: Node) -> Node:
        self.children.remove(child)
        child.parent = None
        return child

    @staticmethod
    def _detach(child: Node) -> None:
        if child.parent is not None:
            child.parent.remove_child(child)

    def iter_text_nodes(self) -> Iterator[TextNode]:
        for child in list(self.children):
            yield from child.iter_text_nodes()

    @property
    def is_editing_host(self) -> bool:
        return self.attributes.get(CONTENTEDITABLE_ATTRIBUTE) == "true"

    def closest_editing_host(self) -> Optional["Element"]:
        return self.closest(lambda element: element.is_editing_host)

    def __repr__(self) -> str:
        return f"Element({self.tag!r}, children={len(self.children)})"


class TextField(Element):
    """Single-buffer field (``input`` or ``textarea``) with a selection."""

    def __init__(
        self,
        value: str = "",
        *,
        multiline: bool = True,
        read_only: bool = False,
        supports_range_text: bool = True,
    ) -> None:
        super().__init__("textarea" if multiline else "input")
        self.value = value
        self.multiline = multiline
        self.read_only = read_only
        self.supports_range_text = supports_range_text
        self.selection_start = len(value)
        self.selection_end = len(value)
        self.undo_stack: List[str] = []

    def set_selection_range(self, start: int, end: int) -> None:
        length = len(self.value)
        start = max(0, min(start, length))
        end = max(start, min(end, length))
        self.selection_start = start
        self.selection_end = end

    def set_range_text(self, replacement: str, start: int, end: int, select_mode: str = "end") -> None:
        """Replace ``value[start:end]`` in place, recording undo history."""

        if not self.supports_range_text:
            raise NotImplementedError("set_range_text is not supported by this field")
        length = len(self.value)
        start = max(0, min(start, length))
        end = max(start, min(end, length))
        self.undo_stack.append(self.value)
        self.value = self.value[:start] + replacement + self.value[end:]
        if select_mode == "end":
            caret = start + len(replacement)
            self.set_selection_range(caret, caret)
        elif select_mode == "select":
            self.set_selection_range(start, start + len(replacement))
        else:
            self.set_selection_range(start, start)

    def iter_text_nodes(self) -> Iterator[TextNode]:
        return iter(())


@dataclass(slots=True)
class BoundaryPoint:
    node: TextNode
    offset: int


class NodeRange:
    """Range between two text-node boundary points of the same tree."""

    def __init__(self) -> None:
        self.start: Optional[BoundaryPoint] = None
        self.end: Optional[BoundaryPoint] = None

    def set_start(self, node: TextNode, offset: int) -> None:
        self.start = BoundaryPoint(node, self._clamp(node, offset))

    def set_end(self, node: TextNode, offset: int) -> None:
        self.end = BoundaryPoint(node, self._clamp(node, offset))

    @staticmethod
    def _clamp(node: TextNode, offset: int) -> int:
        return max(0, min(offset, len(node.data)))

    @property
    def collapsed(self) -> bool:
        start, end = self._require_points()
        return start.node is end.node and start.offset == end.offset

    def _require_points(self) -> tuple[BoundaryPoint, BoundaryPoint]:
        if self.start is None or self.end is None:
            raise ValueError("Range boundary points are not set")
        return self.start, self.end

    def delete_contents(self) -> None:
        """Remove the text between the boundary points and collapse to the start."""

        start, end = self._require_points()
        if start.node is end.node:
            data = start.node.data
            start.node.data = data[: start.offset] + data[end.offset :]
        else:
            between = self._text_nodes_between(start.node, end.node)
            start.node.data = start.node.data[: start.offset]
            end.node.data = end.node.data[end.offset :]
            for node in between:
                if node.parent is not None:
                    node.parent.remove_child(node)
        self.end = BoundaryPoint(start.node, start.offset)

    def insert_node(self, node: Node) -> None:
        """Insert ``node`` at the start point, splitting the start text node."""

        start, _ = self._require_points()
        anchor = start.node
        parent = anchor.parent
        if parent is None:
            raise ValueError("Cannot insert relative to a detached text node")
        tail = anchor.data[start.offset :]
        anchor.data = anchor.data[: start.offset]
        parent.insert_after(node, anchor)
        if tail:
            parent.insert_after(TextNode(tail), node)

    @staticmethod
    def _text_nodes_between(first: TextNode, last: TextNode) -> List[TextNode]:
        nodes: List[TextNode] = []
        inside = False
        for node in first.root().iter_text_nodes():
            if node is last:
                break
            if inside:
                nodes.append(node)
            elif node is first:
                inside = True
        return nodes


class Selection:
    """Page selection holding at most one range."""

    def __init__(self) -> None:
        self.range: Optional[NodeRange] = None

    def remove_all_ranges(self) -> None:
        self.range = None

    def add_range(self, node_range: NodeRange) -> None:
        self.range = node_range

    def collapse(self, node: TextNode, offset: int) -> None:
        caret = NodeRange()
        caret.set_start(node, offset)
        caret.set_end(node, offset)
        self.range = caret

    @property
    def anchor(self) -> Optional[BoundaryPoint]:
        return self.range.start if self.range is not None else None


class Page:
    """Execution-context document: focus, selection and editing commands."""

    def __init__(
        self,
        body: Optional[Element] = None,
        *,
        active_element: Optional[Element] = None,
        editing_commands: bool = True,
    ) -> None:
        self.body = body or Element("body")
        self.active_element = active_element
        self.selection = Selection()
        self.editing_commands = editing_commands

    def focus(self, element: Optional[Element]) -> None:
        self.active_element = element

    def insert_text(self, text: str) -> bool:
        """Replace the selected range with ``text`` inside the start text node.

        Returns ``False`` when editing commands are disabled or the selection
        is not inside an editing host, mirroring a host command that reports
        failure instead of raising.
        """

        if not self.editing_commands:
            return False
        node_range = self.selection.range
        if node_range is None or node_range.start is None:
            return False
        anchor = node_range.start.node
        if anchor.parent is None or anchor.parent.closest_editing_host() is None:
            return False
        node_range.delete_contents()
        offset = node_range.start.offset
        anchor.data = anchor.data[:offset] + text + anchor.data[offset:]
        self.selection.collapse(anchor, offset + len(text))
        return True


def editable_div(*children: Node | str, tag: str = "div") -> Element:
    """Return an element marked as a structured editing host."""

    return Element(tag, *children, attributes={CONTENTEDITABLE_ATTRIBUTE: "true"})


__all__ = [
    "BoundaryPoint",
    "CONTENTEDITABLE_ATTRIBUTE",
    "Element",
    "InputEvent",
    "Node",
    "NodeRange",
    "Page",
    "Selection",
    "TextField",
    "TextNode",
    "editable_div",
]
