"""Tests for the structured-surface segment mapper."""

from __future__ import annotations

import pytest

from rangerelay.core.errors import ErrorCode, SegmentMappingError
from rangerelay.editor.document_model import Element, TextNode, editable_div
from rangerelay.editor.segments import build_segments, is_contiguous


def _nested_root() -> Element:
    return editable_div(
        Element("p", "Hello ", Element("b", "bold"), " world"),
        Element("p", ""),
        Element("p", "!"),
    )


def test_build_segments_walks_text_nodes_in_document_order():
    mapping = build_segments(_nested_root())

    assert mapping.text == "Hello bold world!"
    assert [segment.node.data for segment in mapping] == ["Hello ", "bold", " world", "", "!"]
    assert [(segment.start, segment.end) for segment in mapping] == [
        (0, 6),
        (6, 10),
        (10, 16),
        (16, 16),
        (16, 17),
    ]
    assert is_contiguous(mapping.segments)


def test_segment_containing_prefers_earlier_segment_on_boundary():
    mapping = build_segments(editable_div(Element("span", "AB"), Element("span", "CD")))

    boundary = mapping.segment_containing(2)

    assert boundary.node.data == "AB"
    assert boundary.local_offset(2) == 2
    assert mapping.segment_containing(3).node.data == "CD"
    assert mapping.segment_containing(0).start == 0
    assert mapping.segment_containing(4).end == 4


def test_segment_containing_raises_dom_map_failed_outside_text():
    mapping = build_segments(editable_div("abc"))

    with pytest.raises(SegmentMappingError) as excinfo:
        mapping.segment_containing(4)

    assert excinfo.value.error_code == ErrorCode.DOM_MAP_FAILED
    assert "4" in excinfo.value.message


def test_empty_root_has_no_segments():
    mapping = build_segments(editable_div())

    assert len(mapping) == 0
    assert mapping.text == ""
    with pytest.raises(SegmentMappingError):
        mapping.segment_containing(0)


def test_segments_are_rebuilt_from_current_tree():
    root = editable_div("one")
    before = build_segments(root)

    root.append_child(TextNode(" two"))
    after = build_segments(root)

    assert before.text == "one"
    assert after.text == "one two"
    assert len(after) == len(before) + 1


def test_is_contiguous_detects_gaps():
    mapping = build_segments(editable_div("ab", "cd"))
    first, second = mapping.segments

    assert not is_contiguous((second, first))
