"""Tests for wire-level command parsing and result serialization."""

from __future__ import annotations

import json

import pytest

from rangerelay.core.commands import (
    Command,
    MessageType,
    Result,
    decode_message,
    heartbeat_message,
    is_pong,
)
from rangerelay.core.errors import (
    CommandFormatError,
    ErrorCode,
    RangeMismatchError,
    RelayError,
    error_category,
)


def _message(**payload):
    return {"type": MessageType.REPLACE_RANGE, "requestId": "req-1", "payload": payload}


def test_command_from_message_reads_all_fields():
    command = Command.from_message(
        _message(start=6, end=11, newText="there", expectedOriginal="world", documentHash=42)
    )

    assert command == Command(
        request_id="req-1",
        start=6,
        end=11,
        new_text="there",
        expected_original="world",
        document_hash=42,
    )
    assert not command.is_insertion
    assert Command.from_message(command.to_message()) == command


def test_command_defaults_missing_new_text_to_empty_deletion():
    command = Command.from_message(_message(start=2, end=4))

    assert command.new_text == ""
    assert command.expected_original is None
    assert command.document_hash is None


@pytest.mark.parametrize(
    "payload",
    [
        {"start": 5, "end": 2, "newText": "x"},
        {"start": -1, "end": 2, "newText": "x"},
        {"start": "a", "end": 2, "newText": "x"},
        {"start": True, "end": 2, "newText": "x"},
        {"start": 1.5, "end": 2, "newText": "x"},
        {"end": 2, "newText": "x"},
        {"start": 0, "end": 2, "newText": 7},
        {"start": 0, "end": 2, "newText": "x", "expectedOriginal": 3},
        {"start": 0, "end": 2, "newText": "x", "documentHash": "abc"},
    ],
)
def test_command_rejects_invalid_payloads(payload):
    with pytest.raises(CommandFormatError):
        Command.from_message(_message(**payload))


def test_command_requires_payload_object():
    with pytest.raises(CommandFormatError):
        Command.from_message({"type": MessageType.REPLACE_RANGE, "requestId": 1, "payload": [1, 2]})


def test_success_result_payload_omits_unset_fields():
    result = Result.ok("req-9", method="set-range-text", replaced_length=5, new_length=3)

    assert result.to_payload() == {
        "requestId": "req-9",
        "success": True,
        "method": "set-range-text",
        "replacedLength": 5,
        "newLength": 3,
    }
    assert json.loads(result.to_json()) == result.to_payload()


def test_failure_result_keeps_relay_error_code():
    result = Result.from_error(7, RangeMismatchError(expected="foo", actual="bar"))

    payload = result.to_payload()
    assert payload["requestId"] == 7
    assert payload["success"] is False
    assert payload["error"] == ErrorCode.RANGE_MISMATCH
    assert '"foo"' in payload["details"] and '"bar"' in payload["details"]
    assert "method" not in payload


def test_unexpected_errors_map_to_exception_code():
    result = Result.from_error("r", KeyError("missing"))

    assert result.error == ErrorCode.EXCEPTION
    assert "missing" in (result.details or "")


def test_relay_error_without_message_has_no_details():
    assert RelayError(ErrorCode.NO_TAB).details is None
    assert Result.from_error("r", RelayError(ErrorCode.NO_TAB)).to_payload() == {
        "requestId": "r",
        "success": False,
        "error": "no-tab",
    }


def test_error_categories_cover_every_code():
    categories = {code: error_category(code) for code in ErrorCode.ALL}

    assert categories["no-tab"] == "target-unavailable"
    assert categories["document-modified"] == "staleness"
    assert categories["dom-map-failed"] == "structural-failure"
    assert categories["send-failed"] == "delivery-failure"
    assert categories["exception"] == "unexpected"
    assert error_category("made-up") == "unexpected"


def test_decode_message_drops_garbage():
    assert decode_message("not json") is None
    assert decode_message("[1, 2]") is None
    assert decode_message(b"\xff\xfe") is None
    assert decode_message(b'{"type": "ping"}') == {"type": "ping"}


def test_liveness_helpers():
    assert heartbeat_message(now=12.5) == {"type": "heartbeat", "ts": 12500}
    assert is_pong({"pong": True})
    assert not is_pong({"pong": "yes"})
    assert not is_pong(None)
