"""Wire-level command and result types exchanged with the remote client."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .errors import CommandFormatError, ErrorCode, RelayError

LOGGER = logging.getLogger(__name__)


class MessageType:
    """Values of the ``type`` field understood on the channel and by agents."""

    REPLACE_RANGE = "replace-range"
    PING = "ping"
    HEARTBEAT = "heartbeat"
    EXTENSION_READY = "extension-ready"
    CHECK_CONNECTION = "check-connection"
    NOOP = "noop"


@dataclass(slots=True, frozen=True)
class Command:
    """A single replace-range request.

    ``request_id`` is opaque and only ever echoed back in the :class:`Result`.
    """

    request_id: Any
    start: int
    end: int
    new_text: str
    expected_original: Optional[str] = None
    document_hash: Optional[int] = None

    @property
    def is_insertion(self) -> bool:
        return self.start == self.end

    @classmethod
    def from_message(cls, message: Mapping[str, Any]) -> "Command":
        """Build a command from a ``replace-range`` message.

        Raises:
            CommandFormatError: If the payload is missing or violates ``0 <= start <= end``.
        """

        request_id = message.get("requestId")
        payload = message.get("payload")
        if not isinstance(payload, Mapping):
            raise CommandFormatError(message="replace-range payload must be an object")
        start = _coerce_offset(payload.get("start"), "start")
        end = _coerce_offset(payload.get("end"), "end")
        if end < start:
            raise CommandFormatError(message=f"start ({start}) must not exceed end ({end})")
        new_text = payload.get("newText")
        if new_text is None:
            new_text = ""
        if not isinstance(new_text, str):
            raise CommandFormatError(message="newText must be a string")
        expected = payload.get("expectedOriginal")
        if expected is not None and not isinstance(expected, str):
            raise CommandFormatError(message="expectedOriginal must be a string")
        document_hash = payload.get("documentHash")
        if document_hash is not None:
            try:
                document_hash = int(document_hash)
            except (TypeError, ValueError) as exc:
                raise CommandFormatError(message="documentHash must be an integer") from exc
        return cls(
            request_id=request_id,
            start=start,
            end=end,
            new_text=new_text,
            expected_original=expected,
            document_hash=document_hash,
        )

    def to_message(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"start": self.start, "end": self.end, "newText": self.new_text}
        if self.expected_original is not None:
            payload["expectedOriginal"] = self.expected_original
        if self.document_hash is not None:
            payload["documentHash"] = self.document_hash
        return {"type": MessageType.REPLACE_RANGE, "requestId": self.request_id, "payload": payload}


def _coerce_offset(value: Any, label: str) -> int:
    if isinstance(value, bool) or value is None:
        raise CommandFormatError(message=f"{label} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise CommandFormatError(message=f"{label} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise CommandFormatError(message=f"{label} must be an integer") from exc
    if number < 0:
        raise CommandFormatError(message=f"{label} must be non-negative")
    return number


@dataclass(slots=True, frozen=True)
class Result:
    """Outcome of a replace-range command, correlated by ``request_id``."""

    request_id: Any
    success: bool
    error: Optional[str] = None
    details: Optional[str] = None
    method: Optional[str] = None
    replaced_length: Optional[int] = None
    new_length: Optional[int] = None

    @classmethod
    def ok(cls, request_id: Any, *, method: str, replaced_length: int, new_length: int) -> "Result":
        return cls(
            request_id=request_id,
            success=True,
            method=method,
            replaced_length=replaced_length,
            new_length=new_length,
        )

    @classmethod
    def failure(cls, request_id: Any, error: str, details: Optional[str] = None) -> "Result":
        return cls(request_id=request_id, success=False, error=error, details=details)

    @classmethod
    def from_error(cls, request_id: Any, exc: BaseException) -> "Result":
        """Convert ``exc`` into a failed result, keeping the code of a :class:`RelayError`."""

        if isinstance(exc, RelayError):
            return cls.failure(request_id, exc.error_code, exc.details)
        return cls.failure(request_id, ErrorCode.EXCEPTION, str(exc) or type(exc).__name__)

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON-ready response body, omitting unset fields."""

        payload: Dict[str, Any] = {"requestId": self.request_id, "success": self.success}
        optional = {
            "error": self.error,
            "details": self.details,
            "method": self.method,
            "replacedLength": self.replaced_length,
            "newLength": self.new_length,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False)


def decode_message(raw: str | bytes) -> Optional[Dict[str, Any]]:
    """Parse a channel frame, returning ``None`` for anything that is not a JSON object."""

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            LOGGER.warning("Dropping non UTF-8 frame (%d bytes)", len(raw))
            return None
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        LOGGER.warning("Dropping malformed frame: %s", exc)
        return None
    if not isinstance(message, dict):
        LOGGER.debug("Dropping non-object frame of type %s", type(message).__name__)
        return None
    return message


def heartbeat_message(now: float | None = None) -> Dict[str, Any]:
    timestamp = time.time() if now is None else now
    return {"type": MessageType.HEARTBEAT, "ts": int(timestamp * 1000)}


def ping_message() -> Dict[str, Any]:
    return {"type": MessageType.PING}


def ready_message() -> Dict[str, Any]:
    return {"type": MessageType.EXTENSION_READY}


def is_pong(reply: Any) -> bool:
    return isinstance(reply, Mapping) and reply.get("pong") is True


__all__ = [
    "Command",
    "MessageType",
    "Result",
    "decode_message",
    "heartbeat_message",
    "is_pong",
    "ping_message",
    "ready_message",
]
