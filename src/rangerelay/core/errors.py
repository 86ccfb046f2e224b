"""Standardized error types for range replacement and command delivery.

Every failure that reaches the remote client is reported with one of the
``ErrorCode`` values below. Internal code raises the matching
:class:`RelayError` subclass where the failure happens; the engine and the
supervisor convert it into a failed ``Result`` at their boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for the ``error`` field of replace-range responses."""

    # Target unavailable
    NO_ACTIVE_EDITABLE = "no-active-editable"
    NO_CONTENTEDITABLE = "no-contenteditable"
    NO_TAB = "no-tab"

    # Staleness
    DOCUMENT_MODIFIED = "document-modified"
    RANGE_MISMATCH = "range-mismatch"

    # Structural failure
    DOM_MAP_FAILED = "dom-map-failed"

    # Delivery failure
    INJECT_FAILED = "inject-failed"
    SEND_FAILED = "send-failed"
    NO_RESPONSE = "no-response"

    # Unexpected
    EXCEPTION = "exception"

    ALL: ClassVar[tuple[str, ...]] = (
        NO_ACTIVE_EDITABLE,
        NO_CONTENTEDITABLE,
        NO_TAB,
        DOCUMENT_MODIFIED,
        RANGE_MISMATCH,
        DOM_MAP_FAILED,
        INJECT_FAILED,
        SEND_FAILED,
        NO_RESPONSE,
        EXCEPTION,
    )


_CATEGORIES: dict[str, str] = {
    ErrorCode.NO_ACTIVE_EDITABLE: "target-unavailable",
    ErrorCode.NO_CONTENTEDITABLE: "target-unavailable",
    ErrorCode.NO_TAB: "target-unavailable",
    ErrorCode.DOCUMENT_MODIFIED: "staleness",
    ErrorCode.RANGE_MISMATCH: "staleness",
    ErrorCode.DOM_MAP_FAILED: "structural-failure",
    ErrorCode.INJECT_FAILED: "delivery-failure",
    ErrorCode.SEND_FAILED: "delivery-failure",
    ErrorCode.NO_RESPONSE: "delivery-failure",
    ErrorCode.EXCEPTION: "unexpected",
}


def error_category(code: str) -> str:
    """Return the taxonomy bucket for ``code`` (``unexpected`` when unknown)."""

    return _CATEGORIES.get(code, "unexpected")


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class RelayError(Exception):
    """Base exception for failures reported back to the remote client.

    Attributes:
        error_code: Machine-readable identifier from :class:`ErrorCode`.
        message: Human-readable detail, sent as the response ``details``.
    """

    error_code: str = ErrorCode.EXCEPTION
    message: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message or self.error_code)

    @property
    def category(self) -> str:
        return error_category(self.error_code)

    @property
    def details(self) -> str | None:
        return self.message or None

    def __str__(self) -> str:
        if self.message:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}]"


# -----------------------------------------------------------------------------
# Engine Errors
# -----------------------------------------------------------------------------

@dataclass
class TargetUnavailableError(RelayError):
    """Raised when no editable surface can be acquired."""

    error_code: str = ErrorCode.NO_ACTIVE_EDITABLE


@dataclass
class DocumentModifiedError(RelayError):
    """Raised when the surface fingerprint no longer matches the client's hash."""

    error_code: str = ErrorCode.DOCUMENT_MODIFIED
    message: str = "Surface content changed since the command was planned"


@dataclass
class RangeMismatchError(RelayError):
    """Raised when neither the offsets nor drift recovery locate the expected text."""

    error_code: str = ErrorCode.RANGE_MISMATCH
    expected: str = ""
    actual: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f'Expected "{self.expected}" but found "{self.actual}"'
        RelayError.__post_init__(self)


@dataclass
class SegmentMappingError(RelayError):
    """Raised when a flattened offset falls outside every text segment."""

    error_code: str = ErrorCode.DOM_MAP_FAILED
    offset: int | None = None

    def __post_init__(self) -> None:
        if not self.message and self.offset is not None:
            self.message = f"No text segment contains offset {self.offset}"
        RelayError.__post_init__(self)


@dataclass
class CommandFormatError(RelayError):
    """Raised when a replace-range payload violates the command invariants."""

    error_code: str = ErrorCode.EXCEPTION


# -----------------------------------------------------------------------------
# Delivery Errors
# -----------------------------------------------------------------------------

@dataclass
class AgentUnavailableError(RelayError):
    """Raised when an execution context does not answer its liveness probe."""

    error_code: str = ErrorCode.INJECT_FAILED
    context_id: str | None = None


__all__ = [
    "AgentUnavailableError",
    "CommandFormatError",
    "DocumentModifiedError",
    "ErrorCode",
    "RangeMismatchError",
    "RelayError",
    "SegmentMappingError",
    "TargetUnavailableError",
    "error_category",
]
