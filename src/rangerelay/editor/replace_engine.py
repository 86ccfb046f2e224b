"""Range resolution and atomic replacement against a live editable surface."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..core.commands import Command, Result
from ..core.errors import DocumentModifiedError, RangeMismatchError, RelayError
from ..core.fingerprint import fingerprint
from .document_model import Page
from .surfaces import EditableSurface, resolve_surface

LOGGER = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space and trim both ends.

    This comparison is lossy: two different strings that only
    differ in whitespace compare equal.
    """

    return _WHITESPACE_RE.sub(" ", text or "").strip()


@dataclass(slots=True, frozen=True)
class ResolvedRange:
    """Final offsets of a command after validation and drift recovery."""

    start: int
    end: int
    recovered: bool = False

    @property
    def length(self) -> int:
        return self.end - self.start


def resolve_range(text: str, start: int, end: int, expected: Optional[str]) -> ResolvedRange:
    """Validate ``text[start:end]`` against ``expected``, relocating on drift.

    Raises:
        RangeMismatchError: If the slice differs and ``expected`` occurs nowhere in ``text``.
    """

    if not expected:
        return ResolvedRange(start, end)
    actual = text[start:end]
    if normalize_whitespace(actual) == normalize_whitespace(expected):
        return ResolvedRange(start, end)
    index = text.find(expected)
    if index < 0:
        raise RangeMismatchError(
            expected=expected,
            actual=actual,
            message=f'Expected "{expected}" at {start}-{end} but found "{actual}"',
        )
    LOGGER.debug("Drift recovered: %s-%s relocated to %s-%s", start, end, index, index + len(expected))
    return ResolvedRange(index, index + len(expected), recovered=True)


def check_document_hash(surface: EditableSurface, document_hash: Optional[int]) -> None:
    """Raise :class:`DocumentModifiedError` when ``document_hash`` is stale."""

    if document_hash is None:
        return
    current = fingerprint(surface.read_text())
    if not current.matches(document_hash):
        raise DocumentModifiedError(
            message=f"Expected hash {document_hash} but surface hash is {current.hash} (length {current.length})"
        )


class ReplaceEngine:
    """Applies replace-range commands to the focused surface of a page."""

    def __init__(self, page: Page) -> None:
        self.page = page

    def apply(self, command: Command) -> Result:
        return apply_replace(self.page, command)


def apply_replace(page: Page, command: Command) -> Result:
    """Resolve ``command`` against ``page`` and apply it as a single mutation.

    Every failure, expected or not, is returned as a failed :class:`Result`;
    this function never raises.
    """

    try:
        surface = resolve_surface(page)
        check_document_hash(surface, command.document_hash)
        resolved = resolve_range(
            surface.read_text(), command.start, command.end, command.expected_original
        )
        method = surface.replace_range(resolved.start, resolved.end, command.new_text)
        surface.notify(command.new_text)
    except RelayError as exc:
        LOGGER.info("Replace %s failed: %s", command.request_id, exc)
        return Result.from_error(command.request_id, exc)
    except Exception as exc:
        LOGGER.exception("Replace %s raised unexpectedly", command.request_id)
        return Result.from_error(command.request_id, exc)

    LOGGER.debug(
        "Replace %s applied via %s on %s surface (%d -> %d chars)",
        command.request_id,
        method,
        surface.kind,
        resolved.length,
        len(command.new_text),
    )
    return Result.ok(
        command.request_id,
        method=method,
        replaced_length=resolved.length,
        new_length=len(command.new_text),
    )


__all__ = [
    "ReplaceEngine",
    "ResolvedRange",
    "apply_replace",
    "check_document_hash",
    "normalize_whitespace",
    "resolve_range",
]
