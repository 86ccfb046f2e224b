"""Cheap content signatures used for optimistic staleness checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

_HASH_MULTIPLIER = 31
_HASH_MASK = 0xFFFFFFFF


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class Fingerprint:
    """Length plus 32-bit rolling hash of a surface's text.

    The timestamp records when the fingerprint was taken and does not take
    part in equality.
    """

    length: int
    hash: int
    timestamp: datetime = field(default_factory=_utcnow, compare=False)

    def matches(self, expected_hash: int) -> bool:
        """Return ``True`` when ``expected_hash`` equals this fingerprint's hash."""

        return self.hash == (int(expected_hash) & _HASH_MASK)

    def as_dict(self) -> dict[str, object]:
        return {
            "length": self.length,
            "hash": self.hash,
            "timestamp": self.timestamp.isoformat(),
        }


def rolling_hash(text: str) -> int:
    """Return ``hash = hash * 31 + ord(ch)`` over ``text`` wrapped to 32 bits."""

    value = 0
    for char in text:
        value = (value * _HASH_MULTIPLIER + ord(char)) & _HASH_MASK
    return value


def fingerprint(text: str) -> Fingerprint:
    """Compute the :class:`Fingerprint` of ``text``."""

    text = text or ""
    return Fingerprint(length=len(text), hash=rolling_hash(text))


__all__ = ["Fingerprint", "fingerprint", "rolling_hash"]
