"""Core domain types shared by the replace engine and the connection supervisor."""

from .commands import Command, MessageType, Result
from .errors import ErrorCode, RelayError
from .fingerprint import Fingerprint, fingerprint

__all__ = [
    "Command",
    "ErrorCode",
    "Fingerprint",
    "MessageType",
    "RelayError",
    "Result",
    "fingerprint",
]
