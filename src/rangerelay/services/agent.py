"""Agent that runs inside an execution context and applies commands to its page."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..core.commands import Command, MessageType, Result
from ..core.errors import CommandFormatError
from ..editor.document_model import Page
from ..editor.replace_engine import ReplaceEngine

LOGGER = logging.getLogger(__name__)

KeepAlive = Callable[[Mapping[str, Any]], Awaitable[Any]]


class ContextAgent:
    """Answers liveness probes and replace-range commands for one page."""

    def __init__(self, page: Page, *, keepalive: Optional[KeepAlive] = None) -> None:
        self.engine = ReplaceEngine(page)
        self._keepalive = keepalive
        self.ready_announcements = 0

    @property
    def page(self) -> Page:
        return self.engine.page

    async def handle_message(self, message: Mapping[str, Any]) -> Optional[dict[str, Any]]:
        """Dispatch ``message`` by type; unknown types get no reply."""

        message_type = message.get("type") if isinstance(message, Mapping) else None
        if message_type == MessageType.PING:
            return {"pong": True}
        if message_type == MessageType.EXTENSION_READY:
            self.ready_announcements += 1
            LOGGER.debug("Supervisor announced readiness")
            return None
        if message_type == MessageType.REPLACE_RANGE:
            return await self._replace(message)
        return None

    async def _replace(self, message: Mapping[str, Any]) -> dict[str, Any]:
        request_id = message.get("requestId")
        try:
            command = Command.from_message(message)
        except CommandFormatError as exc:
            LOGGER.warning("Rejected malformed replace-range %s: %s", request_id, exc)
            result = Result.from_error(request_id, exc)
        else:
            result = self.engine.apply(command)
        await self._send_keepalive()
        return result.to_payload()

    async def _send_keepalive(self) -> None:
        if self._keepalive is None:
            return
        try:
            await self._keepalive({"type": MessageType.NOOP})
        except Exception:  # pragma: no cover - keep-alive is best effort
            LOGGER.debug("Keep-alive to supervisor failed", exc_info=True)


__all__ = ["ContextAgent", "KeepAlive"]
