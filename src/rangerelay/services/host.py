"""Execution contexts the supervisor delivers commands to, plus an in-process host."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Mapping, Optional, Protocol, Sequence

from ..editor.document_model import Page
from .agent import ContextAgent, KeepAlive

LOGGER = logging.getLogger(__name__)


class ExecutionContext(Protocol):
    """A target (window, tab, ...) that may host a :class:`ContextAgent`."""

    context_id: str

    async def send_message(self, message: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        """Deliver ``message`` to the context's agent and return its reply.

        Raises ``ConnectionError`` when no agent is listening.
        """
        ...

    async def install_agent(self) -> None:
        ...


class TargetHost(Protocol):
    """Discovers execution contexts; the active one is resolved per command."""

    async def active_context(self) -> Optional[ExecutionContext]:
        ...

    def contexts(self) -> Sequence[ExecutionContext]:
        ...


class LocalContext:
    """In-process context wrapping a :class:`Page`."""

    _ids = itertools.count(1)

    def __init__(
        self,
        page: Page,
        *,
        context_id: str | None = None,
        injectable: bool = True,
        agent_installed: bool = False,
        keepalive: KeepAlive | None = None,
    ) -> None:
        self.context_id = context_id or f"context-{next(self._ids)}"
        self.page = page
        self.injectable = injectable
        self.keepalive = keepalive
        self.agent: ContextAgent | None = None
        self.install_count = 0
        if agent_installed:
            self.agent = ContextAgent(page, keepalive=self._forward_keepalive)

    async def send_message(self, message: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        if self.agent is None:
            raise ConnectionError("Could not establish connection. Receiving end does not exist.")
        return await self.agent.handle_message(message)

    async def install_agent(self) -> None:
        self.install_count += 1
        if not self.injectable:
            raise PermissionError(f"Cannot install agent into {self.context_id}")
        if self.agent is None:
            self.agent = ContextAgent(self.page, keepalive=self._forward_keepalive)
            LOGGER.debug("Installed agent into %s", self.context_id)

    async def _forward_keepalive(self, message: Mapping[str, Any]) -> Any:
        if self.keepalive is not None:
            return await self.keepalive(message)
        return None

    def __repr__(self) -> str:
        return f"LocalContext({self.context_id!r}, agent={'yes' if self.agent else 'no'})"


class LocalHost:
    """Host holding :class:`LocalContext` objects with one focused context."""

    def __init__(self, contexts: Sequence[LocalContext] = ()) -> None:
        self._contexts: dict[str, LocalContext] = {}
        self._active_id: str | None = None
        for context in contexts:
            self.add_context(context)

    def add_context(self, context: LocalContext, *, focus: bool = True) -> LocalContext:
        self._contexts[context.context_id] = context
        if focus or self._active_id is None:
            self._active_id = context.context_id
        return context

    def focus(self, context_id: str | None) -> None:
        if context_id is not None and context_id not in self._contexts:
            raise KeyError(context_id)
        self._active_id = context_id

    def bind_keepalive(self, keepalive: KeepAlive) -> None:
        for context in self._contexts.values():
            context.keepalive = keepalive

    async def active_context(self) -> Optional[LocalContext]:
        if self._active_id is None:
            return None
        return self._contexts.get(self._active_id)

    def contexts(self) -> Sequence[LocalContext]:
        return tuple(self._contexts.values())


__all__ = ["ExecutionContext", "LocalContext", "LocalHost", "TargetHost"]
