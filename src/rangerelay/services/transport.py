"""Channel events and the WebSocket transport that produces them.

The supervisor never sees transport callbacks. A transport reports what
happens on the wire as :class:`Opened`, :class:`MessageReceived` and
:class:`Closed` events pushed onto the supervisor's queue.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

LOGGER = logging.getLogger(__name__)


class Channel(Protocol):
    """Open duplex channel to the remote client."""

    async def send(self, data: str) -> None:
        ...

    async def close(self) -> None:
        ...


@dataclass(slots=True, frozen=True)
class Opened:
    channel: Channel


@dataclass(slots=True, frozen=True)
class MessageReceived:
    data: Union[str, bytes]


@dataclass(slots=True, frozen=True)
class Closed:
    reason: str = ""
    error: Optional[BaseException] = None


ChannelEvent = Union[Opened, MessageReceived, Closed]


class Transport(Protocol):
    """Opens channels and reports their lifecycle as events."""

    def open(self, endpoint: str, events: "asyncio.Queue[ChannelEvent]") -> None:
        """Begin opening ``endpoint``; exactly one :class:`Closed` ends every attempt."""
        ...

    async def aclose(self) -> None:
        ...


class WebSocketChannel:
    """:class:`Channel` backed by a ``websockets`` client connection."""

    def __init__(self, websocket: websockets.ClientConnection) -> None:
        self._websocket = websocket

    async def send(self, data: str) -> None:
        await self._websocket.send(data)

    async def close(self) -> None:
        await self._websocket.close()


class WebSocketTransport:
    """Connects to the client endpoint with ``websockets`` and pumps frames into events."""

    def __init__(self, *, open_timeout: float = 5.0) -> None:
        self._open_timeout = open_timeout
        self._task: asyncio.Task[None] | None = None

    def open(self, endpoint: str, events: "asyncio.Queue[ChannelEvent]") -> None:
        if self._task is not None and not self._task.done():
            LOGGER.debug("Transport already has a channel in flight; ignoring open()")
            return
        self._task = asyncio.create_task(self._pump(endpoint, events), name="rangerelay-transport")

    async def _pump(self, endpoint: str, events: "asyncio.Queue[ChannelEvent]") -> None:
        try:
            async with websockets.connect(endpoint, open_timeout=self._open_timeout) as websocket:
                await events.put(Opened(WebSocketChannel(websocket)))
                async for frame in websocket:
                    await events.put(MessageReceived(frame))
        except ConnectionClosed as exc:
            await events.put(Closed(reason=f"connection closed ({exc.rcvd.code if exc.rcvd else 'no close frame'})", error=exc))
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            await events.put(Closed(reason=str(exc) or type(exc).__name__, error=exc))
        except Exception as exc:
            LOGGER.exception("Channel to %s failed unexpectedly", endpoint)
            await events.put(Closed(reason=str(exc) or type(exc).__name__, error=exc))
        else:
            await events.put(Closed(reason="connection closed"))

    async def aclose(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = [
    "Channel",
    "ChannelEvent",
    "Closed",
    "MessageReceived",
    "Opened",
    "Transport",
    "WebSocketChannel",
    "WebSocketTransport",
]
