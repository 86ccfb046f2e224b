"""Tests for the WebSocket transport and the channel events it produces."""

from __future__ import annotations

import asyncio
import socket

import pytest
from websockets.asyncio.server import serve

from rangerelay.services import transport as transport_module
from rangerelay.services.transport import Closed, MessageReceived, Opened, WebSocketTransport


async def _next_event(events: asyncio.Queue, timeout: float = 2.0):
    return await asyncio.wait_for(events.get(), timeout=timeout)


async def _greet_then_echo_once(websocket) -> None:
    await websocket.send("hello")
    message = await websocket.recv()
    await websocket.send(message.upper())


def _unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
async def test_channel_lifecycle_is_reported_as_events():
    events: asyncio.Queue = asyncio.Queue()
    transport = WebSocketTransport(open_timeout=2.0)
    async with serve(_greet_then_echo_once, "127.0.0.1", 0) as server:
        port = next(iter(server.sockets)).getsockname()[1]
        try:
            transport.open(f"ws://127.0.0.1:{port}", events)

            opened = await _next_event(events)
            assert isinstance(opened, Opened)
            assert await _next_event(events) == MessageReceived("hello")

            await opened.channel.send("ping")
            assert await _next_event(events) == MessageReceived("PING")

            closed = await _next_event(events)
            assert isinstance(closed, Closed)
            assert events.empty()
        finally:
            await transport.aclose()


@pytest.mark.asyncio
async def test_refused_connection_reports_closed():
    events: asyncio.Queue = asyncio.Queue()
    transport = WebSocketTransport(open_timeout=2.0)
    try:
        transport.open(f"ws://127.0.0.1:{_unused_port()}", events)

        closed = await _next_event(events)

        assert isinstance(closed, Closed)
        assert closed.error is not None
    finally:
        await transport.aclose()


@pytest.mark.asyncio
async def test_unexpected_failure_still_reports_closed(monkeypatch: pytest.MonkeyPatch):
    def broken_connect(*args, **kwargs):
        raise RuntimeError("resolver exploded")

    monkeypatch.setattr(transport_module.websockets, "connect", broken_connect)
    events: asyncio.Queue = asyncio.Queue()
    transport = WebSocketTransport()
    try:
        transport.open("ws://127.0.0.1:1", events)

        closed = await _next_event(events)

        assert isinstance(closed, Closed)
        assert closed.reason == "resolver exploded"
        assert isinstance(closed.error, RuntimeError)
    finally:
        await transport.aclose()


@pytest.mark.asyncio
async def test_open_is_ignored_while_a_channel_is_in_flight():
    events: asyncio.Queue = asyncio.Queue()
    transport = WebSocketTransport(open_timeout=2.0)
    async with serve(_greet_then_echo_once, "127.0.0.1", 0) as server:
        port = next(iter(server.sockets)).getsockname()[1]
        try:
            transport.open(f"ws://127.0.0.1:{port}", events)
            transport.open(f"ws://127.0.0.1:{port}", events)

            assert isinstance(await _next_event(events), Opened)
            assert await _next_event(events) == MessageReceived("hello")
            assert events.empty()
        finally:
            await transport.aclose()
