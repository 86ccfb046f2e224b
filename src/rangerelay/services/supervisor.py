"""Connection supervisor: reconnect, heartbeat and command relay.

The supervisor owns the single :class:`Connection` of the process and walks
it through ``DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED``
forever. Transport activity arrives as typed events on an ``asyncio.Queue``
so the state machine can be driven without a real socket.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from ..core.commands import MessageType, decode_message, heartbeat_message, ready_message
from .delivery import CommandDelivery
from .host import TargetHost
from .settings import DEFAULT_ENDPOINT, Settings
from .transport import Channel, ChannelEvent, Closed, MessageReceived, Opened, Transport

LOGGER = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(slots=True)
class ReconnectBackoff:
    """Capped multiplicative backoff that resets after a successful connect."""

    base: float = 0.5
    factor: float = 2.0
    cap: float = 8.0
    current: float = field(init=False)

    def __post_init__(self) -> None:
        if self.base <= 0 or self.factor < 1 or self.cap < self.base:
            raise ValueError("backoff requires base > 0, factor >= 1 and cap >= base")
        self.current = self.base

    def next_delay(self) -> float:
        """Return the delay to wait now and grow the next one up to the cap."""

        delay = self.current
        self.current = min(self.current * self.factor, self.cap)
        return delay

    def reset(self) -> None:
        self.current = self.base


@dataclass(slots=True)
class Connection:
    """The supervisor's channel and its lifecycle bookkeeping."""

    backoff: ReconnectBackoff = field(default_factory=ReconnectBackoff)
    state: ConnectionState = ConnectionState.DISCONNECTED
    channel: Optional[Channel] = None
    connects: int = 0
    last_delay: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self.channel is not None


class Supervisor:
    """Keeps the command channel alive and relays replace-range commands."""

    def __init__(
        self,
        host: TargetHost,
        transport: Transport,
        *,
        settings: Settings | None = None,
        endpoint: str = DEFAULT_ENDPOINT,
        delivery: CommandDelivery | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or Settings()
        self.host = host
        self.endpoint = endpoint
        self._transport = transport
        self._clock = clock
        self.connection = Connection(
            backoff=ReconnectBackoff(
                base=self.settings.backoff_base,
                factor=self.settings.backoff_factor,
                cap=self.settings.backoff_cap,
            )
        )
        self.delivery = delivery or CommandDelivery(
            host,
            probe_timeout=self.settings.probe_timeout,
            base_delay=self.settings.inject_base_delay,
            max_attempts=self.settings.inject_attempts,
            reply_timeout=self.settings.delivery_timeout,
        )
        self.events: asyncio.Queue[ChannelEvent] = asyncio.Queue()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._inflight: set[asyncio.Task[Any]] = set()
        bind_keepalive = getattr(host, "bind_keepalive", None)
        if callable(bind_keepalive):
            bind_keepalive(self.handle_local_message)

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------
    async def run(self) -> None:
        """Connect and consume channel events until cancelled."""

        self.connect()
        try:
            while True:
                event = await self.events.get()
                await self.handle_event(event)
        finally:
            await self.stop()

    def connect(self) -> None:
        if self.connection.state is not ConnectionState.DISCONNECTED:
            return
        self._cancel(self._reconnect_task)
        self._reconnect_task = None
        self.connection.state = ConnectionState.CONNECTING
        LOGGER.info("Connecting to %s", self.endpoint)
        try:
            self._transport.open(self.endpoint, self.events)
        except Exception as exc:
            LOGGER.warning("Opening %s failed: %s", self.endpoint, exc)
            self._on_closed(Closed(reason=str(exc), error=exc))

    async def handle_event(self, event: ChannelEvent) -> None:
        if isinstance(event, Opened):
            self._on_opened(event.channel)
        elif isinstance(event, MessageReceived):
            self._on_message(event.data)
        elif isinstance(event, Closed):
            self._on_closed(event)
        else:  # pragma: no cover - guarded by the ChannelEvent union
            LOGGER.warning("Ignoring unknown channel event %r", event)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------
    def _on_opened(self, channel: Channel) -> None:
        connection = self.connection
        connection.state = ConnectionState.CONNECTED
        connection.channel = channel
        connection.connects += 1
        connection.backoff.reset()
        LOGGER.info("Connected to %s", self.endpoint)
        self._cancel(self._reconnect_task)
        self._reconnect_task = None
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="rangerelay-heartbeat")
        self._spawn(self.delivery.broadcast(ready_message()))

    def _on_closed(self, event: Closed) -> None:
        connection = self.connection
        if connection.state is ConnectionState.DISCONNECTED:
            return
        was_connected = connection.state is ConnectionState.CONNECTED
        connection.state = ConnectionState.DISCONNECTED
        connection.channel = None
        self._cancel(self._heartbeat_task)
        self._heartbeat_task = None
        abandoned = self._cancel_pending()
        if abandoned:
            LOGGER.warning("Channel dropped with %d command(s) in flight; abandoning them", abandoned)

        delay = connection.backoff.next_delay()
        connection.last_delay = delay
        self._cancel(self._reconnect_task)
        level = logging.INFO if was_connected else logging.DEBUG
        LOGGER.log(level, "Disconnected (%s); reconnecting in %.2fs", event.reason or "closed", delay)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay), name="rangerelay-reconnect")

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        self.connect()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def _on_message(self, data: str | bytes) -> None:
        message = decode_message(data)
        if message is None:
            return
        if message.get("type") != MessageType.REPLACE_RANGE:
            LOGGER.debug("Ignoring channel message of type %r", message.get("type"))
            return
        task = self._spawn(self._relay(message))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _relay(self, message: Mapping[str, Any]) -> None:
        payload = await self.delivery.deliver(message)
        if not await self.send(payload):
            LOGGER.warning("Response for %s dropped; channel is not open", message.get("requestId"))

    async def send(self, payload: Mapping[str, Any]) -> bool:
        """Serialize ``payload`` onto the channel if it is open."""

        connection = self.connection
        channel = connection.channel
        if not connection.is_open or channel is None:
            return False
        try:
            await channel.send(json.dumps(payload, ensure_ascii=False))
        except Exception as exc:
            LOGGER.warning("Channel send failed: %s", exc)
            return False
        return True

    async def handle_local_message(self, message: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Answer introspection and keep-alive messages from execution contexts."""

        message_type = message.get("type") if isinstance(message, Mapping) else None
        if message_type == MessageType.CHECK_CONNECTION:
            return {
                "connected": self.connection.is_open,
                "backoff": int(round(self.connection.backoff.current * 1000)),
            }
        return None

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------
    async def _heartbeat_loop(self) -> None:
        interval = self.settings.heartbeat_interval
        while self.connection.is_open:
            await asyncio.sleep(interval)
            if not self.connection.is_open:
                break
            await self.heartbeat()

    async def heartbeat(self) -> None:
        """Send one channel keep-alive and probe every context."""

        if not await self.send(heartbeat_message(self._clock())):
            LOGGER.debug("Heartbeat not sent; channel is not open")
        await self.delivery.probe_all()

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------
    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Supervisor task failed", exc_info=exc)

    def _cancel_pending(self) -> int:
        for task in self._tasks:
            task.cancel()
        return sum(1 for task in self._inflight if not task.done())

    @staticmethod
    def _cancel(task: asyncio.Task[Any] | None) -> None:
        if task is not None and not task.done():
            task.cancel()

    async def stop(self) -> None:
        """Cancel timers and in-flight work and close the channel."""

        tasks = [task for task in (self._reconnect_task, self._heartbeat_task, *self._tasks) if task is not None]
        for task in tasks:
            self._cancel(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._reconnect_task = None
        self._heartbeat_task = None
        channel = self.connection.channel
        self.connection.channel = None
        self.connection.state = ConnectionState.DISCONNECTED
        if channel is not None:
            with contextlib.suppress(Exception):
                await channel.close()
        await self._transport.aclose()


__all__ = ["Connection", "ConnectionState", "ReconnectBackoff", "Supervisor"]
