"""Target discovery, agent ensure-present and command delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.commands import Result, is_pong, ping_message
from ..core.errors import AgentUnavailableError, ErrorCode
from .host import ExecutionContext, TargetHost

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class CommandDelivery:
    """Forwards replace-range messages to the agent of the focused context.

    Deliveries to the same context are serialized: a command waits until the
    previous one has been answered or has timed out, so commands reach the
    agent in arrival order.
    """

    def __init__(
        self,
        host: TargetHost,
        *,
        probe_timeout: float = 0.5,
        base_delay: float = 0.05,
        max_attempts: int = 3,
        reply_timeout: float = 10.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.host = host
        self.probe_timeout = probe_timeout
        self.reply_timeout = reply_timeout
        self.base_delay = base_delay
        self.max_attempts = max(1, int(max_attempts))
        self._sleep = sleep
        self._locks: Dict[str, asyncio.Lock] = {}

    async def probe(self, context: ExecutionContext) -> bool:
        """Return ``True`` when ``context`` answers a ping within the probe timeout."""

        try:
            reply = await asyncio.wait_for(context.send_message(ping_message()), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            LOGGER.debug("Probe of %s timed out after %.2fs", context.context_id, self.probe_timeout)
            return False
        except Exception as exc:
            LOGGER.debug("Probe of %s failed: %s", context.context_id, exc)
            return False
        return is_pong(reply)

    async def ensure_present(self, context: ExecutionContext) -> bool:
        """Make sure a responsive agent runs in ``context``, installing it if needed.

        Each failed probe but the last triggers an installation followed by a
        ``base_delay * 2**attempt`` wait; after ``max_attempts`` failed probes
        the context is given up on.
        """

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, min=0),
            retry=retry_if_exception_type(AgentUnavailableError),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    final = attempt.retry_state.attempt_number >= self.max_attempts
                    await self._probe_or_install(context, install=not final)
        except AgentUnavailableError as exc:
            LOGGER.warning("Agent unavailable in %s after %d probe(s): %s", context.context_id, self.max_attempts, exc)
            return False
        return True

    async def _probe_or_install(self, context: ExecutionContext, *, install: bool = True) -> None:
        if await self.probe(context):
            return
        if install:
            try:
                await context.install_agent()
            except Exception as exc:
                LOGGER.warning("Agent installation into %s failed: %s", context.context_id, exc)
        raise AgentUnavailableError(
            message=f"No agent answered in {context.context_id}",
            context_id=context.context_id,
        )

    def _lock_for(self, context: ExecutionContext) -> asyncio.Lock:
        lock = self._locks.get(context.context_id)
        if lock is None:
            lock = self._locks[context.context_id] = asyncio.Lock()
        return lock

    async def deliver(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        """Deliver one replace-range message and return the response payload."""

        request_id = message.get("requestId")
        try:
            context = await self.host.active_context()
        except Exception as exc:
            LOGGER.exception("Target discovery failed for %s", request_id)
            return Result.from_error(request_id, exc).to_payload()
        if context is None:
            return Result.failure(request_id, ErrorCode.NO_TAB).to_payload()

        async with self._lock_for(context):
            return await self._deliver_to(context, request_id, message)

    async def _deliver_to(
        self, context: ExecutionContext, request_id: Any, message: Mapping[str, Any]
    ) -> Dict[str, Any]:
        try:
            if not await self.ensure_present(context):
                return Result.failure(request_id, ErrorCode.INJECT_FAILED).to_payload()
            reply = await asyncio.wait_for(context.send_message(message), timeout=self.reply_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("No reply to %s from %s within %.2fs", request_id, context.context_id, self.reply_timeout)
            return Result.failure(
                request_id, ErrorCode.NO_RESPONSE, f"No reply within {self.reply_timeout:g}s"
            ).to_payload()
        except Exception as exc:
            LOGGER.warning("Delivery of %s to %s failed: %s", request_id, context.context_id, exc)
            return Result.failure(request_id, ErrorCode.SEND_FAILED, str(exc) or type(exc).__name__).to_payload()

        if not isinstance(reply, Mapping) or not reply:
            return Result.failure(request_id, ErrorCode.NO_RESPONSE).to_payload()
        return dict(reply)

    async def probe_all(self) -> Dict[str, bool]:
        """Probe every known context; results are advisory and only logged."""

        results: Dict[str, bool] = {}
        for context in self.host.contexts():
            results[context.context_id] = await self.probe(context)
        unresponsive = sorted(key for key, alive in results.items() if not alive)
        if unresponsive:
            LOGGER.debug("Heartbeat: unresponsive contexts %s", unresponsive)
        return results

    async def broadcast(self, message: Mapping[str, Any]) -> int:
        """Send ``message`` to every context, returning how many accepted it."""

        delivered = 0
        for context in self.host.contexts():
            try:
                await asyncio.wait_for(context.send_message(message), timeout=self.probe_timeout)
            except Exception as exc:
                LOGGER.debug("Broadcast to %s skipped: %s", context.context_id, exc)
                continue
            delivered += 1
        return delivered


__all__ = ["CommandDelivery", "Sleep"]
