"""Push channel lifecycle.

Owns connect/reconnect/disconnect of the push link and republishes what
arrives on it through an :class:`~fleetsync.dispatcher.EventDispatcher`.
It never touches the fleet store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from fleetsync._constants import SUBSCRIBE_EVENT
from fleetsync.dispatcher import EventDispatcher

_logger = logging.getLogger(__name__)

FrameCallback = Callable[[Mapping[str, Any]], None]
LostCallback = Callable[[str | None], None]
SleepFn = Callable[[float], Awaitable[None]]


class ChannelEvent(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UPDATE = "update"


class ChannelState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class ChannelStatus:
    """Payload of ``connected``/``disconnected`` events."""

    state: ChannelState
    terminal: bool = False
    reason: str | None = None
    attempts: int = 0


class PushLink(Protocol):
    """One open connection to the push backend."""

    async def announce(self, message: Mapping[str, Any]) -> None:
        ...

    async def close(self) -> None:
        ...


class PushConnector(Protocol):
    """Opens push links.

    ``on_frame`` receives one decoded update fragment, ``on_lost`` is called
    once if the link drops on its own. Both must be invoked on the event
    loop thread.
    """

    async def open(self, on_frame: FrameCallback, on_lost: LostCallback) -> PushLink:
        ...


class FleetChannel:
    """Push channel with a bounded reconnection policy.

    ``connect()`` tries ``attempts`` times, ``delay`` seconds apart. When
    every attempt failed the channel stays ``DISCONNECTED`` and publishes a
    single terminal ``disconnected`` event; only another ``connect()``
    call starts over.

    Every opened link belongs to a connection epoch. Frames and loss
    notices carrying an older epoch, or arriving while the channel is not
    connected, are dropped here and never reach the dispatcher.
    """

    def __init__(
        self,
        connector: PushConnector,
        dispatcher: EventDispatcher,
        *,
        attempts: int = 5,
        delay: float = 1.0,
        sleep: SleepFn = asyncio.sleep,
        subscribe_message: Mapping[str, Any] | None = None,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self._connector = connector
        self._dispatcher = dispatcher
        self._attempts = attempts
        self._delay = delay
        self._sleep = sleep
        self._subscribe_message = dict(subscribe_message or {"event": SUBSCRIBE_EVENT})
        self._state = ChannelState.DISCONNECTED
        self._epoch = 0
        self._link: PushLink | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ChannelState.CONNECTED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> ChannelState:
        """Connect, retrying per the reconnection policy.

        A no-op while connected or while an attempt cycle is running.
        Returns the state reached: ``CONNECTED`` or ``DISCONNECTED``
        (terminal, retries exhausted or :meth:`disconnect` called meanwhile).
        """
        if self._state == ChannelState.CONNECTED:
            return self._state
        if self._task is None or self._task.done():
            self._state = ChannelState.CONNECTING
            self._epoch += 1
            self._task = asyncio.create_task(self._run_attempts(self._epoch))
        await asyncio.wait({self._task})
        return self._state

    async def disconnect(self) -> None:
        """Tear the link down now, abandoning any retry cycle.

        Safe to call when already disconnected.
        """
        was = self._state
        self._epoch += 1
        self._state = ChannelState.DISCONNECTED

        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        link = self._link
        self._link = None
        if link is not None:
            await self._close_link(link)

        if was != ChannelState.DISCONNECTED:
            _logger.debug("Push channel disconnected by client (was %s)", was)
            self._dispatcher.publish(
                ChannelEvent.DISCONNECTED,
                ChannelStatus(state=ChannelState.DISCONNECTED, terminal=True, reason="client disconnect"),
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_attempts(self, epoch: int) -> None:
        last_error: str | None = None
        for attempt in range(1, self._attempts + 1):
            if epoch != self._epoch:
                return
            _logger.debug("Push connect attempt %d/%d", attempt, self._attempts)
            opening = asyncio.ensure_future(
                self._connector.open(
                    lambda frame: self._on_frame(epoch, frame),
                    lambda reason: self._on_lost(epoch, reason),
                )
            )
            try:
                link = await asyncio.shield(opening)
            except asyncio.CancelledError:
                # The open itself keeps running; close whatever it yields.
                opening.add_done_callback(self._discard_late_link)
                raise
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                _logger.debug("Push connect attempt %d failed: %s", attempt, last_error, exc_info=True)
                if epoch != self._epoch:
                    return
                if attempt < self._attempts:
                    await self._sleep(self._delay)
                continue

            if epoch != self._epoch:
                await self._close_link(link)
                return

            self._link = link
            self._state = ChannelState.CONNECTED
            try:
                await link.announce(self._subscribe_message)
            except Exception:
                _logger.warning("Push subscription announcement failed", exc_info=True)
            if epoch != self._epoch:
                return
            _logger.info("Push channel connected after %d attempt(s)", attempt)
            self._dispatcher.publish(
                ChannelEvent.CONNECTED,
                ChannelStatus(state=ChannelState.CONNECTED, attempts=attempt),
            )
            return

        if epoch != self._epoch:
            return
        self._state = ChannelState.DISCONNECTED
        _logger.warning("Push channel gave up after %d attempts: %s", self._attempts, last_error)
        self._dispatcher.publish(
            ChannelEvent.DISCONNECTED,
            ChannelStatus(
                state=ChannelState.DISCONNECTED,
                terminal=True,
                reason=last_error,
                attempts=self._attempts,
            ),
        )

    def _on_frame(self, epoch: int, frame: Mapping[str, Any]) -> None:
        if epoch != self._epoch or self._state != ChannelState.CONNECTED:
            _logger.debug("Dropping push frame from stale or closed link: %r", frame)
            return
        self._dispatcher.publish(ChannelEvent.UPDATE, frame)

    def _on_lost(self, epoch: int, reason: str | None) -> None:
        if epoch != self._epoch or self._state != ChannelState.CONNECTED:
            return
        _logger.info("Push channel lost: %s", reason)
        link = self._link
        self._link = None
        if link is not None:
            self._close_in_background(link)

        self._epoch += 1
        self._state = ChannelState.RECONNECTING
        self._dispatcher.publish(
            ChannelEvent.DISCONNECTED,
            ChannelStatus(state=ChannelState.RECONNECTING, terminal=False, reason=reason),
        )
        self._task = asyncio.create_task(self._run_attempts(self._epoch))

    def _discard_late_link(self, opening: asyncio.Future[PushLink]) -> None:
        if opening.cancelled() or opening.exception() is not None:
            return
        _logger.debug("Closing push link that opened after disconnect")
        self._close_in_background(opening.result())

    def _close_in_background(self, link: PushLink) -> None:
        # The loop only keeps weak references to tasks; hold them until done.
        task = asyncio.ensure_future(self._close_link(link))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    @staticmethod
    async def _close_link(link: PushLink) -> None:
        try:
            await link.close()
        except Exception:
            _logger.debug("Push link close failed", exc_info=True)
