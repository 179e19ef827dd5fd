"""Interval-driven snapshot polling."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SnapshotPoller(Generic[T]):
    """Run *query* now and then every *interval* seconds until stopped.

    Results go to *on_result*, failures to *on_error*; a failure changes
    nothing else and the next attempt happens at the next regular tick.
    ``stop()`` cancels future runs but lets an in-flight query finish; its
    outcome is then discarded so a slow response cannot overwrite newer
    state.

    Runs start *interval* seconds apart as measured by *timer*; the time a
    query takes is deducted from the following wait, and a query slower
    than the interval is followed immediately by the next one.

    *sleep* and *timer* are injectable so tests can drive the schedule with
    a virtual clock.
    """

    def __init__(
        self,
        query: Callable[[], Awaitable[T]],
        interval: float,
        *,
        on_result: Callable[[T], None],
        on_error: Callable[[Exception], None] | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
        timer: Callable[[], float] = time.monotonic,
        name: str | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._query = query
        self._interval = interval
        self._on_result = on_result
        self._on_error = on_error
        self._sleep = sleep
        self._clock = clock
        self._timer = timer
        self.name = name or getattr(query, "__name__", "poller")
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self._runs = 0
        self.last_result: T | None = None
        self.last_error: Exception | None = None
        self.last_success_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def loading(self) -> bool:
        """True until the first query finished (successfully or not)."""
        return self._runs == 0

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        """Start polling; a no-op while already running."""
        if self.running:
            return
        self._generation += 1
        self._task = asyncio.create_task(self._loop(self._generation), name=f"poller:{self.name}")

    def stop(self) -> None:
        """Stop scheduling further queries.

        A query already in flight is not cancelled; its outcome is ignored.
        """
        self._generation += 1
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def refresh(self) -> bool:
        """Run one query right away, outside the schedule.

        Returns True when a result was delivered.
        """
        return await self._run_once(self._generation)

    async def _loop(self, generation: int) -> None:
        while generation == self._generation:
            started = self._timer()
            await self._run_once(generation)
            if generation != self._generation:
                return
            # Start-to-start spacing.
            elapsed = self._timer() - started
            await self._sleep(max(self._interval - elapsed, 0.0))

    async def _run_once(self, generation: int) -> bool:
        query = asyncio.ensure_future(self._query())
        try:
            result = await asyncio.shield(query)
        except asyncio.CancelledError:
            # Let the query run to completion and drop whatever it yields.
            query.add_done_callback(self._drop_late_outcome)
            raise
        except Exception as exc:
            if generation != self._generation:
                _logger.debug("Discarding %s failure after stop: %s", self.name, exc)
                return False
            self._runs += 1
            self.last_error = exc
            _logger.warning("%s poll failed: %s", self.name, exc)
            if self._on_error is not None:
                try:
                    self._on_error(exc)
                except Exception:
                    _logger.exception("%s on_error callback failed", self.name)
            return False

        if generation != self._generation:
            _logger.debug("Discarding %s result that arrived after stop", self.name)
            return False
        self._runs += 1
        self.last_result = result
        self.last_error = None
        self.last_success_at = self._clock()
        try:
            self._on_result(result)
        except Exception:
            _logger.exception("%s on_result callback failed", self.name)
            return False
        return True

    def _drop_late_outcome(self, query: asyncio.Future[T]) -> None:
        if not query.cancelled() and query.exception() is not None:
            _logger.debug("%s query failed after stop", self.name)
        else:
            _logger.debug("Discarding %s result that arrived after stop", self.name)
