"""
Countdown derived from absolute server instants.

The server publishes the instant a phase started (epoch milliseconds) and the
phase length lives in the room settings. The client turns that into a whole
number of seconds left, recomputed on a fixed tick against its own clock, so
clock skew only shifts the displayed value and never drifts across ticks.
The countdown stops itself once it reaches zero.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    # Publishes the new countdown value; None means inactive.
    CountdownCallback = Callable[[int | None], None]


def wall_clock_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


def remaining_seconds(target_ms: float, duration_seconds: float, now_ms: float) -> int:
    """Whole seconds left until ``target_ms + duration_seconds``."""
    return round((target_ms + duration_seconds * 1000 - now_ms) / 1000)


class ClockSkewTimer:
    """
    One countdown slot.

    At most one tick task is alive per instance: ``arm`` always cancels the
    previous task before scheduling a new one.
    """

    def __init__(
        self,
        on_change: CountdownCallback | None = None,
        *,
        tick_seconds: float = 1.0,
        clock: Callable[[], float] = wall_clock_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._on_change = on_change
        self._tick_seconds = tick_seconds
        self._clock = clock
        self._sleep = sleep
        self._value: int | None = None
        self._target_ms: float | None = None
        self._duration_seconds: float = 0
        self._task: asyncio.Task[None] | None = None
        self.tick_count = 0

    @property
    def value(self) -> int | None:
        """Seconds left, or None when the countdown is inactive."""
        return self._value

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, target_ms: float | None, duration_seconds: float | None) -> int | None:
        """Start counting down towards ``target_ms + duration_seconds``.

        Returns the initial value. A missing target publishes inactive and
        schedules nothing.
        """
        self.cancel()
        if target_ms is None:
            self._target_ms = None
            self._publish(None)
            return None

        self._target_ms = target_ms
        self._duration_seconds = duration_seconds or 0
        if not self._recompute():
            return None
        self._task = asyncio.create_task(self._run())
        return self._value

    def cancel(self) -> None:
        """Cancel the tick task, keeping the last published value."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _recompute(self) -> bool:
        """Publish the current value. Returns False once the countdown is over."""
        assert self._target_ms is not None
        remaining = remaining_seconds(self._target_ms, self._duration_seconds, self._clock())
        if remaining <= 0:
            self._publish(None)
            return False
        self._publish(max(remaining, 0))
        return True

    def _publish(self, value: int | None) -> None:
        if value == self._value:
            return
        self._value = value
        if self._on_change is not None:
            try:
                self._on_change(value)
            except Exception:
                logger.exception("countdown callback failed")

    async def _run(self) -> None:
        try:
            while True:
                await self._sleep(self._tick_seconds)
                self.tick_count += 1
                if not self._recompute():
                    return
        except asyncio.CancelledError:
            pass
