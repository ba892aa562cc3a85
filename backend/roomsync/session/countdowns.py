"""Manage the per-room countdown slots."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from roomsync.session.timer import ClockSkewTimer, wall_clock_ms

if TYPE_CHECKING:
    from roomsync.session.models import RoomId, RoomState

logger = structlog.get_logger()


class TimerSlot(StrEnum):
    TIMER = "timer"  # round timer, runs once enough players are ready
    DELAY = "delay"  # minimum delay between rounds


# Callback type: (room_id, slot, value) -> None
CountdownListener = Callable[[str, TimerSlot, int | None], None]


class CountdownManager:
    """Own the timer and delay countdowns of every joined room.

    Both slots of a room are cancelled and re-armed on every applied update,
    whether or not their instants changed.
    """

    def __init__(
        self,
        on_change: CountdownListener,
        *,
        tick_seconds: float = 1.0,
        clock: Callable[[], float] = wall_clock_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._timers: dict[RoomId, dict[TimerSlot, ClockSkewTimer]] = {}
        self._on_change = on_change
        self._tick_seconds = tick_seconds
        self._clock = clock
        self._sleep = sleep

    def _slots_for(self, room_id: RoomId) -> dict[TimerSlot, ClockSkewTimer]:
        slots = self._timers.get(room_id)
        if slots is None:
            slots = {
                slot: ClockSkewTimer(
                    lambda value, rid=room_id, s=slot: self._on_change(rid, s, value),
                    tick_seconds=self._tick_seconds,
                    clock=self._clock,
                    sleep=self._sleep,
                )
                for slot in TimerSlot
            }
            self._timers[room_id] = slots
        return slots

    def get_timer(self, room_id: RoomId, slot: TimerSlot) -> ClockSkewTimer | None:
        slots = self._timers.get(room_id)
        return slots.get(slot) if slots else None

    def value(self, room_id: RoomId, slot: TimerSlot) -> int | None:
        timer = self.get_timer(room_id, slot)
        return timer.value if timer else None

    def rearm(self, state: RoomState) -> None:
        """Re-arm both slots of a room from its latest state."""
        slots = self._slots_for(state.room_id)
        settings = state.settings
        slots[TimerSlot.TIMER].arm(state.timer_from, settings.timer)
        slots[TimerSlot.DELAY].arm(state.delay_from, settings.delay)
        logger.debug(
            "countdowns rearmed",
            room_id=state.room_id,
            timer=slots[TimerSlot.TIMER].value,
            delay=slots[TimerSlot.DELAY].value,
        )

    def cleanup_room(self, room_id: RoomId) -> None:
        """Cancel and forget both slots of a room."""
        slots = self._timers.pop(room_id, None)
        if slots:
            for timer in slots.values():
                timer.cancel()

    def cancel_all(self) -> None:
        for room_id in list(self._timers):
            self.cleanup_room(room_id)
