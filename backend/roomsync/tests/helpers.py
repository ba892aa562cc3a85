import asyncio
from typing import Any

from roomsync.messaging.mock import MockChannel
from roomsync.session.controller import SessionController
from roomsync.session.events import SessionEvent
from roomsync.settings import RoomSyncSettings

START_MS = 1_700_000_000_000.0


class FakeClock:
    """Manually advanced epoch-millisecond clock with a matching sleep.

    Sleepers wake only when ``advance`` moves the clock past their deadline.
    """

    def __init__(self, start_ms: float = START_MS) -> None:
        self.now_ms = start_ms
        self._waiters: list[tuple[float, asyncio.Future[None]]] = []
        self.sleeping = 0
        self.max_sleeping = 0

    def __call__(self) -> float:
        return self.now_ms

    async def sleep(self, seconds: float) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        waiter = (self.now_ms + seconds * 1000, future)
        self._waiters.append(waiter)
        self.sleeping += 1
        self.max_sleeping = max(self.max_sleeping, self.sleeping)
        try:
            await future
        finally:
            self.sleeping -= 1
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    async def advance(self, seconds: float) -> None:
        self.now_ms += seconds * 1000
        for waiter in list(self._waiters):
            deadline, future = waiter
            if deadline <= self.now_ms and not future.done():
                self._waiters.remove(waiter)
                future.set_result(None)
        await settle()


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def public_state(
    *,
    running: bool = False,
    timer_from: float | None = None,
    delay_from: float | None = None,
    ready: list[str] | None = None,
    policy: str = "majority",
    **settings: Any,
) -> dict[str, Any]:
    """Build a public room state in the shape the server sends."""
    return {
        "running": running,
        "timerFrom": timer_from,
        "delayFrom": delay_from,
        "ready": ready or [],
        "settings": {"timer": 60, "delay": 5, "ready": policy, **settings},
    }


def make_controller(
    channel: MockChannel,
    clock: FakeClock | None = None,
    *,
    fragment: str | None = None,
    **settings: Any,
) -> tuple[SessionController, list[SessionEvent]]:
    """Create a controller on ``channel`` recording every published event."""
    clock = clock or FakeClock()
    controller = SessionController(
        channel,
        RoomSyncSettings(**settings),
        initial_fragment=fragment,
        clock=clock,
        sleep=clock.sleep,
    )
    events: list[SessionEvent] = []
    controller.subscribe(events.append)
    return controller, events
