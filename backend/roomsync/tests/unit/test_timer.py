import asyncio

from roomsync.session.timer import ClockSkewTimer, remaining_seconds
from roomsync.tests.helpers import FakeClock, settle


def _timer(clock: FakeClock, values: list[int | None]) -> ClockSkewTimer:
    return ClockSkewTimer(values.append, clock=clock, sleep=clock.sleep)


class TestRemainingSeconds:
    def test_counts_from_target_plus_duration(self):
        assert remaining_seconds(10_000, 5, 10_000) == 5

    def test_rounds_to_nearest_second(self):
        assert remaining_seconds(0, 5, 4_400) == 1
        assert remaining_seconds(0, 5, 4_600) == 0

    def test_negative_once_deadline_passed(self):
        assert remaining_seconds(0, 5, 7_000) == -2


class TestClockSkewTimerCountdown:
    async def test_counts_down_to_inactive_and_stops(self):
        clock = FakeClock()
        values: list[int | None] = []
        timer = _timer(clock, values)

        assert timer.arm(clock.now_ms, 5) == 5
        await settle()
        for _ in range(5):
            await clock.advance(1)

        assert values == [5, 4, 3, 2, 1, None]
        assert timer.value is None
        assert timer.is_running is False
        assert timer.tick_count == 5

    async def test_no_ticks_after_inactive(self):
        clock = FakeClock()
        values: list[int | None] = []
        timer = _timer(clock, values)

        timer.arm(clock.now_ms, 2)
        await settle()
        for _ in range(6):
            await clock.advance(1)

        assert timer.tick_count == 2
        assert clock.sleeping == 0

    async def test_null_target_is_inactive_without_scheduling(self):
        clock = FakeClock()
        values: list[int | None] = []
        timer = _timer(clock, values)

        assert timer.arm(None, 60) is None
        await settle()

        assert timer.is_running is False
        assert clock.max_sleeping == 0
        assert values == []  # already inactive, nothing to publish

    async def test_server_instant_in_the_past_shortens_countdown(self):
        """A server instant 2s behind the local clock leaves 3 of 5 seconds."""
        clock = FakeClock()
        values: list[int | None] = []
        timer = _timer(clock, values)

        timer.arm(clock.now_ms - 2_000, 5)

        assert values == [3]
        timer.cancel()

    async def test_expired_target_publishes_inactive_immediately(self):
        clock = FakeClock()
        values: list[int | None] = []
        timer = _timer(clock, values)
        timer.arm(clock.now_ms, 10)

        timer.arm(clock.now_ms - 60_000, 10)

        assert values == [10, None]
        assert timer.is_running is False

    async def test_missing_duration_counts_to_target_instant(self):
        clock = FakeClock()
        timer = ClockSkewTimer(clock=clock, sleep=clock.sleep)

        assert timer.arm(clock.now_ms + 3_000, None) == 3
        timer.cancel()


class TestClockSkewTimerRearm:
    async def test_rearm_in_same_tick_window_keeps_single_tick(self):
        clock = FakeClock()
        values: list[int | None] = []
        timer = _timer(clock, values)

        timer.arm(clock.now_ms, 5)
        await settle()
        timer.arm(clock.now_ms, 5)
        timer.arm(clock.now_ms, 5)
        await settle()
        for _ in range(5):
            await clock.advance(1)

        assert timer.tick_count == 5
        assert clock.max_sleeping == 1
        assert values == [5, 4, 3, 2, 1, None]

    async def test_rearm_replaces_target(self):
        clock = FakeClock()
        values: list[int | None] = []
        timer = _timer(clock, values)

        timer.arm(clock.now_ms, 5)
        await settle()
        await clock.advance(1)
        timer.arm(clock.now_ms, 30)

        assert timer.value == 30
        assert values == [5, 4, 30]
        timer.cancel()

    async def test_cancel_stops_ticks_and_keeps_value(self):
        clock = FakeClock()
        timer = ClockSkewTimer(clock=clock, sleep=clock.sleep)

        timer.arm(clock.now_ms, 5)
        await settle()
        timer.cancel()
        await settle()
        await clock.advance(3)

        assert timer.value == 5
        assert timer.tick_count == 0
        assert clock.sleeping == 0


class TestClockSkewTimerRealSleep:
    async def test_ticks_with_asyncio_sleep(self):
        """Default sleep drives ticks against the injected clock."""
        now = [0.0]
        values: list[int | None] = []
        timer = ClockSkewTimer(values.append, tick_seconds=0.01, clock=lambda: now[0])

        timer.arm(0, 1)
        now[0] = 1_000
        await asyncio.wait_for(_until_stopped(timer), timeout=1.0)

        assert values == [1, None]


class TestCallbackFailure:
    async def test_failing_callback_does_not_break_countdown(self):
        clock = FakeClock()
        seen: list[int | None] = []

        def on_change(value: int | None) -> None:
            seen.append(value)
            raise RuntimeError("render failed")

        timer = ClockSkewTimer(on_change, clock=clock, sleep=clock.sleep)
        timer.arm(clock.now_ms, 2)
        await settle()
        await clock.advance(1)
        await clock.advance(1)

        assert seen == [2, 1, None]


async def _until_stopped(timer: ClockSkewTimer) -> None:
    while timer.is_running:
        await asyncio.sleep(0.005)
