from roomsync.messaging.mock import MockChannel
from roomsync.messaging.protocol import Subscription


class _Recorder:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[tuple] = []

    async def on_ready(self, player_id):
        self.events.append(("ready", player_id))
        if self.fail:
            raise RuntimeError("listener failed")

    async def on_update(self, room_id, leader, members, public_state, private_state):
        self.events.append(("update", room_id, leader, tuple(members), public_state, private_state))

    async def on_error(self, message):
        self.events.append(("error", message))

    async def on_notice(self, message):
        self.events.append(("notice", message))


class TestSubscription:
    def test_unsubscribe_is_idempotent(self):
        calls = []
        subscription = Subscription(lambda: calls.append(1))

        subscription.unsubscribe()
        subscription.unsubscribe()

        assert calls == [1]
        assert subscription.active is False


class TestChannelFanOut:
    async def test_events_reach_every_listener_in_order(self):
        channel = MockChannel()
        first, second = _Recorder(), _Recorder()
        channel.subscribe(first)
        channel.subscribe(second)

        await channel.emit_ready("me")
        await channel.emit_update("r1", "me", ["me"], {"running": False}, "secret")
        await channel.emit_notice("slow down")
        await channel.emit_error("gone")

        expected = [
            ("ready", "me"),
            ("update", "r1", "me", ("me",), {"running": False}, "secret"),
            ("notice", "slow down"),
            ("error", "gone"),
        ]
        assert first.events == expected
        assert second.events == expected

    async def test_failing_listener_does_not_block_others(self, caplog):
        channel = MockChannel()
        broken, healthy = _Recorder(fail=True), _Recorder()
        channel.subscribe(broken)
        channel.subscribe(healthy)

        with caplog.at_level("ERROR"):
            await channel.emit_ready("me")

        assert healthy.events == [("ready", "me")]
        assert "channel listener failed" in caplog.text

    async def test_unsubscribed_listener_gets_nothing(self):
        channel = MockChannel()
        listener = _Recorder()
        channel.subscribe(listener).unsubscribe()

        await channel.emit_ready("me")

        assert listener.events == []
        assert channel.listener_count == 0
