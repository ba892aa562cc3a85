import asyncio
from typing import Any
from uuid import uuid4

from roomsync.exceptions import ChannelError
from roomsync.messaging.actions import RoomAction, parse_action
from roomsync.messaging.protocol import Channel


class MockChannel(Channel):
    """In-memory channel that plays the server side of membership commands.

    Every command yields to the event loop once, so overlapping commands are
    observable through ``max_in_flight``.
    """

    def __init__(self, joined: list[str] | None = None, game_modes: list[str] | None = None) -> None:
        super().__init__()
        self.joined: list[str] = list(joined or [])
        self.game_modes: list[str] = list(game_modes or ["chat", "schelling"])
        self.calls: list[tuple[str, ...]] = []
        self.actions: list[tuple[str, RoomAction]] = []
        self.failures: dict[tuple[str, str | None], Exception] = {}
        self.join_redirects: dict[str, str] = {}  # requested id -> id the server assigns
        self.in_flight = 0
        self.max_in_flight = 0

    def fail(self, command: str, room_id: str | None = None, error: Exception | None = None) -> None:
        """Make ``command`` (optionally only for ``room_id``) raise."""
        self.failures[command, room_id] = error or ChannelError(f"{command} failed")

    async def _command(self, command: str, room_id: str | None = None, *extra: str) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            self.calls.append((command, *(a for a in (room_id, *extra) if a is not None)))
            error = self.failures.get((command, room_id)) or self.failures.get((command, None))
            if error is not None:
                raise error
        finally:
            self.in_flight -= 1

    async def list_game_modes(self) -> list[str]:
        await self._command("list_game_modes")
        return list(self.game_modes)

    async def list_joined_rooms(self) -> list[str]:
        await self._command("list_joined_rooms")
        return list(self.joined)

    async def join_room(self, room_id: str) -> str:
        await self._command("join_room", room_id)
        joined_id = self.join_redirects.get(room_id, room_id)
        if joined_id not in self.joined:
            self.joined.append(joined_id)
        return joined_id

    async def leave_room(self, room_id: str) -> None:
        await self._command("leave_room", room_id)
        if room_id in self.joined:
            self.joined.remove(room_id)

    async def create_room(self, mode: str) -> str:
        await self._command("create_room", None, mode)
        room_id = str(uuid4())
        self.joined.append(room_id)
        return room_id

    async def send_action(self, room_id: str, payload: dict[str, Any] | str) -> Any:  # noqa: ANN401
        await self._command("send_action", room_id)
        self.actions.append((room_id, parse_action(payload)))
        return None

    async def kick_player(self, room_id: str, player_id: str) -> None:
        await self._command("kick_player", room_id, player_id)

    async def promote_leader(self, room_id: str, player_id: str) -> None:
        await self._command("promote_leader", room_id, player_id)
