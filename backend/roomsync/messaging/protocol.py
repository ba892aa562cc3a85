"""Abstract channel to the game server.

Opening the socket, reconnecting and message framing belong to concrete
channels. The engine only sees deserialized events and awaitable commands,
which keeps the synchronization logic testable without a real server.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

logger = structlog.get_logger()


class ChannelListener(Protocol):
    """Receiver of server-initiated channel events."""

    async def on_ready(self, player_id: str) -> None: ...

    async def on_update(
        self,
        room_id: str,
        leader: str,
        members: Sequence[str],
        public_state: dict[str, Any] | None,
        private_state: Any,  # noqa: ANN401
    ) -> None: ...

    async def on_error(self, message: str | None) -> None: ...

    async def on_notice(self, message: str) -> None: ...


class Subscription:
    """Handle returned by ``subscribe``; detach with ``unsubscribe``."""

    __slots__ = ("_detach",)

    def __init__(self, detach: Callable[[], None]) -> None:
        self._detach: Callable[[], None] | None = detach

    @property
    def active(self) -> bool:
        return self._detach is not None

    def unsubscribe(self) -> None:
        detach, self._detach = self._detach, None
        if detach is not None:
            detach()


class Channel(ABC):
    """
    Persistent connection to the server.

    Events fan out to every subscribed listener in registration order.
    Commands raise ChannelError (or CommandRejectedError) on failure and are
    never retried by the engine.
    """

    def __init__(self) -> None:
        self._listeners: list[ChannelListener] = []

    def subscribe(self, listener: ChannelListener) -> Subscription:
        self._listeners.append(listener)

        def detach() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(detach)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @abstractmethod
    async def list_game_modes(self) -> list[str]:
        """Game modes the server can create rooms for."""
        ...

    @abstractmethod
    async def list_joined_rooms(self) -> list[str]:
        """Rooms the local player is a member of, in server order."""
        ...

    @abstractmethod
    async def join_room(self, room_id: str) -> str:
        """Join a room; returns the joined id, which the server may reassign."""
        ...

    @abstractmethod
    async def leave_room(self, room_id: str) -> None: ...

    @abstractmethod
    async def create_room(self, mode: str) -> str:
        """Create a room of ``mode``, join it as leader and return its id."""
        ...

    @abstractmethod
    async def send_action(self, room_id: str, payload: dict[str, Any] | str) -> Any:  # noqa: ANN401
        """Send a game-specific action; the reply shape depends on the mode."""
        ...

    @abstractmethod
    async def kick_player(self, room_id: str, player_id: str) -> None: ...

    @abstractmethod
    async def promote_leader(self, room_id: str, player_id: str) -> None: ...

    async def emit_ready(self, player_id: str) -> None:
        for listener in list(self._listeners):
            await self._deliver("ready", listener.on_ready(player_id))

    async def emit_update(
        self,
        room_id: str,
        leader: str,
        members: Sequence[str],
        public_state: dict[str, Any] | None,
        private_state: Any = None,  # noqa: ANN401
    ) -> None:
        for listener in list(self._listeners):
            await self._deliver(
                "update",
                listener.on_update(room_id, leader, members, public_state, private_state),
            )

    async def emit_error(self, message: str | None = None) -> None:
        for listener in list(self._listeners):
            await self._deliver("error", listener.on_error(message))

    async def emit_notice(self, message: str) -> None:
        for listener in list(self._listeners):
            await self._deliver("notice", listener.on_notice(message))

    async def _deliver(self, event: str, handler: Awaitable[None]) -> None:
        try:
            await handler
        except Exception:
            logger.exception("channel listener failed", channel_event=event)
