"""Typed exceptions raised by the room synchronization engine.

Channel and command failures are never retried here. Each error is logged
where it is surfaced and then propagated to the caller that started the
operation (a reconciliation pass, an outbound action, a UI call site).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ReplyErrorCode(StrEnum):
    """Error codes the server can send back in reply to a command."""

    ALREADY_IDENTIFIED = "already_identified"
    MUST_IDENTIFY_FIRST = "must_identify_first"
    INVALID_GAME_FORMAT = "invalid_game_format"
    NO_SUCH_GAME_LOBBY = "no_such_game_lobby"
    NOT_IN_THAT_GAME = "not_in_that_game"
    INVALID_RECONNECTION_SECRET = "invalid_reconnection_secret"
    INNER = "inner"  # game-specific error, details in the payload


class RoomSyncError(Exception):
    """Base exception for all room synchronization failures."""


class ChannelError(RoomSyncError):
    """The channel to the server failed or is closed."""

    def __init__(self, message: str | None = None) -> None:
        self.message = message
        super().__init__(message or "channel closed")


class CommandRejectedError(ChannelError):
    """The server answered a command with an error reply.

    Attributes:
        code: Which kind of error the server reported.
        detail: Game-specific error payload for ``ReplyErrorCode.INNER``.

    """

    def __init__(self, code: ReplyErrorCode, detail: Any = None) -> None:  # noqa: ANN401
        self.code = code
        self.detail = detail
        text = f"command rejected: {code.value}"
        if detail is not None:
            text = f"{text} ({detail})"
        super().__init__(text)


class MembershipCommandError(RoomSyncError):
    """A join, leave or create command failed during a reconciliation pass.

    Commands listed in ``completed`` were acknowledged before the failure and
    are not rolled back.
    """

    def __init__(self, *, command: str, room_id: str | None, completed: tuple[tuple[str, str], ...]) -> None:
        self.command = command
        self.room_id = room_id
        self.completed = completed
        target = f" {room_id}" if room_id is not None else ""
        super().__init__(f"{command}{target} failed after {len(completed)} completed command(s)")


class ActionSendError(RoomSyncError):
    """An outbound room action could not be delivered."""

    def __init__(self, *, room_id: str, action: str) -> None:
        self.room_id = room_id
        self.action = action
        super().__init__(f"failed to send {action} to room {room_id}")


class NotConnectedError(RoomSyncError):
    """The session has no local player yet, or the channel was lost."""


class NotLeaderError(RoomSyncError):
    """A leader-only operation was attempted by another player."""

    def __init__(self, *, room_id: str, player_id: str) -> None:
        self.room_id = room_id
        self.player_id = player_id
        super().__init__(f"player {player_id} is not the leader of room {room_id}")
