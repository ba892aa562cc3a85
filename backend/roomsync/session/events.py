"""Session events published to UI observers."""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from roomsync.session.countdowns import TimerSlot  # noqa: TC001
from roomsync.session.models import RoomState  # noqa: TC001


class SessionEventType(StrEnum):
    READY = "ready"
    ROOM_UPDATED = "room_updated"
    ROOM_LEFT = "room_left"
    ACTIVE_ROOM_CHANGED = "active_room_changed"
    COUNTDOWN_CHANGED = "countdown_changed"
    MEMBERSHIP_FAILED = "membership_failed"
    ACTION_FAILED = "action_failed"
    SERVER_NOTICE = "server_notice"
    DISCONNECTED = "disconnected"


class SessionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: SessionEventType


class SessionReady(SessionEvent):
    type: Literal[SessionEventType.READY] = SessionEventType.READY
    player_id: str


class RoomUpdated(SessionEvent):
    """A joined room received a new state snapshot."""

    type: Literal[SessionEventType.ROOM_UPDATED] = SessionEventType.ROOM_UPDATED
    room_id: str
    state: RoomState
    first_room: bool = False
    settings_changed: bool = False
    just_started: bool = False


class RoomLeft(SessionEvent):
    type: Literal[SessionEventType.ROOM_LEFT] = SessionEventType.ROOM_LEFT
    room_id: str


class ActiveRoomChanged(SessionEvent):
    type: Literal[SessionEventType.ACTIVE_ROOM_CHANGED] = SessionEventType.ACTIVE_ROOM_CHANGED
    room_id: str | None
    previous: str | None = None


class CountdownChanged(SessionEvent):
    """A countdown slot ticked; ``value`` None means the countdown is inactive."""

    type: Literal[SessionEventType.COUNTDOWN_CHANGED] = SessionEventType.COUNTDOWN_CHANGED
    room_id: str
    slot: TimerSlot
    value: int | None


class MembershipFailed(SessionEvent):
    type: Literal[SessionEventType.MEMBERSHIP_FAILED] = SessionEventType.MEMBERSHIP_FAILED
    command: str
    room_id: str | None = None
    message: str


class ActionFailed(SessionEvent):
    type: Literal[SessionEventType.ACTION_FAILED] = SessionEventType.ACTION_FAILED
    room_id: str
    action: str
    message: str


class ServerNotice(SessionEvent):
    """Non-fatal error message pushed by the server."""

    type: Literal[SessionEventType.SERVER_NOTICE] = SessionEventType.SERVER_NOTICE
    message: str


class Disconnected(SessionEvent):
    """The channel failed; terminal for this session."""

    type: Literal[SessionEventType.DISCONNECTED] = SessionEventType.DISCONNECTED
    message: str | None = None
