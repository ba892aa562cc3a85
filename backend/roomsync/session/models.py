"""Room and session state models.

A RoomState is replaced wholesale on every update for its room, so models
here are frozen and carry no merge logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from collections.abc import Mapping

PlayerId = str
RoomId = str


class ReadyPolicy(StrEnum):
    """Who has to signal readiness before the next round can start."""

    ALL = "all"
    LEADER = "leader"
    MAJORITY = "majority"
    SINGLE = "single"
    NO = "no"


_POLICY_VALUES = frozenset(p.value for p in ReadyPolicy)


class RoomSettings(BaseModel):
    """Framework-defined view of a room's ``settings`` map.

    Game modes are free to add their own keys; those are preserved as extras
    and take part in settings-change detection through the raw map.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    timer: float | None = None  # seconds
    delay: float | None = None  # seconds
    ready: ReadyPolicy | None = None

    @field_validator("ready", mode="before")
    @classmethod
    def _lenient_policy(cls, v: Any) -> Any:  # noqa: ANN401
        if isinstance(v, str) and v.lower() in _POLICY_VALUES:
            return v.lower()
        if v is None or isinstance(v, ReadyPolicy):
            return v
        return None


def _instant(public: Mapping[str, Any], camel: str, snake: str) -> float | None:
    value = public.get(camel, public.get(snake))
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    return None


class RoomState(BaseModel):
    """Snapshot of one room as last reported by the server."""

    model_config = ConfigDict(frozen=True)

    room_id: RoomId
    leader: PlayerId
    members: tuple[PlayerId, ...] = ()
    public: dict[str, Any] = Field(default_factory=dict)
    private: Any = None

    @field_validator("public", mode="before")
    @classmethod
    def _public_as_mapping(cls, v: Any) -> Any:  # noqa: ANN401
        return {} if v is None else v

    @property
    def running(self) -> bool:
        return bool(self.public.get("running", False))

    @property
    def timer_from(self) -> float | None:
        """Instant (epoch ms) the round timer started counting from."""
        return _instant(self.public, "timerFrom", "timer_from")

    @property
    def delay_from(self) -> float | None:
        """Instant (epoch ms) the between-rounds delay started counting from."""
        return _instant(self.public, "delayFrom", "delay_from")

    @property
    def raw_settings(self) -> dict[str, Any]:
        settings = self.public.get("settings")
        return settings if isinstance(settings, dict) else {}

    @property
    def settings(self) -> RoomSettings:
        return RoomSettings.model_validate(self.raw_settings)

    @property
    def ready(self) -> frozenset[PlayerId]:
        ready = self.public.get("ready")
        if not ready:
            return frozenset()
        return frozenset(ready)

    def is_leader(self, player_id: PlayerId) -> bool:
        return self.leader == player_id


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the controller's session for UI layers."""

    local_player: PlayerId | None
    active_room: RoomId | None
    joined_rooms: Mapping[RoomId, RoomState] = field(default_factory=lambda: MappingProxyType({}))
    game_modes: tuple[str, ...] = ()
    connected: bool = False
    error: str | None = None

    @property
    def active_state(self) -> RoomState | None:
        if self.active_room is None:
            return None
        return self.joined_rooms.get(self.active_room)
