"""Latest known state of every joined room, with derived UI predicates."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import structlog

from roomsync.session.models import ReadyPolicy, RoomState

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from roomsync.session.models import PlayerId, RoomId

logger = structlog.get_logger()

_EVERYONE_READIES = frozenset({ReadyPolicy.ALL, ReadyPolicy.MAJORITY, ReadyPolicy.SINGLE})


@dataclass(frozen=True)
class RoomChange:
    """Result of applying one update, with the transitions the UI cares about."""

    state: RoomState
    previous: RoomState | None
    first_room: bool
    settings_changed: bool
    just_started: bool

    @property
    def room_id(self) -> RoomId:
        return self.state.room_id


def _settings_of(public: Mapping[str, Any] | None) -> dict[str, Any]:
    if not public:
        return {}
    settings = public.get("settings")
    return settings if isinstance(settings, dict) else {}


class RoomRegistry:
    """Map room ids to their latest RoomState.

    Only rooms marked as joined through ``track`` accept updates; anything
    else is dropped with a warning, never buffered. A state is removed only
    by ``untrack`` when the local player leaves the room.
    """

    def __init__(self) -> None:
        self._tracked: dict[RoomId, None] = {}  # insertion-ordered set
        self._rooms: dict[RoomId, RoomState] = {}
        self._last_first_room = False

    def track(self, room_id: RoomId) -> None:
        self._tracked.setdefault(room_id, None)

    def untrack(self, room_id: RoomId) -> RoomState | None:
        """Forget a room the local player left. Returns its last state."""
        self._tracked.pop(room_id, None)
        return self._rooms.pop(room_id, None)

    def retain(self, room_ids: Iterable[RoomId]) -> list[RoomId]:
        """Untrack every room not in ``room_ids``. Returns the dropped ids."""
        keep = set(room_ids)
        dropped = [room_id for room_id in self._tracked if room_id not in keep]
        for room_id in dropped:
            self.untrack(room_id)
        return dropped

    def is_tracked(self, room_id: RoomId) -> bool:
        return room_id in self._tracked

    @property
    def tracked_rooms(self) -> tuple[RoomId, ...]:
        return tuple(self._tracked)

    @property
    def rooms(self) -> Mapping[RoomId, RoomState]:
        return MappingProxyType(self._rooms)

    def get(self, room_id: RoomId) -> RoomState | None:
        return self._rooms.get(room_id)

    def apply(
        self,
        room_id: RoomId,
        leader: PlayerId,
        members: Iterable[PlayerId],
        public_state: Mapping[str, Any] | None,
        private_state: Any,  # noqa: ANN401
    ) -> RoomChange | None:
        """Replace the stored state of a joined room.

        Returns the detected transitions, or None when the room is not
        joined and the update was discarded.
        """
        if room_id not in self._tracked:
            logger.warning("discarding update for unknown room", room_id=room_id)
            return None

        previous = self._rooms.get(room_id)
        settings_changed = self.has_settings_changed(room_id, public_state)
        just_started = self.just_started(room_id, public_state)

        state = RoomState(
            room_id=room_id,
            leader=leader,
            members=tuple(members),
            public=copy.deepcopy(dict(public_state or {})),
            private=copy.deepcopy(private_state),
        )
        self._rooms[room_id] = state
        self._last_first_room = previous is None and len(self._rooms) == 1

        return RoomChange(
            state=state,
            previous=previous,
            first_room=self._last_first_room,
            settings_changed=settings_changed,
            just_started=just_started,
        )

    def is_first_room(self) -> bool:
        """Whether the last apply established the only known room."""
        return self._last_first_room

    def has_settings_changed(self, room_id: RoomId, new_public: Mapping[str, Any] | None) -> bool:
        """Compare the ``settings`` map of ``new_public`` against the stored one.

        Dict equality is deep and ignores key order. A room with no stored
        state has nothing to compare against and reports no change.
        """
        previous = self._rooms.get(room_id)
        if previous is None:
            return False
        return previous.raw_settings != _settings_of(new_public)

    def just_started(self, room_id: RoomId, new_public: Mapping[str, Any] | None) -> bool:
        previous = self._rooms.get(room_id)
        was_running = previous.running if previous is not None else False
        now_running = bool((new_public or {}).get("running", False))
        return not was_running and now_running

    def is_writable(self, room_id: RoomId, player_id: PlayerId | None) -> bool:
        """Settings are writable only by the room leader."""
        state = self._rooms.get(room_id)
        return state is not None and player_id is not None and state.is_leader(player_id)

    def needs_ready(self, room_id: RoomId, player_id: PlayerId | None) -> bool:
        """Whether ``player_id`` still owes a readiness signal in this room.

        Quorum for ``majority`` and ``single`` is decided by the server; here
        every player not yet ready owes one under those policies.
        """
        state = self._rooms.get(room_id)
        if state is None or player_id is None:
            return False
        if player_id in state.ready:
            return False
        policy = state.settings.ready
        if policy == ReadyPolicy.LEADER:
            return state.is_leader(player_id)
        return policy in _EVERYONE_READIES
