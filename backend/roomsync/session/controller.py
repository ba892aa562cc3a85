"""Top-level session orchestration between the channel and UI observers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import structlog

from roomsync.exceptions import (
    ActionSendError,
    MembershipCommandError,
    NotConnectedError,
    NotLeaderError,
    RoomSyncError,
)
from roomsync.messaging.actions import (
    ChatAction,
    GuessAction,
    ProposeQuestionAction,
    ReadyAction,
    SetNickAction,
    SetTitleAction,
    StartAction,
    UpdateSettingsAction,
)
from roomsync.messaging.protocol import Subscription
from roomsync.session.countdowns import CountdownManager, TimerSlot
from roomsync.session.events import (
    ActionFailed,
    ActiveRoomChanged,
    CountdownChanged,
    Disconnected,
    MembershipFailed,
    RoomLeft,
    RoomUpdated,
    ServerNotice,
    SessionEvent,
    SessionReady,
)
from roomsync.session.links import join_link, parse_join_fragment
from roomsync.session.membership import MembershipReconciler
from roomsync.session.models import SessionSnapshot
from roomsync.session.registry import RoomRegistry
from roomsync.session.timer import wall_clock_ms
from roomsync.settings import RoomSyncSettings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    from roomsync.messaging.actions import RoomAction
    from roomsync.messaging.protocol import Channel
    from roomsync.session.models import PlayerId, RoomId

logger = structlog.get_logger()

SessionObserver = Callable[[SessionEvent], None]

DISCONNECTED_MESSAGE = "Connection to the server closed"


class SessionController:
    """Keep the local view of joined rooms in sync with the server.

    Subscribes to the channel at construction. All state changes happen in
    channel callbacks or countdown ticks; outbound actions never touch local
    state and wait for the next update to show their effect.

    In single-room mode only the active room is tracked and updates for any
    other room are dropped. In multi-room mode every joined room is tracked
    and the first one to report state becomes the selected room.
    """

    def __init__(
        self,
        channel: Channel,
        settings: RoomSyncSettings | None = None,
        *,
        initial_fragment: str | None = None,
        clock: Callable[[], float] = wall_clock_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._channel = channel
        self._settings = settings or RoomSyncSettings()
        self._multi_room = self._settings.multi_room
        self._registry = RoomRegistry()
        self._countdowns = CountdownManager(
            self._on_countdown,
            tick_seconds=self._settings.tick_seconds,
            clock=clock,
            sleep=sleep,
        )
        self._reconciler = MembershipReconciler(channel, exclusive=not self._multi_room)
        self._observers: list[SessionObserver] = []
        self._initial_fragment = initial_fragment
        self._local_player: PlayerId | None = None
        self._active_room: RoomId | None = None
        self._left_rooms: set[RoomId] = set()
        self._game_modes: tuple[str, ...] = ()
        self._connected = False
        self._error: str | None = None
        self._nick: str | None = None
        self._channel_subscription = channel.subscribe(self)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def local_player(self) -> PlayerId | None:
        return self._local_player

    @property
    def active_room(self) -> RoomId | None:
        return self._active_room

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def game_modes(self) -> tuple[str, ...]:
        return self._game_modes

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            local_player=self._local_player,
            active_room=self._active_room,
            joined_rooms=MappingProxyType(dict(self._registry.rooms)),
            game_modes=self._game_modes,
            connected=self._connected,
            error=self._error,
        )

    def is_writable(self, room_id: RoomId | None = None) -> bool:
        room_id = room_id or self._active_room
        return room_id is not None and self._registry.is_writable(room_id, self._local_player)

    def needs_ready(self, room_id: RoomId | None = None) -> bool:
        room_id = room_id or self._active_room
        return room_id is not None and self._registry.needs_ready(room_id, self._local_player)

    def countdown(self, slot: TimerSlot, room_id: RoomId | None = None) -> int | None:
        room_id = room_id or self._active_room
        if room_id is None:
            return None
        return self._countdowns.value(room_id, slot)

    def join_link(self, room_id: RoomId | None = None) -> str | None:
        room_id = room_id or self._active_room
        if room_id is None:
            return None
        return join_link(self._settings.origin, room_id)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: SessionObserver) -> Subscription:
        self._observers.append(observer)

        def detach() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return Subscription(detach)

    def _publish(self, event: SessionEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("session observer failed", event_type=event.type)

    def _on_countdown(self, room_id: str, slot: TimerSlot, value: int | None) -> None:
        self._publish(CountdownChanged(room_id=room_id, slot=slot, value=value))

    # ------------------------------------------------------------------
    # Channel callbacks
    # ------------------------------------------------------------------

    async def on_ready(self, player_id: str) -> None:
        self._local_player = player_id
        self._connected = True
        self._error = None
        logger.info("session ready", player_id=player_id)
        self._publish(SessionReady(player_id=player_id))

        target = parse_join_fragment(self._initial_fragment)
        try:
            await self.set_active_room(target)
        except MembershipCommandError:
            logger.exception("initial room reconciliation failed", player_id=player_id, target=target)

        try:
            self._game_modes = tuple(await self._channel.list_game_modes())
        except RoomSyncError as e:
            logger.warning("could not fetch game modes", error=str(e))

    async def on_update(
        self,
        room_id: str,
        leader: str,
        members: Sequence[str],
        public_state: dict[str, Any] | None,
        private_state: Any,  # noqa: ANN401
    ) -> None:
        if not self._connected:
            logger.debug("discarding update while disconnected", room_id=room_id)
            return
        if room_id in self._left_rooms:
            logger.debug("discarding update for left room", room_id=room_id)
            return
        if self._multi_room:
            self._registry.track(room_id)
        elif room_id != self._active_room:
            logger.info("discarding update for inactive room", room_id=room_id, active_room=self._active_room)
            return

        change = self._registry.apply(room_id, leader, members, public_state, private_state)
        if change is None:
            return

        if self._multi_room and change.first_room and self._active_room is None:
            self._select(room_id)

        self._publish(
            RoomUpdated(
                room_id=room_id,
                state=change.state,
                first_room=change.first_room,
                settings_changed=change.settings_changed,
                just_started=change.just_started,
            ),
        )
        self._countdowns.rearm(change.state)

    async def on_error(self, message: str | None) -> None:
        self._connected = False
        self._error = f"{DISCONNECTED_MESSAGE}: {message}" if message else DISCONNECTED_MESSAGE
        self._countdowns.cancel_all()
        logger.warning("channel lost", reason=message, player_id=self._local_player)
        self._publish(Disconnected(message=message))

    async def on_notice(self, message: str) -> None:
        logger.warning("server notice", message=message)
        self._publish(ServerNotice(message=message))

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def set_active_room(self, join_id: RoomId | None) -> RoomId | None:
        """Make ``join_id`` the active room, or rejoin any joined room if None.

        In single-room mode every other joined room is left first. When
        nothing can be selected and a default game mode is configured, a new
        room of that mode is created. Command failures are surfaced to
        observers and re-raised.
        """
        self._require_connected()
        try:
            result = await self._reconciler.run(join_id)
        except MembershipCommandError as e:
            for command, room_id in e.completed:
                if command == "leave_room":
                    self._forget_room(room_id)
            self._publish(MembershipFailed(command=e.command, room_id=e.room_id, message=str(e)))
            raise

        for room_id in result.left:
            self._forget_room(room_id)

        if result.target is None:
            if self._settings.default_game_mode is not None:
                return await self.create_room(self._settings.default_game_mode)
            logger.info("no room to join")
            return None

        if self._multi_room:
            for room_id in result.joined_rooms:
                if room_id not in self._left_rooms:
                    self._registry.track(room_id)
        else:
            for room_id in self._registry.retain([result.target]):
                self._countdowns.cleanup_room(room_id)

        self._left_rooms.discard(result.target)
        self._registry.track(result.target)
        self._select(result.target)
        await self._propagate_nick()
        return result.target

    async def handle_fragment_change(self, fragment: str | None) -> bool:
        """React to a page fragment change.

        Returns True when the fragment was a join link and has been acted
        on, meaning the caller should clear it.
        """
        target = parse_join_fragment(fragment)
        if target is None:
            return False
        await self.set_active_room(target)
        return True

    async def create_room(self, mode: str, title: str | None = None) -> RoomId:
        """Create a room of ``mode`` and make it the active room."""
        self._require_connected()
        try:
            room_id = await self._channel.create_room(mode)
        except RoomSyncError as e:
            logger.warning("room creation failed", mode=mode, error=str(e))
            self._publish(MembershipFailed(command="create_room", message=str(e)))
            raise MembershipCommandError(command="create_room", room_id=None, completed=()) from e

        logger.info("room created", room_id=room_id, mode=mode)
        if not self._multi_room:
            for dropped in self._registry.retain([room_id]):
                self._countdowns.cleanup_room(dropped)
        self._registry.track(room_id)
        if title:
            await self.set_title(title, room_id=room_id)
        self._select(room_id)
        await self._propagate_nick()
        return room_id

    async def join_room(self, room_id: RoomId) -> RoomId | None:
        """Explicitly join a room, as a deep link would."""
        return await self.set_active_room(room_id)

    async def leave_room(self, room_id: RoomId | None = None) -> None:
        """Leave a room and drop its local state."""
        room_id = room_id or self._active_room
        if room_id is None:
            return
        self._require_connected()
        try:
            await self._channel.leave_room(room_id)
        except RoomSyncError as e:
            logger.warning("leave failed", room_id=room_id, error=str(e))
            self._publish(MembershipFailed(command="leave_room", room_id=room_id, message=str(e)))
            raise MembershipCommandError(command="leave_room", room_id=room_id, completed=()) from e
        self._forget_room(room_id)

    def select_room(self, room_id: RoomId) -> None:
        """Switch the selected room among the tracked ones."""
        if not self._registry.is_tracked(room_id):
            raise ValueError(f"room {room_id} is not joined")
        self._select(room_id)

    def _select(self, room_id: RoomId | None) -> None:
        if room_id == self._active_room:
            return
        previous, self._active_room = self._active_room, room_id
        logger.info("active room changed", room_id=room_id, previous=previous)
        self._publish(ActiveRoomChanged(room_id=room_id, previous=previous))

    def _forget_room(self, room_id: RoomId) -> None:
        self._registry.untrack(room_id)
        self._countdowns.cleanup_room(room_id)
        self._left_rooms.add(room_id)
        if self._active_room == room_id:
            self._select(None)
        self._publish(RoomLeft(room_id=room_id))

    # ------------------------------------------------------------------
    # Outbound actions
    # ------------------------------------------------------------------

    async def send_action(self, action: RoomAction, room_id: RoomId | None = None) -> Any:  # noqa: ANN401
        """Send an action to a room; fire-and-forget as far as local state goes."""
        self._require_connected()
        room_id = room_id or self._active_room
        if room_id is None:
            raise NotConnectedError("no active room")
        try:
            return await self._channel.send_action(room_id, action.to_payload())
        except RoomSyncError as e:
            logger.warning("action failed", room_id=room_id, action=action.kind, error=str(e))
            self._publish(ActionFailed(room_id=room_id, action=action.kind, message=str(e)))
            raise ActionSendError(room_id=room_id, action=action.kind) from e

    async def set_nick(self, nick: str) -> None:
        """Remember a nickname and announce it in the active room. Empty names are ignored."""
        nick = nick.strip()
        if not nick:
            return
        self._nick = SetNickAction(nick=nick).nick
        await self._propagate_nick()

    async def _propagate_nick(self) -> None:
        if self._nick is None or self._active_room is None:
            return
        try:
            await self.send_action(SetNickAction(nick=self._nick))
        except ActionSendError:
            logger.info("nickname not delivered", room_id=self._active_room)

    async def update_settings(self, settings: dict[str, Any], room_id: RoomId | None = None) -> None:
        room_id = self._require_leader(room_id)
        logger.info("updating settings", room_id=room_id)
        await self.send_action(UpdateSettingsAction(settings=settings), room_id)

    async def set_title(self, title: str, room_id: RoomId | None = None) -> None:
        await self.send_action(SetTitleAction(title=title), room_id)

    async def send_chat(self, text: str, room_id: RoomId | None = None) -> None:
        await self.send_action(ChatAction(chat=text), room_id)

    async def propose_question(self, question: str, room_id: RoomId | None = None) -> None:
        await self.send_action(ProposeQuestionAction(question=question), room_id)

    async def guess(self, answer: str, room_id: RoomId | None = None) -> None:
        await self.send_action(GuessAction(guess=answer), room_id)

    async def start_game(self, room_id: RoomId | None = None) -> None:
        await self.send_action(StartAction(), room_id)

    async def ready_up(self, room_id: RoomId | None = None) -> None:
        await self.send_action(ReadyAction(), room_id)

    async def kick_player(self, player_id: PlayerId, room_id: RoomId | None = None) -> None:
        room_id = self._require_leader(room_id)
        await self._leader_command("kick", self._channel.kick_player(room_id, player_id), room_id)

    async def promote_leader(self, player_id: PlayerId, room_id: RoomId | None = None) -> None:
        room_id = self._require_leader(room_id)
        await self._leader_command("promote", self._channel.promote_leader(room_id, player_id), room_id)

    async def _leader_command(self, name: str, command: Awaitable[None], room_id: RoomId) -> None:
        try:
            await command
        except RoomSyncError as e:
            logger.warning("leader command failed", command=name, room_id=room_id, error=str(e))
            self._publish(ActionFailed(room_id=room_id, action=name, message=str(e)))
            raise ActionSendError(room_id=room_id, action=name) from e

    # ------------------------------------------------------------------
    # Guards and teardown
    # ------------------------------------------------------------------

    def _require_connected(self) -> PlayerId:
        if self._local_player is None or not self._connected:
            raise NotConnectedError(self._error or "session is not ready")
        return self._local_player

    def _require_leader(self, room_id: RoomId | None) -> RoomId:
        player_id = self._require_connected()
        room_id = room_id or self._active_room
        if room_id is None:
            raise NotConnectedError("no active room")
        if not self._registry.is_writable(room_id, player_id):
            raise NotLeaderError(room_id=room_id, player_id=player_id)
        return room_id

    def close(self) -> None:
        """Detach from the channel and stop all countdowns."""
        self._channel_subscription.unsubscribe()
        self._countdowns.cancel_all()
        self._observers.clear()
        self._left_rooms.clear()
