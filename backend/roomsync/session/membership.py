"""Reconcile server-reported room membership with the room the client wants."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from roomsync.exceptions import MembershipCommandError, RoomSyncError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from roomsync.messaging.protocol import Channel
    from roomsync.session.models import RoomId

logger = structlog.get_logger()


@dataclass(frozen=True)
class MembershipPlan:
    """Commands needed to make ``target`` the active room.

    ``target`` is None when there is nothing to select or join; the caller
    decides whether to create a fresh room.
    """

    to_leave: tuple[RoomId, ...]
    target: RoomId | None
    join: bool

    @property
    def no_target(self) -> bool:
        return self.target is None

    @property
    def command_count(self) -> int:
        return len(self.to_leave) + int(self.join)


def reconcile(
    currently_joined: Sequence[RoomId],
    desired_target: RoomId | None,
    *,
    exclusive: bool = True,
) -> MembershipPlan:
    """Plan the minimal leave/join commands to reach ``desired_target``.

    Without a target the first reported room is selected and nothing is
    sent. With a target, every other joined room is left when ``exclusive``
    (single-room UIs), and a join is planned only if the target is not
    already joined.
    """
    if desired_target is None:
        if currently_joined:
            return MembershipPlan(to_leave=(), target=currently_joined[0], join=False)
        return MembershipPlan(to_leave=(), target=None, join=False)

    to_leave: tuple[RoomId, ...] = ()
    if exclusive:
        to_leave = tuple(dict.fromkeys(r for r in currently_joined if r != desired_target))
    return MembershipPlan(
        to_leave=to_leave,
        target=desired_target,
        join=desired_target not in currently_joined,
    )


@dataclass(frozen=True)
class MembershipResult:
    """Outcome of a completed reconciliation pass."""

    target: RoomId | None
    joined_rooms: tuple[RoomId, ...]
    left: tuple[RoomId, ...] = ()
    joined: bool = False
    plan: MembershipPlan | None = field(default=None, compare=False)


class MembershipReconciler:
    """Run reconciliation passes against the channel, one at a time.

    The joined list is read once at the start of a pass, so passes are
    serialized behind a lock and commands inside a pass are awaited one by
    one. A failing command aborts the pass; commands already acknowledged
    stay applied.
    """

    def __init__(self, channel: Channel, *, exclusive: bool = True) -> None:
        self._channel = channel
        self._exclusive = exclusive
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run(self, desired_target: RoomId | None) -> MembershipResult:
        async with self._lock:
            return await self._run_pass(desired_target)

    async def _run_pass(self, desired_target: RoomId | None) -> MembershipResult:
        completed: list[tuple[str, str]] = []

        try:
            currently_joined = list(await self._channel.list_joined_rooms())
        except RoomSyncError as e:
            logger.warning("could not list joined rooms", error=str(e))
            raise MembershipCommandError(command="list_joined_rooms", room_id=None, completed=()) from e

        plan = reconcile(currently_joined, desired_target, exclusive=self._exclusive)
        logger.debug(
            "membership plan",
            joined=currently_joined,
            desired=desired_target,
            to_leave=plan.to_leave,
            target=plan.target,
            join=plan.join,
        )

        remaining = list(currently_joined)
        for room_id in plan.to_leave:
            await self._issue("leave_room", room_id, completed)
            remaining.remove(room_id)

        target = plan.target
        if plan.join and target is not None:
            target = await self._issue("join_room", target, completed)
            if target not in remaining:
                remaining.append(target)

        return MembershipResult(
            target=target,
            joined_rooms=tuple(remaining),
            left=plan.to_leave,
            joined=plan.join,
            plan=plan,
        )

    async def _issue(self, command: str, room_id: RoomId, completed: list[tuple[str, str]]) -> RoomId:
        try:
            if command == "leave_room":
                await self._channel.leave_room(room_id)
                result = room_id
            else:
                result = await self._channel.join_room(room_id)
        except RoomSyncError as e:
            logger.warning(
                "membership command failed",
                command=command,
                room_id=room_id,
                completed=len(completed),
                error=str(e),
            )
            raise MembershipCommandError(command=command, room_id=room_id, completed=tuple(completed)) from e
        completed.append((command, room_id))
        logger.info("membership command done", command=command, room_id=room_id, result=result)
        return result
