"""Wire settings, logging and a SessionController around a channel."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from roomsync.session.controller import SessionController
from roomsync.settings import RoomSyncSettings
from shared.logging import setup_logging

if TYPE_CHECKING:
    from roomsync.messaging.protocol import Channel

logger = structlog.get_logger()


def create_controller(
    channel: Channel,
    settings: RoomSyncSettings | None = None,
    *,
    fragment: str | None = None,
) -> SessionController:
    """Build a controller subscribed to ``channel``.

    ``fragment`` is the page fragment at load time; a ``#join:<id>`` link
    there becomes the initial room to join once the channel is ready.
    """
    if settings is None:
        settings = RoomSyncSettings()

    log_file = setup_logging(log_dir=settings.log_dir)
    logger.info(
        "session controller starting",
        multi_room=settings.multi_room,
        tick_seconds=settings.tick_seconds,
        log_file=str(log_file) if log_file else None,
    )
    return SessionController(channel, settings, initial_fragment=fragment)
