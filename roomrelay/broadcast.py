"""Fan-out of outbound events to room members or every connection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

from .constants import (
    O_ANONYMOUS,
    O_CHARACTER_LIMIT,
    O_CLEAR,
    O_MESSAGE,
    O_PATHS,
)
from .envelope import make_event

if TYPE_CHECKING:
    from .rooms import Room
    from .service import RelayService
    from .session import ClientSession


def history_event(room: Room) -> dict[str, Any]:
    return make_event(O_MESSAGE, {"history": room.history_view()})


def clear_event() -> dict[str, Any]:
    return make_event(O_CLEAR, {"clearMessages": True})


def anonymous_event(room: Room) -> dict[str, Any]:
    return make_event(O_ANONYMOUS, {"value": room.settings.anonymous})


def character_limit_event(room: Room) -> dict[str, Any]:
    return make_event(O_CHARACTER_LIMIT, {"value": room.settings.character_limit})


def paths_event(snapshot: dict[str, Any]) -> dict[str, Any]:
    return make_event(O_PATHS, snapshot)


class BroadcastRouter:
    """
    Delivers events to sessions.

    Sessions whose transport is already closed are skipped, never removed;
    removal belongs to the SessionManager's close path. Callers that need
    per-room ordering hold the room's lock around append and broadcast.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("roomrelay.broadcast")

    async def to_session(self, session: ClientSession, event: dict[str, Any]) -> bool:
        if not session.is_open:
            return False
        try:
            sent = await session.send(event)
        except Exception as e:
            self.hub.stats_manager.inc("send_failures")
            self.log.debug(
                "Send failed client_id=%s type=%s: %s",
                session.client_id,
                event.get("type"),
                e,
            )
            return False
        self.hub.stats_manager.inc("events_out")
        self.hub.stats_manager.inc("bytes_out", sent)
        return True

    async def _fan_out(
        self, sessions: Iterable[ClientSession], event: dict[str, Any]
    ) -> int:
        delivered = 0
        for session in sessions:
            if await self.to_session(session, event):
                delivered += 1
        return delivered

    async def to_room(self, room: Room, event: dict[str, Any]) -> int:
        recipients = room.members()
        delivered = await self._fan_out(recipients, event)
        self.hub.stats_manager.inc("broadcasts")
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Broadcast type=%s room=%s recipients=%s delivered=%s",
                event.get("type"),
                room.name,
                len(recipients),
                delivered,
            )
        return delivered

    async def to_all(self, event: dict[str, Any]) -> int:
        recipients = self.hub.session_manager.all()
        delivered = await self._fan_out(recipients, event)
        self.hub.stats_manager.inc("broadcasts")
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Broadcast type=%s to all recipients=%s delivered=%s",
                event.get("type"),
                len(recipients),
                delivered,
            )
        return delivered
