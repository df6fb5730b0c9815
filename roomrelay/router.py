from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .broadcast import anonymous_event, character_limit_event, history_event
from .constants import (
    CLOSE_POLICY_VIOLATION,
    DEFAULT_USERNAME,
    F_FILE_TYPE,
    F_FILENAME,
    F_INDEX,
    F_PATH,
    F_RESULT,
    F_TEXT,
    F_USERNAME,
    K_TYPE,
    T_DELETE,
    T_FILE,
    T_JOIN,
    T_MESSAGE,
    T_PING,
)
from .envelope import decode_event, validate_event
from .errors import InvalidArgument, RoomNotFound
from .rooms import FileMessage, Room, TextMessage
from .session import SessionState
from .util import normalize_username, parse_path

if TYPE_CHECKING:
    from .service import RelayService
    from .session import ClientSession


class MessageRouter:
    """
    Handles inbound events from relay connections.

    This class is responsible for:
    - Decoding and validating inbound JSON events
    - Re-checking bans on every event
    - Dispatching by type (join, message, file, delete, ping)
    - Applying room mutations under the room lock, then broadcasting

    Malformed or disallowed events are logged and dropped; the connection
    stays open. Only a failed join closes it.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("roomrelay.router")

    async def route_event(self, session: ClientSession, raw: str | bytes) -> None:
        """Main entry point for one inbound frame from ``session``."""
        if session.closed:
            return

        self.hub.stats_manager.inc("events_in")
        self.hub.stats_manager.inc("bytes_in", len(raw))

        if await self.hub.moderation.enforce(session):
            return

        try:
            event = decode_event(raw)
            validate_event(event)
        except (TypeError, ValueError) as e:
            self.hub.stats_manager.inc("events_bad")
            self.log.debug(
                "Bad event client_id=%s ip=%s bytes=%s err=%s",
                session.client_id,
                session.ip,
                len(raw),
                e,
            )
            return

        t = event[K_TYPE]

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX client_id=%s type=%s path=%r state=%s",
                session.client_id,
                t,
                event.get(F_PATH),
                session.state.value,
            )

        if t == T_PING:
            self._handle_ping(session)
        elif t == T_JOIN:
            await self._handle_join(session, event)
        elif t == T_MESSAGE:
            await self._handle_message(session, event)
        elif t == T_FILE:
            await self._handle_file(session, event)
        elif t == T_DELETE:
            await self._handle_delete(session, event)

    def _handle_ping(self, session: ClientSession) -> None:
        self.hub.stats_manager.inc("pings_in")
        session.touch()

    async def _reject_join(self, session: ClientSession, reason: str) -> None:
        self.hub.stats_manager.inc("joins_rejected")
        self.log.info(
            "JOIN rejected client_id=%s ip=%s reason=%s",
            session.client_id,
            session.ip,
            reason,
        )
        await self.hub.session_manager.close(
            session, code=CLOSE_POLICY_VIOLATION, reason=reason
        )

    async def _handle_join(self, session: ClientSession, event: dict[str, Any]) -> None:
        cfg = self.hub.config
        try:
            path = parse_path(
                event[F_PATH],
                max_depth=cfg.max_path_depth,
                max_segment_len=cfg.max_segment_len,
            )
        except InvalidArgument as e:
            await self._reject_join(session, str(e))
            return

        try:
            if cfg.auto_create_rooms:
                room = self.hub.tree.resolve_or_create(path)
            else:
                room = self.hub.tree.resolve(path)
        except RoomNotFound as e:
            await self._reject_join(session, str(e))
            return

        if self.hub.moderation.is_banned(room, session.ip):
            await self._reject_join(session, f"banned from {room.name}")
            return

        username = normalize_username(
            event.get(F_USERNAME), max_chars=cfg.username_max_chars
        )
        session.username = username or DEFAULT_USERNAME

        async with room.lock:
            if not self.hub.session_manager.attach(session, room):
                return
            self.hub.stats_manager.inc("joins")
            self.log.info(
                "JOIN client_id=%s ip=%s username=%r room=%s",
                session.client_id,
                session.ip,
                session.username,
                room.name,
            )
            broadcaster = self.hub.broadcaster
            await broadcaster.to_session(session, history_event(room))
            await broadcaster.to_session(session, character_limit_event(room))
            await broadcaster.to_session(session, anonymous_event(room))

    def _joined_room(self, session: ClientSession, event: dict[str, Any]) -> Room | None:
        """The session's room, if ``event`` addresses it."""
        if session.state is not SessionState.JOINED or session.room_path is None:
            self.log.debug(
                "Dropping %s from client_id=%s: not joined",
                event.get(K_TYPE),
                session.client_id,
            )
            return None

        try:
            path = parse_path(
                event[F_PATH],
                max_depth=self.hub.config.max_path_depth,
                max_segment_len=self.hub.config.max_segment_len,
            )
        except InvalidArgument as e:
            self.log.debug("Dropping event with bad path client_id=%s: %s", session.client_id, e)
            return None

        if path != session.room_path:
            self.log.debug(
                "Dropping %s from client_id=%s: path=%s but joined %s",
                event.get(K_TYPE),
                session.client_id,
                "/".join(path),
                session.room_name,
            )
            return None

        return self.hub.tree.find(path)

    async def _handle_message(self, session: ClientSession, event: dict[str, Any]) -> None:
        room = self._joined_room(session, event)
        if room is None:
            self.hub.stats_manager.inc("events_dropped")
            return

        text = event[F_TEXT]
        async with room.lock:
            limit = room.settings.character_limit
            if limit > 0 and len(text) > limit:
                self.hub.stats_manager.inc("events_dropped")
                self.log.info(
                    "Message over limit client_id=%s room=%s chars=%s limit=%s",
                    session.client_id,
                    room.name,
                    len(text),
                    limit,
                )
                return

            room.messages.append(TextMessage(username=session.username, text=text))
            self.hub.stats_manager.inc("messages")
            await self.hub.broadcaster.to_room(room, history_event(room))

    async def _handle_file(self, session: ClientSession, event: dict[str, Any]) -> None:
        room = self._joined_room(session, event)
        if room is None:
            self.hub.stats_manager.inc("events_dropped")
            return

        result = event[F_RESULT]
        max_bytes = self.hub.config.max_file_bytes
        if max_bytes > 0 and len(result) > max_bytes:
            self.hub.stats_manager.inc("events_dropped")
            self.log.info(
                "File too large client_id=%s room=%s bytes=%s max=%s",
                session.client_id,
                room.name,
                len(result),
                max_bytes,
            )
            return

        msg = FileMessage(
            username=session.username,
            filename=event[F_FILENAME],
            file_type=event.get(F_FILE_TYPE) or "",
            result=result,
        )
        async with room.lock:
            room.messages.append(msg)
            self.hub.stats_manager.inc("files")
            await self.hub.broadcaster.to_room(room, history_event(room))

        self.log.info(
            "FILE client_id=%s room=%s filename=%r",
            session.client_id,
            room.name,
            msg.filename,
        )

    async def _handle_delete(self, session: ClientSession, event: dict[str, Any]) -> None:
        room = self._joined_room(session, event)
        if room is None:
            self.hub.stats_manager.inc("events_dropped")
            return

        index = event[F_INDEX]
        async with room.lock:
            if not 0 <= index < len(room.messages):
                self.hub.stats_manager.inc("events_dropped")
                self.log.info(
                    "Delete index out of range client_id=%s room=%s index=%s len=%s",
                    session.client_id,
                    room.name,
                    index,
                    len(room.messages),
                )
                return

            # Self-service deletion: only the author may remove a message.
            if room.messages[index].username != session.username:
                self.hub.stats_manager.inc("events_dropped")
                self.log.info(
                    "Delete refused client_id=%s username=%r room=%s index=%s: not author",
                    session.client_id,
                    session.username,
                    room.name,
                    index,
                )
                return

            room.messages.delete_at(index)
            self.hub.stats_manager.inc("deletes")
            await self.hub.broadcaster.to_room(room, history_event(room))
