from __future__ import annotations

import enum
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from .constants import CLOSE_NORMAL, DEFAULT_USERNAME
from .envelope import encode_event
from .util import format_path

if TYPE_CHECKING:
    from .rooms import Room
    from .service import RelayService


class Transport(Protocol):
    """The connection handle a session writes to."""

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, text: str) -> None: ...

    async def close(self, code: int = CLOSE_NORMAL) -> None: ...


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    JOINED = "joined"
    CLOSED = "closed"


@dataclass(eq=False)
class ClientSession:
    client_id: str
    transport: Transport
    ip: str | None = None
    username: str = DEFAULT_USERNAME
    room_path: tuple[str, ...] | None = None
    state: SessionState = SessionState.CONNECTING
    alive: bool = True
    connected_at: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.monotonic)

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    @property
    def is_open(self) -> bool:
        return not self.closed and bool(self.transport.is_open)

    @property
    def room_name(self) -> str | None:
        return format_path(self.room_path) if self.room_path else None

    async def send(self, event: dict[str, Any]) -> int:
        """Serialize and write one event. Returns the number of characters sent."""
        text = encode_event(event)
        await self.transport.send_text(text)
        return len(text)

    def touch(self) -> None:
        self.alive = True
        self.last_seen = time.monotonic()

    def describe(self) -> dict[str, Any]:
        return {"clientId": self.client_id, "ip": self.ip, "username": self.username}


class SessionManager:
    """
    Process-wide registry of live client sessions.

    This class is responsible for:
    - Session creation with a process-unique client id
    - Owning every ClientSession (rooms only index them)
    - Moving sessions between rooms on join
    - The single removal routine run when a connection closes
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("roomrelay.session")
        self.sessions: dict[str, ClientSession] = {}
        self._lock = threading.RLock()

    def _new_client_id(self) -> str:
        while True:
            cid = os.urandom(6).hex()
            if cid not in self.sessions:
                return cid

    def register(self, transport: Transport, *, ip: str | None) -> ClientSession:
        with self._lock:
            session = ClientSession(
                client_id=self._new_client_id(), transport=transport, ip=ip
            )
            self.sessions[session.client_id] = session

        self.hub.stats_manager.inc("connections")
        self.log.info("Session created client_id=%s ip=%s", session.client_id, ip)
        return session

    def deregister(self, client_id: str) -> ClientSession | None:
        """Remove a session from the registry and from its room.

        Idempotent; returns the removed session, or None if it was already gone.
        """
        with self._lock:
            session = self.sessions.pop(client_id, None)
            if session is None:
                return None

            room = self.hub.tree.find(session.room_path)
            if room is not None:
                room.clients.pop(client_id, None)
            session.state = SessionState.CLOSED

        self.log.info(
            "Session closed client_id=%s ip=%s username=%r room=%s",
            client_id,
            session.ip,
            session.username,
            session.room_name or "-",
        )
        return session

    def attach(self, session: ClientSession, room: Room) -> bool:
        """Join ``session`` to ``room``, leaving any previous room first.

        Returns False if the session was closed in the meantime.
        """
        with self._lock:
            if self.sessions.get(session.client_id) is not session:
                return False

            if session.room_path is not None and session.room_path != room.path:
                previous = self.hub.tree.find(session.room_path)
                if previous is not None:
                    previous.clients.pop(session.client_id, None)

            room.clients[session.client_id] = session
            session.room_path = room.path
            session.state = SessionState.JOINED
        return True

    async def close(
        self, session: ClientSession, *, code: int = CLOSE_NORMAL, reason: str = ""
    ) -> None:
        """Close the session's transport and deregister it."""
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Closing client_id=%s ip=%s code=%s reason=%s",
                session.client_id,
                session.ip,
                code,
                reason or "-",
            )
        self.deregister(session.client_id)
        try:
            await session.transport.close(code)
        except Exception as e:
            self.log.debug("Transport close failed client_id=%s: %s", session.client_id, e)
        self.hub.stats_manager.inc("closes")

    def get(self, client_id: str) -> ClientSession | None:
        with self._lock:
            return self.sessions.get(client_id)

    def all(self) -> list[ClientSession]:
        with self._lock:
            return list(self.sessions.values())

    def by_ip(self, ip: str) -> list[ClientSession]:
        with self._lock:
            return [s for s in self.sessions.values() if s.ip == ip]

    def clear_all(self) -> list[ClientSession]:
        """Drop every session and return them for teardown."""
        with self._lock:
            sessions = list(self.sessions.values())
            for s in sessions:
                room = self.hub.tree.find(s.room_path)
                if room is not None:
                    room.clients.pop(s.client_id, None)
                s.state = SessionState.CLOSED
            self.sessions.clear()
        return sessions

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = len(self.sessions)
            joined = sum(
                1 for s in self.sessions.values() if s.state is SessionState.JOINED
            )
        return {"total": total, "joined": joined, "connecting": total - joined}
