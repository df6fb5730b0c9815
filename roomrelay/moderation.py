"""IP bans, per room and process-wide."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable

from .constants import CLOSE_POLICY_VIOLATION

if TYPE_CHECKING:
    from .rooms import Room
    from .service import RelayService
    from .session import ClientSession


class ModerationGuard:
    """
    Enforces room and global IP bans.

    Bans are checked when a session joins and again on every inbound event,
    so a ban issued mid-session takes effect without a reconnect. Issuing a
    ban also closes the matching sessions that are connected right now.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("roomrelay.moderation")
        self._global_banned: set[str] = set()
        self._lock = threading.RLock()

    def load(self, ips: Iterable[str]) -> None:
        with self._lock:
            self._global_banned.update(str(ip).strip() for ip in ips if str(ip).strip())

    def banned_ips(self) -> list[str]:
        with self._lock:
            return sorted(self._global_banned)

    def is_globally_banned(self, ip: str | None) -> bool:
        if not ip:
            return False
        with self._lock:
            return ip in self._global_banned

    def is_banned(self, room: Room | None, ip: str | None) -> bool:
        if not ip:
            return False
        if self.is_globally_banned(ip):
            return True
        return room is not None and room.is_banned(ip)

    async def ban_in_room(self, room: Room, ip: str) -> int:
        """Ban ``ip`` from ``room`` and close that room's matching sessions."""
        async with room.lock:
            room.banned_ips.add(ip)
            targets = [s for s in room.members() if s.ip == ip]

        for session in targets:
            await self.hub.session_manager.close(
                session, code=CLOSE_POLICY_VIOLATION, reason=f"banned from {room.name}"
            )

        self.hub.stats_manager.inc("room_bans")
        self.log.info(
            "Room ban ip=%s room=%s closed=%s", ip, room.name, len(targets)
        )
        return len(targets)

    async def ban_globally(self, ip: str) -> int:
        """Ban ``ip`` everywhere and close every session from it."""
        with self._lock:
            self._global_banned.add(ip)

        targets = self.hub.session_manager.by_ip(ip)
        for session in targets:
            await self.hub.session_manager.close(
                session, code=CLOSE_POLICY_VIOLATION, reason="banned"
            )

        self.hub.stats_manager.inc("global_bans")
        self.log.info("Global ban ip=%s closed=%s", ip, len(targets))
        return len(targets)

    async def enforce(self, session: ClientSession) -> bool:
        """Close ``session`` if its IP is banned. Returns True if it was closed."""
        room = self.hub.tree.find(session.room_path)
        if not self.is_banned(room, session.ip):
            return False

        self.log.info(
            "Dropping banned session client_id=%s ip=%s room=%s",
            session.client_id,
            session.ip,
            session.room_name or "-",
        )
        await self.hub.session_manager.close(
            session, code=CLOSE_POLICY_VIOLATION, reason="banned"
        )
        return True

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return {"global_banned": len(self._global_banned)}
