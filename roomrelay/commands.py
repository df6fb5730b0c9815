"""Control-plane operations for relay administrators."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .broadcast import (
    anonymous_event,
    character_limit_event,
    clear_event,
    history_event,
    paths_event,
)
from .constants import CLOSE_POLICY_VIOLATION
from .errors import ClientNotFound, InternalError, InvalidArgument
from .rooms import Room
from .util import parse_path

if TYPE_CHECKING:
    from .service import RelayService
    from .trust import Principal


@dataclass(frozen=True)
class CommandResult:
    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message}


class ControlPlane:
    """Handles administrative operations on the relay.

    Every operation that changes room settings, bans or message history runs
    AdminGate.require_admin first and raises Forbidden before touching state.
    Errors surface as RelayError subclasses for the HTTP layer to map.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("roomrelay.commands")

    def _path(self, raw: Any) -> tuple[str, ...]:
        return parse_path(
            raw,
            max_depth=self.hub.config.max_path_depth,
            max_segment_len=self.hub.config.max_segment_len,
        )

    def _room(self, raw: Any) -> Room:
        return self.hub.tree.resolve(self._path(raw))

    def _audit(self, principal: Principal, action: str, target: str, detail: str = "") -> None:
        self.log.info(
            "ADMIN %s target=%s by ip=%s%s",
            action,
            target,
            principal.ip or "-",
            f" {detail}" if detail else "",
        )

    # Read operations

    def list_namespace(self, principal: Principal) -> dict[str, Any]:
        """Public view of the namespace; not gated."""
        return self.hub.tree.snapshot(include_state=False)

    def list_clients(self, principal: Principal, path: str) -> list[dict[str, Any]]:
        self.hub.admin_gate.require_admin(principal)
        room = self._room(path)
        return [s.describe() for s in room.members()]

    def chat_log(self, principal: Principal, path: str) -> list[dict[str, Any]]:
        """The stored log with true usernames, regardless of anonymity."""
        self.hub.admin_gate.require_admin(principal)
        room = self._room(path)
        return room.messages.to_records()

    def stats(self, principal: Principal) -> dict[str, Any]:
        self.hub.admin_gate.require_admin(principal)
        return self.hub.stats_manager.as_dict()

    # Namespace

    async def add_category(self, principal: Principal, path: str) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        segments = self._path(path)
        name = "/".join(segments)
        if self.hub.tree.ensure_category(segments):
            self._audit(principal, "add-category", name)
            await self.hub.broadcaster.to_all(
                paths_event(self.hub.tree.snapshot(include_state=False))
            )
            return CommandResult(True, f"Category {name} added.")
        return CommandResult(True, f"Category {name} already exists.")

    async def add_room(self, principal: Principal, path: str) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        segments = self._path(path)
        room, created = self.hub.tree.resolve_or_create_ex(segments)
        if not created:
            return CommandResult(True, f"Room {room.name} already exists.")

        self._audit(principal, "add-room", room.name)
        await self.hub.broadcaster.to_all(
            paths_event(self.hub.tree.snapshot(include_state=False))
        )
        return CommandResult(True, f"Room {room.name} added.")

    # Message history

    async def clear_messages(self, principal: Principal, path: str) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        room = self._room(path)
        async with room.lock:
            removed = room.messages.clear()
            await self.hub.broadcaster.to_room(room, clear_event())
        self._audit(principal, "clear-messages", room.name, f"removed={removed}")
        return CommandResult(True, f"Messages cleared for room {room.name}")

    async def delete_message(
        self, principal: Principal, path: str, index: int
    ) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        room = self._room(path)
        async with room.lock:
            # Raises OutOfRange with the log untouched.
            room.messages.delete_at(index)
            await self.hub.broadcaster.to_room(room, history_event(room))
        self._audit(principal, "delete-message", room.name, f"index={index}")
        return CommandResult(True, "Message deleted")

    # Settings

    async def set_anonymous(
        self, principal: Principal, path: str, anonymous: bool
    ) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        room = self._room(path)
        async with room.lock:
            room.settings.anonymous = bool(anonymous)
            await self.hub.broadcaster.to_room(room, anonymous_event(room))
            await self.hub.broadcaster.to_room(room, history_event(room))
        self._audit(principal, "anonymous", room.name, f"value={room.settings.anonymous}")
        return CommandResult(True, f"Anonymous mode is {room.settings.anonymous}")

    async def set_character_limit(
        self, principal: Principal, path: str, limit: int
    ) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise InvalidArgument("characterLimit must be a non-negative integer")
        room = self._room(path)
        async with room.lock:
            room.settings.character_limit = limit
            await self.hub.broadcaster.to_room(room, character_limit_event(room))
        self._audit(principal, "character-limit", room.name, f"value={limit}")
        return CommandResult(True, f"Character limit for {room.name} is {limit}")

    # Moderation

    async def kick_client(
        self, principal: Principal, path: str, client_id: str
    ) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        room = self._room(path)
        session = room.clients.get(client_id)
        if session is None:
            raise ClientNotFound(client_id)

        await self.hub.session_manager.close(
            session, code=CLOSE_POLICY_VIOLATION, reason=f"kicked from {room.name}"
        )
        self.hub.stats_manager.inc("kicks")
        self._audit(principal, "kick", room.name, f"client_id={client_id}")
        return CommandResult(True, f"Client {client_id} kicked.")

    async def ban_in_room(self, principal: Principal, path: str, ip: str) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        ip = _clean_ip(ip)
        room = self._room(path)
        closed = await self.hub.moderation.ban_in_room(room, ip)
        self._audit(principal, "ban", room.name, f"ip={ip} closed={closed}")
        return CommandResult(True, f"IP {ip} has been banned from room {room.name}")

    async def ban_globally(self, principal: Principal, ip: str) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        ip = _clean_ip(ip)
        closed = await self.hub.moderation.ban_globally(ip)
        self._audit(principal, "ban-global", "*", f"ip={ip} closed={closed}")
        return CommandResult(True, f"IP {ip} has been banned globally")

    # Persistence

    def save(self, principal: Principal) -> CommandResult:
        self.hub.admin_gate.require_admin(principal)
        try:
            self.hub.save_state()
        except OSError as e:
            self.log.error("Save failed: %s", e)
            raise InternalError("Failed to save chat.") from e
        self._audit(principal, "save", self.hub.store.path or "-")
        return CommandResult(True, "Chat saved!")


def _clean_ip(ip: Any) -> str:
    if not isinstance(ip, str) or not ip.strip():
        raise InvalidArgument("Invalid room or IP")
    return ip.strip()
