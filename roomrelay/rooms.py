"""Room state for the relay.

This module holds everything that lives inside one room:
- The ordered message log (MessageStore) and its anonymized projection
- Room settings (anonymity, character limit)
- The per-room banned IP set
- A non-owning index of the sessions currently joined
- The lock that serializes mutation and broadcast for the room
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Iterator, Union

from .constants import ANONYMOUS_USERNAME, MSG_FILE, MSG_TEXT
from .envelope import now_ms
from .errors import OutOfRange
from .util import format_path

if TYPE_CHECKING:
    from .session import ClientSession

log = logging.getLogger("roomrelay.rooms")


@dataclass(frozen=True)
class TextMessage:
    username: str
    text: str
    timestamp: int | None = None
    type: str = field(default=MSG_TEXT, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "username": self.username,
            "text": self.text,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class FileMessage:
    username: str
    filename: str
    file_type: str
    result: str
    timestamp: int | None = None
    type: str = field(default=MSG_FILE, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "username": self.username,
            "filename": self.filename,
            "fileType": self.file_type,
            "result": self.result,
            "timestamp": self.timestamp,
        }


Message = Union[TextMessage, FileMessage]


def message_from_dict(d: Any) -> Message | None:
    """Rebuild a stored message; returns None for malformed records."""
    if not isinstance(d, dict):
        return None

    username = d.get("username")
    ts = d.get("timestamp")
    if not isinstance(username, str):
        return None
    if isinstance(ts, bool) or not isinstance(ts, int):
        ts = None

    kind = d.get("type", MSG_TEXT)
    if kind == MSG_TEXT:
        text = d.get("text")
        if not isinstance(text, str):
            return None
        return TextMessage(username=username, text=text, timestamp=ts)
    if kind == MSG_FILE:
        filename = d.get("filename")
        result = d.get("result")
        file_type = d.get("fileType") or ""
        if not isinstance(filename, str) or not isinstance(result, str):
            return None
        return FileMessage(
            username=username,
            filename=filename,
            file_type=str(file_type),
            result=result,
            timestamp=ts,
        )
    return None


class MessageStore:
    """Ordered, append-only message log with index-based deletion."""

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or ())

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def append(self, msg: Message) -> Message:
        """Stamp ``msg`` with the current time and append it."""
        stamped = replace(msg, timestamp=now_ms())
        self._messages.append(stamped)
        return stamped

    def projected_view(self, anonymize: bool) -> list[Message]:
        if not anonymize:
            return list(self._messages)
        return [replace(m, username=ANONYMOUS_USERNAME) for m in self._messages]

    def delete_at(self, index: int) -> Message:
        if not 0 <= index < len(self._messages):
            raise OutOfRange(index, len(self._messages))
        return self._messages.pop(index)

    def clear(self) -> int:
        n = len(self._messages)
        self._messages.clear()
        return n

    def to_records(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    @classmethod
    def from_records(cls, records: Any) -> MessageStore:
        messages: list[Message] = []
        if isinstance(records, list):
            for rec in records:
                m = message_from_dict(rec)
                if m is None:
                    log.warning("Skipping malformed stored message: %r", rec)
                    continue
                messages.append(m)
        return cls(messages)


@dataclass
class RoomSettings:
    anonymous: bool = False
    character_limit: int = 1000

    def to_dict(self) -> dict[str, Any]:
        return {"anonymous": self.anonymous, "characterLimit": self.character_limit}

    @classmethod
    def from_dict(cls, d: Any, *, default_character_limit: int) -> RoomSettings:
        if not isinstance(d, dict):
            return cls(character_limit=default_character_limit)
        limit = d.get("characterLimit", default_character_limit)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            limit = default_character_limit
        return cls(anonymous=bool(d.get("anonymous", False)), character_limit=limit)


class Room:
    """One addressable chat channel at a path."""

    def __init__(
        self,
        path: tuple[str, ...],
        *,
        settings: RoomSettings | None = None,
        messages: MessageStore | None = None,
        banned_ips: set[str] | None = None,
    ) -> None:
        self.path = tuple(path)
        self.settings = settings or RoomSettings()
        self.messages = messages or MessageStore()
        self.banned_ips: set[str] = set(banned_ips or ())
        # Sessions are owned by the SessionManager; this is only an index.
        self.clients: weakref.WeakValueDictionary[str, ClientSession] = (
            weakref.WeakValueDictionary()
        )
        self.lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return format_path(self.path)

    def __repr__(self) -> str:
        return f"Room({self.name!r}, clients={len(self.clients)}, messages={len(self.messages)})"

    def members(self) -> list[ClientSession]:
        return list(self.clients.values())

    def history_view(self) -> list[dict[str, Any]]:
        """The message log as clients see it, honoring the anonymity setting."""
        return [m.to_dict() for m in self.messages.projected_view(self.settings.anonymous)]

    def is_banned(self, ip: str | None) -> bool:
        return ip is not None and ip in self.banned_ips

    def to_record(self, *, include_state: bool) -> dict[str, Any]:
        rec: dict[str, Any] = {"settings": self.settings.to_dict()}
        if include_state:
            rec["messages"] = self.messages.to_records()
            rec["bannedIPs"] = sorted(self.banned_ips)
        else:
            rec["clients"] = len(self.clients)
            rec["messages"] = len(self.messages)
        return rec

    @classmethod
    def from_record(
        cls, path: tuple[str, ...], rec: Any, *, default_character_limit: int
    ) -> Room:
        if not isinstance(rec, dict):
            rec = {}
        bans = rec.get("bannedIPs", [])
        return cls(
            path,
            settings=RoomSettings.from_dict(
                rec.get("settings"), default_character_limit=default_character_limit
            ),
            messages=MessageStore.from_records(rec.get("messages", [])),
            banned_ips={str(ip) for ip in bans if isinstance(ip, str) and ip.strip()}
            if isinstance(bans, list)
            else set(),
        )
