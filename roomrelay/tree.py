"""Hierarchical room namespace.

Paths such as ``team/general`` map onto a tree whose nodes are either plain
categories or room-holding nodes. A room-holding node can still have children,
so ``team`` may be a room while ``team/general`` is another.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Iterator, Union

from .errors import RoomNotFound
from .rooms import Room, RoomSettings
from .util import format_path


@dataclass
class Category:
    children: dict[str, Node] = field(default_factory=dict)


@dataclass
class RoomNode:
    room: Room
    children: dict[str, Node] = field(default_factory=dict)


Node = Union[Category, RoomNode]

# Snapshot keys
S_CHILDREN = "children"
S_ROOM = "room"


class PathTree:
    """Maps slash-delimited paths to Room instances."""

    def __init__(self, *, default_character_limit: int = 1000) -> None:
        self.log = logging.getLogger("roomrelay.tree")
        self.default_character_limit = int(default_character_limit)
        self._root = Category()
        # Two concurrent joins on a new path must not create two rooms.
        self._lock = threading.Lock()

    def _walk(self, path: tuple[str, ...]) -> Node | None:
        node: Node = self._root
        for seg in path:
            child = node.children.get(seg)
            if child is None:
                return None
            node = child
        return node

    def resolve(self, path: tuple[str, ...]) -> Room:
        """Look up the room at ``path`` without creating anything."""
        with self._lock:
            node = self._walk(path) if path else None
        if not isinstance(node, RoomNode):
            raise RoomNotFound(format_path(path))
        return node.room

    def find(self, path: tuple[str, ...] | None) -> Room | None:
        if not path:
            return None
        try:
            return self.resolve(path)
        except RoomNotFound:
            return None

    def resolve_or_create_ex(self, path: tuple[str, ...]) -> tuple[Room, bool]:
        """Return ``(room, created)`` for ``path``, creating nodes as needed."""
        if not path:
            raise RoomNotFound("")

        with self._lock:
            parent: Node = self._root
            for seg in path[:-1]:
                child = parent.children.get(seg)
                if child is None:
                    child = Category()
                    parent.children[seg] = child
                parent = child

            last = path[-1]
            node = parent.children.get(last)
            if isinstance(node, RoomNode):
                return node.room, False

            room = Room(
                path,
                settings=RoomSettings(character_limit=self.default_character_limit),
            )
            # Promote an existing category in place, keeping its children.
            children = node.children if node is not None else {}
            parent.children[last] = RoomNode(room=room, children=children)

        self.log.info("Room created path=%s", room.name)
        return room, True

    def resolve_or_create(self, path: tuple[str, ...]) -> Room:
        room, _ = self.resolve_or_create_ex(path)
        return room

    def ensure_category(self, path: tuple[str, ...]) -> bool:
        """Create category nodes along ``path``. Returns True if any were added."""
        created = False
        with self._lock:
            node: Node = self._root
            for seg in path:
                child = node.children.get(seg)
                if child is None:
                    child = Category()
                    node.children[seg] = child
                    created = True
                node = child
        if created:
            self.log.info("Category created path=%s", format_path(path))
        return created

    def exists(self, path: tuple[str, ...]) -> bool:
        with self._lock:
            return self._walk(path) is not None

    def _iter_rooms(self, node: Node) -> Iterator[Room]:
        for child in node.children.values():
            if isinstance(child, RoomNode):
                yield child.room
            yield from self._iter_rooms(child)

    def rooms(self) -> list[Room]:
        with self._lock:
            return list(self._iter_rooms(self._root))

    def _snapshot_node(self, node: Node, *, include_state: bool) -> dict[str, Any]:
        out: dict[str, Any] = {
            S_CHILDREN: {
                seg: self._snapshot_node(child, include_state=include_state)
                for seg, child in node.children.items()
            }
        }
        if isinstance(node, RoomNode):
            out[S_ROOM] = node.room.to_record(include_state=include_state)
        return out

    def snapshot(self, *, include_state: bool = False) -> dict[str, Any]:
        """Nested view of the namespace without live connection handles.

        ``include_state`` adds message logs and ban lists (persistence view).
        """
        with self._lock:
            return self._snapshot_node(self._root, include_state=include_state)[
                S_CHILDREN
            ]

    def _load_node(
        self, parent: Node, prefix: tuple[str, ...], children: Any
    ) -> int:
        if not isinstance(children, dict):
            return 0
        count = 0
        for seg, raw in children.items():
            if not isinstance(seg, str) or not seg or "/" in seg:
                self.log.warning(
                    "Skipping malformed path segment %r under %s",
                    seg,
                    format_path(prefix) or "/",
                )
                continue
            if not isinstance(raw, dict):
                continue
            path = prefix + (seg,)
            node: Node
            if S_ROOM in raw:
                room = Room.from_record(
                    path,
                    raw.get(S_ROOM),
                    default_character_limit=self.default_character_limit,
                )
                node = RoomNode(room=room)
                count += 1
            else:
                node = Category()
            parent.children[seg] = node
            count += self._load_node(node, path, raw.get(S_CHILDREN))
        return count

    def load_snapshot(self, data: dict[str, Any]) -> int:
        """Replace the namespace with a full snapshot. Returns rooms loaded."""
        root = Category()
        count = self._load_node(root, (), data)
        with self._lock:
            self._root = root
        return count

    def clear(self) -> None:
        with self._lock:
            self._root = Category()
