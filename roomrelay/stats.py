"""Statistics tracking and reporting for the relay."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .service import RelayService


class StatsManager:
    """
    Manages relay statistics collection and reporting.

    Tracks counters for:
    - Connections and closes
    - Inbound events (accepted, malformed, dropped)
    - Joins, messages, files, deletes, pings
    - Broadcasts, outbound events and bytes
    - Moderation (bans, kicks, forbidden calls)
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "closes": 0,
            "events_in": 0,
            "events_bad": 0,
            "events_dropped": 0,
            "bytes_in": 0,
            "bytes_out": 0,
            "events_out": 0,
            "send_failures": 0,
            "joins": 0,
            "joins_rejected": 0,
            "messages": 0,
            "files": 0,
            "deletes": 0,
            "pings_in": 0,
            "broadcasts": 0,
            "room_bans": 0,
            "global_bans": 0,
            "kicks": 0,
            "forbidden": 0,
            "saves": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def uptime_s(self) -> float:
        if self.started_monotonic is None:
            return 0.0
        return time.monotonic() - self.started_monotonic

    def as_dict(self) -> dict[str, Any]:
        from . import __version__

        rooms = self.hub.tree.rooms()
        top_rooms = sorted(
            ((r.name, len(r.clients)) for r in rooms),
            key=lambda x: (-x[1], x[0]),
        )[:5]
        with self._lock:
            counters = dict(self._counters)

        return {
            "version": __version__,
            "uptime_s": round(self.uptime_s(), 1),
            "sessions": self.hub.session_manager.get_stats(),
            "rooms": {
                "total": len(rooms),
                "memberships": sum(len(r.clients) for r in rooms),
                "top": [{"path": name, "clients": n} for name, n in top_rooms],
            },
            "moderation": self.hub.moderation.get_stats(),
            "admin": self.hub.admin_gate.get_stats(),
            "counters": counters,
        }

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        d = self.as_dict()
        c = d["counters"]
        s = d["sessions"]
        r = d["rooms"]

        lines: list[str] = []
        lines.append(f"roomrelay {d['version']} stats")
        lines.append(f"uptime_s={d['uptime_s']:.1f}")
        lines.append(
            f"clients_total={s['total']} clients_joined={s['joined']} "
            f"clients_connecting={s['connecting']}"
        )
        lines.append(f"rooms={r['total']} memberships={r['memberships']}")
        if r["top"]:
            lines.append(
                "top_rooms=" + ", ".join(f"{t['path']}:{t['clients']}" for t in r["top"])
            )
        lines.append(f"moderation: global_banned={d['moderation']['global_banned']}")
        lines.append(
            "io: events_in={} events_bad={} events_dropped={} bytes_in={} bytes_out={}".format(
                c.get("events_in", 0),
                c.get("events_bad", 0),
                c.get("events_dropped", 0),
                c.get("bytes_in", 0),
                c.get("bytes_out", 0),
            )
        )
        lines.append(
            "events: joins={} messages={} files={} deletes={} pings={} broadcasts={}".format(
                c.get("joins", 0),
                c.get("messages", 0),
                c.get("files", 0),
                c.get("deletes", 0),
                c.get("pings_in", 0),
                c.get("broadcasts", 0),
            )
        )
        lines.append(
            "admin: room_bans={} global_bans={} kicks={} forbidden={} saves={}".format(
                c.get("room_bans", 0),
                c.get("global_bans", 0),
                c.get("kicks", 0),
                c.get("forbidden", 0),
                c.get("saves", 0),
            )
        )
        return "\n".join(lines)
