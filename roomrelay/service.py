from __future__ import annotations

import logging

from .broadcast import BroadcastRouter
from .commands import ControlPlane
from .config import RelayRuntimeConfig
from .constants import CLOSE_GOING_AWAY
from .moderation import ModerationGuard
from .router import MessageRouter
from .session import SessionManager
from .stats import StatsManager
from .storage import StateStore
from .tree import PathTree
from .trust import AdminGate


class RelayService:
    """Owns every piece of relay state for one process.

    Built from a config, populated from persisted state by start(), and torn
    down by stop(). Nothing here is module-global, so tests can run several
    independent services side by side.
    """

    def __init__(self, config: RelayRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("roomrelay.hub")

        self.stats_manager = StatsManager(self)
        self.tree = PathTree(default_character_limit=config.default_character_limit)
        self.session_manager = SessionManager(self)
        self.moderation = ModerationGuard(self)
        self.admin_gate = AdminGate(self)
        self.broadcaster = BroadcastRouter(self)
        self.router = MessageRouter(self)
        self.control = ControlPlane(self)
        self.store = StateStore(config.state_path)

        self.admin_gate.load_from_config(config.admin_ips, config.admin_token)

        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        self.stats_manager.set_start_time()
        self.load_state()
        self.moderation.load(self.config.banned_ips)
        self._started = True

        self.log.info(
            "Relay started rooms=%s global_banned=%s state_path=%s",
            len(self.tree.rooms()),
            len(self.moderation.banned_ips()),
            self.store.path or "-",
        )
        self.log.info(
            "Policy auto_create_rooms=%s default_character_limit=%s max_file_bytes=%s "
            "max_path_depth=%s max_segment_len=%s",
            self.config.auto_create_rooms,
            self.config.default_character_limit,
            self.config.max_file_bytes,
            self.config.max_path_depth,
            self.config.max_segment_len,
        )

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False

        sessions = self.session_manager.clear_all()
        for session in sessions:
            try:
                await session.transport.close(CLOSE_GOING_AWAY)
            except Exception as e:
                self.log.debug("Close on shutdown failed client_id=%s: %s", session.client_id, e)

        if self.config.save_on_shutdown and self.store.path:
            try:
                self.save_state()
            except OSError as e:
                self.log.error("Save on shutdown failed: %s", e)

        self.log.info("Relay stopped sessions_closed=%s", len(sessions))
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("Final stats:\n%s", self.stats_manager.format_stats())

    def load_state(self) -> None:
        loaded = self.store.load()
        if loaded is None:
            self.tree.clear()
            return
        paths, banned = loaded
        rooms = self.tree.load_snapshot(paths)
        self.moderation.load(banned)
        self.log.info("Loaded state rooms=%s global_banned=%s", rooms, len(banned))

    def save_state(self) -> int:
        """Persist the namespace and global bans. Raises OSError on failure."""
        n = self.store.save(
            self.tree.snapshot(include_state=True), self.moderation.banned_ips()
        )
        self.stats_manager.inc("saves")
        return n
