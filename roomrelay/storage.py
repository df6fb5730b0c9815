"""Durable storage for the relay namespace and global ban list."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from .codec import decode_state, encode_state
from .util import expand_path


class StateStore:
    """Reads and writes the single persisted state record.

    Writes go to a temporary file in the same directory and are renamed into
    place, so a failed save never leaves a truncated record behind.
    """

    def __init__(self, path: str | None) -> None:
        self.path = expand_path(str(path)) if path else None
        self.log = logging.getLogger("roomrelay.storage")
        self._write_lock = threading.Lock()

    def load(self) -> tuple[dict[str, Any], list[str]] | None:
        """Return ``(paths, global_banned_ips)`` or None when nothing usable exists.

        Any read or decode failure is logged and treated as "no state".
        """
        if not self.path:
            return None
        if not os.path.exists(self.path):
            self.log.info("No saved state at %s; starting empty", self.path)
            return None

        try:
            with open(self.path, "rb") as f:
                data = f.read()
            return decode_state(data)
        except (OSError, ValueError, TypeError) as e:
            self.log.error("Failed to load state from %s: %s; starting empty", self.path, e)
            return None

    def save(self, paths: dict[str, Any], global_banned_ips: list[str]) -> int:
        """Write the state record. Raises OSError on failure. Returns bytes written."""
        if not self.path:
            raise OSError("no state path configured")

        payload = encode_state(paths, global_banned_ips)
        target = Path(self.path)

        with self._write_lock:
            if target.parent:
                target.parent.mkdir(parents=True, exist_ok=True)

            file_mode = None
            try:
                file_mode = os.stat(target).st_mode
            except OSError:
                file_mode = None

            fd, tmp = tempfile.mkstemp(prefix=".state-", dir=str(target.parent))
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                if file_mode is not None:
                    os.chmod(tmp, file_mode)
                else:
                    os.chmod(tmp, 0o600)
                os.replace(tmp, target)
            except BaseException:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
                raise

        self.log.info("Saved state to %s bytes=%s", self.path, len(payload))
        return len(payload)
