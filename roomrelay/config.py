from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any


@dataclass(frozen=True)
class RelayRuntimeConfig:
    config_path: str | None = None
    state_path: str | None = None
    host: str = "0.0.0.0"
    port: int = 8080
    admin_ips: tuple[str, ...] = ("127.0.0.1", "::1")
    admin_token: str | None = None
    banned_ips: tuple[str, ...] = ()
    trust_forwarded_for: bool = False
    auto_create_rooms: bool = True
    save_on_shutdown: bool = True
    username_max_chars: int = 32
    max_path_depth: int = 8
    max_segment_len: int = 64
    default_character_limit: int = 1000
    max_file_bytes: int = 5 * 1024 * 1024
    log_level: str = "INFO"
    log_uvicorn_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    log_datefmt: str | None = None


class ConfigManager:
    """Loads the TOML config file and merges it into a runtime config."""

    def __init__(self, config: RelayRuntimeConfig) -> None:
        self.config = config

    def load_toml(self, path: str) -> dict:
        import tomllib

        with open(path, "rb") as f:
            data = tomllib.load(f)
        return data if isinstance(data, dict) else {}

    def apply_config_data(
        self, base: RelayRuntimeConfig, data: dict[str, Any]
    ) -> RelayRuntimeConfig:
        relay = data.get("relay") if isinstance(data, dict) else None
        if isinstance(relay, dict):
            data = {**data, **relay}

        log_table = data.get("logging") if isinstance(data, dict) else None
        if isinstance(log_table, dict):
            mapped: dict[str, object] = {}
            if "level" in log_table:
                mapped["log_level"] = log_table.get("level")
            if "uvicorn_level" in log_table:
                mapped["log_uvicorn_level"] = log_table.get("uvicorn_level")
            if "console" in log_table:
                mapped["log_console"] = log_table.get("console")
            if "file" in log_table:
                mapped["log_file"] = log_table.get("file")
            if "format" in log_table:
                mapped["log_format"] = log_table.get("format")
            if "datefmt" in log_table:
                mapped["log_datefmt"] = log_table.get("datefmt")
            data = {**data, **mapped}

        allowed = set(asdict(base).keys())
        # This identifies where to load from; do not let the file override it.
        allowed.discard("config_path")

        updates = {k: v for k, v in data.items() if k in allowed}

        for list_key in ("admin_ips", "banned_ips"):
            if list_key in updates and isinstance(updates[list_key], list):
                updates[list_key] = tuple(
                    str(x).strip() for x in updates[list_key] if str(x).strip()
                )

        for optional_key in ("admin_token", "log_file", "log_datefmt", "state_path"):
            if optional_key in updates and updates[optional_key] == "":
                updates[optional_key] = None

        return replace(base, **updates) if updates else base

    def load(self, path: str) -> RelayRuntimeConfig:
        """Read ``path`` and return the merged config (also kept on self)."""
        data = self.load_toml(path)
        self.config = self.apply_config_data(self.config, data)
        return self.config
