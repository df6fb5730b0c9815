"""Logging setup for the relay process and the uvicorn server it runs."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import RelayRuntimeConfig

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Loggers owned by the ASGI server; they propagate to the root handlers.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_LEVEL_ALIASES: dict[str, int] = {"WARN": logging.WARNING}


def level_from(value: Any, default: int) -> int:
    """Turn a config value ("debug", "WARNING", 20, "") into a logging level."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    name = str(value or "").strip().upper()
    if not name:
        return default
    if name in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[name]
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def _blank_to_none(value: Any) -> str | None:
    if value is None or not str(value).strip():
        return None
    return str(value)


def _file_handler(log_file: str) -> logging.Handler:
    target = Path(os.path.expanduser(log_file))
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(target, encoding="utf-8")
    try:
        os.chmod(target, 0o600)
    except OSError:
        pass
    return handler


def build_handlers(
    cfg: RelayRuntimeConfig, *, override_file: str | None = None
) -> list[logging.Handler]:
    """Console and/or file handlers, all sharing the configured formatter.

    ``override_file`` wins over ``cfg.log_file``; an empty override disables
    file logging.
    """
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    log_file = (
        _blank_to_none(override_file)
        if override_file is not None
        else _blank_to_none(cfg.log_file)
    )
    if log_file:
        handlers.append(_file_handler(log_file))

    formatter = logging.Formatter(
        fmt=_blank_to_none(cfg.log_format) or DEFAULT_FORMAT,
        datefmt=_blank_to_none(cfg.log_datefmt),
    )
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    cfg: RelayRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Install roomrelay's handlers on the root logger.

    Replaces whatever handlers the root logger had, so calling it again
    reconfigures rather than duplicates output.
    """
    handlers = build_handlers(cfg, override_file=override_file)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level_from(override_level or cfg.log_level, logging.INFO))

    server_level = level_from(cfg.log_uvicorn_level, logging.WARNING)
    for name in SERVER_LOGGERS:
        logging.getLogger(name).setLevel(server_level)

    logging.captureWarnings(True)
