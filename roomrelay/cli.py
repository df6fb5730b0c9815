from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

import tomlkit
import uvicorn

from .app import create_app
from .config import ConfigManager, RelayRuntimeConfig
from .logging_config import configure_logging
from .paths import default_config_path, default_state_path, ensure_private_dir
from .service import RelayService


def _default_config_document(state_path: str) -> tomlkit.TOMLDocument:
    defaults = RelayRuntimeConfig()
    doc = tomlkit.document()
    doc.add(tomlkit.comment("roomrelay configuration (TOML)"))
    doc.add(tomlkit.comment(""))
    doc.add(tomlkit.comment("This file was created on first run."))
    doc.add(tomlkit.comment("Edit it, then start roomrelayd again."))
    doc.add(tomlkit.nl())

    relay = tomlkit.table()
    relay.add("host", defaults.host)
    relay.add("port", defaults.port)
    relay.add(tomlkit.nl())

    relay.add(tomlkit.comment("Rooms, messages and the global ban list are saved here by"))
    relay.add(tomlkit.comment("POST /save-chat and on shutdown (save_on_shutdown)."))
    relay.add("state_path", state_path)
    relay.add("save_on_shutdown", defaults.save_on_shutdown)
    relay.add(tomlkit.nl())

    relay.add(tomlkit.comment("Control plane access: callers from admin_ips, or callers"))
    relay.add(tomlkit.comment("presenting admin_token as a Bearer token, are admins."))
    relay.add("admin_ips", list(defaults.admin_ips))
    relay.add("admin_token", "")
    relay.add(tomlkit.nl())

    relay.add(tomlkit.comment("IPs refused everywhere, in addition to bans saved in state."))
    relay.add("banned_ips", [])
    relay.add(tomlkit.comment("Take the client IP from X-Forwarded-For (behind a proxy only)."))
    relay.add("trust_forwarded_for", defaults.trust_forwarded_for)
    relay.add(tomlkit.nl())

    relay.add(tomlkit.comment("Create rooms on first join. When false, only the control"))
    relay.add(tomlkit.comment("plane creates rooms and joining an unknown path disconnects."))
    relay.add("auto_create_rooms", defaults.auto_create_rooms)
    relay.add(tomlkit.nl())

    relay.add(tomlkit.comment("Limits. A character limit of 0 disables the check."))
    relay.add("username_max_chars", defaults.username_max_chars)
    relay.add("max_path_depth", defaults.max_path_depth)
    relay.add("max_segment_len", defaults.max_segment_len)
    relay.add("default_character_limit", defaults.default_character_limit)
    relay.add("max_file_bytes", defaults.max_file_bytes)
    doc.add("relay", relay)

    logging_tbl = tomlkit.table()
    logging_tbl.add("level", defaults.log_level)
    logging_tbl.add("uvicorn_level", defaults.log_uvicorn_level)
    logging_tbl.add("console", defaults.log_console)
    logging_tbl.add(tomlkit.comment("Optional file path for logs (leave empty to disable)."))
    logging_tbl.add("file", "")
    logging_tbl.add("format", defaults.log_format)
    logging_tbl.add("datefmt", "")
    doc.add("logging", logging_tbl)
    return doc


def _write_default_config(config_path: str, state_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(tomlkit.dumps(_default_config_document(state_path)))
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        pass


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="roomrelayd", description="Run a room relay server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument(
        "--state",
        default=None,
        help="Path to the saved rooms/bans state file (default comes from config)",
    )
    p.add_argument("--host", default=None, help="Bind address")
    p.add_argument("--port", type=int, default=None, help="Bind port")

    p.add_argument(
        "--admin-ip",
        action="append",
        default=None,
        help="Address allowed to use the control plane (repeatable; replaces config)",
    )
    p.add_argument(
        "--admin-token",
        default=None,
        help="Bearer token that grants control plane access",
    )
    p.add_argument(
        "--no-auto-create",
        action="store_true",
        help="Do not create rooms on join; only the control plane creates them",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> RelayRuntimeConfig:
    cfg = RelayRuntimeConfig(
        config_path=str(args.config), state_path=str(default_state_path())
    )

    if args.config and os.path.exists(args.config):
        cfg = ConfigManager(cfg).load(str(args.config))

    if args.state is not None:
        cfg = replace(cfg, state_path=str(args.state) or None)
    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.admin_ip:
        cfg = replace(cfg, admin_ips=tuple(str(ip) for ip in args.admin_ip))
    if args.admin_token is not None:
        cfg = replace(cfg, admin_token=str(args.admin_token) or None)
    if args.no_auto_create:
        cfg = replace(cfg, auto_create_rooms=False)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    if not os.path.exists(config_path):
        state_path = str(args.state) if args.state else str(default_state_path())
        _write_default_config(config_path, state_path)
        print(
            "Created default roomrelay config. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            f"- State:  {state_path}\n"
            "\nThen re-run roomrelayd.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = build_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = RelayService(cfg)
    uvicorn.run(create_app(svc), host=cfg.host, port=cfg.port, log_config=None)


if __name__ == "__main__":
    main()
