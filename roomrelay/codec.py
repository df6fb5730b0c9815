"""CBOR encoding of the persisted relay state record."""

from __future__ import annotations

from typing import Any

import cbor2

from .constants import STATE_VERSION

K_VERSION = "version"
K_PATHS = "paths"
K_GLOBAL_BANS = "globalBannedIPs"


def encode(obj) -> bytes:
    return cbor2.dumps(obj)


def decode(b: bytes):
    return cbor2.loads(b)


def encode_state(paths: dict[str, Any], global_banned_ips: list[str]) -> bytes:
    return encode(
        {
            K_VERSION: STATE_VERSION,
            K_PATHS: paths,
            K_GLOBAL_BANS: sorted(global_banned_ips),
        }
    )


def decode_state(data: bytes) -> tuple[dict[str, Any], list[str]]:
    """Decode a state record. Raises ValueError/TypeError on malformed input."""
    try:
        record = decode(data)
    except cbor2.CBORDecodeError as e:
        raise ValueError(f"state is not valid CBOR: {e}") from e

    if not isinstance(record, dict):
        raise TypeError("state record must be a map")

    v = record.get(K_VERSION)
    if v != STATE_VERSION:
        raise ValueError(f"unsupported state version {v!r}")

    paths = record.get(K_PATHS, {})
    if not isinstance(paths, dict):
        raise TypeError("state paths must be a map")

    bans = record.get(K_GLOBAL_BANS, [])
    if not isinstance(bans, list):
        raise TypeError("state globalBannedIPs must be a list")

    return paths, [str(ip) for ip in bans if isinstance(ip, str) and ip.strip()]
