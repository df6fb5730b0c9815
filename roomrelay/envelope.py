from __future__ import annotations

import json
import time
from typing import Any

from .constants import (
    F_FILE_TYPE,
    F_FILENAME,
    F_INDEX,
    F_PATH,
    F_RESULT,
    F_TEXT,
    F_USERNAME,
    INBOUND_TYPES,
    K_DATA,
    K_TYPE,
    T_DELETE,
    T_FILE,
    T_JOIN,
    T_MESSAGE,
)


def now_ms() -> int:
    return int(time.time() * 1000)


def make_event(event_type: str, data: Any) -> dict[str, Any]:
    return {K_TYPE: str(event_type), K_DATA: data}


def encode_event(event: dict[str, Any]) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False)


def decode_event(raw: str | bytes) -> dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValueError(f"event is not valid UTF-8: {e}") from e
    try:
        event = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"event is not valid JSON: {e.msg}") from e
    except RecursionError as e:
        raise ValueError("event nests too deeply") from e
    return event


# Required string fields per inbound type; `fileType` is optional on files.
_REQUIRED_STR: dict[str, tuple[str, ...]] = {
    T_JOIN: (F_PATH,),
    T_MESSAGE: (F_PATH, F_TEXT),
    T_FILE: (F_PATH, F_FILENAME, F_RESULT),
    T_DELETE: (F_PATH,),
}


def validate_event(event: Any) -> None:
    if not isinstance(event, dict):
        raise TypeError("event must be a JSON object")

    t = event.get(K_TYPE)
    if not isinstance(t, str):
        raise TypeError("event type must be a string")
    if t not in INBOUND_TYPES:
        raise ValueError(f"unknown event type {t!r}")

    for key in _REQUIRED_STR.get(t, ()):
        if key not in event:
            raise ValueError(f"{t} event missing {key!r}")
        if not isinstance(event[key], str):
            raise TypeError(f"{t} event field {key!r} must be a string")

    if t == T_JOIN and F_USERNAME in event:
        username = event[F_USERNAME]
        if username is not None and not isinstance(username, str):
            raise TypeError("join username must be a string")

    if t == T_MESSAGE and event[F_TEXT] == "":
        raise ValueError("message text must not be empty")

    if t == T_FILE:
        file_type = event.get(F_FILE_TYPE)
        if file_type is not None and not isinstance(file_type, str):
            raise TypeError("file fileType must be a string")
        if event[F_RESULT] == "":
            raise ValueError("file result must not be empty")

    if t == T_DELETE:
        if F_INDEX not in event:
            raise ValueError("delete event missing 'index'")
        index = event[F_INDEX]
        # bool is an int subclass; reject it explicitly.
        if isinstance(index, bool) or not isinstance(index, int):
            raise TypeError("delete index must be an integer")
