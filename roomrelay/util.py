from __future__ import annotations

import os

from .constants import PATH_SEPARATOR
from .errors import InvalidPath


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def _has_control_chars(s: str) -> bool:
    return any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in s)


def normalize_username(value, *, max_chars: int = 32) -> str | None:
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if max_chars > 0 and len(s) > int(max_chars):
        return None

    # Keep this conservative: embedded newlines or NUL frequently break
    # UI/log formatting.
    if _has_control_chars(s):
        return None

    return s


def parse_path(
    value, *, max_depth: int = 8, max_segment_len: int = 64
) -> tuple[str, ...]:
    """Split a slash-delimited room path into its segments.

    Leading and trailing separators are ignored; empty inner segments are not.
    Raises InvalidPath.
    """
    if isinstance(value, (tuple, list)):
        value = PATH_SEPARATOR.join(str(p) for p in value)
    if not isinstance(value, str):
        raise InvalidPath("path must be a string")

    s = value.strip().strip(PATH_SEPARATOR)
    if not s:
        raise InvalidPath("path must not be empty")

    segments = tuple(s.split(PATH_SEPARATOR))
    if any(not seg.strip() for seg in segments):
        raise InvalidPath(f"path {value!r} has an empty segment")
    # Segments compare verbatim; surrounding whitespace is rejected, not trimmed.
    if any(seg != seg.strip() for seg in segments):
        raise InvalidPath(f"path {value!r} has a segment with surrounding whitespace")
    if max_depth > 0 and len(segments) > max_depth:
        raise InvalidPath(f"path {value!r} is deeper than {max_depth} segments")
    for seg in segments:
        if max_segment_len > 0 and len(seg) > max_segment_len:
            raise InvalidPath(f"path segment too long: {seg[:16]!r}...")
        if _has_control_chars(seg):
            raise InvalidPath("path segment contains control characters")

    return segments


def format_path(segments: tuple[str, ...]) -> str:
    return PATH_SEPARATOR.join(segments)
