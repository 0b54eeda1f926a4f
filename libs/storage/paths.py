"""Path sanitizer confining stored paths to their storage root.

Every read or delete of a blob whose location comes from the database goes
through :func:`resolve`. Stored paths are derived from user supplied filenames,
so they are treated as hostile.

Rejected outright
-----------------
- empty strings and NUL bytes
- backslashes (Windows separators)
- absolute paths and drive letters
- any ``..`` segment, after percent-decoding until the value is stable

What is left is joined with the root and resolved (symlinks followed); the
result must lie strictly inside the root.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath, PureWindowsPath
from urllib.parse import unquote

from libs.core.exceptions import PathRejected

_MAX_DECODE_ROUNDS = 8


def _decode(candidate: str) -> str:
    value = candidate
    for _ in range(_MAX_DECODE_ROUNDS):
        decoded = unquote(value)
        if decoded == value:
            return value
        value = decoded
    # still changing: nested encoding deeper than any legitimate name
    raise PathRejected(detail="path is encoded too many times")


def resolve(root: Path | str, candidate: str) -> Path:
    """Return the absolute location of ``candidate`` inside ``root``.

    Raises :class:`PathRejected` without touching the filesystem beyond
    resolving the path.
    """
    if not isinstance(candidate, str) or not candidate:
        raise PathRejected(detail="empty path")

    raw = _decode(candidate)
    if not raw or "\x00" in raw:
        raise PathRejected(detail="empty path or NUL byte")
    if "\\" in raw:
        raise PathRejected(detail="backslash in path")
    if raw.startswith("/") or PureWindowsPath(raw).drive:
        raise PathRejected(detail="absolute path")

    parts = PurePosixPath(raw).parts
    if ".." in parts:
        raise PathRejected(detail="parent segment in path")

    base = Path(root).resolve()
    resolved = (base / raw).resolve()
    try:
        rel = resolved.relative_to(base)
    except ValueError as exc:
        raise PathRejected(detail="path resolves outside its root") from exc
    if not rel.parts:
        raise PathRejected(detail="path points at the root itself")
    return resolved


__all__ = ["resolve"]
