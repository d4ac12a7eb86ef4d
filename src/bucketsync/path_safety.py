"""
Path safety utilities for bucketsync.

Remote object keys are chosen by anyone who can write to the bucket, so every
key is validated before it becomes a local path. This module maps a key
(relative to a listing prefix) onto a path under the destination root and
refuses anything that could escape it.
"""
from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath

from .runtime import UnsafePath

__all__ = ["safe_relpath", "relative_key", "resolve_local_path"]

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f\u202a-\u202e\u2066-\u2069]")
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def safe_relpath(path: str) -> str:
    """
    Validate and normalize a key-derived relative path.

    This function enforces the following safety rules:
    - No empty strings or "." (would address the root itself)
    - No absolute paths (starting with '/') or Windows drive letters
    - No parent directory references ('..' components)
    - No backslashes (reinterpreted as separators on Windows)
    - No NUL or other control characters (C0, DEL, C1) or bidi overrides

    Args:
        path: Relative path derived from a remote key

    Returns:
        Normalized POSIX relative path ('.' segments and duplicate slashes removed)

    Raises:
        UnsafePath: If path violates safety rules

    Examples:
        >>> safe_relpath("photos/2024/a.jpg")
        'photos/2024/a.jpg'

        >>> safe_relpath("./a/./b.txt")
        'a/b.txt'

        >>> safe_relpath("../secrets.txt")
        UnsafePath: unsafe path: '../secrets.txt'
    """
    if _CONTROL_CHARS.search(path) or "\\" in path or _DRIVE_LETTER.match(path):
        raise UnsafePath(f"unsafe path: {path!r}")

    rel = PurePosixPath(path)
    s = str(rel)
    if not s or s == ".":
        raise UnsafePath(f"unsafe path: {path!r}")
    if rel.is_absolute() or ".." in rel.parts:
        raise UnsafePath(f"unsafe path: {path!r}")
    return s


def relative_key(key: str, prefix: str) -> str:
    """
    Strip a listing prefix from a key.

    When the prefix does not end at a separator, the single separator that
    follows it is dropped as well ("photos" + "photos/a.jpg" -> "a.jpg").
    A key equal to the prefix maps to its own base name.
    """
    if prefix and key.startswith(prefix):
        rel = key[len(prefix):]
        if not prefix.endswith("/") and rel.startswith("/"):
            rel = rel[1:]
    else:
        rel = key
    if not rel:
        rel = key.rstrip("/").rsplit("/", 1)[-1]
    return rel


def resolve_local_path(destination_root: str | os.PathLike, relative: str) -> Path:
    """
    Map a relative key onto a path inside ``destination_root``.

    Containment is checked lexically on the normalized absolute paths; no
    directory is created and symlinks are not followed.

    Args:
        destination_root: Local directory the download is confined to
        relative: Key relative to the listing prefix

    Returns:
        Absolute local path under destination_root

    Raises:
        UnsafePath: If the path cannot be guaranteed to stay under the root
    """
    rel = safe_relpath(relative)
    root = os.path.normpath(os.path.abspath(os.fspath(destination_root)))
    target = os.path.normpath(os.path.join(root, *PurePosixPath(rel).parts))

    if target == root or os.path.commonpath([root, target]) != root:
        raise UnsafePath(f"unsafe path: {relative!r} escapes {root}")
    return Path(target)
