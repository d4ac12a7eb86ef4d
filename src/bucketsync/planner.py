"""
Sync planning: decide which remote objects are already present locally.

The comparison is deliberately conservative. A file is reported unchanged
only when its size matches and its content hash equals a remote digest that is
known to be a whole-object hash. Anything uncertain is downloaded again.
"""
from __future__ import annotations

import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .path_safety import relative_key, resolve_local_path
from .runtime import UnsafePath
from .runtime_types import RemoteObject, SyncPlan

__all__ = ["plan_sync", "etag_hash_algorithm", "compute_file_hash", "HashAlgorithmFn"]

logger = logging.getLogger(__name__)

HashAlgorithmFn = Callable[[RemoteObject], Optional[str]]

_MD5_HEX = re.compile(r"^[0-9a-f]{32}$")


def etag_hash_algorithm(obj: RemoteObject) -> Optional[str]:
    """
    Hash family of an S3-style ETag, or None when it is not a content hash.

    Multipart uploads report "<hash-of-part-hashes>-<part count>", which can
    never be reproduced from the local file; single-part ETags are the MD5 of
    the object.

    Examples:
        >>> etag_hash_algorithm(RemoteObject("k", 3, digest="d41d8cd98f00b204e9800998ecf8427e"))
        'md5'
        >>> etag_hash_algorithm(RemoteObject("k", 3, digest="d41d8cd9-3")) is None
        True
    """
    digest = obj.digest.strip('"').lower()
    if "-" in digest:
        return None
    if _MD5_HEX.match(digest):
        return "md5"
    return None


def compute_file_hash(file_path: Path, algorithm: str = "md5") -> str:
    """
    Compute the hex digest of a file's contents.

    Args:
        file_path: Path to file
        algorithm: hashlib algorithm name

    Returns:
        Lowercase hex digest
    """
    hash_obj = hashlib.new(algorithm)

    with open(file_path, "rb") as f:
        # Read in chunks to handle large files
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            hash_obj.update(chunk)

    return hash_obj.hexdigest()


def plan_sync(
    objects: Iterable[RemoteObject],
    destination_root: str | os.PathLike,
    key_prefix: str,
    *,
    hash_algorithm: HashAlgorithmFn = etag_hash_algorithm,
) -> SyncPlan:
    """
    Classify remote objects as needing download or unchanged.

    Args:
        objects: Remote objects listed under key_prefix (containers are ignored)
        destination_root: Local directory the prefix is synced into
        key_prefix: Prefix stripped from keys to build local paths
        hash_algorithm: Store-specific predicate returning the hash family of
            an object's digest, or None when the digest is not a whole-object
            content hash

    Returns:
        SyncPlan with to_download, unchanged and the bytes to transfer
    """
    to_download: List[RemoteObject] = []
    unchanged: List[RemoteObject] = []

    for obj in objects:
        if obj.is_container:
            continue
        if _is_unchanged(obj, destination_root, key_prefix, hash_algorithm):
            unchanged.append(obj)
        else:
            to_download.append(obj)

    total_bytes = sum(obj.size for obj in to_download)
    logger.debug(
        f"Sync plan for {key_prefix!r}: {len(to_download)} to download "
        f"({total_bytes} bytes), {len(unchanged)} unchanged"
    )
    return SyncPlan(to_download=to_download, unchanged=unchanged, total_bytes=total_bytes)


def _is_unchanged(
    obj: RemoteObject,
    destination_root: str | os.PathLike,
    key_prefix: str,
    hash_algorithm: HashAlgorithmFn,
) -> bool:
    try:
        local_path = resolve_local_path(destination_root, relative_key(obj.key, key_prefix))
    except UnsafePath:
        return False

    try:
        stat = local_path.stat()
    except OSError:
        return False
    if not local_path.is_file() or stat.st_size != obj.size:
        return False

    algorithm = hash_algorithm(obj)
    if algorithm is None:
        return False

    try:
        local_hash = compute_file_hash(local_path, algorithm)
    except (OSError, ValueError) as e:
        logger.debug(f"Cannot hash {local_path}: {e}")
        return False

    return local_hash == obj.digest.strip('"').lower()
