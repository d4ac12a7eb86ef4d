"""
bucketsync runtime layer.

This module holds the error taxonomy shared by every component and the job
executor used by the transfer pool: ``download_object()`` streams one remote
object into its destination path with an atomic temp-file + rename write.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .runtime_types import ProgressCallback, SessionProgress, TransferJob

if TYPE_CHECKING:
    from .storage.base import RemoteStore

__all__ = [
    "download_object",
    "BucketSyncError",
    "UnsafePath",
    "TransferError",
    "TransferCancelled",
    "EmptyPrefix",
    "LocalIOError",
    "SessionCancelled",
    "DownloadIncomplete",
]

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".bucketsync.tmp."

# mkstemp creates 0600 files; finished downloads get 0666 masked by the process umask
_UMASK = os.umask(0)
os.umask(_UMASK)
FILE_MODE = 0o666 & ~_UMASK


# Exception Types
class BucketSyncError(Exception):
    """Base class for all bucketsync errors."""
    pass


class UnsafePath(BucketSyncError, ValueError):
    """
    Raised when a remote key would resolve outside the destination root.

    Keys are chosen by whoever can write to the bucket, so they are never
    coerced into a "safe" approximation. This corresponds to exit code 2.
    """
    pass


class TransferError(BucketSyncError):
    """
    Raised on network, permission or remote-side failures.

    Recorded per file during a session; raised directly only by listing or
    metadata calls made before a session starts. This corresponds to exit code 3.
    """
    pass


class TransferCancelled(BucketSyncError):
    """Raised inside a transfer when the session's cancel token fires."""
    pass


class EmptyPrefix(BucketSyncError):
    """
    Raised when a listing yields no addressable objects.

    This corresponds to exit code 1.
    """
    def __init__(self, bucket: str, prefix: str):
        super().__init__(f"no objects found under {bucket}/{prefix}")
        self.bucket = bucket
        self.prefix = prefix


class LocalIOError(BucketSyncError):
    """
    Raised when a local directory or file cannot be created or written.

    This corresponds to exit code 4.
    """
    pass


class SessionCancelled(BucketSyncError):
    """
    Raised by blocking orchestrator calls when cancellation ended the session.

    ``progress`` is the final snapshot, whose status is ``cancelled``.
    This corresponds to exit code 130.
    """
    def __init__(self, progress: Optional[SessionProgress] = None):
        super().__init__("download session cancelled")
        self.progress = progress


class DownloadIncomplete(BucketSyncError):
    """
    Raised at the CLI boundary when a session finished with failed files.

    This corresponds to exit code 12.
    """
    def __init__(self, progress: SessionProgress):
        super().__init__(
            f"{progress.failed_files} of {progress.total_files} files failed to download"
        )
        self.progress = progress


def download_object(store: "RemoteStore", job: TransferJob, on_progress: ProgressCallback) -> None:
    """
    Download one object to ``job.local_path``.

    The object is streamed into a temporary file next to the destination and
    renamed into place only once the store reports success, so a destination
    path never holds a half-written file.

    On cancellation the partial temporary file is left on disk; any other
    failure removes it.

    Args:
        store: Remote store to fetch from
        job: Transfer job with bucket, key and resolved local path
        on_progress: Called with cumulative bytes written; may raise
            TransferCancelled to abort the transfer

    Raises:
        LocalIOError: If the destination directory or file cannot be written
        TransferError: If the remote fetch fails
        TransferCancelled: If the session was cancelled mid-transfer
    """
    target_path = Path(job.local_path)

    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=target_path.parent)
    except OSError as e:
        raise LocalIOError(f"cannot create {target_path}: {e}") from e

    temp_path = Path(temp_name)
    logger.debug(f"Fetching {job.bucket}/{job.key} -> {target_path}")

    try:
        with os.fdopen(fd, "wb") as out:
            store.fetch(job.bucket, job.key, out, on_progress)
            out.flush()
            os.fsync(out.fileno())

        if target_path.is_dir():
            raise LocalIOError(f"destination is a directory: {target_path}")
        os.chmod(temp_path, FILE_MODE)
        os.replace(temp_path, target_path)

    except TransferCancelled:
        logger.debug(f"Cancelled {job.key}, leaving partial file {temp_path}")
        raise
    except OSError as e:
        _discard(temp_path)
        raise LocalIOError(f"cannot write {target_path}: {e}") from e
    except Exception:
        _discard(temp_path)
        raise


def _discard(temp_path: Path) -> None:
    try:
        temp_path.unlink()
    except FileNotFoundError:
        pass
