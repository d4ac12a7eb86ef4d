"""
Runtime types for bucketsync download sessions.

These types are shared by the planner, the transfer pool, the progress tracker
and the orchestrator. They are plain frozen dataclasses: once built they are
never mutated, and the progress tracker replaces entries instead of editing
them in place.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional

__all__ = [
    "RemoteObject",
    "TransferJob",
    "Status",
    "FileProgress",
    "SessionProgress",
    "SyncPlan",
    "ProgressCallback",
    "SnapshotCallback",
]

# Called by a store with the cumulative number of bytes written so far
ProgressCallback = Callable[[int], None]


class Status(str, Enum):
    """Lifecycle status of one file or of a whole session."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({Status.COMPLETED, Status.FAILED, Status.CANCELLED})


@dataclass(frozen=True, slots=True)
class RemoteObject:
    """
    One entry listed from a remote store.

    ``digest`` is whatever fingerprint the store reports (an S3 ETag, a hex
    Content-MD5, ...). It is only a whole-object content hash when the store's
    ``content_hash_algorithm`` says so. ``is_container`` marks a "folder"
    grouping (common prefix) rather than addressable content.
    """
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    digest: str = ""
    is_container: bool = False

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("key must be non-empty")
        if self.size < 0:
            raise ValueError("size must be non-negative")

    @property
    def display_name(self) -> str:
        """Last path segment, with a trailing slash for containers."""
        name = self.key.rstrip("/").rsplit("/", 1)[-1]
        return f"{name}/" if self.is_container else name


@dataclass(frozen=True, slots=True)
class TransferJob:
    """A single planned download: one remote key to one local path."""
    bucket: str
    key: str
    local_path: str
    size: int


@dataclass(frozen=True, slots=True)
class FileProgress:
    """Progress of one file in the active session."""
    key: str
    local_path: str
    size: int
    transferred: int = 0
    status: Status = Status.PENDING
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass(frozen=True)
class SessionProgress:
    """
    Immutable snapshot of a session's aggregate progress.

    Observers receive these by value; ``files`` is a read-only mapping.
    """
    total_files: int = 0
    completed_files: int = 0
    failed_files: int = 0
    total_bytes: int = 0
    transferred_bytes: int = 0
    current_file: str = ""
    files: Mapping[str, FileProgress] = field(default_factory=lambda: MappingProxyType({}))
    started_at: Optional[datetime] = None
    status: Status = Status.PENDING

    @property
    def percent_complete(self) -> float:
        if self.total_bytes == 0:
            return 100.0 if self.status == Status.COMPLETED else 0.0
        return self.transferred_bytes / self.total_bytes * 100

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def failed(self) -> List[FileProgress]:
        """Failed files, sorted by key."""
        return sorted(
            (fp for fp in self.files.values() if fp.status == Status.FAILED),
            key=lambda fp: fp.key,
        )

    @property
    def cancelled_files(self) -> int:
        return sum(1 for fp in self.files.values() if fp.status == Status.CANCELLED)


SnapshotCallback = Callable[[SessionProgress], None]


@dataclass(frozen=True)
class SyncPlan:
    """Result of comparing remote objects against a local directory."""
    to_download: List[RemoteObject]
    unchanged: List[RemoteObject]
    total_bytes: int

    @property
    def is_empty(self) -> bool:
        return not self.to_download
