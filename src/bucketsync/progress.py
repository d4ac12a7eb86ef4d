"""
Progress tracking for download sessions.

``ProgressTracker`` is the single owner of a session's mutable state. Workers
report deltas through its methods; they never hold a reference to the entries
it keeps. Every mutation runs under one lock, and observers receive immutable
``SessionProgress`` snapshots in the order the mutations happened.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Optional

from .runtime_types import (
    FileProgress,
    SessionProgress,
    SnapshotCallback,
    Status,
    TransferJob,
)

__all__ = ["ProgressTracker"]

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProgressTracker:
    """
    Thread-safe owner of one session's progress.

    Usage:
        tracker = ProgressTracker()
        unsubscribe = tracker.subscribe(print)
        tracker.begin(jobs)
        tracker.report_bytes(job.key, 1024)
        tracker.report_terminal(job.key, Status.COMPLETED)
        final = tracker.snapshot()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # Serialises publication so observers see snapshots in mutation order
        self._publish_lock = threading.Lock()
        self._subscribers: List[SnapshotCallback] = []
        self._detached = False

        self._files: Dict[str, FileProgress] = {}
        self._order: List[str] = []
        self._total_bytes = 0
        self._transferred = 0
        self._completed = 0
        self._failed = 0
        self._terminal = 0
        self._cancelled = False
        self._current = ""
        self._started_at: Optional[datetime] = None
        self._status = Status.PENDING

    # Subscription

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Register an observer for snapshots.

        Returns:
            Function that removes the observer again
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def detach(self) -> None:
        """Stop publishing; used when a newer session replaces this one."""
        with self._lock:
            self._detached = True
            self._subscribers.clear()

    # Mutations

    def begin(self, jobs: Iterable[TransferJob]) -> None:
        """
        Initialize one pending entry per job and mark the session in progress.

        A session with zero jobs is complete immediately.
        """
        with self._lock:
            self._files = {}
            self._order = []
            for job in jobs:
                self._files[job.key] = FileProgress(
                    key=job.key, local_path=job.local_path, size=job.size
                )
                self._order.append(job.key)
            self._total_bytes = sum(fp.size for fp in self._files.values())
            self._transferred = 0
            self._completed = self._failed = self._terminal = 0
            self._cancelled = False
            self._current = ""
            self._started_at = _now()
            self._status = Status.IN_PROGRESS if self._files else Status.COMPLETED
            logger.debug(f"Session started with {len(self._files)} files, {self._total_bytes} bytes")
        self._publish()

    def report_start(self, key: str) -> None:
        """Move a pending file to in progress and make it the current file."""
        with self._lock:
            fp = self._files.get(key)
            if fp is None or fp.status != Status.PENDING:
                return
            self._files[key] = dataclasses.replace(
                fp, status=Status.IN_PROGRESS, started_at=_now()
            )
            self._current = key
        self._publish()

    def report_bytes(self, key: str, bytes_so_far: int) -> None:
        """
        Record the cumulative byte count of one transfer.

        The value is clamped to the file's expected size and never lowered,
        and the aggregate is recomputed by summing all files so duplicate or
        out-of-order callbacks cannot skew it.
        """
        with self._lock:
            fp = self._files.get(key)
            if fp is None or fp.status.is_terminal:
                return
            transferred = max(fp.transferred, min(bytes_so_far, fp.size))
            if transferred == fp.transferred:
                return
            self._files[key] = dataclasses.replace(fp, transferred=transferred)
            self._transferred = sum(f.transferred for f in self._files.values())
        self._publish()

    def report_terminal(self, key: str, status: Status, error: Optional[str] = None) -> None:
        """
        Move one file to a terminal state.

        Terminal states are sticky: a second report for the same file is
        ignored. Once every file is terminal the session status is settled:
        cancelled if any file was cancelled, else failed if any file failed,
        else completed.
        """
        if not status.is_terminal:
            raise ValueError(f"not a terminal status: {status}")

        with self._lock:
            fp = self._files.get(key)
            if fp is None:
                return
            if fp.status.is_terminal:
                logger.debug(f"Ignoring {status.value} for {key}: already {fp.status.value}")
                return

            changes = {"status": status, "error": error, "finished_at": _now()}
            if status == Status.COMPLETED:
                changes["transferred"] = fp.size
                self._completed += 1
            elif status == Status.FAILED:
                self._failed += 1
            else:
                self._cancelled = True
            self._files[key] = dataclasses.replace(fp, **changes)
            self._terminal += 1
            self._transferred = sum(f.transferred for f in self._files.values())

            if self._terminal == len(self._files):
                if self._cancelled:
                    self._status = Status.CANCELLED
                elif self._failed:
                    self._status = Status.FAILED
                else:
                    self._status = Status.COMPLETED
                logger.debug(
                    f"Session {self._status.value}: {self._completed} completed, "
                    f"{self._failed} failed of {len(self._files)}"
                )
        self._publish()

    # Reads

    def snapshot(self) -> SessionProgress:
        """Return a consistent, immutable copy of the session state."""
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> SessionProgress:
        return SessionProgress(
            total_files=len(self._files),
            completed_files=self._completed,
            failed_files=self._failed,
            total_bytes=self._total_bytes,
            transferred_bytes=self._transferred,
            current_file=self._current,
            files=MappingProxyType({k: self._files[k] for k in self._order}),
            started_at=self._started_at,
            status=self._status,
        )

    def _publish(self) -> None:
        with self._publish_lock:
            with self._lock:
                if self._detached or not self._subscribers:
                    return
                snap = self._snapshot_locked()
                subscribers = list(self._subscribers)
            for callback in subscribers:
                try:
                    callback(snap)
                except Exception:
                    # Observer errors must not fail the transfer that triggered them
                    logger.exception("Progress observer raised")
