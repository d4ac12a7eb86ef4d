"""
Download orchestration.

``DownloadOrchestrator`` composes the store, path resolver, sync planner,
transfer pool and progress tracker into the supported operations: a single
object, a whole prefix, an explicit selection, and sync. Each entry point only
builds a list of ``TransferJob``; all of them run through ``_run_session``.

Blocking entry points return the final ``SessionProgress``. ``start_session``
runs the same work on a background thread and returns a ``SessionHandle``
for presentation layers that subscribe to progress and cancel.
"""
from __future__ import annotations

import logging
import os
import threading
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .models import (
    DownloadOneRequest,
    DownloadPrefixRequest,
    DownloadSelectionRequest,
    SessionRequest,
    SyncRequest,
)
from .path_safety import relative_key, resolve_local_path
from .planner import plan_sync
from .pool import DEFAULT_CONCURRENCY, CancelToken, TransferPool
from .progress import ProgressTracker
from .runtime import EmptyPrefix, SessionCancelled, UnsafePath, download_object
from .runtime_types import (
    ProgressCallback,
    RemoteObject,
    SessionProgress,
    SnapshotCallback,
    Status,
    SyncPlan,
    TransferJob,
)
from .storage.base import RemoteStore

__all__ = ["DownloadOrchestrator", "SessionHandle"]

logger = logging.getLogger(__name__)

# (store, job, on_progress) -> None; raises on failure
TransferFn = Callable[[RemoteStore, TransferJob, ProgressCallback], None]


class SessionHandle:
    """
    Handle on one background session.

    Setup errors (EmptyPrefix, UnsafePath, listing failures) are stored in
    ``error``; per-file failures are visible only in the progress snapshots.
    """

    def __init__(self, request: SessionRequest) -> None:
        self.request = request
        self.token = CancelToken()
        self.tracker = ProgressTracker()
        self.error: Optional[BaseException] = None
        self._done = threading.Event()

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Receive snapshots until the session reaches a terminal status."""
        return self.tracker.subscribe(callback)

    def snapshot(self) -> SessionProgress:
        return self.tracker.snapshot()

    def cancel(self) -> None:
        self.token.cancel()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> SessionProgress:
        """
        Block until the session settles and return its final snapshot.

        Raises:
            TimeoutError: If the session is still running after timeout
        """
        if not self._done.wait(timeout):
            raise TimeoutError("download session still running")
        return self.tracker.snapshot()

    def result(self, timeout: Optional[float] = None) -> SessionProgress:
        """
        Wait for the session and return its final snapshot, raising on setup
        failure or cancellation.

        Raises:
            SessionCancelled: If the session ended cancelled
            TimeoutError: If the session is still running after timeout
        """
        progress = self.wait(timeout)
        if self.error is not None:
            raise self.error
        if progress.status == Status.CANCELLED:
            raise SessionCancelled(progress)
        return progress


class DownloadOrchestrator:
    """
    Façade over the download engine for one store.

    Only one session runs at a time per orchestrator. Starting a new one
    cancels the active session, waits for it to settle and detaches its
    tracker so its progress is no longer published.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        transfer: TransferFn = download_object,
    ) -> None:
        self.store = store
        self.pool = TransferPool(concurrency)
        self._transfer = transfer
        self._lock = threading.Lock()
        self._active: Optional[SessionHandle] = None

    @property
    def concurrency(self) -> int:
        return self.pool.concurrency

    # Blocking entry points

    def download_one(
        self,
        bucket: str,
        key: str,
        destination: str | os.PathLike,
        *,
        subscriber: Optional[SnapshotCallback] = None,
    ) -> SessionProgress:
        """
        Download a single object.

        If ``destination`` is an existing directory the key's base name is
        appended to it.

        Raises:
            TransferError: If the object's metadata cannot be read
            SessionCancelled: If the session was cancelled
        """
        request = DownloadOneRequest(bucket=bucket, key=key, destination=os.fspath(destination))
        return self._run_blocking(request, subscriber)

    def download_prefix(
        self,
        bucket: str,
        prefix: str,
        destination_dir: str | os.PathLike,
        *,
        subscriber: Optional[SnapshotCallback] = None,
    ) -> SessionProgress:
        """
        Download every object under ``prefix`` into ``destination_dir``.

        Raises:
            EmptyPrefix: If no objects exist under prefix
            UnsafePath: If any key would land outside destination_dir
            TransferError: If the listing fails
            SessionCancelled: If the session was cancelled
        """
        request = DownloadPrefixRequest(
            bucket=bucket, prefix=prefix, destination_dir=os.fspath(destination_dir)
        )
        return self._run_blocking(request, subscriber)

    def download_selection(
        self,
        bucket: str,
        selected: Iterable[RemoteObject],
        key_prefix: str,
        destination_dir: str | os.PathLike,
        *,
        subscriber: Optional[SnapshotCallback] = None,
    ) -> SessionProgress:
        """
        Download an explicit selection; containers are expanded recursively.

        Raises:
            EmptyPrefix: If the expanded selection holds no objects
            UnsafePath: If any key would land outside destination_dir
            TransferError: If expanding a container fails
            SessionCancelled: If the session was cancelled
        """
        request = DownloadSelectionRequest(
            bucket=bucket,
            selected=list(selected),
            key_prefix=key_prefix,
            destination_dir=os.fspath(destination_dir),
        )
        return self._run_blocking(request, subscriber)

    def sync(
        self,
        bucket: str,
        prefix: str,
        destination_dir: str | os.PathLike,
        *,
        subscriber: Optional[SnapshotCallback] = None,
    ) -> SessionProgress:
        """
        Download only objects that are missing or differ locally.

        An up-to-date destination yields a completed session with zero files.

        Raises:
            UnsafePath: If a listed key would land outside destination_dir or
                share a local path with another key
            TransferError: If the listing fails
            SessionCancelled: If the session was cancelled
        """
        request = SyncRequest(bucket=bucket, prefix=prefix, destination_dir=os.fspath(destination_dir))
        return self._run_blocking(request, subscriber)

    def plan(self, bucket: str, prefix: str, destination_dir: str | os.PathLike) -> SyncPlan:
        """
        Compute the sync plan without downloading anything.

        Raises:
            UnsafePath: If sync would refuse the listing
            TransferError: If the listing fails
        """
        objects = self.store.list_all_under(bucket, prefix)
        _make_jobs(bucket, objects, prefix, os.fspath(destination_dir))
        return plan_sync(
            objects,
            destination_dir,
            prefix,
            hash_algorithm=self.store.content_hash_algorithm,
        )

    # Non-blocking API

    def start_session(
        self, request: SessionRequest, *, subscriber: Optional[SnapshotCallback] = None
    ) -> SessionHandle:
        """
        Start a session on a background thread.

        Any active session is cancelled and allowed to settle first. A
        ``subscriber`` given here is registered before the first snapshot.
        """
        handle = self._activate(request)
        if subscriber is not None:
            handle.subscribe(subscriber)
        thread = threading.Thread(
            target=self._execute, args=(handle,), name="bucketsync-session", daemon=True
        )
        thread.start()
        return handle

    def cancel(self, handle: SessionHandle) -> None:
        handle.cancel()

    def cancel_active(self) -> None:
        with self._lock:
            active = self._active
        if active is not None:
            active.cancel()

    # Session machinery

    def _run_blocking(
        self, request: SessionRequest, subscriber: Optional[SnapshotCallback]
    ) -> SessionProgress:
        handle = self._activate(request)
        if subscriber is not None:
            handle.subscribe(subscriber)
        self._execute(handle)
        return handle.result()

    def _activate(self, request: SessionRequest) -> SessionHandle:
        with self._lock:
            previous = self._active
            handle = SessionHandle(request)
            self._active = handle

        if previous is not None and not previous.done:
            logger.info("Cancelling previous download session")
            previous.cancel()
            previous.tracker.detach()
            previous._done.wait()
        return handle

    def _execute(self, handle: SessionHandle) -> None:
        try:
            jobs = self._build_jobs(handle.request)
            self._run_session(jobs, handle)
        except SessionCancelled:
            pass
        except Exception as e:
            logger.debug(f"Session setup failed: {e}")
            handle.error = e
        finally:
            handle._done.set()
            with self._lock:
                if self._active is handle:
                    self._active = None

    def _run_session(self, jobs: List[TransferJob], handle: SessionHandle) -> None:
        tracker = handle.tracker
        tracker.begin(jobs)
        if not jobs:
            logger.info("Nothing to download")
            return

        logger.info(f"Downloading {len(jobs)} files with {self.concurrency} workers")
        transfer = partial(self._transfer_one, tracker=tracker, token=handle.token)
        try:
            self.pool.run(
                jobs,
                transfer,
                handle.token,
                on_start=lambda job: tracker.report_start(job.key),
                on_terminal=lambda job, status, error: tracker.report_terminal(job.key, status, error),
            )
        finally:
            final = tracker.snapshot()
            logger.info(
                f"Session {final.status.value}: {final.completed_files} completed, "
                f"{final.failed_files} failed, {final.cancelled_files} cancelled"
            )

    def _transfer_one(self, job: TransferJob, *, tracker: ProgressTracker, token: CancelToken) -> None:
        def on_progress(bytes_so_far: int) -> None:
            token.raise_if_cancelled()
            tracker.report_bytes(job.key, bytes_so_far)

        token.raise_if_cancelled()
        self._transfer(self.store, job, on_progress)

    # Job-set builders, one per entry point

    def _build_jobs(self, request: SessionRequest) -> List[TransferJob]:
        if isinstance(request, DownloadOneRequest):
            return self._jobs_for_one(request)
        if isinstance(request, DownloadPrefixRequest):
            return self._jobs_for_prefix(request)
        if isinstance(request, DownloadSelectionRequest):
            return self._jobs_for_selection(request)
        if isinstance(request, SyncRequest):
            return self._jobs_for_sync(request)
        raise TypeError(f"Unsupported session request: {type(request).__name__}")

    def _jobs_for_one(self, request: DownloadOneRequest) -> List[TransferJob]:
        obj = self.store.head_object(request.bucket, request.key)
        destination = Path(request.destination)
        if destination.is_dir():
            local_path = resolve_local_path(destination, obj.display_name)
        else:
            local_path = destination.absolute()
        return [TransferJob(bucket=request.bucket, key=obj.key, local_path=str(local_path), size=obj.size)]

    def _jobs_for_prefix(self, request: DownloadPrefixRequest) -> List[TransferJob]:
        objects = self.store.list_all_under(request.bucket, request.prefix)
        if not objects:
            raise EmptyPrefix(request.bucket, request.prefix)
        return _make_jobs(request.bucket, objects, request.prefix, request.destination_dir)

    def _jobs_for_selection(self, request: DownloadSelectionRequest) -> List[TransferJob]:
        objects: List[RemoteObject] = []
        for entry in request.selected:
            if entry.is_container:
                objects.extend(self.store.list_all_under(request.bucket, entry.key))
            else:
                objects.append(entry)
        if not objects:
            raise EmptyPrefix(request.bucket, request.key_prefix)
        return _make_jobs(request.bucket, objects, request.key_prefix, request.destination_dir)

    def _jobs_for_sync(self, request: SyncRequest) -> List[TransferJob]:
        objects = self.store.list_all_under(request.bucket, request.prefix)
        # Resolve every listed key, unchanged ones included, so a key that
        # collides with an up-to-date file is refused rather than rewritten on each run
        jobs = _make_jobs(request.bucket, objects, request.prefix, request.destination_dir)
        plan = plan_sync(
            objects,
            request.destination_dir,
            request.prefix,
            hash_algorithm=self.store.content_hash_algorithm,
        )
        logger.info(
            f"Sync: {len(plan.to_download)} to download, {len(plan.unchanged)} unchanged"
        )
        wanted = {obj.key for obj in plan.to_download}
        return [job for job in jobs if job.key in wanted]


def _make_jobs(
    bucket: str, objects: Iterable[RemoteObject], key_prefix: str, destination_dir: str
) -> List[TransferJob]:
    """
    Build one job per object, resolving each key under destination_dir.

    Duplicate keys (an object selected alongside its container) collapse to
    one job. Distinct keys that normalize to the same local path ("p/a" and
    "p/./a") are refused.

    Raises:
        UnsafePath: If any key would resolve outside destination_dir, or two
            distinct keys would resolve to the same local path
    """
    jobs: Dict[str, TransferJob] = {}
    owners: Dict[str, str] = {}
    for obj in objects:
        if obj.is_container or obj.key in jobs:
            continue
        local_path = str(resolve_local_path(destination_dir, relative_key(obj.key, key_prefix)))
        if local_path in owners:
            raise UnsafePath(
                f"unsafe path: {obj.key!r} and {owners[local_path]!r} both resolve to {local_path}"
            )
        owners[local_path] = obj.key
        jobs[obj.key] = TransferJob(bucket=bucket, key=obj.key, local_path=local_path, size=obj.size)
    return list(jobs.values())
