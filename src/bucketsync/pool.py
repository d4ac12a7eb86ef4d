"""
Bounded worker pool for transfer jobs.

A bounded queue feeds a fixed number of long-lived worker threads. Each worker
takes one job at a time, runs the injected transfer function and reports
exactly one terminal status before taking the next job. Cancellation is
cooperative: it stops dispatch, and in-flight transfers observe the same
``CancelToken`` through their progress callbacks.
"""
from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Iterable, List, Optional

from .runtime import SessionCancelled, TransferCancelled
from .runtime_types import Status, TransferJob

__all__ = ["CancelToken", "TransferPool", "DEFAULT_CONCURRENCY"]

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5

TransferFn = Callable[[TransferJob], None]
StartFn = Callable[[TransferJob], None]
TerminalFn = Callable[[TransferJob, Status, Optional[str]], None]

_STOP = object()


class CancelToken:
    """
    Cancellation signal shared by every layer of one session.

    A caller that wants a deadline arms ``threading.Timer(seconds, token.cancel)``.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise TransferCancelled once the token has fired."""
        if self._event.is_set():
            raise TransferCancelled("transfer cancelled")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; returns whether it was cancelled."""
        return self._event.wait(timeout)


def _noop_start(job: TransferJob) -> None:
    pass


def _noop_terminal(job: TransferJob, status: Status, error: Optional[str]) -> None:
    pass


class TransferPool:
    """
    Run transfer jobs on ``concurrency`` worker threads.

    Failure policy: an exception raised by one transfer marks that job failed
    and the pool carries on with its siblings. ``run`` raises only when the
    session was cancelled; per-job failures are reported through
    ``on_terminal``.
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self.concurrency = concurrency

    def run(
        self,
        jobs: Iterable[TransferJob],
        transfer: TransferFn,
        token: CancelToken,
        *,
        on_start: StartFn = _noop_start,
        on_terminal: TerminalFn = _noop_terminal,
    ) -> None:
        """
        Execute every job and block until all of them are terminal.

        Args:
            jobs: Jobs to run; each is dispatched at most once
            transfer: Performs one job, raising on failure
            token: Session cancel token
            on_start: Called by a worker just before it runs a job
            on_terminal: Called exactly once per job with its terminal status

        Raises:
            SessionCancelled: If cancellation left any job cancelled
        """
        jobs = list(jobs)
        jobs_queue: "queue.Queue[object]" = queue.Queue(maxsize=self.concurrency * 2)
        cancelled: List[str] = []
        cancelled_lock = threading.Lock()

        def finish(job: TransferJob, status: Status, error: Optional[str] = None) -> None:
            if status == Status.CANCELLED:
                with cancelled_lock:
                    cancelled.append(job.key)
            on_terminal(job, status, error)

        def worker() -> None:
            while True:
                item = jobs_queue.get()
                if item is _STOP:
                    return
                job: TransferJob = item  # type: ignore[assignment]

                if token.cancelled:
                    finish(job, Status.CANCELLED)
                    continue

                on_start(job)
                try:
                    transfer(job)
                except TransferCancelled:
                    finish(job, Status.CANCELLED)
                except Exception as e:
                    if token.cancelled:
                        # Errors raised while aborting count as cancellation
                        finish(job, Status.CANCELLED)
                    else:
                        logger.warning(f"Download of {job.key} failed: {e}")
                        finish(job, Status.FAILED, str(e) or type(e).__name__)
                else:
                    finish(job, Status.COMPLETED)

        workers = [
            threading.Thread(target=worker, name=f"bucketsync-worker-{i}", daemon=True)
            for i in range(self.concurrency)
        ]
        for thread in workers:
            thread.start()

        logger.debug(f"Dispatching {len(jobs)} jobs to {self.concurrency} workers")
        undispatched: List[TransferJob] = []
        for index, job in enumerate(jobs):
            if token.cancelled:
                undispatched = jobs[index:]
                break
            jobs_queue.put(job)

        if undispatched:
            logger.debug(f"Cancelled before dispatch: {len(undispatched)} jobs")
        for job in undispatched:
            finish(job, Status.CANCELLED)

        for _ in workers:
            jobs_queue.put(_STOP)
        for thread in workers:
            thread.join()

        if cancelled:
            raise SessionCancelled()
