"""
Tests for the bounded transfer pool.

Covers exactly-once dispatch, the concurrency bound, per-job failure
isolation and cooperative cancellation.
"""
from __future__ import annotations

import threading
import time

import pytest

from bucketsync.pool import CancelToken, TransferPool
from bucketsync.runtime import SessionCancelled, TransferCancelled
from bucketsync.runtime_types import Status, TransferJob


def _jobs(n):
    return [TransferJob(bucket="b", key=f"k{i}", local_path=f"/tmp/k{i}", size=1) for i in range(n)]


class _Recorder:
    """Collects on_start/on_terminal callbacks from worker threads."""

    def __init__(self):
        self.lock = threading.Lock()
        self.started = []
        self.terminal = {}

    def on_start(self, job):
        with self.lock:
            self.started.append(job.key)

    def on_terminal(self, job, status, error):
        with self.lock:
            assert job.key not in self.terminal, f"{job.key} reported twice"
            self.terminal[job.key] = (status, error)


class TestCancelToken:
    """Test the shared cancellation signal."""

    def test_initially_not_cancelled(self):
        """Test a fresh token."""
        token = CancelToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_raises_transfer_cancelled(self):
        """Test that a fired token raises TransferCancelled."""
        token = CancelToken()
        token.cancel()
        assert token.cancelled
        with pytest.raises(TransferCancelled):
            token.raise_if_cancelled()

    def test_wait_returns_when_cancelled(self):
        """Test that wait observes a cancel from another thread."""
        token = CancelToken()
        threading.Timer(0.01, token.cancel).start()
        assert token.wait(timeout=5)


class TestTransferPool:
    """Test dispatch and failure policy."""

    def test_rejects_non_positive_concurrency(self):
        """Test that concurrency must be positive."""
        with pytest.raises(ValueError):
            TransferPool(0)

    def test_every_job_dispatched_exactly_once(self):
        """Test that each job runs once and reports one terminal status."""
        jobs = _jobs(50)
        rec = _Recorder()
        ran = []
        lock = threading.Lock()

        def transfer(job):
            with lock:
                ran.append(job.key)

        TransferPool(4).run(jobs, transfer, CancelToken(),
                            on_start=rec.on_start, on_terminal=rec.on_terminal)

        assert sorted(ran) == sorted(j.key for j in jobs)
        assert len(ran) == len(set(ran))
        assert all(status == Status.COMPLETED for status, _ in rec.terminal.values())
        assert len(rec.terminal) == 50

    def test_concurrency_bound(self):
        """Test that no more than `concurrency` transfers run at once."""
        active = 0
        peak = 0
        lock = threading.Lock()

        def transfer(job):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.005)
            with lock:
                active -= 1

        TransferPool(3).run(_jobs(20), transfer, CancelToken())
        assert 1 <= peak <= 3

    def test_failure_does_not_stop_siblings(self):
        """Test that one failed job leaves the others to complete."""
        rec = _Recorder()

        def transfer(job):
            if job.key == "k1":
                raise RuntimeError("boom")

        TransferPool(2).run(_jobs(3), transfer, CancelToken(), on_terminal=rec.on_terminal)

        assert rec.terminal["k0"] == (Status.COMPLETED, None)
        assert rec.terminal["k1"] == (Status.FAILED, "boom")
        assert rec.terminal["k2"] == (Status.COMPLETED, None)

    def test_failure_without_message_uses_exception_name(self):
        """Test that an empty exception message still records an error."""
        rec = _Recorder()

        def transfer(job):
            raise KeyError()

        TransferPool(1).run(_jobs(1), transfer, CancelToken(), on_terminal=rec.on_terminal)
        assert rec.terminal["k0"] == (Status.FAILED, "KeyError")

    def test_cancel_before_run(self):
        """Test that a pre-fired token cancels every job without running any."""
        token = CancelToken()
        token.cancel()
        rec = _Recorder()
        ran = []

        with pytest.raises(SessionCancelled):
            TransferPool(2).run(_jobs(5), ran.append, token, on_terminal=rec.on_terminal)

        assert ran == []
        assert {s for s, _ in rec.terminal.values()} == {Status.CANCELLED}
        assert len(rec.terminal) == 5

    def test_cancel_mid_run(self):
        """Test that cancelling stops dispatch and settles every job."""
        token = CancelToken()
        rec = _Recorder()
        release = threading.Event()

        def transfer(job):
            if job.key == "k0":
                token.cancel()
                release.set()
                return
            release.wait(timeout=5)
            token.raise_if_cancelled()

        with pytest.raises(SessionCancelled):
            TransferPool(2).run(_jobs(10), transfer, token,
                                on_start=rec.on_start, on_terminal=rec.on_terminal)

        assert rec.terminal["k0"][0] == Status.COMPLETED
        others = [rec.terminal[f"k{i}"][0] for i in range(1, 10)]
        assert others == [Status.CANCELLED] * 9
        # Nothing is started once the token has fired, apart from the in-flight job
        assert len(rec.started) <= 2

    def test_error_during_cancel_counts_as_cancelled(self):
        """Test that exceptions raised while aborting are not reported as failures."""
        token = CancelToken()
        rec = _Recorder()

        def transfer(job):
            token.cancel()
            raise OSError("connection reset")

        with pytest.raises(SessionCancelled):
            TransferPool(1).run(_jobs(1), transfer, token, on_terminal=rec.on_terminal)
        assert rec.terminal["k0"] == (Status.CANCELLED, None)
