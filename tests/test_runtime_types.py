"""
Test the value types shared by the engine.
"""
from __future__ import annotations

import dataclasses
from types import MappingProxyType

import pytest

from bucketsync.runtime_types import FileProgress, RemoteObject, SessionProgress, Status, SyncPlan


class TestStatus:
    """Test status lifecycle helpers."""

    @pytest.mark.parametrize("status,terminal", [
        (Status.PENDING, False),
        (Status.IN_PROGRESS, False),
        (Status.COMPLETED, True),
        (Status.FAILED, True),
        (Status.CANCELLED, True),
    ])
    def test_is_terminal(self, status, terminal):
        """Test which statuses are terminal."""
        assert status.is_terminal is terminal

    def test_string_values(self):
        """Test that statuses compare equal to their wire names."""
        assert Status.IN_PROGRESS == "in_progress"


class TestRemoteObject:
    """Test RemoteObject validation and helpers."""

    def test_empty_key_rejected(self):
        """Test that keys must be non-empty."""
        with pytest.raises(ValueError):
            RemoteObject("")

    def test_negative_size_rejected(self):
        """Test that sizes must be non-negative."""
        with pytest.raises(ValueError):
            RemoteObject("k", -1)

    def test_display_name(self):
        """Test base names for objects and containers."""
        assert RemoteObject("a/b/c.txt").display_name == "c.txt"
        assert RemoteObject("a/b/", is_container=True).display_name == "b/"

    def test_immutable(self):
        """Test that listed objects cannot be mutated."""
        obj = RemoteObject("k", 1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            obj.size = 2


class TestSessionProgress:
    """Test aggregate snapshot helpers."""

    def test_percent_complete(self):
        """Test percentage from bytes."""
        snap = SessionProgress(total_bytes=200, transferred_bytes=50, status=Status.IN_PROGRESS)
        assert snap.percent_complete == 25.0

    def test_failed_sorted_by_key(self):
        """Test that failed files are listed by key."""
        files = {
            k: FileProgress(key=k, local_path=k, size=1, status=Status.FAILED, error="x")
            for k in ("z", "a")
        }
        snap = SessionProgress(total_files=2, failed_files=2, files=MappingProxyType(files))
        assert [fp.key for fp in snap.failed] == ["a", "z"]

    def test_defaults(self):
        """Test an empty pending snapshot."""
        snap = SessionProgress()
        assert snap.status == Status.PENDING
        assert not snap.is_terminal
        assert snap.percent_complete == 0.0
        assert snap.cancelled_files == 0


class TestSyncPlan:
    """Test SyncPlan helpers."""

    def test_is_empty(self):
        """Test that a plan with nothing to download is empty."""
        assert SyncPlan(to_download=[], unchanged=[RemoteObject("k")], total_bytes=0).is_empty
        assert not SyncPlan(to_download=[RemoteObject("k")], unchanged=[], total_bytes=0).is_empty
