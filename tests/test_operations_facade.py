"""
Test the Operations facade against a fake store.
"""
from __future__ import annotations

import pytest

from bucketsync.operations import Operations, OpsConfig
from bucketsync.operations.facade import _selection_entry
from bucketsync.runtime import DownloadIncomplete, EmptyPrefix
from bucketsync.runtime_types import Status
from bucketsync.settings import Settings
from bucketsync.storage.uri import parse_store_uri


@pytest.fixture
def ops(seeded_store):
    return Operations(OpsConfig(ci=True), store=seeded_store, settings=Settings(concurrency=3))


class TestOperationsConfig:
    """Test policy applied by the facade."""

    def test_concurrency_from_settings(self, ops):
        """Test that settings supply the default concurrency."""
        assert ops.orchestrator.concurrency == 3

    def test_concurrency_override(self, seeded_store):
        """Test that OpsConfig.concurrency overrides settings."""
        ops = Operations(OpsConfig(concurrency=7), store=seeded_store, settings=Settings())
        assert ops.orchestrator.concurrency == 7

    def test_settings_loaded_from_env(self, seeded_store, monkeypatch):
        """Test that settings default to the environment."""
        monkeypatch.setenv("BUCKETSYNC_CONCURRENCY", "4")
        ops = Operations(OpsConfig(), store=seeded_store)
        assert ops.orchestrator.concurrency == 4


class TestOperationsVerbs:
    """Test one method per CLI verb."""

    def test_ls_lists_one_level(self, ops):
        """Test that ls returns folders and direct children."""
        entries = ops.ls(parse_store_uri("s3://b/photos/"))
        assert [e.key for e in entries] == ["photos/2024/", "photos/a.jpg", "photos/b.jpg"]
        assert entries[0].is_container

    def test_buckets_lists_store_buckets(self, ops, seeded_store):
        """Test that buckets come back as container entries named by bucket."""
        seeded_store.put("archive", "x.txt", b"x")
        entries = ops.buckets()
        assert [(e.key, e.is_container) for e in entries] == [("archive", True), ("b", True)]
        assert entries[0].display_name == "archive/"

    def test_get(self, ops, tmp_path):
        """Test single-object download."""
        progress = ops.get(parse_store_uri("s3://b/photos/a.jpg"), str(tmp_path))
        assert progress.status == Status.COMPLETED
        assert (tmp_path / "a.jpg").exists()

    def test_get_rejects_prefix(self, ops, tmp_path):
        """Test that get refuses a prefix URI."""
        with pytest.raises(ValueError, match="pull"):
            ops.get(parse_store_uri("s3://b/photos/"), str(tmp_path))

    def test_pull(self, ops, tmp_path):
        """Test whole-prefix download."""
        progress = ops.pull(parse_store_uri("s3://b/photos"), str(tmp_path))
        assert progress.completed_files == 3
        assert (tmp_path / "2024" / "c.jpg").exists()

    def test_pull_empty_prefix(self, ops, tmp_path):
        """Test that an empty prefix raises EmptyPrefix."""
        with pytest.raises(EmptyPrefix):
            ops.pull(parse_store_uri("s3://b/none/"), str(tmp_path))

    def test_pull_partial_failure_raises_incomplete(self, ops, seeded_store, tmp_path):
        """Test that a failed file turns into DownloadIncomplete with progress."""
        seeded_store.fail("photos/b.jpg")
        with pytest.raises(DownloadIncomplete) as exc_info:
            ops.pull(parse_store_uri("s3://b/photos/"), str(tmp_path))
        progress = exc_info.value.progress
        assert progress.completed_files == 2
        assert [fp.key for fp in progress.failed] == ["photos/b.jpg"]

    def test_select(self, ops, tmp_path):
        """Test selection with a folder key."""
        progress = ops.select(parse_store_uri("s3://b/photos"), str(tmp_path), ["a.jpg", "2024/"])
        assert progress.completed_files == 2
        assert (tmp_path / "a.jpg").exists()
        assert (tmp_path / "2024" / "c.jpg").exists()

    def test_sync_and_plan(self, ops, seeded_store, tmp_path):
        """Test that plan reflects what sync downloaded."""
        uri = parse_store_uri("s3://b/photos/")
        assert len(ops.plan(uri, str(tmp_path)).to_download) == 3
        ops.sync(uri, str(tmp_path))
        plan = ops.plan(uri, str(tmp_path))
        assert plan.is_empty
        assert len(plan.unchanged) == 3

    def test_subscriber_receives_snapshots(self, ops, tmp_path):
        """Test that the subscriber sees the terminal snapshot."""
        seen = []
        ops.pull(parse_store_uri("s3://b/photos/"), str(tmp_path), subscriber=seen.append)
        assert seen[-1].is_terminal


class TestSelectionEntry:
    """Test building selection entries from relative keys."""

    def test_joins_bare_prefix(self):
        """Test that a prefix without '/' gets a separator."""
        assert _selection_entry("photos", "a.jpg").key == "photos/a.jpg"

    def test_folder_key_is_container(self):
        """Test that a trailing '/' marks a container."""
        entry = _selection_entry("photos/", "2024/")
        assert entry.key == "photos/2024/"
        assert entry.is_container

    def test_empty_key_rejected(self):
        """Test that empty keys are rejected."""
        with pytest.raises(ValueError):
            _selection_entry("photos/", "")
