"""
Operations Facade - Application service layer.

Provides a clean interface between CLI and the download engine, centralizing
command orchestration, configuration, and policy decisions while keeping
CLI commands thin and testable.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..models import (
    DownloadOneRequest,
    DownloadPrefixRequest,
    DownloadSelectionRequest,
    SessionRequest,
    SyncRequest,
)
from ..orchestrator import DownloadOrchestrator, SessionHandle
from ..runtime import DownloadIncomplete
from ..runtime_types import RemoteObject, SessionProgress, SnapshotCallback, Status, SyncPlan
from ..storage.base import RemoteStore
from ..storage.uri import StoreURI

logger = logging.getLogger(__name__)

# Poll interval while waiting on a background session, so Ctrl-C is seen promptly
_WAIT_POLL_S = 0.2


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes policy decisions like concurrency and output formatting
    to avoid scattered configuration.
    """
    ci: bool = False                    # Running in CI environment (no progress bar)
    verbose: bool = False               # Show detailed output
    concurrency: Optional[int] = None   # Overrides Settings.concurrency when set


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. Session verbs run on a background session so a
    KeyboardInterrupt in the calling thread cancels the transfers instead of
    abandoning them; the session is then waited on until every job settled.

    Exceptions bubble up for central mapping in ``run_and_exit``. A session
    that finishes with failed files raises ``DownloadIncomplete``.
    """

    def __init__(self, config: OpsConfig, store: RemoteStore, settings=None):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            store: Remote store the URIs refer to
            settings: Optional settings (if None, loaded from environment)
        """
        self.cfg = config
        self.store = store

        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        self.settings = settings

        concurrency = config.concurrency or settings.concurrency
        self.orchestrator = DownloadOrchestrator(store, concurrency=concurrency)

    def ls(self, uri: StoreURI) -> List[RemoteObject]:
        """List one level under the URI's prefix."""
        return self.store.list_children(uri.bucket, uri.key)

    def buckets(self) -> List[RemoteObject]:
        """List the buckets (or containers) of the store."""
        return self.store.list_buckets()

    def get(self, uri: StoreURI, dest: str, *,
            subscriber: Optional[SnapshotCallback] = None) -> SessionProgress:
        """
        Download the single object named by the URI.

        Raises:
            ValueError: If the URI names a prefix rather than an object
        """
        if uri.is_prefix:
            raise ValueError(f"{uri} names a prefix; use 'pull' to download it")
        request = DownloadOneRequest(bucket=uri.bucket, key=uri.key, destination=dest)
        return self._run(request, subscriber)

    def pull(self, uri: StoreURI, dest: str, *,
             subscriber: Optional[SnapshotCallback] = None) -> SessionProgress:
        """Download every object under the URI's prefix into dest."""
        request = DownloadPrefixRequest(bucket=uri.bucket, prefix=uri.key, destination_dir=dest)
        return self._run(request, subscriber)

    def select(self, uri: StoreURI, dest: str, keys: Sequence[str], *,
               subscriber: Optional[SnapshotCallback] = None) -> SessionProgress:
        """
        Download an explicit selection of keys relative to the URI's prefix.

        Keys ending in "/" are treated as containers and expanded recursively.
        Local paths are relative to the URI's prefix.
        """
        selected = [_selection_entry(uri.key, k) for k in keys]
        request = DownloadSelectionRequest(
            bucket=uri.bucket, selected=selected, key_prefix=uri.key, destination_dir=dest
        )
        return self._run(request, subscriber)

    def sync(self, uri: StoreURI, dest: str, *,
             subscriber: Optional[SnapshotCallback] = None) -> SessionProgress:
        """Download only the objects under the URI's prefix that differ locally."""
        request = SyncRequest(bucket=uri.bucket, prefix=uri.key, destination_dir=dest)
        return self._run(request, subscriber)

    def plan(self, uri: StoreURI, dest: str) -> SyncPlan:
        """Compute what sync would download, without transferring anything."""
        return self.orchestrator.plan(uri.bucket, uri.key, dest)

    def _run(self, request: SessionRequest,
             subscriber: Optional[SnapshotCallback]) -> SessionProgress:
        handle = self.orchestrator.start_session(request, subscriber=subscriber)
        progress = self._wait(handle)
        if progress.status == Status.FAILED:
            raise DownloadIncomplete(progress)
        return progress

    @staticmethod
    def _wait(handle: SessionHandle) -> SessionProgress:
        try:
            while not handle.done:
                try:
                    handle.wait(_WAIT_POLL_S)
                except TimeoutError:
                    continue
        except KeyboardInterrupt:
            logger.warning("Interrupted, cancelling download session")
            handle.cancel()
        return handle.result()


def _selection_entry(key_prefix: str, key: str) -> RemoteObject:
    """
    Build a selection entry from a key relative to key_prefix.

    Raises:
        ValueError: If key is empty
    """
    if not key or key == "/":
        raise ValueError("selection keys must not be empty")
    if key_prefix and not key_prefix.endswith("/"):
        key_prefix += "/"
    full_key = key_prefix + key.lstrip("/")
    return RemoteObject(key=full_key, is_container=key.endswith("/"))
