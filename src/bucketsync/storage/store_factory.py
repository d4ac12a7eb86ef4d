"""
Remote store factory.

Creates the RemoteStore adapter for a store kind, so call sites never import
a specific SDK adapter.
"""
from __future__ import annotations

from typing import Optional

from ..settings import Settings
from .base import RemoteStore


def make_store(settings: Settings, scheme: Optional[str] = None) -> RemoteStore:
    """
    Create a RemoteStore adapter.

    Args:
        settings: Store configuration
        scheme: Store kind ("s3" or "az"); defaults to settings.store

    Returns:
        RemoteStore implementation

    Examples:
        >>> store = make_store(settings)          # BUCKETSYNC_STORE
        >>> store = make_store(settings, "az")    # from an az:// URI

    Raises:
        ValueError: If the store kind is unknown
    """
    kind = (scheme or settings.store).lower()

    if kind == "s3":
        from .s3_store import S3RemoteStore
        return S3RemoteStore(settings=settings)
    elif kind == "az":
        from .object_store import AzureRemoteStore
        return AzureRemoteStore(settings=settings)
    else:
        raise ValueError(f"Unknown store kind: {kind}. Supported values: s3, az")


__all__ = ["make_store"]
