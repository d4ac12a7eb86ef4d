"""
Storage interfaces for bucketsync.

The RemoteStore protocol is the boundary between the download engine and the
object store SDKs, enabling clean dependency injection and testing with fakes.
"""
from __future__ import annotations

from typing import BinaryIO, List, Optional, Protocol, runtime_checkable

from ..runtime_types import ProgressCallback, RemoteObject

__all__ = ["RemoteStore"]


@runtime_checkable
class RemoteStore(Protocol):
    """Protocol for remote object store operations."""

    def list_buckets(self) -> List[RemoteObject]:
        """
        List the buckets (S3) or containers (Azure) visible to the credentials.

        Each comes back as a container entry whose key is the bucket name.

        Raises:
            TransferError: For network, auth or remote-side errors
        """
        ...

    def list_children(self, bucket: str, prefix: str) -> List[RemoteObject]:
        """
        List one hierarchy level under a prefix.

        Keys are grouped on '/'; groups come back as containers
        (``is_container=True``) followed by the objects at this level.

        Raises:
            TransferError: For network, auth or remote-side errors
        """
        ...

    def list_all_under(self, bucket: str, prefix: str) -> List[RemoteObject]:
        """
        List every object under a prefix, recursively and without grouping.

        Folder marker keys (ending in '/') are skipped.

        Raises:
            TransferError: For network, auth or remote-side errors
        """
        ...

    def head_object(self, bucket: str, key: str) -> RemoteObject:
        """
        Get metadata for one object without fetching content.

        Raises:
            TransferError: If the object is missing or cannot be read
        """
        ...

    def fetch(self, bucket: str, key: str, sink: BinaryIO, on_progress: ProgressCallback) -> None:
        """
        Stream an object's bytes into ``sink``.

        ``on_progress`` is called with the cumulative byte count after every
        chunk. It may raise TransferCancelled, which must propagate unchanged.

        Raises:
            TransferError: For network, auth or remote-side errors
            OSError: If writing to the sink fails
        """
        ...

    def content_hash_algorithm(self, obj: RemoteObject) -> Optional[str]:
        """
        Hash family of ``obj.digest`` when it is a whole-object content hash.

        Returns:
            hashlib algorithm name, or None when the digest cannot be
            compared against a local file (multipart markers, opaque ETags)
        """
        ...
