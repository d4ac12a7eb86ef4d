"""
RemoteStore adapter for Azure Blob Storage.

Containers play the role of buckets and blob names the role of keys. Listing
uses '/' as the hierarchy delimiter, like the S3 adapter.
"""
from __future__ import annotations

import logging
import re
from typing import BinaryIO, List, Optional

from ..runtime import TransferError
from ..runtime_types import ProgressCallback, RemoteObject
from ..settings import Settings
from .base import RemoteStore

__all__ = ["AzureRemoteStore"]

logger = logging.getLogger(__name__)

DELIMITER = "/"

_MD5_HEX = re.compile(r"^[0-9a-f]{32}$")


def _azure_sdk():
    """Import the Azure SDK names used at call time."""
    try:
        from azure.core.exceptions import AzureError
        from azure.storage.blob import BlobPrefix
    except ImportError:
        raise ImportError("azure-storage-blob package required for Azure storage (pip install bucketsync[azure])")
    return AzureError, BlobPrefix


class AzureRemoteStore(RemoteStore):
    """
    RemoteStore adapter for Azure Blob Storage.

    Uses azure-storage-blob SDK with connection string or account+key authentication.
    Supports custom endpoints for Azurite and private Azure clouds.

    The reported digest is the hex form of the blob's Content-MD5 when the
    service has one (single-shot uploads); blobs without it get an empty
    digest, which the sync planner always re-downloads.
    """

    def __init__(self, *, settings: Settings, service_client=None) -> None:
        """
        Initialize Azure adapter with settings.

        Args:
            settings: Settings containing Azure authentication and configuration
            service_client: Pre-built BlobServiceClient (tests inject a stub here)

        Raises:
            ValueError: If Azure authentication is not properly configured
        """
        self._settings = settings
        if service_client is None:
            self._validate_azure_auth()
            service_client = self._make_service_client()
        self._service = service_client

    def _validate_azure_auth(self) -> None:
        """Validate Azure authentication configuration."""
        has_conn_str = bool(self._settings.az_connection_string)
        has_account_key = bool(self._settings.az_account and self._settings.az_key)

        if not has_conn_str and not has_account_key:
            raise ValueError("Azure authentication not configured: need AZURE_STORAGE_CONNECTION_STRING or (AZURE_STORAGE_ACCOUNT + AZURE_STORAGE_KEY)")

    def _make_service_client(self):
        """
        Create the BlobServiceClient.

        Handles the connection patterns for Azure Blob Storage:

        1. Connection string (AZURE_STORAGE_CONNECTION_STRING only)
        2. Connection string + custom endpoint: account name is taken from the
           connection string and the endpoint overridden (Azurite)
        3. Account+key against https://{account}.blob.core.windows.net
        4. Account+key against a custom endpoint: {endpoint}/{account}
        """
        try:
            from azure.storage.blob import BlobServiceClient
        except ImportError:
            raise ImportError("azure-storage-blob package required for Azure storage (pip install bucketsync[azure])")

        settings = self._settings
        common = dict(
            connection_timeout=settings.http_timeout_s,
            read_timeout=settings.http_timeout_s,
            retry_total=settings.http_retry,
            retry_backoff_factor=0.4,
        )

        if settings.az_connection_string:
            account_match = re.search(r"AccountName=([^;]+)", settings.az_connection_string)
            if settings.az_blob_endpoint and account_match:
                endpoint_url = f"{settings.az_blob_endpoint.rstrip('/')}/{account_match.group(1)}"
                logger.debug(f"Azure adapter using connection string auth with custom endpoint: {endpoint_url}")
                return BlobServiceClient(account_url=endpoint_url, credential=None, **common)
            logger.debug("Azure adapter using connection string auth")
            return BlobServiceClient.from_connection_string(settings.az_connection_string, **common)

        if settings.az_blob_endpoint:
            account_url = f"{settings.az_blob_endpoint.rstrip('/')}/{settings.az_account}"
        else:
            account_url = f"https://{settings.az_account}.blob.core.windows.net"
        logger.debug(f"Azure adapter using account+key auth for {settings.az_account} at {account_url}")
        return BlobServiceClient(account_url=account_url, credential=settings.az_key, **common)

    def list_buckets(self) -> List[RemoteObject]:
        AzureError, _ = _azure_sdk()
        try:
            containers = [
                RemoteObject(key=c.name, is_container=True, last_modified=c.last_modified)
                for c in self._service.list_containers()
            ]
        except AzureError as e:
            raise TransferError(f"Azure container listing failed: {e}") from e
        logger.debug(f"Listed {len(containers)} containers")
        return containers

    def list_children(self, bucket: str, prefix: str) -> List[RemoteObject]:
        AzureError, BlobPrefix = _azure_sdk()
        container = self._service.get_container_client(bucket)
        folders: List[RemoteObject] = []
        objects: List[RemoteObject] = []
        try:
            for item in container.walk_blobs(name_starts_with=prefix or None, delimiter=DELIMITER):
                if isinstance(item, BlobPrefix):
                    folders.append(RemoteObject(key=item.name, is_container=True))
                elif item.name != prefix:
                    objects.append(self._from_properties(item))
        except AzureError as e:
            raise TransferError(f"Azure list of {bucket}/{prefix} failed: {e}") from e
        return folders + objects

    def list_all_under(self, bucket: str, prefix: str) -> List[RemoteObject]:
        AzureError, _ = _azure_sdk()
        container = self._service.get_container_client(bucket)
        try:
            objects = [
                self._from_properties(blob)
                for blob in container.list_blobs(name_starts_with=prefix or None)
                if not blob.name.endswith(DELIMITER)
            ]
        except AzureError as e:
            raise TransferError(f"Azure list of {bucket}/{prefix} failed: {e}") from e
        logger.debug(f"Listed {len(objects)} blobs recursively under az://{bucket}/{prefix}")
        return objects

    def head_object(self, bucket: str, key: str) -> RemoteObject:
        AzureError, _ = _azure_sdk()
        blob_client = self._service.get_blob_client(container=bucket, blob=key)
        try:
            properties = blob_client.get_blob_properties()
        except AzureError as e:
            raise TransferError(f"Azure blob properties error for {bucket}/{key}: {e}") from e
        return self._from_properties(properties, key=key)

    def fetch(self, bucket: str, key: str, sink: BinaryIO, on_progress: ProgressCallback) -> None:
        AzureError, _ = _azure_sdk()
        blob_client = self._service.get_blob_client(container=bucket, blob=key)
        written = 0
        try:
            downloader = blob_client.download_blob()
            for chunk in downloader.chunks():
                sink.write(chunk)
                written += len(chunk)
                on_progress(written)
        except AzureError as e:
            raise TransferError(f"Azure blob download error for {bucket}/{key}: {e}") from e

    def content_hash_algorithm(self, obj: RemoteObject) -> Optional[str]:
        return "md5" if _MD5_HEX.match(obj.digest) else None

    @staticmethod
    def _from_properties(properties, key: Optional[str] = None) -> RemoteObject:
        content_settings = getattr(properties, "content_settings", None)
        content_md5 = getattr(content_settings, "content_md5", None)
        return RemoteObject(
            key=key or properties.name,
            size=int(properties.size or 0),
            last_modified=properties.last_modified,
            digest=bytes(content_md5).hex() if content_md5 else "",
        )
