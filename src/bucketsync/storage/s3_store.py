"""
RemoteStore adapter for Amazon S3 and S3-compatible stores.

Uses boto3 with the standard credential chain (environment, shared config
profiles, SSO, instance roles). Listing and metadata calls are retried on
connection and read timeouts; object bodies are streamed chunk by chunk so a
cancelled session aborts within one chunk.
"""
from __future__ import annotations

import logging
from typing import BinaryIO, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..planner import etag_hash_algorithm
from ..runtime import TransferError
from ..runtime_types import ProgressCallback, RemoteObject
from ..settings import Settings
from .base import RemoteStore

__all__ = ["S3RemoteStore"]

logger = logging.getLogger(__name__)

DELIMITER = "/"

_RETRYABLE = (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)


class S3RemoteStore(RemoteStore):
    """
    RemoteStore adapter backed by a boto3 S3 client.

    ETags are reported with their quotes stripped; the sync planner treats
    them as MD5 content hashes only for single-part uploads.
    """

    def __init__(self, *, settings: Settings, client=None) -> None:
        """
        Initialize S3 adapter with settings.

        Args:
            settings: Settings with profile, region, endpoint and timeouts
            client: Pre-built boto3 S3 client (tests inject a stub here)
        """
        self._settings = settings
        self._client = client if client is not None else self._make_client(settings)
        self._retrying = Retrying(
            stop=stop_after_attempt(settings.http_retry),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
            retry=retry_if_exception_type(_RETRYABLE),
            reraise=True,
        )

    @staticmethod
    def _make_client(settings: Settings):
        if settings.aws_profile:
            logger.debug(f"S3 adapter using profile {settings.aws_profile}")
            session = boto3.session.Session(profile_name=settings.aws_profile)
        else:
            session = boto3.session.Session()

        config = Config(
            connect_timeout=settings.http_timeout_s,
            read_timeout=settings.http_timeout_s,
            max_pool_connections=max(10, settings.concurrency * 2),
        )
        if settings.s3_endpoint_url:
            logger.debug(f"S3 adapter using custom endpoint: {settings.s3_endpoint_url}")
        return session.client(
            "s3",
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            config=config,
        )

    def _call(self, operation: str, func, **kwargs):
        try:
            return self._retrying(func, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise TransferError(f"S3 {operation} failed: {e}") from e

    def _pages(self, bucket: str, prefix: str, delimiter: Optional[str]):
        """
        Yield list_objects_v2 pages.

        Pages are requested one call at a time (rather than through a boto3
        paginator) so each request can be retried on its own.
        """
        params = {"Bucket": bucket, "Prefix": prefix}
        if delimiter:
            params["Delimiter"] = delimiter

        while True:
            page = self._call("list_objects_v2", self._client.list_objects_v2, **params)
            yield page
            if not page.get("IsTruncated"):
                return
            params["ContinuationToken"] = page["NextContinuationToken"]

    def list_buckets(self) -> List[RemoteObject]:
        response = self._call("list_buckets", self._client.list_buckets)
        buckets = [
            RemoteObject(key=b["Name"], is_container=True, last_modified=b.get("CreationDate"))
            for b in response.get("Buckets", [])
        ]
        logger.debug(f"Listed {len(buckets)} buckets")
        return buckets

    def list_children(self, bucket: str, prefix: str) -> List[RemoteObject]:
        objects: List[RemoteObject] = []
        folders: List[RemoteObject] = []
        for page in self._pages(bucket, prefix, DELIMITER):
            for cp in page.get("CommonPrefixes", []):
                folders.append(RemoteObject(key=cp["Prefix"], is_container=True))
            for item in page.get("Contents", []):
                # Skip the prefix itself if it appears as an object
                if item["Key"] == prefix:
                    continue
                objects.append(self._from_listing(item))
        logger.debug(f"Listed {len(folders)} prefixes and {len(objects)} objects under s3://{bucket}/{prefix}")
        return folders + objects

    def list_all_under(self, bucket: str, prefix: str) -> List[RemoteObject]:
        objects: List[RemoteObject] = []
        for page in self._pages(bucket, prefix, None):
            for item in page.get("Contents", []):
                if item["Key"].endswith(DELIMITER):
                    continue
                objects.append(self._from_listing(item))
        logger.debug(f"Listed {len(objects)} objects recursively under s3://{bucket}/{prefix}")
        return objects

    def head_object(self, bucket: str, key: str) -> RemoteObject:
        response = self._call("head_object", self._client.head_object, Bucket=bucket, Key=key)
        return RemoteObject(
            key=key,
            size=int(response.get("ContentLength", 0)),
            last_modified=response.get("LastModified"),
            digest=response.get("ETag", "").strip('"'),
        )

    def fetch(self, bucket: str, key: str, sink: BinaryIO, on_progress: ProgressCallback) -> None:
        response = self._call("get_object", self._client.get_object, Bucket=bucket, Key=key)
        body = response["Body"]
        written = 0
        try:
            for chunk in body.iter_chunks(chunk_size=self._settings.chunk_size):
                sink.write(chunk)
                written += len(chunk)
                on_progress(written)
        except (ClientError, BotoCoreError) as e:
            raise TransferError(f"S3 download of s3://{bucket}/{key} failed: {e}") from e
        finally:
            body.close()

    def content_hash_algorithm(self, obj: RemoteObject) -> Optional[str]:
        return etag_hash_algorithm(obj)

    @staticmethod
    def _from_listing(item: dict) -> RemoteObject:
        return RemoteObject(
            key=item["Key"],
            size=int(item.get("Size", 0)),
            last_modified=item.get("LastModified"),
            digest=item.get("ETag", "").strip('"'),
        )
