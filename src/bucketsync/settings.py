"""
Settings and configuration for bucketsync.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at store construction time.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

__all__ = ["Settings", "create_settings_from_env"]

STORE_KINDS = ("s3", "az")


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for bucketsync.

    Store Selection:
        store: Remote store kind used when a URI has no scheme ("s3" or "az")

    S3 Settings:
        aws_profile: Shared config profile (credentials resolved by boto3)
        aws_region: Region override
        s3_endpoint_url: Custom endpoint (MinIO, localstack, ...)

    Transfer Settings:
        concurrency: Number of parallel download workers
        chunk_size: Bytes read per streaming chunk
        http_timeout_s: Connect/read timeout in seconds
        http_retry: Attempts for listing and metadata calls (1 = no retry)

    Azure Settings:
        az_connection_string: Azure storage connection string
        az_account: Azure storage account name
        az_key: Azure storage account key
        az_blob_endpoint: Custom Azure blob endpoint (for Azurite/private endpoints)
    """
    store: str = "s3"

    aws_profile: Optional[str] = None
    aws_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    concurrency: int = 5
    chunk_size: int = 1024 * 1024
    http_timeout_s: float = 30.0
    http_retry: int = 3

    az_connection_string: Optional[str] = None
    az_account: Optional[str] = None
    az_key: Optional[str] = None
    az_blob_endpoint: Optional[str] = None

    def __post_init__(self):
        """Validate settings on construction."""
        if self.store not in STORE_KINDS:
            raise ValueError(f"store must be one of {', '.join(STORE_KINDS)}, got {self.store!r}")

        if self.concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {self.concurrency}")

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 1:
            raise ValueError(f"http_retry must be at least 1, got {self.http_retry}")

        if self.s3_endpoint_url and not self.s3_endpoint_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid s3_endpoint_url format: {self.s3_endpoint_url}")

        # Azure auth: either connection string OR (account + key), never both
        has_conn_str = bool(self.az_connection_string)
        has_account_key = bool(self.az_account and self.az_key)

        if has_conn_str and has_account_key:
            raise ValueError("Specify either az_connection_string OR (az_account + az_key), not both")

        # Azure auth is optional (S3-only deployments), but if partially configured it must be complete
        if self.az_account and not self.az_key:
            raise ValueError("az_account specified but az_key is missing")
        if self.az_key and not self.az_account:
            raise ValueError("az_key specified but az_account is missing")


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - BUCKETSYNC_STORE (default: s3)
        - AWS_PROFILE (optional)
        - AWS_REGION or AWS_DEFAULT_REGION (optional)
        - BUCKETSYNC_S3_ENDPOINT (optional)
        - BUCKETSYNC_CONCURRENCY (default: 5)
        - BUCKETSYNC_CHUNK_SIZE (default: 1048576)
        - BUCKETSYNC_HTTP_TIMEOUT (default: 30.0)
        - BUCKETSYNC_HTTP_RETRY (default: 3)
        - AZURE_STORAGE_CONNECTION_STRING (optional)
        - AZURE_STORAGE_ACCOUNT (optional)
        - AZURE_STORAGE_KEY (optional)
        - BUCKETSYNC_AZURE_BLOB_ENDPOINT (optional, for Azurite/custom endpoints)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    return Settings(
        store=os.getenv("BUCKETSYNC_STORE", "s3").lower(),
        aws_profile=os.getenv("AWS_PROFILE") or None,
        aws_region=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or None,
        s3_endpoint_url=os.getenv("BUCKETSYNC_S3_ENDPOINT") or None,
        concurrency=get_int("BUCKETSYNC_CONCURRENCY", 5),
        chunk_size=get_int("BUCKETSYNC_CHUNK_SIZE", 1024 * 1024),
        http_timeout_s=get_float("BUCKETSYNC_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("BUCKETSYNC_HTTP_RETRY", 3),
        az_connection_string=os.getenv("AZURE_STORAGE_CONNECTION_STRING") or None,
        az_account=os.getenv("AZURE_STORAGE_ACCOUNT") or None,
        az_key=os.getenv("AZURE_STORAGE_KEY") or None,
        az_blob_endpoint=os.getenv("BUCKETSYNC_AZURE_BLOB_ENDPOINT") or None,
    )
