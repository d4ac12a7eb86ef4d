"""
URI parsing utilities for remote store locations.

Parses the ``scheme://bucket/prefix`` arguments accepted by the CLI.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Optional

__all__ = ["StoreURI", "parse_store_uri", "parse_store_root"]

_URI_PATTERN = re.compile(r"^(s3|az)://([^/]+)(?:/(.*))?$")
_ROOT_PATTERN = re.compile(r"^(s3|az)://$")


@dataclass(frozen=True)
class StoreURI:
    """
    Parsed components of a store location.

    Attributes:
        scheme: Store kind (s3, az)
        bucket: Bucket (S3) or container (Azure) name
        key: Key or prefix within the bucket, possibly empty
        original: Original URI string for error messages
    """
    scheme: Literal["s3", "az"]
    bucket: str
    key: str
    original: str

    @property
    def is_prefix(self) -> bool:
        """True when the location names a prefix rather than one object."""
        return self.key == "" or self.key.endswith("/")

    def __str__(self) -> str:
        return f"{self.scheme}://{self.bucket}/{self.key}"


def parse_store_uri(uri: str, default_scheme: Optional[str] = None) -> StoreURI:
    """
    Parse and validate a store location.

    Accepts ``{s3|az}://bucket[/key]``. When ``default_scheme`` is given, a
    bare ``bucket[/key]`` is accepted too.

    Unlike local paths, keys are not checked for traversal here: keys are
    validated when they are mapped onto the local filesystem.

    Args:
        uri: Location to parse
        default_scheme: Scheme assumed when uri has none

    Returns:
        StoreURI with validated components

    Raises:
        ValueError: If uri format is invalid

    Examples:
        >>> parse_store_uri("s3://my-bucket/photos/2024/")
        StoreURI(scheme='s3', bucket='my-bucket', key='photos/2024/', original='s3://my-bucket/photos/2024/')
    """
    if not uri:
        raise ValueError("URI cannot be empty")

    candidate = uri
    if "://" not in uri and default_scheme:
        candidate = f"{default_scheme}://{uri}"

    match = _URI_PATTERN.match(candidate)
    if not match:
        raise ValueError(f"Invalid URI format, expected s3://bucket/key or az://container/key: {uri}")

    scheme, bucket, key = match.groups()
    key = key or ""
    if key.startswith("/"):
        raise ValueError(f"URI key cannot start with '/': {uri}")

    return StoreURI(
        scheme=scheme,  # type: ignore  # We validated it's one of the literals
        bucket=bucket,
        key=key,
        original=uri,
    )


def parse_store_root(uri: str) -> Optional[str]:
    """
    Return the scheme when uri names a store root ("s3://" or "az://").

    Returns:
        "s3" or "az" for a bare root, None for anything else
    """
    match = _ROOT_PATTERN.match(uri)
    return match.group(1) if match else None
