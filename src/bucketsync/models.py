"""
Session request models.

These Pydantic models describe what a presentation layer asks the
orchestrator to do. ``start_session`` accepts any of them; the ``kind`` field
discriminates between the four entry points.
"""
from __future__ import annotations

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .runtime_types import RemoteObject

__all__ = [
    "DownloadOneRequest",
    "DownloadPrefixRequest",
    "DownloadSelectionRequest",
    "SyncRequest",
    "SessionRequest",
    "parse_session_request",
]


class _Request(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket: str = Field(..., min_length=1, description="Bucket or container name")


class DownloadOneRequest(_Request):
    """Download a single object."""
    kind: Literal["one"] = "one"
    key: str = Field(..., min_length=1, description="Object key")
    destination: str = Field(..., min_length=1, description="Local file path or existing directory")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v):
        if v.endswith("/"):
            raise ValueError(f"key names a prefix, not an object: {v}")
        return v


class DownloadPrefixRequest(_Request):
    """Download every object under a prefix."""
    kind: Literal["prefix"] = "prefix"
    prefix: str = Field(default="", description="Key prefix (empty for the whole bucket)")
    destination_dir: str = Field(..., min_length=1, description="Local directory")


class DownloadSelectionRequest(_Request):
    """Download an explicit selection of objects and containers."""
    kind: Literal["selection"] = "selection"
    selected: List[RemoteObject] = Field(..., min_length=1, description="Selected entries")
    key_prefix: str = Field(default="", description="Prefix stripped from keys to build local paths")
    destination_dir: str = Field(..., min_length=1, description="Local directory")


class SyncRequest(_Request):
    """Download only the objects under a prefix that differ locally."""
    kind: Literal["sync"] = "sync"
    prefix: str = Field(default="", description="Key prefix (empty for the whole bucket)")
    destination_dir: str = Field(..., min_length=1, description="Local directory")


SessionRequest = Annotated[
    Union[DownloadOneRequest, DownloadPrefixRequest, DownloadSelectionRequest, SyncRequest],
    Field(discriminator="kind"),
]

_session_request_adapter = TypeAdapter(SessionRequest)


def parse_session_request(data: dict) -> SessionRequest:
    """
    Build a request model from a plain dict (e.g. decoded JSON).

    Raises:
        pydantic.ValidationError: If the payload matches no request kind
    """
    return _session_request_adapter.validate_python(data)
