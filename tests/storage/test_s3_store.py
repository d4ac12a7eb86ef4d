"""
Tests for the S3 adapter with a stubbed boto3 client.
"""
from __future__ import annotations

import io
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from bucketsync.runtime import TransferError
from bucketsync.runtime_types import RemoteObject
from bucketsync.settings import Settings
from bucketsync.storage.s3_store import S3RemoteStore

MODIFIED = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _item(key, size=1, etag='"0cc175b9c0f1b6a831c399e269772661"'):
    return {"Key": key, "Size": size, "LastModified": MODIFIED, "ETag": etag}


@pytest.fixture
def client():
    return Mock()


@pytest.fixture
def s3(client):
    return S3RemoteStore(settings=Settings(http_retry=2, chunk_size=2), client=client)


class TestS3Listing:
    """Test list_objects_v2 handling."""

    def test_list_children_folders_first(self, s3, client):
        """Test that common prefixes come first and the prefix object is skipped."""
        client.list_objects_v2.return_value = {
            "CommonPrefixes": [{"Prefix": "photos/2024/"}],
            "Contents": [_item("photos/"), _item("photos/a.jpg", 10)],
            "IsTruncated": False,
        }

        entries = s3.list_children("b", "photos/")

        assert entries == [
            RemoteObject("photos/2024/", is_container=True),
            RemoteObject("photos/a.jpg", 10, MODIFIED, "0cc175b9c0f1b6a831c399e269772661"),
        ]
        client.list_objects_v2.assert_called_once_with(Bucket="b", Prefix="photos/", Delimiter="/")

    def test_list_all_under_follows_continuation(self, s3, client):
        """Test that truncated listings are paged with the continuation token."""
        client.list_objects_v2.side_effect = [
            {"Contents": [_item("p/a")], "IsTruncated": True, "NextContinuationToken": "tok"},
            {"Contents": [_item("p/dir/"), _item("p/b")], "IsTruncated": False},
        ]

        keys = [o.key for o in s3.list_all_under("b", "p/")]

        assert keys == ["p/a", "p/b"]
        second = client.list_objects_v2.call_args_list[1]
        assert second.kwargs == {"Bucket": "b", "Prefix": "p/", "ContinuationToken": "tok"}

    def test_empty_listing(self, s3, client):
        """Test that a listing without Contents is empty."""
        client.list_objects_v2.return_value = {"KeyCount": 0, "IsTruncated": False}
        assert s3.list_all_under("b", "none/") == []

    def test_client_error_becomes_transfer_error(self, s3, client):
        """Test that botocore errors are mapped to TransferError."""
        client.list_objects_v2.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "ListObjectsV2"
        )
        with pytest.raises(TransferError, match="list_objects_v2"):
            s3.list_all_under("b", "p/")

    def test_connection_errors_are_retried(self, s3, client):
        """Test that a transient connection error is retried."""
        client.list_objects_v2.side_effect = [
            EndpointConnectionError(endpoint_url="https://s3.example"),
            {"Contents": [_item("p/a")], "IsTruncated": False},
        ]
        assert [o.key for o in s3.list_all_under("b", "p/")] == ["p/a"]
        assert client.list_objects_v2.call_count == 2

    def test_retries_exhausted(self, s3, client):
        """Test that persistent connection errors surface as TransferError."""
        client.list_objects_v2.side_effect = EndpointConnectionError(endpoint_url="https://s3.example")
        with pytest.raises(TransferError):
            s3.list_all_under("b", "p/")
        assert client.list_objects_v2.call_count == 2


class TestS3Buckets:
    """Test list_buckets handling."""

    def test_list_buckets(self, s3, client):
        """Test that buckets become container entries with their creation time."""
        client.list_buckets.return_value = {
            "Buckets": [{"Name": "alpha", "CreationDate": MODIFIED}, {"Name": "beta"}],
        }

        entries = s3.list_buckets()

        assert entries == [
            RemoteObject("alpha", last_modified=MODIFIED, is_container=True),
            RemoteObject("beta", is_container=True),
        ]
        client.list_buckets.assert_called_once_with()

    def test_list_buckets_denied(self, s3, client):
        """Test that an SDK error becomes TransferError."""
        client.list_buckets.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "ListBuckets"
        )
        with pytest.raises(TransferError, match="list_buckets"):
            s3.list_buckets()


class TestS3Objects:
    """Test metadata and streaming."""

    def test_head_object(self, s3, client):
        """Test that head_object maps size, time and unquoted ETag."""
        client.head_object.return_value = {
            "ContentLength": 42, "LastModified": MODIFIED, "ETag": '"abc-2"'
        }
        obj = s3.head_object("b", "k")
        assert obj == RemoteObject("k", 42, MODIFIED, "abc-2")

    def test_head_missing_object(self, s3, client):
        """Test that a 404 is a TransferError."""
        client.head_object.side_effect = ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        with pytest.raises(TransferError):
            s3.head_object("b", "missing")

    def test_fetch_streams_chunks(self, s3, client):
        """Test that fetch writes every chunk and reports cumulative bytes."""
        body = Mock()
        body.iter_chunks.return_value = iter([b"he", b"ll", b"o"])
        client.get_object.return_value = {"Body": body}
        sink = io.BytesIO()
        seen = []

        s3.fetch("b", "k", sink, seen.append)

        assert sink.getvalue() == b"hello"
        assert seen == [2, 4, 5]
        body.iter_chunks.assert_called_once_with(chunk_size=2)
        body.close.assert_called_once()

    def test_fetch_closes_body_when_aborted(self, s3, client):
        """Test that the body is closed when the progress callback raises."""
        body = Mock()
        body.iter_chunks.return_value = iter([b"he", b"ll"])
        client.get_object.return_value = {"Body": body}

        def abort(n):
            raise RuntimeError("stop")

        with pytest.raises(RuntimeError):
            s3.fetch("b", "k", io.BytesIO(), abort)
        body.close.assert_called_once()

    def test_content_hash_algorithm(self, s3):
        """Test ETag classification through the adapter."""
        assert s3.content_hash_algorithm(RemoteObject("k", 1, digest="0cc175b9c0f1b6a831c399e269772661")) == "md5"
        assert s3.content_hash_algorithm(RemoteObject("k", 1, digest="abc-2")) is None


class TestS3ClientConstruction:
    """Test boto3 client configuration."""

    def test_client_uses_settings(self, monkeypatch):
        """Test that profile, region, endpoint and timeouts reach boto3."""
        session = Mock()
        session_cls = Mock(return_value=session)
        monkeypatch.setattr("bucketsync.storage.s3_store.boto3.session.Session", session_cls)

        S3RemoteStore(settings=Settings(
            aws_profile="dev", aws_region="eu-west-1",
            s3_endpoint_url="http://localhost:9000", http_timeout_s=7,
        ))

        session_cls.assert_called_once_with(profile_name="dev")
        args, kwargs = session.client.call_args
        assert args == ("s3",)
        assert kwargs["region_name"] == "eu-west-1"
        assert kwargs["endpoint_url"] == "http://localhost:9000"
        assert kwargs["config"].connect_timeout == 7
