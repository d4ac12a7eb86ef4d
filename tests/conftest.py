"""Root pytest configuration for bucketsync tests."""
import pytest

from bucketsync.settings import Settings

from .fakes import FakeRemoteStore


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


# Keep the developer's real cloud configuration out of the tests
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Automatically clear store-related environment variables."""
    for var in (
        "BUCKETSYNC_STORE", "BUCKETSYNC_CONCURRENCY", "BUCKETSYNC_CHUNK_SIZE",
        "BUCKETSYNC_HTTP_TIMEOUT", "BUCKETSYNC_HTTP_RETRY", "BUCKETSYNC_S3_ENDPOINT",
        "BUCKETSYNC_AZURE_BLOB_ENDPOINT", "AWS_PROFILE", "AWS_REGION", "AWS_DEFAULT_REGION",
        "AZURE_STORAGE_CONNECTION_STRING", "AZURE_STORAGE_ACCOUNT", "AZURE_STORAGE_KEY",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings(store="s3", aws_region="us-east-1", concurrency=2, http_retry=2)


@pytest.fixture
def store():
    """Empty fake remote store."""
    return FakeRemoteStore()


@pytest.fixture
def seeded_store():
    """Fake store with a small photo prefix in bucket 'b'."""
    fake = FakeRemoteStore()
    fake.put("b", "photos/a.jpg", b"a" * 10)
    fake.put("b", "photos/b.jpg", b"b" * 20)
    fake.put("b", "photos/2024/c.jpg", b"c" * 30)
    fake.put("b", "other/d.txt", b"d" * 5)
    return fake
