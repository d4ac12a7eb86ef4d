"""Test fakes for bucketsync."""
from .fake_store import FakeRemoteStore

__all__ = ["FakeRemoteStore"]
