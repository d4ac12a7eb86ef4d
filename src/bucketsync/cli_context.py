"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and store
instances, avoiding global state and enabling proper dependency injection.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from .settings import Settings, create_settings_from_env
from .storage.base import RemoteStore
from .storage.store_factory import make_store


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, stores) that are
    initialized once and shared across a CLI command execution.
    """
    settings: Settings
    _stores: Dict[str, RemoteStore] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Create CLI context from environment variables.

        Returns:
            CLIContext with settings loaded from environment
        """
        settings = create_settings_from_env()
        return cls(settings=settings)

    def store(self, scheme: Optional[str] = None) -> RemoteStore:
        """
        Get or create the store for a URI scheme (lazy initialization).

        The store is created on first access and reused for subsequent calls.

        Args:
            scheme: "s3" or "az"; defaults to the configured store

        Returns:
            RemoteStore instance
        """
        kind = scheme or self.settings.store
        if kind not in self._stores:
            self._stores[kind] = make_store(self.settings, kind)
        return self._stores[kind]
