"""
Trustee Portal - Storage Base Classes
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from trustee_portal.core.logging import LoggerMixin


class StorageBackend(ABC, LoggerMixin):
    """Abstract base class for connection-backed stores."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the storage backend."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the storage backend."""
        pass

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Check health of the storage backend."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if connected to storage backend."""
        pass
