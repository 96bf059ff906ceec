"""
Snapshot store interface (Abstract Base Class).

A snapshot store keeps one serialized collection per entity type. Writes
are ordered by a generation number: a refresh takes a generation before it
reads the primary store, and its write is only applied if no refresh with
a later generation has already written. An older snapshot therefore never
overwrites a newer one.
"""

from abc import ABC, abstractmethod
from typing import Optional


class SnapshotStore(ABC):
    """Contract for the cache backing collection snapshots."""

    async def connect(self) -> None:
        """Open connections. No-op for in-process stores."""

    async def close(self) -> None:
        """Release connections. No-op for in-process stores."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read a snapshot.

        Args:
            key: Entity type name

        Returns:
            Serialized collection, or None if never written

        Raises:
            CacheException: If the store cannot be reached
        """

    @abstractmethod
    async def next_generation(self, key: str) -> int:
        """
        Reserve the next refresh generation for a key.

        Raises:
            CacheException: If the store cannot be reached
        """

    @abstractmethod
    async def set_if_newer(self, key: str, value: str, generation: int) -> bool:
        """
        Replace a snapshot unless a later generation has already been stored.

        Args:
            key: Entity type name
            value: Serialized collection
            generation: Generation reserved by the refresh producing value

        Returns:
            True if the snapshot was written, False if it was stale

        Raises:
            CacheException: If the store cannot be reached
        """
