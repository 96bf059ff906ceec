"""
Collection snapshot cache.

- SnapshotStore: generation-ordered store contract
- RedisSnapshotStore: shared store for multi-instance deployments
- MemorySnapshotStore: in-process store for single instances and tests
- CacheSynchronizer: rebuilds snapshots after mutations
"""

from .memory_cache import MemorySnapshotStore
from .redis_cache import RedisSnapshotStore
from .snapshot_store import SnapshotStore
from .synchronizer import CacheSynchronizer

__all__ = ["CacheSynchronizer", "MemorySnapshotStore", "RedisSnapshotStore", "SnapshotStore"]
