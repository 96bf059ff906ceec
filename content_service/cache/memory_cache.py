"""
In-process snapshot store.

Same contract as the Redis store, kept in a dict. Suitable for a single
instance deployment and for tests.
"""

from typing import Dict, Optional, Tuple

import structlog

from .snapshot_store import SnapshotStore

logger = structlog.get_logger(__name__)


class MemorySnapshotStore(SnapshotStore):
    """
    Snapshot store in process memory.

    Attributes:
        snapshots: key -> (generation, serialized collection)
        sequences: key -> last generation handed out
    """

    def __init__(self):
        self.snapshots: Dict[str, Tuple[int, str]] = {}
        self.sequences: Dict[str, int] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self.snapshots.get(key)
        return entry[1] if entry else None

    async def next_generation(self, key: str) -> int:
        self.sequences[key] = self.sequences.get(key, 0) + 1
        return self.sequences[key]

    async def set_if_newer(self, key: str, value: str, generation: int) -> bool:
        stored = self.snapshots.get(key)
        if stored is not None and generation <= stored[0]:
            logger.debug("Stale snapshot dropped", key=key, generation=generation)
            return False
        self.snapshots[key] = (generation, value)
        return True
