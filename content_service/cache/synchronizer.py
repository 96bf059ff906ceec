"""
Cache synchronizer.

Keeps one full collection snapshot per cached entity type consistent with
the primary store. Every successful mutation triggers a whole-collection
re-read and replace; there are no partial updates. The primary store is
the source of truth: cache failures are logged and counted but never fail
the mutation that triggered the refresh.

Ordering of refreshes of the same type:
- in-process, a per-entity lock serializes them;
- across processes, each refresh reserves a generation *before* reading the
  store and the write is dropped if a later generation already landed, so
  an older snapshot cannot overwrite a newer one.
"""

import asyncio
import contextlib
from typing import Dict, Iterable, List, Optional, Set, Type, Union

import structlog
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from ..database import DatabaseManager
from ..domain.exceptions import CacheException
from ..metrics import track_cache_read, track_cache_refresh
from ..repositories.base import BaseBmc
from ..repositories.filters import build_collection_query
from .snapshot_store import SnapshotStore

logger = structlog.get_logger(__name__)

EntityRef = Union[str, Type[BaseBmc]]

REFRESH_MODES = ("sync", "background")


class CacheSynchronizer:
    """
    Publishes collection snapshots of cached entities.

    Attributes:
        store: Snapshot store (Redis or in-memory)
        db: Primary store manager the snapshots are read from
        refresh_mode: "sync" awaits refreshes inside the mutating call,
            "background" runs them as tasks
        full_refresh_interval: Seconds between periodic full rebuilds, 0 disables
    """

    def __init__(
        self,
        store: SnapshotStore,
        db: DatabaseManager,
        entities: Iterable[Type[BaseBmc]],
        refresh_mode: str = "sync",
        full_refresh_interval: float = 0,
    ):
        if refresh_mode not in REFRESH_MODES:
            raise ValueError(f"Unknown refresh mode: {refresh_mode}")

        self.store = store
        self.db = db
        self.refresh_mode = refresh_mode
        self.full_refresh_interval = full_refresh_interval

        self._entities: Dict[str, Type[BaseBmc]] = {
            bmc.descriptor.name: bmc for bmc in entities
        }
        for name, bmc in self._entities.items():
            if set(bmc.result_model.model_fields) != set(bmc.descriptor.exposed_fields):
                raise ValueError(f"{name}: result model does not match the exposed fields")
        self._adapters: Dict[str, TypeAdapter] = {
            name: TypeAdapter(List[bmc.result_model]) for name, bmc in self._entities.items()
        }
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._periodic_task: Optional[asyncio.Task] = None

    @property
    def entity_names(self) -> List[str]:
        return list(self._entities)

    def _resolve(self, entity: EntityRef) -> Type[BaseBmc]:
        name = entity if isinstance(entity, str) else entity.descriptor.name
        try:
            return self._entities[name]
        except KeyError:
            raise ValueError(f"Entity '{name}' is not cached") from None

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    # region: lifecycle

    async def start(self) -> None:
        """Connect the store, rebuild every snapshot, start the periodic refresh."""
        try:
            await self.store.connect()
        except CacheException as e:
            logger.warning("Cache unavailable at startup, serving from database", error=str(e))

        await self.refresh_all()

        if self.full_refresh_interval > 0 and self._periodic_task is None:
            self._periodic_task = asyncio.create_task(
                self.run_periodic(self.full_refresh_interval)
            )

    async def stop(self) -> None:
        """Stop the periodic refresh, let pending refreshes finish, close the store."""
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._periodic_task
            self._periodic_task = None

        await self.wait_idle()
        await self.store.close()

    async def wait_idle(self) -> None:
        """Wait for background refreshes started so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # endregion: lifecycle

    async def refresh(self, entity: EntityRef) -> bool:
        """
        Re-read the whole collection and replace its snapshot.

        Returns:
            True if the snapshot was written, False if the refresh failed or
            a newer snapshot was already stored
        """
        bmc = self._resolve(entity)
        name = bmc.descriptor.name

        async with self._lock_for(name):
            try:
                generation = await self.store.next_generation(name)
                async with self.db.transaction() as conn:
                    result = await conn.execute(build_collection_query(bmc.descriptor))
                    rows = result.mappings().all()
                items = [bmc.result_model.model_validate(dict(row)) for row in rows]
                payload = self._adapters[name].dump_json(items).decode("utf-8")
                written = await self.store.set_if_newer(name, payload, generation)
            except CacheException as e:
                logger.warning("Cache refresh failed", entity=name, error=str(e))
                track_cache_refresh(name, "cache_error")
                return False
            except (SQLAlchemyError, OSError) as e:
                logger.error("Cache refresh could not read store", entity=name, error=str(e))
                track_cache_refresh(name, "store_error")
                return False

        if not written:
            logger.debug("Snapshot superseded by newer refresh", entity=name, generation=generation)
            track_cache_refresh(name, "stale")
            return False

        logger.info("Cache snapshot refreshed", entity=name, count=len(items), generation=generation)
        track_cache_refresh(name, "success")
        return True

    async def schedule_refresh(self, entity: EntityRef) -> None:
        """Refresh after a mutation, inline or as a background task per refresh_mode."""
        if self.refresh_mode == "background":
            task = asyncio.create_task(self.refresh(entity))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return
        await self.refresh(entity)

    async def refresh_all(self) -> Dict[str, bool]:
        """Rebuild every cached entity's snapshot, one type after the other."""
        outcome = {}
        for name in self.entity_names:
            outcome[name] = await self.refresh(name)
        logger.info("Cache rebuild finished", results=outcome)
        return outcome

    async def get_or_none(self, entity: EntityRef) -> Optional[List[BaseModel]]:
        """
        Read a snapshot.

        Returns:
            The cached collection, or None if it was never initialized or the
            cache cannot be read (callers then query the database)
        """
        bmc = self._resolve(entity)
        name = bmc.descriptor.name

        try:
            raw = await self.store.get(name)
        except CacheException as e:
            logger.warning("Cache read failed", entity=name, error=str(e))
            track_cache_read(name, hit=False)
            return None

        if raw is None:
            track_cache_read(name, hit=False)
            return None

        try:
            items = self._adapters[name].validate_json(raw)
        except PydanticValidationError as e:
            logger.error("Unreadable cache snapshot", entity=name, error=str(e))
            track_cache_read(name, hit=False)
            return None

        track_cache_read(name, hit=True)
        return items

    async def run_periodic(self, interval: float) -> None:
        """Rebuild every snapshot each ``interval`` seconds, bounding staleness."""
        logger.info("Periodic cache refresh started", interval=interval)
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_all()
            except Exception as e:
                logger.exception("Periodic cache refresh failed", error=str(e))
