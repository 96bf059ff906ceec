"""
Tests for the collection snapshot cache.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from content_service.cache import CacheSynchronizer, MemorySnapshotStore
from content_service.domain.entities import Author
from content_service.domain.exceptions import CacheException, EntityNotFound
from content_service.repositories import (
    CACHED_ENTITIES,
    AuthorBmc,
    EditBmc,
    ModelManager,
    PostBmc,
)


class FailingStore(MemorySnapshotStore):
    """Snapshot store whose every call fails like an unreachable Redis."""

    async def get(self, key):
        raise CacheException("get", "connection refused")

    async def next_generation(self, key):
        raise CacheException("next_generation", "connection refused")


def snapshot(store: MemorySnapshotStore, key: str) -> list:
    raw = store.snapshots[key][1]
    return json.loads(raw)


class TestSnapshotRefresh:
    """Test snapshots follow every mutation."""

    async def test_startup_writes_empty_snapshots(self, cache, snapshot_store):
        assert snapshot(snapshot_store, "posts") == []
        assert snapshot(snapshot_store, "authors") == []
        assert "edits" not in snapshot_store.snapshots

    async def test_create_and_delete(self, mm, root_ctx, create_post, snapshot_store):
        ids = [await create_post(title=f"p{i}", weight=i) for i in range(3)]
        assert len(snapshot(snapshot_store, "posts")) == 3

        await PostBmc.delete(root_ctx, mm, ids[0])
        cached = snapshot(snapshot_store, "posts")
        assert [p["id"] for p in cached] == [ids[2], ids[1]]

    async def test_update_refreshes(self, mm, root_ctx, create_post, snapshot_store):
        post_id = await create_post(title="Old")
        await PostBmc.update(root_ctx, mm, post_id, {"title": "New"})

        assert snapshot(snapshot_store, "posts")[0]["title"] == "New"

    async def test_author_snapshot_hides_password(self, create_author, snapshot_store):
        await create_author(name="Ada")
        cached = snapshot(snapshot_store, "authors")

        assert cached == [{"id": cached[0]["id"], "name": "Ada", "email": "ada@example.com"}]

    async def test_uncached_entity_does_not_refresh(
        self, mm, create_author, create_post, create_edit, snapshot_store
    ):
        editor_id = await create_author()
        post_id = await create_post()
        generations = dict(snapshot_store.sequences)

        await create_edit(post_id=post_id, editor_id=editor_id)
        assert snapshot_store.sequences == generations

    async def test_failed_mutation_does_not_refresh(self, mm, root_ctx, snapshot_store):
        generations = dict(snapshot_store.sequences)
        with pytest.raises(EntityNotFound):
            await PostBmc.delete(root_ctx, mm, 404)
        assert snapshot_store.sequences == generations

    async def test_get_or_none(self, cache, create_post):
        post_id = await create_post(title="Hello")
        posts = await cache.get_or_none(PostBmc)

        assert [p.id for p in posts] == [post_id]
        assert posts[0].title == "Hello"

    async def test_get_or_none_before_first_refresh(self, db):
        cold = CacheSynchronizer(MemorySnapshotStore(), db, CACHED_ENTITIES)
        assert await cold.get_or_none("posts") is None

    async def test_uncached_entity_rejected(self, cache):
        with pytest.raises(ValueError):
            await cache.get_or_none(EditBmc)

    def test_result_model_must_match_exposed_fields(self):
        class LeakyAuthorBmc(AuthorBmc):
            result_model = Author

        with pytest.raises(ValueError):
            CacheSynchronizer(MemorySnapshotStore(), None, [LeakyAuthorBmc])


class TestGenerationOrdering:
    """Test older snapshots never replace newer ones."""

    async def test_stale_generation_dropped(self):
        store = MemorySnapshotStore()
        older = await store.next_generation("posts")
        newer = await store.next_generation("posts")

        assert await store.set_if_newer("posts", "[2]", newer) is True
        assert await store.set_if_newer("posts", "[1]", older) is False
        assert await store.get("posts") == "[2]"

    async def test_refresh_superseded_by_later_generation(
        self, cache, snapshot_store, create_post
    ):
        await create_post()
        # another instance already reserved and wrote a later generation
        later = snapshot_store.sequences["posts"] + 5
        await snapshot_store.set_if_newer("posts", "[]", later)

        assert await cache.refresh("posts") is False
        assert snapshot(snapshot_store, "posts") == []


class TestCacheFailures:
    """Test cache trouble never fails a mutation."""

    async def test_mutation_succeeds_with_broken_cache(self, db, root_ctx):
        cache = CacheSynchronizer(FailingStore(), db, CACHED_ENTITIES)
        await cache.start()
        mm = ModelManager(db, cache=cache)

        post_id = await PostBmc.create(root_ctx, mm, {"title": "t", "content": "c"})
        assert (await PostBmc.get(root_ctx, mm, post_id)).title == "t"
        assert await cache.get_or_none("posts") is None

    async def test_refresh_reports_failure(self, db):
        cache = CacheSynchronizer(FailingStore(), db, CACHED_ENTITIES)
        assert await cache.refresh_all() == {"authors": False, "posts": False}

    async def test_unreadable_snapshot_is_a_miss(self, cache, snapshot_store):
        snapshot_store.snapshots["posts"] = (99, "not json")
        assert await cache.get_or_none("posts") is None

    async def test_store_connect_failure_at_startup(self, db):
        store = MemorySnapshotStore()
        store.connect = AsyncMock(side_effect=CacheException("connect", "refused"))
        cache = CacheSynchronizer(store, db, CACHED_ENTITIES)

        await cache.start()
        assert await cache.get_or_none("posts") == []


class TestRefreshModes:
    async def test_background_mode(self, db, root_ctx, snapshot_store):
        cache = CacheSynchronizer(snapshot_store, db, CACHED_ENTITIES, refresh_mode="background")
        await cache.start()
        mm = ModelManager(db, cache=cache)

        await PostBmc.create(root_ctx, mm, {"title": "t", "content": "c"})
        await cache.wait_idle()

        assert len(snapshot(snapshot_store, "posts")) == 1
        await cache.stop()

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            CacheSynchronizer(MemorySnapshotStore(), None, CACHED_ENTITIES, refresh_mode="lazy")

    async def test_periodic_refresh_task_stops(self, db, snapshot_store):
        cache = CacheSynchronizer(
            snapshot_store, db, CACHED_ENTITIES, full_refresh_interval=3600
        )
        await cache.start()
        task = cache._periodic_task
        assert task is not None and not task.done()

        await cache.stop()
        assert task.cancelled()

    async def test_periodic_refresh_survives_errors(self, cache, monkeypatch):
        calls = []

        async def flaky_refresh_all():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database went away")
            return {}

        monkeypatch.setattr(cache, "refresh_all", flaky_refresh_all)
        task = asyncio.create_task(cache.run_periodic(0))
        for _ in range(100):
            await asyncio.sleep(0)
            if len(calls) >= 2:
                break
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(calls) >= 2

    async def test_authors_keyed_by_descriptor_name(self, cache):
        assert cache.entity_names == [AuthorBmc.descriptor.name, PostBmc.descriptor.name]
