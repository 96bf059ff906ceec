"""
Redis snapshot store.

Keeps each entity collection under its own key as a JSON string, shared
by every service instance. Generation bookkeeping lives next to it:

- ``<key>:seq``         counter handing out refresh generations (INCR)
- ``<key>:generation``  generation of the snapshot currently stored

The compare-and-set runs as a Lua script so it is atomic on the server.
"""

from typing import Optional

import redis.asyncio as redis
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..domain.exceptions import CacheException
from .snapshot_store import SnapshotStore

logger = structlog.get_logger(__name__)

SET_IF_NEWER_SCRIPT = """
local stored = tonumber(redis.call('GET', KEYS[2]) or '0')
if tonumber(ARGV[1]) <= stored then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2])
redis.call('SET', KEYS[2], ARGV[1])
return 1
"""


class RedisSnapshotStore(SnapshotStore):
    """
    Snapshot store on Redis.

    Attributes:
        client: Async Redis client, None until connect()
        prefix: Key prefix for namespacing
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "",
        max_connections: int = 20,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
    ):
        """
        Initialize Redis snapshot store.

        Args:
            redis_url: Redis connection URL
            prefix: Key prefix for namespacing
            max_connections: Maximum connections in pool
            socket_timeout: Socket read/write timeout
            socket_connect_timeout: Socket connection timeout
        """
        self.redis_url = redis_url
        self.prefix = prefix
        self.max_connections = max_connections
        self.socket_timeout = socket_timeout
        self.socket_connect_timeout = socket_connect_timeout
        self.client: Optional[Redis] = None
        self._set_if_newer = None

    async def connect(self) -> None:
        """Establish Redis connection with connection pooling."""
        if self.client is not None:
            return

        client = redis.from_url(
            self.redis_url,
            max_connections=self.max_connections,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_connect_timeout,
            decode_responses=True,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            await client.aclose()
            raise CacheException("connect", str(e)) from e

        self.use_client(client)
        logger.info(
            "Redis snapshot store connected",
            redis_url=self.redis_url.split("@")[-1],
            max_connections=self.max_connections,
        )

    def use_client(self, client: Redis) -> None:
        """Attach an already created client."""
        self.client = client
        self._set_if_newer = client.register_script(SET_IF_NEWER_SCRIPT)

    async def close(self) -> None:
        """Close Redis connection."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            self._set_if_newer = None
            logger.info("Redis snapshot store disconnected")

    def _make_key(self, key: str) -> str:
        """Generate namespaced cache key."""
        return f"{self.prefix}{key}"

    def _require_client(self, operation: str) -> Redis:
        if self.client is None:
            raise CacheException(operation, "not connected")
        return self.client

    async def get(self, key: str) -> Optional[str]:
        client = self._require_client("get")
        try:
            return await client.get(self._make_key(key))
        except (RedisError, OSError) as e:
            raise CacheException("get", str(e)) from e

    async def next_generation(self, key: str) -> int:
        client = self._require_client("next_generation")
        try:
            return int(await client.incr(f"{self._make_key(key)}:seq"))
        except (RedisError, OSError) as e:
            raise CacheException("next_generation", str(e)) from e

    async def set_if_newer(self, key: str, value: str, generation: int) -> bool:
        self._require_client("set")
        cache_key = self._make_key(key)
        try:
            written = await self._set_if_newer(
                keys=[cache_key, f"{cache_key}:generation"],
                args=[generation, value],
            )
        except (RedisError, OSError) as e:
            raise CacheException("set", str(e)) from e
        return bool(written)
