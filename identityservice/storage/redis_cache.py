from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis
from redis import Redis

REFRESH_KEY_PREFIX = "refresh:"


def refresh_key(username: str) -> str:
    return f"{REFRESH_KEY_PREFIX}{username}"


class RedisCache:
    """Thin Redis wrapper for the refresh-token registry.

    Each registry operation is a single Redis command, so every call is
    atomic on the server side. Nothing here does compare-and-swap.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0

    def __init__(self, redis_url: str, *, socket_timeout: float = DEFAULT_OPERATION_TIMEOUT):
        self.redis_url = redis_url
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before enabling dependent features."""
        # Use a short-lived synchronous client to avoid binding the async client to a
        # temporary event loop during startup checks.
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    async def store_refresh_token(
        self, username: str, token: str, ttl_seconds: int
    ) -> None:
        """Register ``token`` as the only valid refresh token for ``username``.

        Overwrites whatever was registered before (last write wins).
        """
        await self.client.set(refresh_key(username), token, ex=max(1, int(ttl_seconds)))

    async def get_refresh_token(self, username: str) -> Optional[str]:
        return await self.client.get(refresh_key(username))

    async def delete_refresh_token(self, username: str) -> bool:
        return bool(await self.client.delete(refresh_key(username)))

    async def close(self) -> None:
        await self.client.aclose()


class SyncRedisCache:
    """Synchronous Redis wrapper for use in tests.

    Uses a synchronous Redis client internally to avoid event loop binding
    issues in pytest, but exposes async methods so they can be awaited
    uniformly like RedisCache.
    """

    def __init__(
        self, redis_url: str, *, socket_timeout: float = RedisCache.DEFAULT_OPERATION_TIMEOUT
    ):
        self.redis_url = redis_url
        self.client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        self.client.ping()

    async def store_refresh_token(
        self, username: str, token: str, ttl_seconds: int
    ) -> None:
        self.client.set(refresh_key(username), token, ex=max(1, int(ttl_seconds)))

    async def get_refresh_token(self, username: str) -> Optional[str]:
        return self.client.get(refresh_key(username))

    async def delete_refresh_token(self, username: str) -> bool:
        return bool(self.client.delete(refresh_key(username)))

    async def close(self) -> None:
        self.client.close()
