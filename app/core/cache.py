"""
Redis-backed memoization for computed aggregates.

Each cache owns a key namespace and a TTL. Values are pydantic models
stored as JSON, so whatever is read back is validated into the same
response schema it was computed as.
"""
from typing import Awaitable, Callable, Iterable, Type, TypeVar
import logging

from pydantic import BaseModel
from redis import asyncio as aioredis

from app.core.config import settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class Cache:
    """Namespaced get-or-compute cache on top of Redis"""

    def __init__(self, namespace: str, ttl: int):
        self.namespace = namespace
        self.ttl = ttl

    def key(self, *parts) -> str:
        return ":".join([self.namespace, *(str(p) for p in parts)])

    async def get(self, redis: aioredis.Redis, key: str, model: Type[ModelT]):
        raw = await redis.get(key)
        if raw is None:
            return None
        return model.model_validate_json(raw)

    async def set(self, redis: aioredis.Redis, key: str, value: BaseModel, ttl: int = None) -> None:
        await redis.set(key, value.model_dump_json(), ex=ttl or self.ttl)

    async def get_or_set(
        self,
        redis: aioredis.Redis,
        key: str,
        model: Type[ModelT],
        compute: Callable[[], Awaitable[ModelT]],
        ttl: int = None
    ) -> ModelT:
        """Return the cached value for key, computing and storing it on a miss"""
        cached = await self.get(redis, key, model)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        logger.debug(f"Cache miss: {key}")
        value = await compute()
        await self.set(redis, key, value, ttl)
        return value

    async def delete(self, redis: aioredis.Redis, *keys: str) -> int:
        if not keys:
            return 0
        return await redis.delete(*keys)

    async def delete_matching(self, redis: aioredis.Redis, pattern: str) -> int:
        """Delete every key in this namespace matching a glob pattern"""
        keys = [k async for k in redis.scan_iter(match=self.key(pattern))]
        return await self.delete(redis, *keys)

    async def clear(self, redis: aioredis.Redis) -> int:
        removed = await self.delete_matching(redis, "*")
        logger.info(f"Cleared {removed} entries from '{self.namespace}' cache")
        return removed

    async def stats(self, redis: aioredis.Redis) -> dict:
        # Redis evicts expired keys itself, so everything still listed is live.
        total = 0
        async for _ in redis.scan_iter(match=self.key("*")):
            total += 1
        return {"total": total, "valid": total, "expired": 0, "ttl": self.ttl}


dashboard_cache = Cache("dashboard", settings.DASHBOARD_CACHE_TTL)
loan_stats_cache = Cache("loans", settings.LOAN_STATS_CACHE_TTL)

CACHES = {
    "dashboard": dashboard_cache,
    "loans": loan_stats_cache,
}

# Roles whose aggregates cover every loan rather than only their own
PRIVILEGED_ROLES = ("admin", "loan_officer")


def requester_key(cache: Cache, role: str, user_id: int, *parts) -> str:
    return cache.key(*parts, role, user_id)


async def invalidate_for_submitter(redis: aioredis.Redis, submitter_ids: Iterable[int]) -> None:
    """
    Drop cached aggregates that a write to loans submitted by the given
    users can affect: the submitters' own employee views plus every
    privileged view.
    """
    for cache in CACHES.values():
        keys = [cache.key("*", "employee", user_id) for user_id in set(submitter_ids) if user_id is not None]
        for pattern in keys + [cache.key("*", role, "*") for role in PRIVILEGED_ROLES]:
            matched = [k async for k in redis.scan_iter(match=pattern)]
            if matched:
                await redis.delete(*matched)
