"""
Redis-backed cache for single-document detail views.

Only detail reads are cached.  List reads go straight to the store, so the
one invalidation rule is simple: when the entity store commits a write to a
document, the detail entry of that document is dropped.  Back-reference
pushes and pulls count as writes, which keeps e.g. a cached category's
``posts`` list in step with the posts being linked to it.

Redis is optional.  When it is unreachable every read is a miss and every
write or delete is skipped; nothing here raises to the caller.
"""
import json
import logging
from typing import Awaitable, Callable

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)


def detail_key(collection: str, doc_id: int) -> str:
    """Cache key for the detail view of one document, e.g. ``posts:detail:7``."""
    return f"{collection}:detail:{doc_id}"


class CacheManager:
    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """Open the pool and ping it; on failure the cache stays disabled."""
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await client.ping()
        except Exception as exc:
            logger.warning("Redis unavailable at %s, running without cache: %s", settings.REDIS_URL, exc)
            await client.aclose()
            return
        self._redis = client
        logger.info("Redis connected: %s", settings.REDIS_URL)

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> dict | None:
        raw = None
        if self._redis is not None:
            try:
                raw = await self._redis.get(key)
            except Exception as exc:
                logger.debug("Cache read failed for %r: %s", key, exc)
        if raw is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(raw)

    async def set(self, key: str, value: dict, ttl: int | None = None) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache write failed for %r: %s", key, exc)

    async def delete(self, *keys: str) -> None:
        if self._redis is None or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except Exception as exc:
            logger.debug("Cache delete failed for %r: %s", keys, exc)

    async def get_or_load(
        self,
        collection: str,
        doc_id: int,
        load: Callable[[], Awaitable[dict]],
    ) -> dict:
        """
        Cache-aside read of one document's detail view.

        *load* is awaited on a miss and its result stored for
        ``settings.CACHE_TTL_DETAIL`` seconds.  Exceptions from *load* (for
        example ``NotFoundError``) propagate and nothing is cached.
        """
        key = detail_key(collection, doc_id)
        data = await self.get(key)
        if data is None:
            data = await load()
            await self.set(key, data, ttl=settings.CACHE_TTL_DETAIL)
        return data

    async def invalidate_documents(self, collection: str, *doc_ids: int) -> None:
        """Drop the detail entries of *doc_ids*; called by the store after each write."""
        if not doc_ids:
            return
        self._invalidations += len(doc_ids)
        await self.delete(*(detail_key(collection, doc_id) for doc_id in doc_ids))

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "enabled": self.enabled,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            "invalidations": self._invalidations,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
