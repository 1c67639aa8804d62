"""
Redis-backed cache for analysis reports and visualization payloads.

Values are stored as JSON with a TTL. Every write is also recorded in a sorted
set (the access log) scored by write time; when the log grows past
`max_entries`, the oldest keys are evicted. Any Redis failure is logged and
reported to the caller as a miss.
"""

import json
import logging
import re
import time
from typing import Any

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

logger = logging.getLogger(__name__)

ACCESS_LOG_KEY = "report_access_log"
DEFAULT_TTL = 300
DEFAULT_MAX_ENTRIES = 10

# Errors that mean "treat as a miss"; ValueError covers bad JSON
CACHE_ERRORS = (RedisError, OSError, ValueError, TypeError)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9\-._:/]")


def sanitize_repo_url(repo_url: str) -> str:
    """Drop characters that have no business in a cache key."""
    return _UNSAFE_KEY_CHARS.sub("", repo_url)


def analysis_cache_key(repo_url: str) -> str:
    return f"analysis_{sanitize_repo_url(repo_url)}"


def visualization_cache_key(repo_url: str) -> str:
    return f"visualizations_{sanitize_repo_url(repo_url)}"


class RedisCacheService:
    def __init__(
        self,
        url: str = "redis://localhost:6379",
        default_ttl: int = DEFAULT_TTL,
        prefix: str | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        client: Any = None,
    ):
        self.default_ttl = default_ttl
        self.prefix = prefix or None
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0

        if client is None:
            client = redis.from_url(
                url,
                decode_responses=True,
                retry=Retry(ExponentialBackoff(cap=2.0, base=0.05), 3),
                retry_on_error=[RedisConnectionError, RedisTimeoutError],
                health_check_interval=30,
            )
            logger.info(f"Redis cache configured for {url}")
        self.client = client

    def full_key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    @property
    def access_log_key(self) -> str:
        return self.full_key(ACCESS_LOG_KEY)

    async def get(self, key: str) -> Any | None:
        full_key = self.full_key(key)
        try:
            raw = await self.client.get(full_key)
            if raw is None:
                self.misses += 1
                logger.debug(f"Cache MISS {full_key}")
                return None
            value = json.loads(raw)
        except CACHE_ERRORS as e:
            logger.error(f"Cache GET failed for {full_key}: {e}")
            return None

        self.hits += 1
        logger.debug(f"Cache HIT {full_key}")
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        full_key = self.full_key(key)
        expire = ttl if ttl is not None else self.default_ttl
        try:
            payload = json.dumps(value)
            async with self.client.pipeline(transaction=False) as pipe:
                pipe.set(full_key, payload, ex=expire)
                pipe.zadd(self.access_log_key, {full_key: int(time.time() * 1000)})
                await pipe.execute()
        except CACHE_ERRORS as e:
            logger.error(f"Cache SET failed for {full_key}: {e}")
            return

        await self.trim()

    async def trim(self, max_entries: int | None = None) -> int:
        """Evict the oldest writes beyond the size cap. Returns the number removed."""
        limit = self.max_entries if max_entries is None else max_entries
        log_key = self.access_log_key
        try:
            count = await self.client.zcard(log_key)
            if count <= limit:
                return 0

            stale = await self.client.zrange(log_key, 0, count - limit - 1)
            if not stale:
                return 0

            async with self.client.pipeline(transaction=False) as pipe:
                pipe.delete(*stale)
                pipe.zrem(log_key, *stale)
                await pipe.execute()
        except CACHE_ERRORS as e:
            logger.error(f"Cache TRIM failed: {e}")
            return 0

        logger.info(f"Trimmed {len(stale)} old cache entries")
        return len(stale)

    async def delete(self, key: str) -> bool:
        full_key = self.full_key(key)
        try:
            removed = await self.client.delete(full_key)
            await self.client.zrem(self.access_log_key, full_key)
        except CACHE_ERRORS as e:
            logger.error(f"Cache DELETE failed for {full_key}: {e}")
            return False
        return removed > 0

    async def clear(self) -> None:
        """Drop cached entries. With a prefix only that namespace is touched."""
        try:
            if not self.prefix:
                await self.client.flushdb()
                logger.info("Cache cleared (FLUSHDB)")
                return

            keys = [key async for key in self.client.scan_iter(match=f"{self.prefix}:*")]
            if keys:
                await self.client.delete(*keys)
            logger.info(f"Cache cleared {len(keys)} keys under prefix {self.prefix}")
        except CACHE_ERRORS as e:
            logger.error(f"Cache CLEAR failed: {e}")

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except CACHE_ERRORS:
            return False

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except CACHE_ERRORS as e:
            logger.error(f"Error while closing Redis connection: {e}")

    def stats(self) -> dict[str, int]:
        return {"hits": self.hits, "misses": self.misses}
