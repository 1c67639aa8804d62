"""Process-wide RedisCacheService instance."""

import logging

from ..config import get_settings
from .cache import RedisCacheService

logger = logging.getLogger(__name__)

_cache_service: RedisCacheService | None = None


def get_cache_service() -> RedisCacheService:
    """Return the shared cache, creating it on first use."""
    global _cache_service
    if _cache_service is None:
        settings = get_settings()
        _cache_service = RedisCacheService(
            settings.redis_url,
            default_ttl=settings.cache_default_ttl,
            prefix=settings.redis_key_prefix,
            max_entries=settings.cache_max_entries,
        )
        logger.info("Created shared Redis cache service")
    return _cache_service


async def close_cache_service() -> None:
    global _cache_service
    if _cache_service is not None:
        await _cache_service.close()
        _cache_service = None
        logger.info("Closed shared Redis cache service")
