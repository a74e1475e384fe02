"""
Redis read cache for the external inventory listing.

Entries are namespaced per merchant and per listing version:

    {prefix}:merchant:{merchant_id}:inventory:v{version}:{query}

Committed stock changes bump the merchant's version counter, so stale
listings are never read again and expire on their own TTL. Redis being down
or disabled only costs a database query.
"""
import json
import logging
from typing import Any, Callable, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)


class CacheService:
    """Merchant-isolated cache-aside over redis-py."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._prefix = ''
        self._default_ttl = 60
        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'sjf')
        self._default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)

        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Cache is DISABLED via config")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        try:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            client.ping()
            self.client = client
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except RedisError as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _merchant_key(self, merchant_id: int, module: str) -> str:
        return f"{self._prefix}:merchant:{merchant_id}:{module}"

    def _version(self, merchant_id: int, module: str) -> int:
        return int(self.client.get(f"{self._merchant_key(merchant_id, module)}:version") or 0)

    def memoize(self, merchant_id: int, module: str, key: str, loader_fn: Callable[[], Any],
                ttl: Optional[int] = None) -> Any:
        """Return the cached value for key, or load it and cache it."""
        if not self.enabled:
            return loader_fn()

        try:
            version = self._version(merchant_id, module)
            cache_key = f"{self._merchant_key(merchant_id, module)}:v{version}:{key}"
            cached = self.client.get(cache_key)
            if cached is not None:
                return json.loads(cached)
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return loader_fn()

        value = loader_fn()
        try:
            self.client.setex(cache_key, ttl or self._default_ttl, json.dumps(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
        return value

    def invalidate_module(self, merchant_id: int, module: str) -> None:
        """Make every cached entry of the merchant's module unreachable."""
        if not self.enabled:
            return
        try:
            self.client.incr(f"{self._merchant_key(merchant_id, module)}:version")
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error: {e}")


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service


def invalidate_inventory_cache(merchant_id: int) -> None:
    """Drop cached inventory listings for a merchant after a committed change."""
    if _cache_service is None:
        return
    _cache_service.invalidate_module(merchant_id, 'inventory')
