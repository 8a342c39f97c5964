"""
Redis cache for tenant-scoped lookups (product seed values, company settings).

Keys: {prefix}:tenant:{tenant_id}:{module}:{key}. Every failure degrades to a
cache miss; callers always fall back to the database.
"""

import logging
import json
from typing import Any, Optional, Callable, Dict

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)


class CacheService:
    """Cache-aside helper with per-module TTLs."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._prefix = 'crm'
        self._default_ttl = 60
        self._module_ttls: Dict[str, int] = {}

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Connect to Redis unless CACHE_ENABLED is off."""
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'crm')
        self._default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)
        self._module_ttls = {
            'products': app.config.get('CACHE_PRODUCTS_TTL'),
            'settings': app.config.get('CACHE_SETTINGS_TTL'),
        }

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
        except RedisError as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")
            return

        self.client = client
        logger.info(f"[CACHE] Redis connected: {redis_url}")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def ttl_for(self, module: str) -> int:
        return self._module_ttls.get(module) or self._default_ttl

    def _key(self, tenant_id: int, module: str, key: str) -> str:
        return f"{self._prefix}:tenant:{tenant_id}:{module}:{key}"

    def get(self, tenant_id: int, module: str, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(self._key(tenant_id, module, key))
            return None if raw is None else json.loads(raw)
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] Get error on {module}/{key}: {e}")
            return None

    def set(self, tenant_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable value for the module TTL (or ttl)."""
        if not self.enabled:
            return False
        try:
            self.client.setex(self._key(tenant_id, module, key), ttl or self.ttl_for(module), json.dumps(value))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error on {module}/{key}: {e}")
            return False

    def delete(self, tenant_id: int, module: str, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.delete(self._key(tenant_id, module, key))
            return True
        except RedisError as e:
            logger.warning(f"[CACHE] Delete error on {module}/{key}: {e}")
            return False

    def memoize(self, tenant_id: int, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Return the cached value, or load it and cache the result."""
        cached = self.get(tenant_id, module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        if value is not None:
            self.set(tenant_id, module, key, value, ttl)
        return value

    def invalidate_module(self, tenant_id: int, module: str) -> int:
        """Drop every key of one tenant's module; returns how many were removed."""
        if not self.enabled:
            return 0
        pattern = self._key(tenant_id, module, '*')
        try:
            keys = list(self.client.scan_iter(match=pattern, count=100))
            if keys:
                self.client.delete(*keys)
                logger.info(f"[CACHE] INVALIDATE: {pattern} ({len(keys)} keys)")
            return len(keys)
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error on {pattern}: {e}")
            return 0


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    """Get cache service instance (a disabled one until init_cache runs)."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
    return _cache_service
