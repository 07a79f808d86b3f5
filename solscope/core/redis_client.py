"""
Analysis cache backed by Redis with an in-memory fallback.

Wallet analyses are cached under ``address + time bucket`` so repeated
requests inside one bucket reuse the same payload. If Redis is disabled or
unreachable the cache degrades to a per-process dict with the same TTL.
"""

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import redis

from ..config import ScopeConfig

logger = logging.getLogger(__name__)


class AnalysisCache:
    """
    Redis-backed cache for JSON analysis payloads.

    If Redis is unavailable or disabled, falls back to in-memory cache.
    """

    KEY_PREFIX = "solscope:analysis"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        ttl_seconds: Optional[int] = None,
    ):
        """
        Initialize the cache.

        Args:
            redis_url: Redis connection URL (defaults to config)
            enabled: Whether Redis is enabled (defaults to config)
            ttl_seconds: Entry TTL and time-bucket width (defaults to config)
        """
        self.enabled = ScopeConfig.get_redis_enabled() if enabled is None else enabled
        self.redis_url = redis_url or ScopeConfig.get_redis_url()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else ScopeConfig.get_cache_ttl_seconds()

        self.redis_client: Optional[redis.Redis] = None
        self._fallback_cache: Dict[str, Tuple[str, float]] = {}  # key -> (value, expiry)

        if self.enabled:
            try:
                self.redis_client = redis.Redis.from_url(
                    self.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                # Test connection
                self.redis_client.ping()
                logger.info("Redis analysis cache initialized successfully")
            except (redis.RedisError, ValueError) as e:
                logger.warning(f"Failed to connect to Redis: {e}. Using fallback cache.")
                self.enabled = False
                self.redis_client = None
        else:
            logger.debug("Redis disabled, using fallback cache")

    def key_for(self, address: str, now: Optional[float] = None) -> str:
        """Cache key for an address in the current time bucket."""
        now = time.time() if now is None else now
        bucket = int(now // self.ttl_seconds) if self.ttl_seconds > 0 else 0
        return f"{self.KEY_PREFIX}:{address}:{bucket}"

    def get(self, address: str, now: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Get a cached payload.

        Returns:
            Decoded payload or None if not found/expired
        """
        if self.ttl_seconds <= 0:
            return None
        key = self.key_for(address, now)
        raw: Optional[str] = None

        if self.enabled and self.redis_client:
            try:
                raw = self.redis_client.get(key)
            except redis.RedisError as e:
                logger.debug(f"Redis get failed for key {key}: {e}, using fallback")

        if raw is None and key in self._fallback_cache:
            value, expiry = self._fallback_cache[key]
            if time.time() < expiry:
                raw = value
            else:
                del self._fallback_cache[key]

        if raw is None:
            logger.debug(f"Cache miss for {key}")
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    def set(self, address: str, payload: Dict[str, Any], now: Optional[float] = None):
        """Store a JSON-serializable payload for the address's current bucket."""
        if self.ttl_seconds <= 0:
            return
        key = self.key_for(address, now)
        value = json.dumps(payload)

        if self.enabled and self.redis_client:
            try:
                self.redis_client.setex(key, self.ttl_seconds, value)
                return
            except redis.RedisError as e:
                logger.debug(f"Redis set failed for key {key}: {e}, using fallback")

        self._fallback_cache[key] = (value, time.time() + self.ttl_seconds)

        # Cleanup expired entries periodically (simple implementation)
        if len(self._fallback_cache) > 1000:
            current = time.time()
            expired_keys = [k for k, (_, exp) in self._fallback_cache.items() if current >= exp]
            for k in expired_keys:
                del self._fallback_cache[k]

    def clear(self):
        """Clear all cached analyses."""
        if self.enabled and self.redis_client:
            try:
                for key in self.redis_client.scan_iter(f"{self.KEY_PREFIX}:*"):
                    self.redis_client.delete(key)
            except redis.RedisError as e:
                logger.debug(f"Redis clear failed: {e}")
        self._fallback_cache.clear()

    def is_available(self) -> bool:
        """Check if Redis is available and working."""
        if not self.enabled or not self.redis_client:
            return False
        try:
            self.redis_client.ping()
            return True
        except redis.RedisError:
            return False
