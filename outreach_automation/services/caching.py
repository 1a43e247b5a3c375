"""
Redis cache for automation runtime execution listings.

Status polling can hammer the runtime, so listings are kept for a short TTL.
When Redis is not configured or unreachable the cache is disabled and every
call goes straight to the runtime.
"""

import json
import logging
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)


class StatusCache:
    """Redis-based cache for execution status responses."""

    def __init__(self, redis_url: Optional[str] = None, ttl: int = 30):
        self.redis_url = redis_url
        self.ttl = ttl
        self.redis_client = None
        if redis_url:
            self._connect()

    def _connect(self):
        """Connect to Redis."""
        try:
            self.redis_client = redis.from_url(self.redis_url, decode_responses=True)
            self.redis_client.ping()
            logger.info("Successfully connected to Redis")
        except redis.exceptions.RedisError as e:
            logger.error(f"Failed to connect to Redis: {str(e)}")
            self.redis_client = None

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    @staticmethod
    def executions_key(workflow_id: str) -> str:
        return f"runtime:executions:{workflow_id}"

    def get(self, key: str) -> Optional[Any]:
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                return json.loads(value)
            return None
        except redis.exceptions.RedisError as e:
            logger.error(f"Error getting cache key {key}: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.redis_client:
            return False

        try:
            return bool(self.redis_client.setex(key, ttl or self.ttl, json.dumps(value)))
        except (redis.exceptions.RedisError, TypeError) as e:
            logger.error(f"Error setting cache key {key}: {str(e)}")
            return False

    def delete(self, key: str) -> bool:
        if not self.redis_client:
            return False

        try:
            return bool(self.redis_client.delete(key))
        except redis.exceptions.RedisError as e:
            logger.error(f"Error deleting cache key {key}: {str(e)}")
            return False


# Global cache instance
status_cache = None


def get_status_cache(app_config) -> StatusCache:
    """Get the global status cache, connecting on first use."""
    global status_cache
    if status_cache is None:
        status_cache = StatusCache(app_config.get('REDIS_URL'), app_config.get('STATUS_CACHE_TTL', 30))
    return status_cache
