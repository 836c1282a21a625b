"""Redis client for security-event fan-out and health checks."""

import json
import logging
from typing import Optional, Any

import redis

from modconsole.core.config import settings

logger = logging.getLogger("modconsole.cache")


class CacheService:
    """Redis-backed pub/sub. Every call is best-effort."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                decode_responses=True,
                max_connections=50,
                socket_connect_timeout=1,
            )
        return self._client

    def publish_json(self, channel: str, message: Any) -> bool:
        """Publish a JSON message; False when Redis is unreachable."""
        try:
            self.client.publish(channel, json.dumps(message, default=str))
            return True
        except redis.RedisError as exc:
            logger.debug("Redis publish to %s failed: %s", channel, exc)
            return False

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


cache_service = CacheService()
