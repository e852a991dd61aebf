# otp/services/redis_service.py
"""
Redis client for issuance rate limits.
Supports both real Redis and FakeRedis for testing.
"""

from typing import Optional

import redis
from django.conf import settings


class RedisService:
    """
    Centralized Redis client.
    Uses FakeRedis when USE_FAKE_REDIS=True (no Docker needed).
    """

    _instance: Optional["RedisService"] = None
    _client = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def _initialize(self):
        """Initialize Redis connection."""
        if getattr(settings, "USE_FAKE_REDIS", False):
            import fakeredis
            self._client = fakeredis.FakeRedis(decode_responses=True)
        else:
            timeout = getattr(settings, "REDIS_SOCKET_TIMEOUT", 2)
            self._client = redis.Redis.from_url(
                getattr(settings, "REDIS_URL", "redis://localhost:6379/0"),
                decode_responses=True,
                socket_timeout=timeout,
                socket_connect_timeout=timeout,
                retry_on_timeout=True,
            )

    @property
    def client(self) -> redis.Redis:
        """Get Redis client instance (connected lazily)."""
        if self._client is None:
            self._initialize()
        return self._client

    def reset(self):
        """Drop the client so the next access reconnects with current settings."""
        self._client = None


# Singleton instance
redis_service = RedisService()
