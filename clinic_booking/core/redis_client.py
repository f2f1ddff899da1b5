"""Redis client configuration and utilities."""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, cast

import redis
import structlog

from clinic_booking.config import settings
from clinic_booking.core.exceptions import ConflictException

logger = structlog.get_logger(__name__)

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        client = get_redis_client()
        client.ping()
        return True
    except Exception:
        return False


def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class SweepLock:
    """
    Single-flight guard for batch jobs.

    A run holds ``sweep:<job>`` for at most ``timeout`` seconds. When Redis
    cannot be reached the job still runs, since every sweep is idempotent.
    """

    def __init__(self, redis_client: redis.Redis, timeout: int | None = None):
        """Initialize lock helper with Redis client."""
        self.redis = redis_client
        self.timeout = timeout or settings.sweep_lock_timeout

    @staticmethod
    def _key(job: str) -> str:
        return f"sweep:{job}"

    @asynccontextmanager
    async def hold(self, job: str) -> AsyncIterator[None]:
        """
        Hold the lock for ``job`` while the body runs.

        Raises:
            ConflictException: If another run currently holds the lock
        """
        lock = None
        try:
            lock = self.redis.lock(self._key(job), timeout=self.timeout)
            acquired = lock.acquire(blocking=False)
        except redis.RedisError as e:
            logger.warning("sweep_lock_unavailable", job=job, error=str(e))
            lock = None
            acquired = True

        if not acquired:
            logger.info("sweep_already_running", job=job)
            raise ConflictException(f"Batch job '{job}' is already running")

        try:
            yield
        finally:
            if lock is not None:
                try:
                    lock.release()
                except redis.RedisError as e:
                    logger.warning("sweep_lock_release_failed", job=job, error=str(e))


# Cache helpers
class CacheManager:
    """Redis-based cache manager."""

    def __init__(self, redis_client: redis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            self.redis.delete(key)
            return True
        except Exception:
            return False

    def get_json(self, key: str) -> Any | None:
        """
        Get JSON value from cache and deserialize.

        Args:
            key: Cache key

        Returns:
            Deserialized object or None
        """
        try:
            value = cast(str | None, self.redis.get(key))
            if value:
                return json.loads(value)
            return None
        except Exception:
            return None

    def set_json(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """
        Serialize and set JSON value in cache.

        Args:
            key: Cache key
            value: Value to serialize and cache
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        try:
            json_value = json.dumps(value, default=str)
            if ttl:
                self.redis.setex(key, ttl, json_value)
            else:
                self.redis.set(key, json_value)
            return True
        except Exception:
            return False
