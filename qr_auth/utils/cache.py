"""
Token Cache

Short-lived, TTL-bound storage keyed by an opaque token. Two caches are
used by the service:

- registration cache: pending registrations under ``registration:{token}``
  until the OTP is confirmed or the TTL runs out
- password reset cache: reset requests under ``password-reset:{token}``
  until the new password is set or the TTL runs out

Two backends share one interface:

- RedisTokenCache: SETEX/GET/DEL against Redis
- InMemoryTokenCache: single-process dictionary with lazy expiry,
  used for development and tests
"""

import json
import logging
import time
from typing import Any, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from qr_auth.config import settings
from qr_auth.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)

REGISTRATION_PREFIX = "registration:"
PASSWORD_RESET_PREFIX = "password-reset:"


def registration_key(token: str) -> str:
    return f"{REGISTRATION_PREFIX}{token}"


def password_reset_key(token: str) -> str:
    return f"{PASSWORD_RESET_PREFIX}{token}"


class TokenCache:
    """Interface shared by the cache backends."""

    prefix: str = REGISTRATION_PREFIX

    def key(self, token: str) -> str:
        return f"{self.prefix}{token}"

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def put(self, token: str, data: dict[str, Any], ttl_seconds: int) -> bool:
        raise NotImplementedError

    async def get(self, token: str) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    async def delete(self, token: str) -> bool:
        raise NotImplementedError


class RedisTokenCache(TokenCache):
    """
    Redis-backed token cache.

    Unlike a read-through cache, a failure here is not silently ignored:
    a token that cannot be staged cannot be redeemed, so every RedisError
    surfaces as CacheUnavailableError.
    """

    def __init__(self, client: Optional[redis.Redis] = None, prefix: str = REGISTRATION_PREFIX):
        self.prefix = prefix
        self._redis: Optional[redis.Redis] = client
        self._pool: Optional[redis.ConnectionPool] = None

    async def connect(self) -> None:
        """Create the connection pool, from redis_url or individual params."""
        if self._redis is not None:
            return

        if settings.redis_url:
            self._pool = redis.ConnectionPool.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_timeout=settings.redis_socket_timeout_seconds,
            )
        else:
            self._pool = redis.ConnectionPool(
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
                password=settings.redis_password,
                decode_responses=True,
                socket_timeout=settings.redis_socket_timeout_seconds,
            )
        self._redis = redis.Redis(connection_pool=self._pool)

        try:
            await self._redis.ping()
            logger.info("Token cache: connected to Redis")
        except RedisError as e:
            # Keep the client; each operation retries through the pool
            logger.warning(f"Token cache: Redis ping failed: {e}")

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._pool:
            await self._pool.aclose()
            self._pool = None
        logger.info("Token cache: disconnected from Redis")

    async def _client(self) -> redis.Redis:
        if self._redis is None:
            await self.connect()
        return self._redis

    async def put(self, token: str, data: dict[str, Any], ttl_seconds: int) -> bool:
        key = self.key(token)
        try:
            client = await self._client()
            await client.setex(key, ttl_seconds, json.dumps(data, default=str))
        except RedisError as e:
            logger.error(f"Token cache put failed under {self.prefix}*: {e}")
            raise CacheUnavailableError() from e
        logger.debug(f"Token cache SET {self.prefix}* (TTL: {ttl_seconds}s)")
        return True

    async def get(self, token: str) -> Optional[dict[str, Any]]:
        key = self.key(token)
        try:
            client = await self._client()
            raw = await client.get(key)
        except RedisError as e:
            logger.error(f"Token cache get failed under {self.prefix}*: {e}")
            raise CacheUnavailableError() from e

        if raw is None:
            logger.debug(f"Token cache MISS {self.prefix}*")
            return None
        logger.debug(f"Token cache HIT {self.prefix}*")
        return json.loads(raw)

    async def delete(self, token: str) -> bool:
        key = self.key(token)
        try:
            client = await self._client()
            deleted = await client.delete(key)
        except RedisError as e:
            logger.error(f"Token cache delete failed under {self.prefix}*: {e}")
            raise CacheUnavailableError() from e
        logger.debug(f"Token cache DEL {self.prefix}*")
        return bool(deleted)


class InMemoryTokenCache(TokenCache):
    """
    In-memory token cache.
    Note: entries are lost on restart and are not shared across instances.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, prefix: str = REGISTRATION_PREFIX):
        self.prefix = prefix
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def connect(self) -> None:
        """No-op for in-memory"""
        logger.info(f"Using in-memory token cache for {self.prefix}* (single process only)")

    async def disconnect(self) -> None:
        self._entries.clear()

    def _cleanup_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    async def put(self, token: str, data: dict[str, Any], ttl_seconds: int) -> bool:
        self._cleanup_expired()
        # Stored serialized so callers never share a mutable dict with the cache
        self._entries[self.key(token)] = (json.dumps(data, default=str), self._clock() + ttl_seconds)
        return True

    async def get(self, token: str) -> Optional[dict[str, Any]]:
        key = self.key(token)
        entry = self._entries.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return json.loads(raw)

    async def delete(self, token: str) -> bool:
        return self._entries.pop(self.key(token), None) is not None

    def __len__(self) -> int:
        self._cleanup_expired()
        return len(self._entries)


def create_token_cache(prefix: str) -> TokenCache:
    if settings.cache_backend == "memory":
        return InMemoryTokenCache(prefix=prefix)
    return RedisTokenCache(prefix=prefix)


# Global cache instances
registration_cache = create_token_cache(REGISTRATION_PREFIX)
password_reset_cache = create_token_cache(PASSWORD_RESET_PREFIX)


def get_registration_cache() -> TokenCache:
    """FastAPI dependency for the registration cache."""
    return registration_cache


def get_password_reset_cache() -> TokenCache:
    """FastAPI dependency for the password reset cache."""
    return password_reset_cache
