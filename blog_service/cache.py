import json
import logging

import redis.asyncio as redis

from blog_service.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Key namespaces
# ---------------------------------------------------------------------------

def user_id_key(user_id: int) -> str:
    return f"user:id:{user_id}"


def user_email_key(email: str) -> str:
    return f"user:email:{email}"


def verify_code_key(email: str) -> str:
    return f"user:code:{email}"


class CacheManager:
    """
    Key/value cache backed by Redis.

    The cache is never the source of truth, so every public method is
    safe to call when Redis is unavailable: reads report a miss and
    writes report failure through their return value instead of raising.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None) -> None:
        self._url = url or settings.REDIS_URL
        self._redis: redis.Redis | None = client
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        if self._redis is None:
            self._redis = redis.from_url(
                self._url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", self._url)
        except Exception as exc:
            logger.warning("Redis ping failed, serving from the store only: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def get(self, key: str):
        """Return the decoded value for *key*, or None on a miss / error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.warning("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None
        if data is None:
            self._misses += 1
            return None
        self._hits += 1
        try:
            return json.loads(data)
        except ValueError:
            return data

    async def set(self, key: str, value, ttl: int | None = None) -> bool:
        """
        Store *value* under *key* with an optional TTL (seconds).

        Returns False when the value could not be stored; the failure is
        logged, never raised.
        """
        if not self._redis:
            return False
        try:
            serialised = value if isinstance(value, str) else json.dumps(value, default=str)
            await self._redis.set(key, serialised, ex=ttl)
            return True
        except Exception as exc:
            logger.warning("Cache SET error for key=%r: %s", key, exc)
            return False

    async def delete(self, *keys: str) -> int:
        """Remove *keys*; returns how many existed."""
        if not self._redis or not keys:
            return 0
        try:
            return await self._redis.delete(*keys)
        except Exception as exc:
            logger.warning("Cache DELETE error for keys=%r: %s", keys, exc)
            return 0

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


class UserCache:
    """
    Cache-aside policy for user identity snapshots.

    Snapshots are reachable by id and by email.  Whenever one is written
    both keys are written, so either lookup path stays warm.  Misses are
    never cached; the store is always consulted again.
    """

    def __init__(self, manager: CacheManager, ttl: int | None = None) -> None:
        self.manager = manager
        self.ttl = ttl or settings.USER_CACHE_TTL

    async def lookup_by_id(self, user_id: int) -> dict | None:
        return self._valid(await self.manager.get(user_id_key(user_id)))

    async def lookup_by_email(self, email: str) -> dict | None:
        return self._valid(await self.manager.get(user_email_key(email)))

    async def populate(self, user: dict) -> None:
        await self.manager.set(user_id_key(user["id"]), user, ttl=self.ttl)
        await self.manager.set(user_email_key(user["email"]), user, ttl=self.ttl)

    async def invalidate(self, user_id: int | None, email: str | None) -> int:
        keys = []
        if user_id is not None:
            keys.append(user_id_key(user_id))
        if email:
            keys.append(user_email_key(email))
        return await self.manager.delete(*keys)

    @staticmethod
    def _valid(value) -> dict | None:
        # Anything other than a snapshot dict (e.g. a stale foreign value) is a miss.
        if isinstance(value, dict) and value.get("id") is not None:
            return value
        return None
