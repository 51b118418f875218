import fnmatch
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

import structlog
from redis import asyncio as aioredis
from redis.exceptions import RedisError

KEY_PREFIX = "whmcs_assistant"


class CacheStore(Protocol):
    """Minimal key-value contract the cache service needs from a backend."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_pattern(self, pattern: str) -> int: ...

    async def ping(self) -> None: ...

    async def close(self) -> None: ...


class InMemoryCacheStore:
    """Process-local store with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._data[key] = (value, self._clock() + ttl)

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        if self._live(key) is not None:
            return False
        self._data[key] = (value, self._clock() + ttl)
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self._data[key]
        return len(matched)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        self._data.clear()


class RedisCacheStore:
    def __init__(self, url: str):
        self.redis = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self.redis.set(key, value, ex=ttl)

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        return bool(await self.redis.set(key, value, ex=ttl, nx=True))

    async def delete(self, key: str) -> bool:
        return await self.redis.delete(key) > 0

    async def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        async for key in self.redis.scan_iter(match=pattern, count=100):
            deleted += await self.redis.delete(key)
        return deleted

    async def ping(self) -> None:
        await self.redis.ping()

    async def close(self) -> None:
        await self.redis.aclose()


@dataclass(frozen=True)
class CacheStrategy:
    ttl: int
    prefix: str


class CacheStrategies:
    CLIENT = CacheStrategy(ttl=1800, prefix="whmcs")
    INVOICES = CacheStrategy(ttl=600, prefix="whmcs")
    SERVICES = CacheStrategy(ttl=900, prefix="whmcs")
    THREAD = CacheStrategy(ttl=3600, prefix="openai")
    WEBHOOK = CacheStrategy(ttl=300, prefix="webhook")


class CacheKeys:
    @staticmethod
    def client(identifier: str) -> str:
        return f"client:{identifier}"

    @staticmethod
    def client_invoices(client_id: int, status: str, limit: int, offset: int) -> str:
        return f"client:{client_id}:invoices:{status}:{limit}:{offset}"

    @staticmethod
    def client_services(client_id: int, domain: Optional[str], service_id: Optional[int]) -> str:
        return f"client:{client_id}:services:{domain or '-'}:{service_id or '-'}"

    @staticmethod
    def thread(user_id: str) -> str:
        return f"thread:{user_id}"

    @staticmethod
    def webhook_response(message_id: str) -> str:
        return f"response:{message_id}"


class CacheService:
    """JSON cache over a ``CacheStore``.

    Store failures never propagate: reads degrade to misses and writes report
    False, so callers treat an unavailable backend as an empty cache.
    """

    def __init__(self, store: CacheStore, default_ttl: int = 300, backend: str = "memory"):
        self.store = store
        self.default_ttl = default_ttl
        self.backend = backend
        self.logger = structlog.get_logger(__name__)

    @classmethod
    async def connect(cls, redis_url: str, default_ttl: int = 300) -> "CacheService":
        """Use Redis when reachable, otherwise fall back to process memory."""
        logger = structlog.get_logger(__name__)
        if redis_url:
            store = RedisCacheStore(redis_url)
            try:
                await store.ping()
                logger.info("cache_connected", backend="redis")
                return cls(store, default_ttl, backend="redis")
            except (RedisError, OSError) as e:
                logger.warning("redis_unavailable_using_memory", error=str(e))
                await store.close()
        return cls(InMemoryCacheStore(), default_ttl, backend="memory")

    @staticmethod
    def build_key(key: str, prefix: Optional[str] = None) -> str:
        base = f"{KEY_PREFIX}:{prefix}" if prefix else KEY_PREFIX
        return f"{base}:{key}"

    async def get(self, key: str, strategy: Optional[CacheStrategy] = None) -> Tuple[bool, Any]:
        """Return ``(hit, value)``."""
        full_key = self.build_key(key, strategy.prefix if strategy else None)
        try:
            raw = await self.store.get(full_key)
        except (RedisError, OSError) as e:
            self.logger.error("cache_get_failed", key=full_key, error=str(e))
            return False, None
        if raw is None:
            self.logger.debug("cache_miss", key=full_key)
            return False, None
        self.logger.debug("cache_hit", key=full_key)
        return True, json.loads(raw)

    async def set(self, key: str, value: Any, strategy: Optional[CacheStrategy] = None) -> bool:
        full_key = self.build_key(key, strategy.prefix if strategy else None)
        ttl = strategy.ttl if strategy else self.default_ttl
        try:
            await self.store.set(full_key, json.dumps(value, default=str), ttl)
            return True
        except (RedisError, OSError) as e:
            self.logger.error("cache_set_failed", key=full_key, error=str(e))
            return False

    async def set_if_absent(self, key: str, value: Any, strategy: Optional[CacheStrategy] = None) -> bool:
        full_key = self.build_key(key, strategy.prefix if strategy else None)
        ttl = strategy.ttl if strategy else self.default_ttl
        try:
            return await self.store.set_if_absent(full_key, json.dumps(value, default=str), ttl)
        except (RedisError, OSError) as e:
            self.logger.error("cache_set_if_absent_failed", key=full_key, error=str(e))
            return False

    async def delete(self, key: str, strategy: Optional[CacheStrategy] = None) -> bool:
        full_key = self.build_key(key, strategy.prefix if strategy else None)
        try:
            return await self.store.delete(full_key)
        except (RedisError, OSError) as e:
            self.logger.error("cache_delete_failed", key=full_key, error=str(e))
            return False

    async def delete_pattern(self, pattern: str, strategy: Optional[CacheStrategy] = None) -> int:
        full_pattern = self.build_key(pattern, strategy.prefix if strategy else None)
        try:
            deleted = await self.store.delete_pattern(full_pattern)
        except (RedisError, OSError) as e:
            self.logger.error("cache_delete_pattern_failed", pattern=full_pattern, error=str(e))
            return 0
        self.logger.info("cache_pattern_cleared", pattern=full_pattern, deleted=deleted)
        return deleted

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        strategy: Optional[CacheStrategy] = None,
    ) -> Any:
        """Cache-aside lookup. ``None`` results are returned but never stored."""
        hit, value = await self.get(key, strategy)
        if hit and value is not None:
            return value
        value = await fetcher()
        if value is not None:
            await self.set(key, value, strategy)
        return value

    async def health_check(self) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            await self.store.ping()
        except (RedisError, OSError) as e:
            self.logger.error("cache_health_check_failed", error=str(e))
            return {"status": "unhealthy", "backend": self.backend}
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        return {"status": "healthy", "backend": self.backend, "latency_ms": latency_ms}

    async def close(self) -> None:
        try:
            await self.store.close()
        except (RedisError, OSError) as e:
            self.logger.error("cache_close_failed", error=str(e))
