"""Expiring key/value state shared by the scan pipeline.

The settings cache and the deep-link nonce registry both live behind
``ExpiringStore`` so multi-instance deployments can point every process at
Redis while a single process can use the bounded in-memory store.
"""

from __future__ import annotations

import json
import time
from collections import OrderedDict
from typing import Any, Callable, Protocol

from loguru import logger
from redis.asyncio import Redis

from mealpass_api.core.settings import Settings, settings as app_settings


class ExpiringStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def add(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store ``value`` only if ``key`` is absent; return whether it was stored."""
        ...

    async def delete(self, key: str) -> None: ...


class InMemoryExpiringStore:
    """Process-local store with TTL expiry and least-recently-written eviction."""

    def __init__(self, *, max_entries: int = 10_000, clock: Callable[[], float] | None = None) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._max_entries = max_entries
        self._clock = clock or time.monotonic

    def __len__(self) -> int:
        return len(self._entries)

    def _live(self, key: str) -> tuple[float, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[0] <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _store(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock() + ttl_seconds, value)
        self._evict()

    def _evict(self) -> None:
        if len(self._entries) <= self._max_entries:
            return
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def get(self, key: str) -> Any | None:
        entry = self._live(key)
        return entry[1] if entry else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._store(key, value, ttl_seconds)

    async def add(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if self._live(key) is not None:
            return False
        self._store(key, value, ttl_seconds)
        return True

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisExpiringStore:
    """Redis-backed store; values are JSON encoded."""

    def __init__(self, redis_client: Redis | None = None, *, prefix: str = "mealpass") -> None:
        self._redis = redis_client or Redis.from_url(
            app_settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._redis.set(self._key(key), json.dumps(value), ex=ttl_seconds)

    async def add(self, key: str, value: Any, ttl_seconds: int) -> bool:
        stored = await self._redis.set(self._key(key), json.dumps(value), ex=ttl_seconds, nx=True)
        return bool(stored)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))


class NonceRegistry:
    """Single-use claims for deep-link nonces."""

    def __init__(self, store: ExpiringStore, *, prefix: str = "nonce") -> None:
        self._store = store
        self._prefix = prefix

    async def claim(self, nonce: str, ttl_seconds: int) -> bool:
        """Return ``True`` the first time ``nonce`` is seen within ``ttl_seconds``."""

        claimed = await self._store.add(f"{self._prefix}:{nonce}", 1, max(int(ttl_seconds), 1))
        if not claimed:
            logger.warning("Deep-link nonce replay rejected", nonce_prefix=nonce[:8])
        return claimed

    async def release(self, nonce: str) -> None:
        """Forget a claim whose scan did not complete."""

        try:
            await self._store.delete(f"{self._prefix}:{nonce}")
        except Exception as exc:
            logger.warning("Failed to release deep-link nonce", nonce_prefix=nonce[:8], error=str(exc))


def build_expiring_store(config: Settings | None = None) -> ExpiringStore:
    """Select the configured backend."""

    config = config or app_settings
    if config.shared_state_backend == "redis":
        return RedisExpiringStore(
            Redis.from_url(config.redis_url, encoding="utf-8", decode_responses=True)
        )
    return InMemoryExpiringStore(max_entries=config.nonce_registry_max_entries)


__all__ = [
    "ExpiringStore",
    "InMemoryExpiringStore",
    "NonceRegistry",
    "RedisExpiringStore",
    "build_expiring_store",
]
