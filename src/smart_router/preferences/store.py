"""Key-value store backends for routing preferences.

Defines the KeyValueStore ABC and two concrete implementations:
- InMemoryKeyValueStore: dict-based, for tests and single-process dev
- RedisKeyValueStore: Redis hash with JSON values, for durable deployments

build_store() selects the backend from settings.
"""

from __future__ import annotations

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlsplit

import redis.asyncio as aioredis
import structlog

from smart_router.config import PreferencesBackend, Settings

log = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Abstract interface all preference stores must implement.

    Values are JSON-compatible dicts.
    """

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored value for key, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: dict[str, Any]) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key. Returns True if something was removed."""

    @abstractmethod
    async def items(self) -> list[tuple[str, dict[str, Any]]]:
        """Return all stored (key, value) pairs."""

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Does NOT persist across process restarts.

    Values are deep-copied on the way in and out so callers can never
    mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> dict[str, Any] | None:
        async with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def items(self) -> list[tuple[str, dict[str, Any]]]:
        async with self._lock:
            return [(k, copy.deepcopy(v)) for k, v in self._data.items()]


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisKeyValueStore(KeyValueStore):
    """Store backed by a single Redis hash.

    Each field is a user id, each value the JSON-serialised record.
    The client is created lazily so constructing the store never blocks.
    """

    def __init__(self, redis_url: str, *, hash_key: str = "smart_router:preferences") -> None:
        self._redis_url = redis_url
        self._hash_key = hash_key
        self._client: aioredis.Redis | None = None

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def get(self, key: str) -> dict[str, Any] | None:
        raw = await self._get_client().hget(self._hash_key, key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: dict[str, Any]) -> None:
        await self._get_client().hset(self._hash_key, key, json.dumps(value))

    async def delete(self, key: str) -> bool:
        removed = await self._get_client().hdel(self._hash_key, key)
        return bool(removed)

    async def items(self) -> list[tuple[str, dict[str, Any]]]:
        raw = await self._get_client().hgetall(self._hash_key)
        return [(k, json.loads(v)) for k, v in raw.items()]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def redis_location(url: str) -> str:
    """``host:port/db`` of a Redis URL, without credentials."""
    parts = urlsplit(url)
    return f"{parts.hostname}:{parts.port or 6379}{parts.path or ''}"


def build_store(settings: Settings) -> KeyValueStore:
    """Return the KeyValueStore configured by ``preferences_backend``."""
    if settings.preferences_backend == PreferencesBackend.REDIS:
        log.info(
            "preferences.store_selected",
            backend="redis",
            location=redis_location(settings.redis_url),
        )
        return RedisKeyValueStore(settings.redis_url)

    log.info("preferences.store_selected", backend="memory")
    return InMemoryKeyValueStore()
