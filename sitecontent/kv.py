"""
Key-value abstraction with per-key expiry.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production. Values are JSON-serializable.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

import redis.asyncio as redis
from redis import exceptions as redis_exceptions

from sitecontent.errors import BackendUnavailable


class KeyValueBackend(Protocol):
    """Minimal key-value interface with native time-to-live."""

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def delete(self, key: str) -> None:
        ...


@dataclass
class InMemoryKeyValueBackend:
    """Dict-backed store that expires entries against ``clock``."""

    clock: Callable[[], float] = time.monotonic
    items: dict[str, tuple[Any, float]] = field(default_factory=dict)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.items[key] = (value, self.clock() + ttl_seconds)

    async def get(self, key: str) -> Optional[Any]:
        entry = self.items.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            self.items.pop(key, None)
            return None
        return value

    async def delete(self, key: str) -> None:
        self.items.pop(key, None)

    def reset(self) -> None:
        self.items.clear()


@dataclass
class RedisKeyValueBackend:
    """Redis-backed store; expiry is enforced by Redis itself (SET ... EX)."""

    url: str

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, json.dumps(value), ex=ttl_seconds)
        except redis_exceptions.RedisError as e:
            raise BackendUnavailable(f"KV set failed for {key}: {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(key)
        except redis_exceptions.RedisError as e:
            raise BackendUnavailable(f"KV get failed for {key}: {e}") from e
        if raw is None:
            return None
        return json.loads(raw)

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except redis_exceptions.RedisError as e:
            raise BackendUnavailable(f"KV delete failed for {key}: {e}") from e

    async def aclose(self) -> None:
        await self.client.aclose()
