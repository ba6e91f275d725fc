# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Key-value store port — protocol plus in-memory and Redis implementations.

Pattern follows ``RepositoryProtocol``: runtime-checkable Protocol with
concrete implementations; the middleware depends only on the protocol.

Values are JSON-serializable. The Redis implementation stores them as JSON
strings so records written by other clients of the same store stay
readable.

Dependencies: errors.py, redis (``redis.asyncio``).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import KeyValueError

logger = logging.getLogger(__name__)

# Well-known keys
BLOCKED_IPS_KEY = "blocked_ips"
CURRENT_VISITOR_KEY = "current_visitor"


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal async get/set interface."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def close(self) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store for local development and tests."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    async def get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def close(self) -> None:
        """No-op for in-memory store."""

    @property
    def data(self) -> dict[str, Any]:
        """Direct access to stored values (testing/debugging)."""
        return self._data


class RedisKeyValueStore:
    """Redis-backed store. Values are JSON-encoded strings.

    Use :meth:`from_url` to build one from ``REDIS_URL``; the socket
    timeout bounds every call (no retries).
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, timeout: float = 2.0) -> RedisKeyValueStore:
        client = Redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            raise KeyValueError(f"GET {key} failed: {e}", key=key) from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            # Plain string written by another client
            return raw

    async def set(self, key: str, value: Any) -> None:
        try:
            await self._client.set(key, json.dumps(value, ensure_ascii=False))
        except RedisError as e:
            raise KeyValueError(f"SET {key} failed: {e}", key=key) from e

    async def close(self) -> None:
        await self._client.aclose()
