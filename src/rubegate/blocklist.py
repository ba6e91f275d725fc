# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Blocked-IP sources.

``BlocklistSource.fetch()`` returns the current set of blocked IPs or
raises ``BlocklistError``. Fetching happens once per request that reaches
the public-route stage; nothing is cached here.

Sources:

- ``EdgeConfigBlocklist`` — Vercel Edge Config item ``blocked_ips`` over HTTP (httpx).
- ``KeyValueBlocklist``   — same key read from the KV store.
- ``StaticBlocklist``     — fixed set (tests, local development).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from urllib.parse import parse_qs, urlparse

import httpx

from .errors import BlocklistError, ConfigError, KeyValueError
from .kv import BLOCKED_IPS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

_EDGE_CONFIG_BASE = "https://edge-config.vercel.com"


@runtime_checkable
class BlocklistSource(Protocol):
    async def fetch(self) -> frozenset[str]: ...


def _coerce_ips(payload: Any) -> frozenset[str]:
    """Accept a JSON array of strings; absent means empty."""
    if payload is None:
        return frozenset()
    if not isinstance(payload, list):
        raise BlocklistError(f"blocked_ips: expected a list, got {type(payload).__name__}")
    return frozenset(str(ip).strip() for ip in payload if str(ip).strip())


class StaticBlocklist:
    def __init__(self, ips: Iterable[str] = ()) -> None:
        self._ips = frozenset(ips)

    async def fetch(self) -> frozenset[str]:
        return self._ips


class KeyValueBlocklist:
    """Reads ``blocked_ips`` from a :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore, *, key: str = BLOCKED_IPS_KEY) -> None:
        self._store = store
        self._key = key

    async def fetch(self) -> frozenset[str]:
        try:
            payload = await self._store.get(self._key)
        except KeyValueError as e:
            raise BlocklistError(str(e)) from e
        return _coerce_ips(payload)


# ── Edge Config ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class EdgeConfigConnection:
    """Parsed Edge Config connection string."""

    base_url: str
    config_id: str
    token: str


def parse_edge_config(raw: str) -> EdgeConfigConnection:
    """Parse ``https://edge-config.vercel.com/<id>?token=<token>``.

    Raises:
        ConfigError: If the id or token is missing.
    """
    parsed = urlparse(raw.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError("EDGE_CONFIG must be an http(s) connection string")
    config_id = parsed.path.strip("/")
    tokens = parse_qs(parsed.query).get("token", [])
    if not config_id or not tokens:
        raise ConfigError("EDGE_CONFIG is missing the config id or token")
    return EdgeConfigConnection(
        base_url=f"{parsed.scheme}://{parsed.netloc}",
        config_id=config_id,
        token=tokens[0],
    )


class EdgeConfigBlocklist:
    """Fetches ``blocked_ips`` from Vercel Edge Config.

    A 404 (item not set) is an empty blocklist, not an error.
    """

    def __init__(
        self,
        connection: EdgeConfigConnection,
        *,
        key: str = BLOCKED_IPS_KEY,
        timeout: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._connection = connection
        self._key = key
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_connection_string(cls, raw: str, **kwargs) -> EdgeConfigBlocklist:
        return cls(parse_edge_config(raw), **kwargs)

    @property
    def item_url(self) -> str:
        c = self._connection
        return f"{c.base_url}/{c.config_id}/item/{self._key}"

    async def fetch(self) -> frozenset[str]:
        params = {"token": self._connection.token}
        try:
            if self._client is not None:
                response = await self._client.get(self.item_url, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self.item_url, params=params)
        except httpx.HTTPError as e:
            raise BlocklistError(f"Edge Config request failed: {e}") from e

        if response.status_code == 404:
            return frozenset()
        if response.status_code != 200:
            raise BlocklistError(f"Edge Config returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as e:
            raise BlocklistError("Edge Config returned invalid JSON") from e
        return _coerce_ips(payload)
