# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""GateConfig — immutable edge configuration.

Leaf module (stdlib + errors.py). The environment is read once, in
``GateConfig.from_env()``; the middleware only ever sees the resulting
dataclass, never ``os.environ``.

Environment variables:

- ``RUBE_CANONICAL_HOST``   — canonical hostname (default ``rube.club``)
- ``RUBE_LEGACY_HOSTS``     — comma-separated deprecated hostnames (default ``rubeapp.com``)
- ``VERCEL_ENV``            — deployment environment; geo capture runs only in ``production``
- ``EDGE_CONFIG``           — Edge Config connection string; enables the IP blocklist
- ``REDIS_URL``             — KV store; in-memory when unset
- ``RUBE_SESSION_KEY``      — public key (PEM) or shared secret for session tokens
- ``RUBE_SESSION_ALGORITHMS`` — comma-separated JWT algorithms (default ``RS256``)
- ``RUBE_TRUST_FORWARDED``  — honour ``X-Forwarded-*`` headers (default on)
- ``RUBE_EXTERNAL_TIMEOUT`` — seconds for blocklist/KV/identity calls (default 2.0)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigError

DEFAULT_CANONICAL_HOST = "rube.club"
DEFAULT_LEGACY_HOSTS: tuple[str, ...] = ("rubeapp.com",)
DEFAULT_EXTERNAL_TIMEOUT = 2.0

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass(frozen=True, slots=True)
class GateConfig:
    """Edge pipeline configuration with documented defaults.

    ``edge_config`` doubles as the blocklist feature flag: an empty string
    means the blocklist stage is skipped entirely.
    """

    canonical_host: str = DEFAULT_CANONICAL_HOST
    legacy_hosts: tuple[str, ...] = DEFAULT_LEGACY_HOSTS
    environment: str = "development"
    edge_config: str = ""
    redis_url: str = ""
    session_key: str = ""
    session_algorithms: tuple[str, ...] = ("RS256",)
    trust_forwarded: bool = True
    external_timeout: float = DEFAULT_EXTERNAL_TIMEOUT

    def __post_init__(self) -> None:
        if not self.canonical_host:
            raise ConfigError("canonical_host must not be empty")
        if self.external_timeout <= 0:
            raise ConfigError(f"external_timeout must be > 0, got {self.external_timeout}")

    @property
    def blocklist_enabled(self) -> bool:
        return bool(self.edge_config)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def canonical_origin(self) -> str:
        return f"https://{self.canonical_host}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GateConfig:
        """Build a config from environment variables.

        Raises:
            ConfigError: If a numeric or boolean value cannot be parsed.
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        canonical = env.get("RUBE_CANONICAL_HOST", "").strip().lower()
        if canonical:
            kwargs["canonical_host"] = canonical

        legacy = env.get("RUBE_LEGACY_HOSTS")
        if legacy is not None:
            kwargs["legacy_hosts"] = _split_csv(legacy)

        vercel_env = env.get("VERCEL_ENV", "").strip().lower()
        if vercel_env:
            kwargs["environment"] = vercel_env

        kwargs["edge_config"] = env.get("EDGE_CONFIG", "").strip()
        kwargs["redis_url"] = env.get("REDIS_URL", "").strip()
        kwargs["session_key"] = env.get("RUBE_SESSION_KEY", "").strip()

        algorithms = env.get("RUBE_SESSION_ALGORITHMS", "").strip()
        if algorithms:
            kwargs["session_algorithms"] = tuple(a.strip() for a in algorithms.split(",") if a.strip())

        trust = env.get("RUBE_TRUST_FORWARDED", "").strip().lower()
        if trust:
            if trust in _TRUE_VALUES:
                kwargs["trust_forwarded"] = True
            elif trust in _FALSE_VALUES:
                kwargs["trust_forwarded"] = False
            else:
                raise ConfigError(f"RUBE_TRUST_FORWARDED: expected a boolean, got {trust!r}")

        timeout = env.get("RUBE_EXTERNAL_TIMEOUT", "").strip()
        if timeout:
            try:
                kwargs["external_timeout"] = float(timeout)
            except ValueError:
                raise ConfigError(f"RUBE_EXTERNAL_TIMEOUT: expected seconds, got {timeout!r}") from None

        return cls(**kwargs)
