# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import rubegate  # noqa: F401
except ImportError:
    raise ImportError("rubegate is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from rubegate.blocklist import StaticBlocklist
from rubegate.config import GateConfig
from rubegate.kv import InMemoryKeyValueStore

BLOCKED_IP = "198.51.100.23"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer environment variables out of config-driven tests."""
    for name in (
        "RUBE_CANONICAL_HOST",
        "RUBE_LEGACY_HOSTS",
        "VERCEL_ENV",
        "EDGE_CONFIG",
        "REDIS_URL",
        "RUBE_SESSION_KEY",
        "RUBE_SESSION_ALGORITHMS",
        "RUBE_TRUST_FORWARDED",
        "RUBE_EXTERNAL_TIMEOUT",
        "RUBE_HOST",
        "RUBE_PORT",
        "RUBE_JSON_LOGS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def blocklist():
    return StaticBlocklist([BLOCKED_IP])


@pytest.fixture
def prod_config():
    return GateConfig(environment="production", edge_config="https://edge-config.vercel.com/ecfg_test?token=t")
