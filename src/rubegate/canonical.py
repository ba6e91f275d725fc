# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Domain canonicalization — alternate hosts get a 301 to the canonical host."""

from __future__ import annotations

from functools import lru_cache

from .config import GateConfig


def _strip_port(host: str) -> str:
    host = host.strip().lower()
    # IPv6 literal: [::1]:8000
    if host.startswith("["):
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    return host.split(":", 1)[0]


@lru_cache(maxsize=16)
def alternate_hosts(canonical_host: str, legacy_hosts: tuple[str, ...]) -> frozenset[str]:
    """Every hostname that should redirect to *canonical_host*."""
    hosts = {f"www.{canonical_host}"}
    for legacy in legacy_hosts:
        hosts.add(legacy)
        hosts.add(f"www.{legacy}")
    hosts.discard(canonical_host)
    return frozenset(hosts)


def canonical_redirect_url(host: str, path: str, query: str, config: GateConfig) -> str | None:
    """Return the canonical URL for an alternate *host*, else ``None``.

    Path and query string are carried over verbatim.
    """
    if not host:
        return None
    if _strip_port(host) not in alternate_hosts(config.canonical_host, config.legacy_hosts):
        return None
    url = f"{config.canonical_origin}{path or '/'}"
    if query:
        url = f"{url}?{query}"
    return url
