# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Client IP resolution.

The site runs behind the hosting platform's edge proxy, which overwrites
``X-Forwarded-For`` so its leftmost entry is the real client. When
forwarded headers are not trusted, only the TCP peer is used.

Lookup order (trusted): ``X-Forwarded-For`` (leftmost) → ``X-Real-IP`` →
TCP peer.
"""

from __future__ import annotations

import ipaddress


def _normalize_ip_str(raw: str) -> str:
    """Strip IPv6 brackets, zone IDs and a ``:port`` suffix on IPv4."""
    s = raw.strip()
    if s.startswith("["):
        end = s.find("]")
        if end != -1:
            s = s[1:end]
    elif s.count(":") == 1:
        s = s.split(":", 1)[0]
    if "%" in s:
        s = s[: s.index("%")]
    return s


def canonical_ip(raw: str) -> str:
    """Return the canonical text form of *raw*, or *raw* stripped if unparseable.

    ``::FFFF:1.2.3.4`` and ``1.2.3.4:443`` both compare equal to ``1.2.3.4``.
    """
    s = _normalize_ip_str(raw)
    try:
        addr = ipaddress.ip_address(s)
    except ValueError:
        return s
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return str(addr.ipv4_mapped)
    return str(addr)


def _header_values(raw_headers: list[tuple[bytes, bytes]], name: bytes) -> list[str]:
    return [v.decode("latin-1") for n, v in raw_headers if n.lower() == name]


def client_ip(scope: dict, *, trust_forwarded: bool = True) -> str:
    """Resolve the caller's IP for blocklist checks. Empty string if unknown."""
    raw_headers: list[tuple[bytes, bytes]] = scope.get("headers", [])

    if trust_forwarded:
        # Multiple XFF headers concatenate per RFC 9110 §5.3
        xff = ",".join(_header_values(raw_headers, b"x-forwarded-for"))
        for entry in xff.split(","):
            if entry.strip():
                return canonical_ip(entry)
        for real_ip in _header_values(raw_headers, b"x-real-ip"):
            if real_ip.strip():
                return canonical_ip(real_ip)

    peer = scope.get("client")
    if peer:
        return canonical_ip(str(peer[0]))
    return ""
