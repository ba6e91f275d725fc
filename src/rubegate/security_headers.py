# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Security header constants, CSP assembly and ASGI header helpers.

Standalone leaf module with zero dependency on middleware.py.
Uses stdlib only.

Design choices:

- **Set semantics** — injected headers replace any same-name header the app
  already sent (one value per name on the wire).
- **HSTS** — only on HTTPS, detected from ``scope["scheme"]`` or, when
  forwarded headers are trusted, ``X-Forwarded-Proto``.
- **CSP** — built once from a directive table; only attached to non-API
  responses.
"""

from __future__ import annotations

from collections.abc import Iterable

# ── Baseline headers ──────────────────────────────────────────────────

BASELINE_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-frame-options", b"DENY"),
    (b"x-content-type-options", b"nosniff"),
    (b"referrer-policy", b"strict-origin-when-cross-origin"),
    (b"x-xss-protection", b"1; mode=block"),
)

HSTS_HEADER: tuple[bytes, bytes] = (
    b"strict-transport-security",
    b"max-age=31536000; includeSubDomains; preload",
)

# ── Content-Security-Policy ───────────────────────────────────────────

CSP_DIRECTIVES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("default-src", ("'self'",)),
    (
        "script-src",
        (
            "'self'",
            "'unsafe-eval'",
            "'unsafe-inline'",
            "https://pagead2.googlesyndication.com",
            "https://www.googletagmanager.com",
            "https://vercel.live",
        ),
    ),
    ("style-src", ("'self'", "'unsafe-inline'", "https://fonts.googleapis.com")),
    ("img-src", ("'self'", "data:", "https://cdn.sanity.io", "https://*.sanity.io", "https://i.imgur.com")),
    ("font-src", ("'self'", "https://fonts.gstatic.com")),
    (
        "connect-src",
        (
            "'self'",
            "https://*.sanity.io",
            "https://api.sanity.io",
            "https://api.resend.com",
            "https://vitals.vercel-insights.com",
        ),
    ),
    ("frame-src", ("'self'", "https://www.youtube.com")),
    ("media-src", ("'self'", "https://cdn.sanity.io")),
    ("object-src", ("'none'",)),
    ("base-uri", ("'self'",)),
    ("form-action", ("'self'",)),
    ("frame-ancestors", ("'none'",)),
)


def build_csp(directives: Iterable[tuple[str, Iterable[str]]] = CSP_DIRECTIVES) -> str:
    """Join a directive table into a Content-Security-Policy value."""
    return "; ".join(f"{name} {' '.join(sources)}" for name, sources in directives)


CSP_HEADER: tuple[bytes, bytes] = (b"content-security-policy", build_csp().encode("latin-1"))

# ── Helpers ────────────────────────────────────────────────────────────


def get_header(raw_headers: Iterable[tuple[bytes, bytes]], name: bytes) -> str | None:
    """Get the first header value by lowercase name, stripped."""
    for hdr_name, hdr_value in raw_headers:
        if hdr_name.lower() == name:
            return hdr_value.decode("latin-1").strip()
    return None


def is_https(scope: dict, *, trust_forwarded: bool = True) -> bool:
    """Check if request is over HTTPS (direct or via the platform proxy)."""
    if scope.get("scheme") == "https":
        return True
    if not trust_forwarded:
        return False
    proto = get_header(scope.get("headers", []), b"x-forwarded-proto")
    if not proto:
        return False
    # "https,http" when chained; the first hop is the client's
    return proto.split(",", 1)[0].strip().lower() == "https"


def security_headers(*, https: bool, include_csp: bool) -> list[tuple[bytes, bytes]]:
    """Headers for a public-route response."""
    headers = list(BASELINE_HEADERS)
    if https:
        headers.append(HSTS_HEADER)
    if include_csp:
        headers.append(CSP_HEADER)
    return headers


def merge_headers(
    existing: Iterable[tuple[bytes, bytes]],
    injected: Iterable[tuple[bytes, bytes]],
) -> list[tuple[bytes, bytes]]:
    """Return *existing* with every *injected* header set (replacing same-name entries)."""
    injected = list(injected)
    names = {name for name, _ in injected}
    merged = [(name, value) for name, value in existing if name.lower() not in names]
    merged.extend(injected)
    return merged
