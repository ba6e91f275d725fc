# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SEO gate port plus the site's crawler-facing artifacts.

SEO gate contract: called for every non-API request before bot and
public-path handling. Returning ``None`` (or a 200 response) continues the
pipeline; any other status is forwarded to the client unchanged.

Artifacts (served by ``app.py``):

- ``robots_txt()``     — crawl policy
- ``sitemap_index()``  — index of the static/posts/apps sitemaps
- ``static_sitemap()`` — fixed pages + high-value blog filter URLs
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable
from urllib.parse import parse_qsl, urlencode
from xml.sax.saxutils import escape

from starlette.requests import Request
from starlette.responses import Response

from .responses import permanent_redirect

ARTIFACT_CACHE_CONTROL = "public, max-age=86400, s-maxage=86400"


# ── SEO gate ──────────────────────────────────────────────────────────


@runtime_checkable
class SeoGate(Protocol):
    async def __call__(self, request: Request) -> Response | None: ...


class PassThroughSeoGate:
    async def __call__(self, request: Request) -> Response | None:
        return None


_TRACKING_PARAMS = frozenset({"fbclid", "gclid", "msclkid"})


def _is_noise_param(key: str, value: str) -> bool:
    k = key.lower()
    if k.startswith("utm_") or k in _TRACKING_PARAMS:
        return True
    return k == "page" and value == "1"


class QueryCanonicalSeoGate:
    """301 away from duplicate-content query strings.

    Drops tracking parameters (``utm_*``, ``fbclid``, ``gclid``, ``msclkid``)
    and ``page=1``; the remaining parameters keep their order.
    """

    async def __call__(self, request: Request) -> Response | None:
        query = request.url.query
        if not query:
            return None
        params = parse_qsl(query, keep_blank_values=True)
        kept = [(k, v) for k, v in params if not _is_noise_param(k, v)]
        if len(kept) == len(params):
            return None
        target = request.url.path
        if kept:
            target = f"{target}?{urlencode(kept)}"
        return permanent_redirect(target)


# ── robots.txt ────────────────────────────────────────────────────────

_ROBOTS_TEMPLATE = """User-agent: *
Allow: /

# Block parameter-heavy URLs
Disallow: /*?q=*
Disallow: /*?utm_*
Disallow: /*?search=*
Disallow: /*&utm_*
Disallow: /*?*&utm_*

# Block admin and development paths
Disallow: /admin/
Disallow: /api/
Disallow: /_next/
Disallow: /studio/

# Block duplicate content
Disallow: /*?page=1
Disallow: /*&page=1

# Allow important filtered pages
Allow: /blog?app=*
Allow: /blog?level=*
Allow: /blog?app=*&level=*

# Sitemaps
Sitemap: {origin}/sitemap.xml

# Crawl delay for politeness
Crawl-delay: 1
"""


def robots_txt(origin: str) -> str:
    return _ROBOTS_TEMPLATE.format(origin=origin)


# ── Sitemaps ──────────────────────────────────────────────────────────

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
SITEMAP_NAMES: tuple[str, ...] = ("static", "posts", "apps")


@dataclass(frozen=True, slots=True)
class SitemapEntry:
    path: str
    priority: str
    changefreq: str


STATIC_PAGES: tuple[SitemapEntry, ...] = (
    SitemapEntry("/", "1.0", "daily"),
    SitemapEntry("/blog", "0.9", "daily"),
    SitemapEntry("/projects", "0.8", "weekly"),
    SitemapEntry("/about", "0.7", "monthly"),
    SitemapEntry("/contact", "0.6", "monthly"),
    SitemapEntry("/privacy", "0.3", "yearly"),
    SitemapEntry("/terms", "0.3", "yearly"),
)

# High-value blog filter combinations worth indexing on their own
FILTER_PAGES: tuple[SitemapEntry, ...] = (
    SitemapEntry("/blog?app=gmail&level=basic", "0.7", "weekly"),
    SitemapEntry("/blog?app=slack&level=basic", "0.7", "weekly"),
    SitemapEntry("/blog?app=notion&level=basic", "0.7", "weekly"),
    SitemapEntry("/blog?level=basic", "0.6", "weekly"),
    SitemapEntry("/blog?level=intermediate", "0.6", "weekly"),
    SitemapEntry("/blog?app=gmail", "0.6", "weekly"),
    SitemapEntry("/blog?app=slack", "0.6", "weekly"),
    SitemapEntry("/blog?app=notion", "0.6", "weekly"),
)


def _lastmod(now: datetime | None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sitemap_index(origin: str, *, now: datetime | None = None) -> str:
    lastmod = _lastmod(now)
    items = "".join(
        f"\n  <sitemap>\n    <loc>{escape(f'{origin}/sitemaps/{name}.xml')}</loc>\n"
        f"    <lastmod>{lastmod}</lastmod>\n  </sitemap>"
        for name in SITEMAP_NAMES
    )
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<sitemapindex xmlns="{SITEMAP_NS}">{items}\n</sitemapindex>'


def _url_entries(origin: str, entries: Iterable[SitemapEntry], lastmod: str) -> str:
    return "".join(
        f"\n  <url>\n    <loc>{escape(origin + e.path)}</loc>\n    <lastmod>{lastmod}</lastmod>\n"
        f"    <changefreq>{e.changefreq}</changefreq>\n    <priority>{e.priority}</priority>\n  </url>"
        for e in entries
    )


def static_sitemap(origin: str, *, now: datetime | None = None) -> str:
    lastmod = _lastmod(now)
    urls = _url_entries(origin, STATIC_PAGES, lastmod) + _url_entries(origin, FILTER_PAGES, lastmod)
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<urlset xmlns="{SITEMAP_NS}">{urls}\n</urlset>'
