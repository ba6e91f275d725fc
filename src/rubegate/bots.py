# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Search-crawler classification by User-Agent.

The User-Agent header is caller-controlled, so these checks are trivially
spoofable. They only select relaxed caching and indexing headers (and let
crawlers read public-data APIs, which are readable anyway); they must
never be used for access control.
"""

from __future__ import annotations

import re

_SEARCH_BOT_RE = re.compile(r"googlebot|bingbot|baiduspider|yandex|sogou", re.IGNORECASE)

# Narrower set allowed to skip the session gate on public-data API prefixes
_PUBLIC_DATA_CRAWLER_RE = re.compile(r"googlebot|bingbot", re.IGNORECASE)

PUBLIC_DATA_API_PREFIXES: tuple[str, ...] = ("/api/blog", "/api/guides", "/api/stores")

BOT_RESPONSE_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-robots-tag", b"index,follow,max-snippet:-1,max-image-preview:large"),
    (b"cache-control", b"public, max-age=3600, stale-while-revalidate=86400"),
)


def is_search_bot(user_agent: str | None) -> bool:
    """True if *user_agent* carries a known search-engine crawler signature."""
    if not user_agent:
        return False
    return _SEARCH_BOT_RE.search(user_agent) is not None


def is_public_data_crawler(user_agent: str | None) -> bool:
    if not user_agent:
        return False
    return _PUBLIC_DATA_CRAWLER_RE.search(user_agent) is not None
