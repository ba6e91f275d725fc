# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the SEO gate implementations and crawler artifacts."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone

import pytest
from starlette.requests import Request

from rubegate.seo import (
    FILTER_PAGES,
    SITEMAP_NS,
    STATIC_PAGES,
    PassThroughSeoGate,
    QueryCanonicalSeoGate,
    SeoGate,
    robots_txt,
    sitemap_index,
    static_sitemap,
)
from tests._asgi_helpers import make_scope

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
NS = {"sm": SITEMAP_NS}


def _request(path: str = "/blog", query: str = "") -> Request:
    return Request(make_scope(path, query=query))


# ── TestSeoGates ──────────────────────────────────────────────────────


class TestPassThrough:
    async def test_returns_none(self):
        assert await PassThroughSeoGate()(_request(query="utm_source=x")) is None

    def test_protocol(self):
        assert isinstance(PassThroughSeoGate(), SeoGate)
        assert isinstance(QueryCanonicalSeoGate(), SeoGate)


class TestQueryCanonical:
    @pytest.fixture
    def gate(self):
        return QueryCanonicalSeoGate()

    async def test_no_query(self, gate):
        assert await gate(_request()) is None

    async def test_clean_query_passes(self, gate):
        assert await gate(_request(query="app=gmail&level=basic")) is None

    async def test_utm_stripped(self, gate):
        response = await gate(_request(query="app=gmail&utm_source=twitter&utm_medium=social"))
        assert response.status_code == 301
        assert response.headers["location"] == "/blog?app=gmail"

    async def test_only_tracking_params(self, gate):
        response = await gate(_request(query="fbclid=abc"))
        assert response.headers["location"] == "/blog"

    async def test_page_one_stripped(self, gate):
        response = await gate(_request(query="level=basic&page=1"))
        assert response.headers["location"] == "/blog?level=basic"

    async def test_page_two_kept(self, gate):
        assert await gate(_request(query="page=2")) is None

    async def test_order_preserved(self, gate):
        response = await gate(_request(query="level=basic&gclid=x&app=slack"))
        assert response.headers["location"] == "/blog?level=basic&app=slack"


# ── TestRobots ────────────────────────────────────────────────────────


class TestRobots:
    def test_sitemap_line(self):
        assert "Sitemap: https://rube.club/sitemap.xml" in robots_txt("https://rube.club")

    def test_policy_lines(self):
        body = robots_txt("https://rube.club")
        lines = body.splitlines()
        assert lines[0] == "User-agent: *"
        assert "Disallow: /api/" in lines
        assert "Disallow: /studio/" in lines
        assert "Allow: /blog?app=*&level=*" in lines
        assert "Crawl-delay: 1" in lines


# ── TestSitemaps ──────────────────────────────────────────────────────


class TestSitemaps:
    def test_index(self):
        root = ET.fromstring(sitemap_index("https://rube.club", now=NOW))
        locs = [el.text for el in root.findall("sm:sitemap/sm:loc", NS)]
        assert locs == [
            "https://rube.club/sitemaps/static.xml",
            "https://rube.club/sitemaps/posts.xml",
            "https://rube.club/sitemaps/apps.xml",
        ]
        lastmods = {el.text for el in root.findall("sm:sitemap/sm:lastmod", NS)}
        assert lastmods == {"2026-03-01T12:00:00.000Z"}

    def test_static(self):
        root = ET.fromstring(static_sitemap("https://rube.club", now=NOW))
        urls = root.findall("sm:url", NS)
        assert len(urls) == len(STATIC_PAGES) + len(FILTER_PAGES)
        first = urls[0]
        assert first.find("sm:loc", NS).text == "https://rube.club/"
        assert first.find("sm:priority", NS).text == "1.0"
        assert first.find("sm:changefreq", NS).text == "daily"

    def test_ampersand_escaped(self):
        xml = static_sitemap("https://rube.club", now=NOW)
        assert "/blog?app=gmail&amp;level=basic" in xml
        locs = [el.text for el in ET.fromstring(xml).findall("sm:url/sm:loc", NS)]
        assert "https://rube.club/blog?app=gmail&level=basic" in locs
