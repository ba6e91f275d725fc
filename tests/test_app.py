# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Integration tests for the Starlette app behind the edge pipeline."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from rubegate.app import build_blocklist, build_identity, build_store, create_app
from rubegate.blocklist import EdgeConfigBlocklist, StaticBlocklist
from rubegate.config import GateConfig
from rubegate.errors import ConfigError, KeyValueError
from rubegate.identity import AnonymousResolver, SessionTokenResolver
from rubegate.kv import CURRENT_VISITOR_KEY, InMemoryKeyValueStore, RedisKeyValueStore
from tests._asgi_helpers import drain_background_tasks
from tests.conftest import BLOCKED_IP


def _client(app, base_url: str = "https://rube.club") -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url=base_url)


@pytest.fixture
def app(store):
    return create_app(GateConfig(), store=store)


@pytest.fixture
def client(app):
    return _client(app)


# ── Routes ────────────────────────────────────────────────────────────


class TestRoutes:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert "x-frame-options" not in resp.headers

    async def test_home_has_security_headers(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert "Rube Club" in resp.text
        assert resp.headers["x-frame-options"] == "DENY"
        assert resp.headers["strict-transport-security"].startswith("max-age=31536000")
        assert "default-src 'self'" in resp.headers["content-security-policy"]

    async def test_robots(self, client):
        resp = await client.get("/robots.txt")
        assert resp.status_code == 200
        assert "Sitemap: https://rube.club/sitemap.xml" in resp.text
        assert resp.headers["cache-control"] == "public, max-age=86400, s-maxage=86400"
        # dotted paths bypass the pipeline
        assert "x-content-type-options" not in resp.headers

    async def test_sitemap_index(self, client):
        resp = await client.get("/sitemap.xml")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/xml")
        assert "https://rube.club/sitemaps/static.xml" in resp.text

    async def test_static_sitemap(self, client):
        resp = await client.get("/sitemaps/static.xml")
        assert resp.status_code == 200
        assert "<loc>https://rube.club/</loc>" in resp.text

    async def test_http_has_no_hsts(self, app):
        async with _client(app, base_url="http://rube.club") as client:
            resp = await client.get("/")
        assert "strict-transport-security" not in resp.headers


# ── Pipeline through the app ──────────────────────────────────────────


class TestPipeline:
    async def test_legacy_host_redirect(self, app):
        async with _client(app, base_url="https://www.rubeapp.com") as client:
            resp = await client.get("/blog", params={"app": "gmail"})
        assert resp.status_code == 301
        assert resp.headers["location"] == "https://rube.club/blog?app=gmail"

    async def test_tracking_params_redirect(self, client):
        resp = await client.get("/", params={"utm_source": "newsletter"})
        assert resp.status_code == 301
        assert resp.headers["location"] == "/"

    async def test_comments_require_session(self, client):
        resp = await client.post("/api/comments", json={"body": "hi"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Not authenticated"}

    async def test_blocked_page_self_heal(self, store):
        app = create_app(GateConfig(), store=store, blocklist=StaticBlocklist([BLOCKED_IP]))
        async with _client(app) as client:
            resp = await client.get("/blocked", params={"from": "x"})
        assert resp.status_code == 307
        assert resp.headers["location"] == "/?from=x"

    async def test_blocked_ip_sees_blocked_page(self, store):
        app = create_app(GateConfig(), store=store, blocklist=StaticBlocklist([BLOCKED_IP]))
        async with _client(app) as client:
            resp = await client.get("/", headers={"x-forwarded-for": BLOCKED_IP})
        assert resp.status_code == 200
        assert "Access blocked" in resp.text
        assert resp.headers["x-frame-options"] == "DENY"

    async def test_blocked_ip_api_403(self, store):
        app = create_app(GateConfig(), store=store, blocklist=StaticBlocklist([BLOCKED_IP]))
        async with _client(app) as client:
            resp = await client.get("/api/public/posts", headers={"x-forwarded-for": BLOCKED_IP})
        assert resp.status_code == 403
        assert resp.json() == {"error": "You have been blocked."}


# ── Current visitor ───────────────────────────────────────────────────


class TestCurrentVisitor:
    async def test_empty(self, client):
        resp = await client.get("/api/current-visitor")
        assert resp.status_code == 200
        assert resp.json() == {}

    async def test_stored_record(self):
        record = {"country": "DE", "city": "Berlin", "flag": "🇩🇪"}
        store = InMemoryKeyValueStore({CURRENT_VISITOR_KEY: record})
        async with _client(create_app(GateConfig(), store=store)) as client:
            resp = await client.get("/api/current-visitor")
        assert resp.json() == record

    async def test_production_capture_round_trip(self, store):
        app = create_app(GateConfig(environment="production"), store=store)
        async with _client(app) as client:
            await client.get("/", headers={"x-vercel-ip-country": "br", "x-vercel-ip-city": "S%C3%A3o%20Paulo"})
            await drain_background_tasks()
            resp = await client.get("/api/current-visitor")
        assert resp.json() == {"country": "BR", "city": "São Paulo", "flag": "🇧🇷"}

    async def test_store_error_returns_empty(self):
        class BrokenStore(InMemoryKeyValueStore):
            async def get(self, key):
                raise KeyValueError("connection refused", key=key)

        async with _client(create_app(GateConfig(), store=BrokenStore())) as client:
            resp = await client.get("/api/current-visitor")
        assert resp.status_code == 200
        assert resp.json() == {}


# ── Lifespan ──────────────────────────────────────────────────────────


async def _run_lifespan(app) -> list[dict]:
    inbound: asyncio.Queue = asyncio.Queue()
    outbound: list[dict] = []

    async def send(message):
        outbound.append(message)

    await inbound.put({"type": "lifespan.startup"})
    await inbound.put({"type": "lifespan.shutdown"})
    await app({"type": "lifespan", "asgi": {"version": "3.0"}, "state": {}}, inbound.get, send)
    return outbound


async def test_lifespan_closes_store():
    closed = []

    class TrackingStore(InMemoryKeyValueStore):
        async def close(self):
            closed.append(True)

    outbound = await _run_lifespan(create_app(GateConfig(), store=TrackingStore()))
    assert [m["type"] for m in outbound] == ["lifespan.startup.complete", "lifespan.shutdown.complete"]
    assert closed == [True]


async def test_edge_config_client_shared_and_closed(prod_config):
    app = create_app(prod_config, store=InMemoryKeyValueStore())
    client = app.blocklist._client
    assert isinstance(client, httpx.AsyncClient)
    assert not client.is_closed

    await _run_lifespan(app)
    assert client.is_closed


async def test_injected_blocklist_used_as_is(prod_config):
    source = StaticBlocklist([BLOCKED_IP])
    app = create_app(prod_config, store=InMemoryKeyValueStore(), blocklist=source)
    assert app.blocklist is source


# ── Port builders ─────────────────────────────────────────────────────


class TestBuilders:
    def test_store_in_memory_by_default(self):
        assert isinstance(build_store(GateConfig()), InMemoryKeyValueStore)

    def test_store_redis_when_configured(self):
        assert isinstance(build_store(GateConfig(redis_url="redis://localhost:6379/0")), RedisKeyValueStore)

    def test_blocklist_disabled_without_edge_config(self):
        assert build_blocklist(GateConfig()) is None

    def test_blocklist_edge_config(self, prod_config):
        assert isinstance(build_blocklist(prod_config), EdgeConfigBlocklist)

    def test_identity_anonymous_without_key(self):
        assert isinstance(build_identity(GateConfig()), AnonymousResolver)

    def test_identity_session_with_key(self):
        resolver = build_identity(GateConfig(session_key="secret", session_algorithms=("HS256",)))
        assert isinstance(resolver, SessionTokenResolver)

    def test_malformed_edge_config_rejected(self):
        with pytest.raises(ConfigError):
            create_app(GateConfig(edge_config="https://edge-config.vercel.com/ecfg_1"))
