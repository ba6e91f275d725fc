# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Starlette application factory.

Serves the crawler artifacts (robots.txt, sitemaps), the blocked page, a
health probe and the current-visitor API, wrapped in ``EdgeMiddleware``.
Ports are built from ``GateConfig`` unless passed in explicitly:

- KV: ``RedisKeyValueStore`` when ``redis_url`` is set, else in-memory
- Blocklist: ``EdgeConfigBlocklist`` when ``edge_config`` is set, else disabled
- Identity: ``SessionTokenResolver`` when ``session_key`` is set, else anonymous
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from .blocklist import BlocklistSource, EdgeConfigBlocklist
from .config import GateConfig
from .errors import KeyValueError
from .identity import AnonymousResolver, IdentityResolver, SessionTokenResolver
from .kv import CURRENT_VISITOR_KEY, InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from .middleware import EdgeMiddleware
from .seo import ARTIFACT_CACHE_CONTROL, QueryCanonicalSeoGate, SeoGate, robots_txt, sitemap_index, static_sitemap

logger = logging.getLogger(__name__)

_BLOCKED_PAGE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><meta name="robots" content="noindex"><title>Blocked | Rube Club</title></head>
<body><main><h1>Access blocked</h1><p>Requests from your network have been blocked.</p></main></body>
</html>
"""


def build_store(config: GateConfig) -> KeyValueStore:
    if config.redis_url:
        logger.info("KV store: Redis")
        return RedisKeyValueStore.from_url(config.redis_url, timeout=config.external_timeout)
    logger.info("KV store: in-memory (no REDIS_URL)")
    return InMemoryKeyValueStore()


def build_blocklist(config: GateConfig, *, client: httpx.AsyncClient | None = None) -> BlocklistSource | None:
    if not config.blocklist_enabled:
        return None
    return EdgeConfigBlocklist.from_connection_string(config.edge_config, timeout=config.external_timeout, client=client)


def build_identity(config: GateConfig) -> IdentityResolver:
    if not config.session_key:
        logger.warning("No RUBE_SESSION_KEY: every API caller is treated as anonymous")
        return AnonymousResolver()
    return SessionTokenResolver(config.session_key, algorithms=config.session_algorithms)


def create_app(
    config: GateConfig | None = None,
    *,
    store: KeyValueStore | None = None,
    blocklist: BlocklistSource | None = None,
    identity: IdentityResolver | None = None,
    seo_gate: SeoGate | None = None,
) -> EdgeMiddleware:
    """Build the site app wrapped in the edge pipeline.

    Raises:
        ConfigError: If ``edge_config`` is set but malformed.
    """
    config = config or GateConfig()
    store = store if store is not None else build_store(config)
    # One pooled Edge Config client for the app lifetime, closed in lifespan
    http_client: httpx.AsyncClient | None = None
    if blocklist is None and config.blocklist_enabled:
        http_client = httpx.AsyncClient(timeout=config.external_timeout)
        blocklist = build_blocklist(config, client=http_client)
    identity = identity or build_identity(config)
    origin = config.canonical_origin

    async def health(request: Request) -> Response:
        return JSONResponse({"status": "ok"})

    async def robots(request: Request) -> Response:
        return PlainTextResponse(robots_txt(origin), headers={"Cache-Control": ARTIFACT_CACHE_CONTROL})

    async def sitemap(request: Request) -> Response:
        return Response(
            sitemap_index(origin),
            media_type="application/xml",
            headers={"Cache-Control": ARTIFACT_CACHE_CONTROL},
        )

    async def sitemap_static(request: Request) -> Response:
        return Response(
            static_sitemap(origin),
            media_type="application/xml",
            headers={"Cache-Control": ARTIFACT_CACHE_CONTROL},
        )

    async def blocked(request: Request) -> Response:
        return HTMLResponse(_BLOCKED_PAGE)

    async def current_visitor(request: Request) -> Response:
        try:
            record = await store.get(CURRENT_VISITOR_KEY)
        except KeyValueError as e:
            logger.warning("Current visitor read failed: %s", e)
            record = None
        return JSONResponse(record if isinstance(record, dict) else {})

    async def home(request: Request) -> Response:
        return HTMLResponse("<!doctype html><title>Rube Club</title><h1>Rube Club</h1>")

    @asynccontextmanager
    async def lifespan(app):
        yield
        await store.close()
        if http_client is not None:
            await http_client.aclose()

    site = Starlette(
        routes=[
            Route("/", home),
            Route("/health", health),
            Route("/robots.txt", robots),
            Route("/sitemap.xml", sitemap),
            Route("/sitemaps/static.xml", sitemap_static),
            Route("/blocked", blocked),
            Route("/api/current-visitor", current_visitor),
        ],
        lifespan=lifespan,
    )

    return EdgeMiddleware(
        site,
        config,
        store=store,
        blocklist=blocklist,
        identity=identity,
        seo_gate=seo_gate or QueryCanonicalSeoGate(),
    )
