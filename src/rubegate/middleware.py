# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Edge pipeline — pure ASGI middleware run before every page and API handler.

Stages (strictly sequential, any stage may end the request):

1. Skip build assets, CMS studio and static files (paths with a dot).
2. Canonical host: alternate hosts → 301 to ``https://{canonical_host}``.
3. SEO gate (non-API only): a non-200 response is forwarded as-is. This
   runs before the bot and public-path stages and always wins over them.
4. Search crawlers: pass through with indexing/cache hints, skipping the
   blocklist, geo capture and CSP.
5. Public paths: blocklist → ``/blocked`` self-heal → geo capture →
   security headers (+ CSP for non-API).
6. Non-public API paths (except ``/api/public``): session gate for
   user-content endpoints only.

Failure policy: blocklist, KV and identity errors are logged and degrade
to "not blocked" / "no telemetry" / "anonymous". Nothing is retried.

Design choices:

- **Pure ASGI** — no BaseHTTPMiddleware (avoids body buffering, SSE issues).
- **Rewrite** — the inner app is called with ``scope["path"] = "/blocked"``;
  the client URL is unchanged.
- **Header injection** via send-wrapper on the first ``http.response.start``.
- **Fire-and-forget** visitor writes with GC-safe task references.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

import structlog
from starlette.requests import Request

from .blocklist import BlocklistSource
from .bots import BOT_RESPONSE_HEADERS, PUBLIC_DATA_API_PREFIXES, is_public_data_crawler, is_search_bot
from .canonical import canonical_redirect_url
from .config import GateConfig
from .geo import capture_visitor, geo_from_scope
from .identity import AnonymousResolver, IdentityResolver
from .ip import canonical_ip, client_ip
from .kv import InMemoryKeyValueStore, KeyValueStore
from .paths import (
    BLOCKED_PATH,
    PUBLIC_RULES,
    PathRule,
    is_api_path,
    is_public_path,
    is_skipped_path,
    normalize_path,
)
from .responses import (
    blocked_response,
    not_authenticated_response,
    permanent_redirect,
    temporary_redirect,
)
from .security_headers import get_header, is_https, merge_headers, security_headers
from .seo import PassThroughSeoGate, SeoGate

logger = logging.getLogger(__name__)

# Session gate applies only to these (comment submission, guestbook)
_GATED_API_PREFIXES: tuple[str, ...] = ("/api/comments",)
_GATED_API_PATHS: frozenset[str] = frozenset({"/api/guestbook"})

_PUBLIC_API_PREFIX = "/api/public"

# ── Fire-and-forget task set (prevents GC) ───────────────────────────

_background_tasks: set[asyncio.Task] = set()


def _fire_and_forget(coro: Coroutine) -> None:
    """Schedule a coroutine as a fire-and-forget task with GC protection."""
    task = asyncio.get_running_loop().create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def _send_with_headers(send: Callable, injected: list[tuple[bytes, bytes]]) -> Callable:
    """Wrap *send* to set *injected* headers on the first response start."""
    _injected = False

    async def _send(message) -> None:
        nonlocal _injected
        if message["type"] == "http.response.start" and not _injected:
            _injected = True
            headers = merge_headers(message.get("headers", []), injected)
            message = {**message, "headers": headers}
        await send(message)

    return _send


def is_gated_api_path(normalized: str) -> bool:
    return normalized.startswith(_GATED_API_PREFIXES) or normalized in _GATED_API_PATHS


class EdgeMiddleware:
    """Pure ASGI middleware implementing the edge pipeline.

    Constructor:
        ``EdgeMiddleware(app, config, *, store, blocklist, identity, seo_gate)``

    ``blocklist=None`` disables the blocklist stage (the app factory only
    builds one when ``config.blocklist_enabled``). Non-HTTP scopes
    (lifespan, websocket) pass through unconditionally.
    """

    def __init__(
        self,
        app: Any,
        config: GateConfig | None = None,
        *,
        store: KeyValueStore | None = None,
        blocklist: BlocklistSource | None = None,
        identity: IdentityResolver | None = None,
        seo_gate: SeoGate | None = None,
        public_rules: Iterable[PathRule] = PUBLIC_RULES,
    ) -> None:
        self.app = app
        self.config = config or GateConfig()
        self.store = store if store is not None else InMemoryKeyValueStore()
        self.blocklist = blocklist
        self.identity = identity or AnonymousResolver()
        self.seo_gate = seo_gate or PassThroughSeoGate()
        self.public_rules = tuple(public_rules)

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "") or "/"
        if is_skipped_path(path):
            await self.app(scope, receive, send)
            return

        scope.setdefault("state", {})
        ip = client_ip(scope, trust_forwarded=self.config.trust_forwarded)
        scope["state"]["client_ip"] = ip

        with structlog.contextvars.bound_contextvars(path=path, client_ip=ip):
            await self._dispatch(scope, receive, send, path)

    async def _dispatch(self, scope, receive, send, path: str) -> None:
        raw_headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
        normalized = normalize_path(path)
        api = is_api_path(normalized)

        # 1. Canonical host
        query = scope.get("query_string", b"").decode("latin-1")
        redirect_url = canonical_redirect_url(get_header(raw_headers, b"host") or "", path, query, self.config)
        if redirect_url is not None:
            await permanent_redirect(redirect_url)(scope, receive, send)
            return

        # 2. SEO gate, ahead of bot and public handling
        if not api:
            seo_response = await self.seo_gate(Request(scope, receive))
            if seo_response is not None and seo_response.status_code != 200:
                await seo_response(scope, receive, send)
                return

        # 3. Search crawlers
        if is_search_bot(get_header(raw_headers, b"user-agent") or ""):
            await self.app(scope, receive, _send_with_headers(send, list(BOT_RESPONSE_HEADERS)))
            return

        # 4. Public routes
        if is_public_path(normalized, self.public_rules):
            await self._handle_public(scope, receive, send, normalized, api)
            return

        # 5. Session gate
        if api and not normalized.startswith(_PUBLIC_API_PREFIX):
            rejection = await self._auth_check(scope, normalized)
            if rejection is not None:
                await rejection(scope, receive, send)
                return

        await self.app(scope, receive, send)

    # ── Public routes ─────────────────────────────────────────────────

    async def _handle_public(self, scope, receive, send, normalized: str, api: bool) -> None:
        headers = security_headers(
            https=is_https(scope, trust_forwarded=self.config.trust_forwarded),
            include_csp=not api,
        )

        if self.blocklist is not None:
            if await self._is_blocked(scope["state"]["client_ip"]):
                logger.info("Blocked IP rejected (api=%s)", api)
                if api:
                    await blocked_response()(scope, receive, send)
                    return
                rewritten = {**scope, "path": BLOCKED_PATH, "raw_path": BLOCKED_PATH.encode("latin-1")}
                await self.app(rewritten, receive, _send_with_headers(send, headers))
                return

            if normalized == BLOCKED_PATH:
                query = scope.get("query_string", b"").decode("latin-1")
                await temporary_redirect(f"/?{query}" if query else "/")(scope, receive, send)
                return

        if self.config.is_production and not api:
            geo = geo_from_scope(scope)
            if geo is not None:
                _fire_and_forget(capture_visitor(self.store, geo))

        await self.app(scope, receive, _send_with_headers(send, headers))

    async def _is_blocked(self, ip: str) -> bool:
        """Blocklist lookup. Any fetch failure counts as not blocked."""
        if not ip:
            return False
        try:
            blocked = await self.blocklist.fetch()
        except Exception as e:  # noqa: BLE001
            logger.warning("Blocklist fetch failed, treating as not blocked: %s", e)
            return False
        return canonical_ip(ip) in {canonical_ip(entry) for entry in blocked}

    # ── Session gate ──────────────────────────────────────────────────

    async def _auth_check(self, scope, normalized: str):
        """Return a 401 response for anonymous calls to gated endpoints, else None."""
        user_agent = get_header(scope.get("headers", []), b"user-agent") or ""
        if is_public_data_crawler(user_agent) and normalized.startswith(PUBLIC_DATA_API_PREFIXES):
            return None

        try:
            user_id = await self.identity.resolve(scope)
        except Exception as e:  # noqa: BLE001
            logger.warning("Identity lookup failed, treating as anonymous: %s", e)
            user_id = None

        if user_id:
            scope["state"]["user_id"] = user_id
            return None

        if is_gated_api_path(normalized):
            logger.info("Unauthenticated request to gated endpoint rejected")
            return not_authenticated_response()
        return None
