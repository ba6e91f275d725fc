# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Session identity resolution.

The identity provider issues a signed session JWT, delivered either as the
``__session`` cookie (browser) or an ``Authorization: Bearer`` header
(API clients). Verification is networkless: the provider's public key
(or a shared secret for HS* algorithms) is configured up front.

``IdentityResolver.resolve(scope)`` returns the user id (the ``sub``
claim) or ``None``. ``SessionTokenResolver.verify`` raises
``IdentityError`` for a present-but-invalid token; ``resolve`` maps that
to ``None`` so the auth gate treats it as anonymous.
"""

from __future__ import annotations

import logging
from http.cookies import CookieError, SimpleCookie
from typing import Any, Protocol, runtime_checkable

import jwt

from .errors import IdentityError
from .security_headers import get_header

logger = logging.getLogger(__name__)

SESSION_COOKIE = "__session"


@runtime_checkable
class IdentityResolver(Protocol):
    async def resolve(self, scope: dict) -> str | None: ...


class AnonymousResolver:
    """Used when no session key is configured: every caller is anonymous."""

    async def resolve(self, scope: dict) -> str | None:
        return None


def extract_session_token(scope: dict) -> str | None:
    """Bearer header first, then the session cookie."""
    raw_headers: list[tuple[bytes, bytes]] = scope.get("headers", [])

    auth = get_header(raw_headers, b"authorization")
    if auth and auth[:7].lower() == "bearer ":
        token = auth[7:].strip()
        if token:
            return token

    cookie_header = get_header(raw_headers, b"cookie")
    if cookie_header:
        jar = SimpleCookie()
        try:
            jar.load(cookie_header)
        except CookieError:
            return None
        morsel = jar.get(SESSION_COOKIE)
        if morsel is not None and morsel.value:
            return morsel.value
    return None


class SessionTokenResolver:
    """Verify session JWTs with PyJWT.

    Args:
        key: PEM public key (RS256/ES256) or shared secret (HS256).
        algorithms: Accepted signing algorithms.
        issuer: Expected ``iss`` claim, if any.
        leeway: Clock-skew tolerance in seconds for ``exp``/``nbf``.
    """

    def __init__(
        self,
        key: str,
        *,
        algorithms: tuple[str, ...] = ("RS256",),
        issuer: str | None = None,
        leeway: float = 5.0,
    ) -> None:
        if not key:
            raise ValueError("session key must not be empty")
        self._key = key
        self._algorithms = list(algorithms)
        self._issuer = issuer
        self._leeway = leeway

    def verify(self, token: str) -> dict[str, Any]:
        """Decode and validate *token*. Raises ``IdentityError``."""
        options = {"require": ["exp", "sub"]}
        try:
            return jwt.decode(
                token,
                self._key,
                algorithms=self._algorithms,
                issuer=self._issuer,
                leeway=self._leeway,
                options=options,
            )
        except jwt.PyJWTError as exc:
            raise IdentityError(f"invalid session token: {exc}") from exc

    async def resolve(self, scope: dict) -> str | None:
        token = extract_session_token(scope)
        if token is None:
            return None
        try:
            claims = self.verify(token)
        except IdentityError as e:
            logger.info("Session rejected: %s", e)
            return None
        sub = claims.get("sub")
        return str(sub) if sub else None
