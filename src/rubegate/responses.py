# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Policy responses emitted by the edge pipeline.

Bodies are the exact ``{"error": ...}`` shape the site's frontend expects,
not problem+json.
"""

from __future__ import annotations

from starlette.responses import JSONResponse, RedirectResponse

BLOCKED_MESSAGE = "You have been blocked."
NOT_AUTHENTICATED_MESSAGE = "Not authenticated"


def json_error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def blocked_response() -> JSONResponse:
    return json_error(BLOCKED_MESSAGE, 403)


def not_authenticated_response() -> JSONResponse:
    return json_error(NOT_AUTHENTICATED_MESSAGE, 401)


def permanent_redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=301)


def temporary_redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=307)
