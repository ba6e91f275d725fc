# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Rube Gate exception hierarchy.

All errors inherit from RubeGateError. Only ConfigError is expected to
escape to the caller (at startup); the middleware catches the port errors
and degrades.
"""

from __future__ import annotations


class RubeGateError(Exception):
    """Base exception for all Rube Gate errors."""


class ConfigError(RubeGateError):
    """Invalid configuration (bad env value, malformed connection string)."""


class BlocklistError(RubeGateError):
    """Blocklist source unreachable or returned an unexpected payload."""


class KeyValueError(RubeGateError):
    """Key-value store read or write failure."""

    def __init__(self, message: str, *, key: str = "") -> None:
        super().__init__(message)
        self.key = key


class IdentityError(RubeGateError):
    """Session token could not be verified."""
