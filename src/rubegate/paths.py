# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Path normalization and the declarative public-path table.

Standalone leaf module (stdlib ``re`` only).

``normalize_path`` is for matching only; redirect and rewrite targets
always use the raw request path.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

# Runs of 2+ slashes, except directly after ":" (scheme separator)
_MULTI_SLASH_RE = re.compile(r"(?<!:)/{2,}")

# Paths the edge pipeline never inspects (build assets, CMS studio, static files)
_SKIP_PREFIXES: tuple[str, ...] = ("/_next", "/studio")

API_PREFIX = "/api/"
BLOCKED_PATH = "/blocked"


def normalize_path(path: str) -> str:
    """Lower-case, collapse duplicate slashes, strip one trailing slash.

    Total and idempotent. The root path stays ``"/"``.
    """
    if not path:
        return "/"
    normalized = _MULTI_SLASH_RE.sub("/", path.lower())
    if len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized or "/"


def is_api_path(path: str) -> bool:
    return path.startswith(API_PREFIX)


def is_skipped_path(path: str) -> bool:
    """True for paths the pipeline passes straight through to the app."""
    if path.startswith(_SKIP_PREFIXES):
        return True
    return "." in path


# ── Public-path rules ─────────────────────────────────────────────────


class RuleKind(StrEnum):
    EXACT = "exact"
    PREFIX = "prefix"
    PATTERN = "pattern"


@dataclass(frozen=True, slots=True)
class PathRule:
    """One allow-list entry. ``value`` is a literal path or a regex source."""

    kind: RuleKind
    value: str
    _regex: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.kind is RuleKind.PATTERN:
            object.__setattr__(self, "_regex", re.compile(self.value))

    def matches(self, normalized: str) -> bool:
        if self.kind is RuleKind.EXACT:
            return normalized == self.value
        if self.kind is RuleKind.PREFIX:
            return normalized.startswith(self.value)
        assert self._regex is not None
        return self._regex.match(normalized) is not None


def _rules(kind: RuleKind, values: Iterable[str]) -> tuple[PathRule, ...]:
    return tuple(PathRule(kind, v) for v in values)


PUBLIC_SECTIONS: tuple[str, ...] = ("blog", "guides", "stores", "categories", "projects")

# Site pages match as prefixes, so "/about/team" and "/projects/x" are public.
# "/" and "/blocked" are exact-only; "/" as a prefix would match every path.
# Dotted paths (robots.txt, sitemaps, favicon) are skipped before matching.
PUBLIC_RULES: tuple[PathRule, ...] = (
    *_rules(RuleKind.EXACT, ("/", BLOCKED_PATH)),
    *_rules(
        RuleKind.PREFIX,
        (
            *(f"/{section}" for section in PUBLIC_SECTIONS),
            "/how-to-buy",
            "/about",
            "/contact",
            "/privacy",
            "/terms",
            "/api/public",
            "/api/blog",
            "/api/guides",
            "/api/stores",
        ),
    ),
)


def is_public_path(normalized: str, rules: Iterable[PathRule] = PUBLIC_RULES) -> bool:
    """Return True if *normalized* is servable without identity checks."""
    return any(rule.matches(normalized) for rule in rules)
