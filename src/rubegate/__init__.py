# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Rube Gate: edge middleware for the Rube Club content site.

Runs in front of every page and API handler and applies, in order:
- canonical-host redirects (legacy and ``www.`` hosts → ``rube.club``)
- the SEO gate (query canonicalization)
- search-crawler cache/indexing hints
- IP blocklist, geo capture and security headers on public routes
- a narrow session gate for user-content API endpoints
"""

from __future__ import annotations

from dataclasses import dataclass

__version__ = "0.3.0"


@dataclass(frozen=True, slots=True)
class GeoInfo:
    """Platform-supplied approximate location of the caller."""

    country: str  # ISO 3166-1 alpha-2, upper-case
    city: str = ""


@dataclass(frozen=True, slots=True)
class VisitorRecord:
    """Most recent visitor, stored as a single overwritten KV slot."""

    country: str
    city: str
    flag: str

    def to_dict(self) -> dict[str, str]:
        return {"country": self.country, "city": self.city, "flag": self.flag}
