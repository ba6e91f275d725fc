# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Geo metadata extraction and the bundled country table.

The hosting platform resolves the caller's location and forwards it as
request headers; nothing here performs a network lookup.

Header sources (first match wins):

- Vercel: ``x-vercel-ip-country`` / ``x-vercel-ip-city`` (city is URL-encoded)
- Cloudflare: ``cf-ipcountry`` / ``cf-ipcity``
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from urllib.parse import unquote

from . import GeoInfo, VisitorRecord
from .errors import KeyValueError
from .kv import CURRENT_VISITOR_KEY, KeyValueStore
from .security_headers import get_header

logger = logging.getLogger(__name__)

_COUNTRY_HEADERS: tuple[bytes, ...] = (b"x-vercel-ip-country", b"cf-ipcountry")
_CITY_HEADERS: tuple[bytes, ...] = (b"x-vercel-ip-city", b"cf-ipcity")

# Cloudflare sentinels for unknown / Tor
_UNKNOWN_COUNTRIES = frozenset({"", "XX", "T1"})


@dataclass(frozen=True, slots=True)
class Country:
    code: str  # ISO 3166-1 alpha-2
    flag: str
    name: str


@lru_cache(maxsize=1)
def load_countries() -> tuple[Country, ...]:
    """Load ``data/countries.json`` once (ordered by code)."""
    raw = resources.files("rubegate").joinpath("data/countries.json").read_text(encoding="utf-8")
    return tuple(Country(code=e["cca2"], flag=e["flag"], name=e["name"]) for e in json.loads(raw))


@lru_cache(maxsize=1)
def _countries_by_code() -> dict[str, Country]:
    return {c.code: c for c in load_countries()}


def lookup_country(code: str | None) -> Country | None:
    if not code:
        return None
    return _countries_by_code().get(code.strip().upper())


def _first_header(raw_headers: list[tuple[bytes, bytes]], names: tuple[bytes, ...]) -> str:
    for name in names:
        value = get_header(raw_headers, name)
        if value:
            return value
    return ""


def geo_from_scope(scope: dict) -> GeoInfo | None:
    """Extract platform geo metadata, or ``None`` when absent/unknown."""
    raw_headers = scope.get("headers", [])
    country = _first_header(raw_headers, _COUNTRY_HEADERS).upper()
    if country in _UNKNOWN_COUNTRIES:
        return None
    city = _first_header(raw_headers, _CITY_HEADERS)
    try:
        city = unquote(city, errors="strict")
    except UnicodeDecodeError:
        city = ""
    return GeoInfo(country=country, city=city)


def visitor_record(geo: GeoInfo) -> VisitorRecord | None:
    """Build the visitor record, or ``None`` for a country not in the table."""
    country = lookup_country(geo.country)
    if country is None:
        return None
    return VisitorRecord(country=geo.country, city=geo.city, flag=country.flag)


async def capture_visitor(store: KeyValueStore, geo: GeoInfo) -> bool:
    """Overwrite the current-visitor slot. Best-effort: never raises.

    Returns True if a record was written.
    """
    record = visitor_record(geo)
    if record is None:
        logger.debug("Geo capture skipped: unknown country %r", geo.country)
        return False
    try:
        await store.set(CURRENT_VISITOR_KEY, record.to_dict())
    except KeyValueError as e:
        logger.warning("Geo capture failed: %s", e)
        return False
    except Exception:
        logger.warning("Geo capture failed (unexpected store error)", exc_info=True)
        return False
    return True
