# -*- coding: utf-8 -*-
"""
External Emission Factor Search - SerpAPI

Optional last-resort source of emission factors. Queries SerpAPI over
``requests``, parses result snippets for factor statements such as
``0.233 kg CO2e per kWh`` and ranks them by the trust tier of the linking
domain.

Features:
    - Activity, grid and precursor factor searches with dedicated patterns
    - Token bucket rate limiting (requests per minute)
    - Results cached for 24 hours under ``serpapi:*`` keys
    - Offline fallback table for activity searches when the key is missing,
      the bucket is empty or the request fails
    - Grid and precursor searches return an empty list on failure

Example:
    >>> from greenledger.cache import InMemoryCache
    >>> from greenledger.factors.search import EmissionFactorSearch
    >>> search = EmissionFactorSearch(InMemoryCache())
    >>> [r.source for r in search.search_emission_factors("electricity")]
    ['global_average']

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import base64
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import requests

from greenledger import metrics
from greenledger.cache import CacheBackend
from greenledger.config import LedgerConfig, get_config
from greenledger.exceptions import ExternalSearchError
from greenledger.factors.defaults import FALLBACK_SEARCH_FACTORS, normalize_unit
from greenledger.models import ExternalFactor, TrustTier

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Snippet patterns and trusted domains
# ---------------------------------------------------------------------------

FACTOR_PATTERN = re.compile(
    r"(\d+\.?\d*)\s*(kg|g|t)\s*CO2e?\s*(?:per|/)\s*(\w+)", re.IGNORECASE,
)
GRID_PATTERN = re.compile(
    r"(\d+\.?\d*)\s*(kg|g)\s*CO2e?\s*(?:per|/)\s*k?Wh", re.IGNORECASE,
)
PRECURSOR_PATTERN = re.compile(
    r"(\d+\.?\d*)\s*(kg|t)\s*CO2e?\s*(?:per|/)\s*(kg|t|tonne)", re.IGNORECASE,
)

FACTOR_TRUSTED_SOURCES = ("gov", "epa", "ipcc", "defra", "ghgprotocol", "iea")
GRID_TRUSTED_SOURCES = ("iea", "gov", "epa", "carbonfootprint", "electricitymap")
PRECURSOR_TRUSTED_SOURCES = ("worldsteel", "aluminum", "cembureau", "gov", "lca")

_TIER_ORDER = {TrustTier.HIGH: 0, TrustTier.MEDIUM: 1, TrustTier.LOW: 2}


# ---------------------------------------------------------------------------
# Token bucket
# ---------------------------------------------------------------------------


@dataclass
class TokenBucket:
    """Token bucket refilled continuously at ``capacity`` tokens per minute.

    Attributes:
        capacity: Maximum tokens (and requests per minute).
        tokens: Available tokens.
        last_update: Timestamp of the last refill.
    """
    capacity: int
    tokens: float
    last_update: float

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_update)
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.capacity / 60.0)
        self.last_update = now

    def try_acquire(self, now: float) -> bool:
        self.refill(now)
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _hostname(link: str) -> str:
    return urlparse(link).hostname or link


def _rank(results: List[ExternalFactor]) -> List[ExternalFactor]:
    return sorted(results, key=lambda r: _TIER_ORDER[r.confidence])


def _tier(link: str, trusted: Sequence[str], org_edu_medium: bool) -> TrustTier:
    lowered = link.lower()
    if any(token in lowered for token in trusted):
        return TrustTier.HIGH
    if org_edu_medium and (".org" in link or ".edu" in link):
        return TrustTier.MEDIUM
    return TrustTier.LOW


def parse_factor_results(
    results: List[Dict[str, Any]],
    activity_type: str,
    unit: Optional[str] = None,
) -> List[ExternalFactor]:
    """Extract activity emission factors from organic search results.

    Mass units are normalized to kg CO2e (``g`` / 1000, ``t`` * 1000).
    """
    parsed: List[ExternalFactor] = []
    for result in results or []:
        snippet = result.get("snippet") or ""
        link = result.get("link") or ""
        match = FACTOR_PATTERN.search(snippet)
        if not match or not link:
            continue

        factor = float(match.group(1))
        factor_unit = match.group(2).lower()
        per_unit = match.group(3).lower()
        if factor_unit == "g":
            factor /= 1000
        elif factor_unit == "t":
            factor *= 1000

        parsed.append(ExternalFactor(
            activity_type=activity_type,
            factor=factor,
            unit=unit or per_unit,
            source=_hostname(link),
            url=link,
            confidence=_tier(link, FACTOR_TRUSTED_SOURCES, org_edu_medium=True),
            notes=snippet[:200],
        ))
    return _rank(parsed)


def parse_grid_results(
    results: List[Dict[str, Any]],
    region: str,
    year: int,
) -> List[ExternalFactor]:
    """Extract grid factors (kg CO2e per kWh) from organic search results."""
    parsed: List[ExternalFactor] = []
    for result in results or []:
        snippet = result.get("snippet") or ""
        link = result.get("link") or ""
        match = GRID_PATTERN.search(snippet)
        if not match or not link:
            continue

        factor = float(match.group(1))
        if match.group(2).lower() == "g":
            factor /= 1000
        lowered = snippet.lower()
        if "/mwh" in lowered or "per mwh" in lowered:
            factor /= 1000

        parsed.append(ExternalFactor(
            activity_type="grid_electricity",
            factor=factor,
            unit="kWh",
            source=_hostname(link),
            url=link,
            confidence=_tier(link, GRID_TRUSTED_SOURCES, org_edu_medium=False),
            notes=f"{region} grid emission factor {year}",
        ))
    return _rank(parsed)


def parse_precursor_results(
    results: List[Dict[str, Any]],
    material: str,
) -> List[ExternalFactor]:
    """Extract precursor factors (kg CO2e per kg) from organic search results."""
    parsed: List[ExternalFactor] = []
    for result in results or []:
        snippet = result.get("snippet") or ""
        link = result.get("link") or ""
        match = PRECURSOR_PATTERN.search(snippet)
        if not match or not link:
            continue

        factor = float(match.group(1))
        if match.group(2).lower() == "t":
            factor *= 1000
        if match.group(3).lower() in ("t", "tonne"):
            factor /= 1000

        parsed.append(ExternalFactor(
            activity_type=f"precursor_{material}",
            factor=factor,
            unit="kg",
            source=_hostname(link),
            url=link,
            confidence=_tier(link, PRECURSOR_TRUSTED_SOURCES, org_edu_medium=False),
            notes=f"Embedded carbon for {material}",
        ))
    return _rank(parsed)


def fallback_factors(activity_type: str) -> List[ExternalFactor]:
    """Offline answers for an activity search, matched by key or activity type."""
    key = normalize_unit(activity_type or "")
    entry = FALLBACK_SEARCH_FACTORS.get(key)
    if entry is None:
        entry = next(
            (e for e in FALLBACK_SEARCH_FACTORS.values() if e["activity_type"] == key),
            None,
        )
    if entry is None:
        return []
    return [ExternalFactor(confidence=TrustTier.MEDIUM, url="", **entry)]


# ---------------------------------------------------------------------------
# EmissionFactorSearch
# ---------------------------------------------------------------------------


class EmissionFactorSearch:
    """SerpAPI-backed emission factor search with caching and rate limiting.

    Attributes:
        config: Ledger configuration (key, endpoint, timeout, rate, TTL).
    """

    def __init__(
        self,
        cache: CacheBackend,
        config: Optional[LedgerConfig] = None,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config or get_config()
        self._cache = cache
        self._session = session or requests.Session()
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        rate = max(1, self.config.external_search_rate_per_minute)
        self._bucket = TokenBucket(capacity=rate, tokens=float(rate), last_update=self._clock())
        logger.info(
            "EmissionFactorSearch initialized: key=%s, rpm=%d",
            "set" if self.config.serpapi_key else "missing",
            rate,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def search_emission_factors(
        self,
        activity_type: str,
        unit: Optional[str] = None,
        region: Optional[str] = None,
        preferred_source: Optional[str] = None,
    ) -> List[ExternalFactor]:
        """Search for emission factors of an activity type.

        Returns:
            Results ranked high, medium, low trust; the offline fallback
            table when the search cannot run.
        """
        terms = " ".join(
            t for t in (activity_type, "emission factor", "kg CO2e", unit, region, preferred_source)
            if t
        )
        encoded = base64.b64encode(terms.encode("utf-8")).decode("ascii")
        cache_key = f"serpapi:ef:{encoded}"

        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("SerpAPI cache hit for: %s", activity_type)
            metrics.record_external_search("factor", "cached")
            return [ExternalFactor(**item) for item in cached]

        try:
            organic = self._query(terms, "factor")
        except ExternalSearchError as exc:
            logger.error("SerpAPI search failed for %s: %s", activity_type, exc)
            metrics.record_external_search("factor", "fallback")
            return fallback_factors(activity_type)

        results = parse_factor_results(organic, activity_type, unit)
        self._store(cache_key, results)
        metrics.record_external_search("factor", "success")
        return results

    def search_grid_factors(self, region: str, year: Optional[int] = None) -> List[ExternalFactor]:
        """Search for a region's electricity grid factor; empty list on failure."""
        search_year = year or time.gmtime().tm_year
        terms = f"{region} grid emission factor {search_year} kg CO2 kWh electricity"
        cache_key = f"serpapi:grid:{region}:{search_year}"

        cached = self._cache.get(cache_key)
        if cached is not None:
            metrics.record_external_search("grid", "cached")
            return [ExternalFactor(**item) for item in cached]

        try:
            organic = self._query(terms, "grid")
        except ExternalSearchError as exc:
            logger.error("SerpAPI grid search failed for %s: %s", region, exc)
            return []

        results = parse_grid_results(organic, region, search_year)
        self._store(cache_key, results)
        metrics.record_external_search("grid", "success")
        return results

    def search_precursor_factors(
        self,
        material: str,
        production_route: Optional[str] = None,
    ) -> List[ExternalFactor]:
        """Search for embedded carbon of a precursor material; empty list on failure."""
        terms = " ".join(
            t for t in (material, "embedded carbon", "emission factor", production_route, "kg CO2 per kg")
            if t
        )
        cache_key = f"serpapi:precursor:{material}:{production_route or 'default'}"

        cached = self._cache.get(cache_key)
        if cached is not None:
            metrics.record_external_search("precursor", "cached")
            return [ExternalFactor(**item) for item in cached]

        try:
            organic = self._query(terms, "precursor")
        except ExternalSearchError as exc:
            logger.error("SerpAPI precursor search failed for %s: %s", material, exc)
            return []

        results = parse_precursor_results(organic, material)
        self._store(cache_key, results)
        metrics.record_external_search("precursor", "success")
        return results

    def best_factor(self, activity_type: str, unit: Optional[str] = None) -> Optional[ExternalFactor]:
        """First live high- or medium-trust result for an activity, if any."""
        for result in self.search_emission_factors(activity_type, unit):
            if result.url and result.confidence in (TrustTier.HIGH, TrustTier.MEDIUM):
                return result
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _acquire(self) -> bool:
        with self._lock:
            return self._bucket.try_acquire(self._clock())

    def _store(self, key: str, results: List[ExternalFactor]) -> None:
        self._cache.set(
            key,
            [r.model_dump(mode="json") for r in results],
            self.config.external_search_cache_ttl_seconds,
        )

    def _query(self, terms: str, kind: str) -> List[Dict[str, Any]]:
        if not self.config.serpapi_key:
            raise ExternalSearchError(
                message="SerpAPI key is not configured",
                context={"kind": kind},
            )
        if not self._acquire():
            metrics.record_external_search(kind, "rate_limited")
            raise ExternalSearchError(
                message="SerpAPI rate limit exceeded",
                context={"kind": kind},
            )

        params = {
            "api_key": self.config.serpapi_key,
            "q": terms,
            "engine": "google",
            "num": "10",
        }
        try:
            response = self._session.get(
                self.config.serpapi_base_url,
                params=params,
                timeout=self.config.serpapi_timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            metrics.record_external_search(kind, "error")
            raise ExternalSearchError(
                message=f"SerpAPI request failed: {exc}",
                context={"kind": kind},
            ) from exc

        if data.get("error"):
            metrics.record_external_search(kind, "error")
            raise ExternalSearchError(
                message=f"SerpAPI error: {data['error']}",
                context={"kind": kind},
            )
        return data.get("organic_results") or []


__all__ = [
    "FACTOR_PATTERN",
    "GRID_PATTERN",
    "PRECURSOR_PATTERN",
    "TokenBucket",
    "EmissionFactorSearch",
    "parse_factor_results",
    "parse_grid_results",
    "parse_precursor_results",
    "fallback_factors",
]
