# -*- coding: utf-8 -*-
"""
Tests for EmissionFactorSearch

Covers:
- Snippet parsing for activity, grid and precursor factors
- Trust ranking of result domains
- Offline fallback when no key is configured or the request fails
- Result caching and token bucket rate limiting
"""

import pytest
import requests

from greenledger.cache import InMemoryCache
from greenledger.factors.search import (
    EmissionFactorSearch,
    TokenBucket,
    fallback_factors,
    parse_factor_results,
    parse_grid_results,
    parse_precursor_results,
)
from greenledger.models import TrustTier


class FakeResponse:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeSession:
    """Records GET calls and replays a canned payload."""

    def __init__(self, payload=None, exc=None, status=200):
        self.payload = payload if payload is not None else {"organic_results": []}
        self.exc = exc
        self.status = status
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return FakeResponse(self.payload, self.status)


ORGANIC = [
    {"snippet": "Diesel emits 2.68 kg CO2e per litre", "link": "https://www.epa.gov/diesel"},
    {"snippet": "Typical value 2700 g CO2e / litre", "link": "https://research.example.org/d"},
    {"snippet": "No numbers here", "link": "https://blog.example.com/x"},
    {"snippet": "About 0.0027 t CO2 per litre", "link": "https://blog.example.com/y"},
]


@pytest.fixture
def keyed_config(config):
    config.serpapi_key = "test-key"
    return config


# =============================================================================
# Parsing
# =============================================================================


class TestParseFactorResults:
    """Test parse_factor_results."""

    def test_units_normalized_to_kg(self):
        """Gram and tonne factors are converted to kg CO2e."""
        results = parse_factor_results(ORGANIC, "mobile_combustion")
        factors = sorted(r.factor for r in results)
        assert factors == pytest.approx([2.68, 2.7, 2.7])

    def test_ranked_by_trust(self):
        """High trust results come first, then medium, then low."""
        results = parse_factor_results(ORGANIC, "mobile_combustion", "L")
        assert [r.confidence for r in results] == [
            TrustTier.HIGH, TrustTier.MEDIUM, TrustTier.LOW,
        ]
        assert results[0].source == "www.epa.gov"
        assert results[0].unit == "L"

    def test_results_without_link_skipped(self):
        assert parse_factor_results([{"snippet": "2 kg CO2e per kWh"}], "x") == []


class TestParseGridResults:
    """Test parse_grid_results."""

    def test_mwh_converted_to_kwh(self):
        results = parse_grid_results(
            [{"snippet": "Grid intensity 459 g CO2 per kWh", "link": "https://www.iea.org/k"},
             {"snippet": "Average of 420 kg CO2 per kWh, reported per MWh",
              "link": "https://blog.example.com/k"}],
            "Korea", 2024,
        )
        assert [r.factor for r in results] == pytest.approx([0.459, 0.42])
        assert results[0].confidence is TrustTier.HIGH
        assert results[0].notes == "Korea grid emission factor 2024"


class TestParsePrecursorResults:
    """Test parse_precursor_results."""

    def test_per_tonne_converted_to_per_kg(self):
        results = parse_precursor_results(
            [{"snippet": "Crude steel 1.85 t CO2 per tonne", "link": "https://worldsteel.org/s"}],
            "steel",
        )
        assert results[0].factor == pytest.approx(1.85)
        assert results[0].activity_type == "precursor_steel"
        assert results[0].confidence is TrustTier.HIGH


class TestFallbackFactors:
    """Test fallback_factors."""

    def test_match_by_key(self):
        results = fallback_factors("Natural Gas")
        assert results[0].factor == 2.02
        assert results[0].confidence is TrustTier.MEDIUM

    def test_match_by_activity_type(self):
        assert fallback_factors("purchased_electricity")[0].factor == 0.42

    def test_no_match(self):
        assert fallback_factors("widgets") == []


# =============================================================================
# Search client
# =============================================================================


class TestEmissionFactorSearch:
    """Test EmissionFactorSearch against a fake HTTP session."""

    def test_fallback_without_key(self, config):
        """Without a key no request is made and the offline table answers."""
        session = FakeSession()
        search = EmissionFactorSearch(InMemoryCache(), config=config, session=session)
        results = search.search_emission_factors("diesel")
        assert session.calls == []
        assert results[0].factor == 2.68
        assert results[0].url == ""

    def test_live_search_and_cache(self, keyed_config):
        """A live search is parsed, ranked and cached."""
        session = FakeSession({"organic_results": ORGANIC})
        search = EmissionFactorSearch(InMemoryCache(), config=keyed_config, session=session)

        first = search.search_emission_factors("diesel", "L")
        second = search.search_emission_factors("diesel", "L")

        assert len(session.calls) == 1
        assert session.calls[0]["params"]["api_key"] == "test-key"
        assert [r.factor for r in first] == [r.factor for r in second]

    def test_request_failure_falls_back(self, keyed_config):
        """A transport error yields the offline answer."""
        session = FakeSession(exc=requests.ConnectionError("down"))
        search = EmissionFactorSearch(InMemoryCache(), config=keyed_config, session=session)
        assert search.search_emission_factors("electricity")[0].factor == 0.42

    def test_api_error_payload(self, keyed_config):
        """An error payload makes grid search return nothing."""
        session = FakeSession({"error": "Invalid API key"})
        search = EmissionFactorSearch(InMemoryCache(), config=keyed_config, session=session)
        assert search.search_grid_factors("Korea", 2024) == []

    def test_precursor_search_http_error(self, keyed_config):
        session = FakeSession(status=500)
        search = EmissionFactorSearch(InMemoryCache(), config=keyed_config, session=session)
        assert search.search_precursor_factors("steel") == []

    def test_best_factor_requires_live_trusted_result(self, keyed_config):
        """best_factor ignores low-trust results and offline answers."""
        session = FakeSession({"organic_results": ORGANIC})
        search = EmissionFactorSearch(InMemoryCache(), config=keyed_config, session=session)
        best = search.best_factor("diesel", "L")
        assert best.source == "www.epa.gov"

    def test_best_factor_none_offline(self, config):
        search = EmissionFactorSearch(InMemoryCache(), config=config, session=FakeSession())
        assert search.best_factor("diesel") is None

    def test_rate_limit(self, keyed_config):
        """Requests beyond the bucket capacity fall back without calling out."""
        keyed_config.external_search_rate_per_minute = 1
        session = FakeSession({"organic_results": []})
        search = EmissionFactorSearch(
            InMemoryCache(), config=keyed_config, session=session, clock=lambda: 100.0,
        )
        search.search_emission_factors("diesel")
        results = search.search_emission_factors("natural gas")
        assert len(session.calls) == 1
        assert results[0].factor == 2.02


class TestTokenBucket:
    """Test TokenBucket."""

    def test_refills_over_time(self):
        bucket = TokenBucket(capacity=2, tokens=2.0, last_update=0.0)
        assert bucket.try_acquire(0.0)
        assert bucket.try_acquire(0.0)
        assert not bucket.try_acquire(0.0)
        assert bucket.try_acquire(30.0)

    def test_never_exceeds_capacity(self):
        bucket = TokenBucket(capacity=3, tokens=0.0, last_update=0.0)
        bucket.refill(600.0)
        assert bucket.tokens == 3.0
