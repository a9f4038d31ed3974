# -*- coding: utf-8 -*-
"""
Tests for FactorResolver

Covers:
- Activity factor chain: cache, project store, global store, defaults,
  external search, estimate
- Cache population and invalidation
- Grid factor exact-year, earlier-year, project-override and global-average paths
- Precursor factor matching with project overrides and store failures
- CBAM default intensities
"""

import pytest
from sqlalchemy.exc import OperationalError

from greenledger.db.base import session_scope
from greenledger.db.models import (
    EmissionFactorRecord,
    GridEmissionFactorRecord,
    PrecursorFactorRecord,
)
from greenledger.factors.defaults import lookup_default_factor, normalize_unit
from greenledger.factors.resolver import FactorResolver
from greenledger.models import ExternalFactor, TrustTier


@pytest.fixture
def add_factor(session_factory):
    def _add(**fields):
        values = {"activity_type": "stationary_combustion", "unit": "natural_gas_m3",
                  "factor_value": 2.1, "source": "DEFRA 2024"}
        values.update(fields)
        with session_scope(session_factory) as session:
            session.add(EmissionFactorRecord(**values))
    return _add


@pytest.fixture
def add_grid_factor(session_factory):
    def _add(region, year, factor, source="IEA", project_id=None):
        with session_scope(session_factory) as session:
            session.add(GridEmissionFactorRecord(
                region=region, year=year, factor_kg_co2_per_kwh=factor,
                source=source, project_id=project_id,
            ))
    return _add


@pytest.fixture
def add_precursor(session_factory):
    def _add(material, factor, source="worldsteel", project_id=None,
             production_route=None, activity_type=None):
        with session_scope(session_factory) as session:
            session.add(PrecursorFactorRecord(
                material_type=material, factor_kg_co2_per_kg=factor, source=source,
                project_id=project_id, production_route=production_route,
                activity_type=activity_type,
            ))
    return _add


class StubSearch:
    """Stands in for EmissionFactorSearch.best_factor."""

    def __init__(self, result=None):
        self.result = result
        self.calls = []

    def best_factor(self, activity_type, unit=None):
        self.calls.append((activity_type, unit))
        return self.result


def failing_session_factory():
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


# =============================================================================
# Default tables
# =============================================================================


class TestDefaultTables:
    """Test the built-in factor tables."""

    def test_normalize_unit(self):
        """Units are lower-cased and whitespace runs become underscores."""
        assert normalize_unit("Natural Gas  M3") == "natural_gas_m3"

    def test_lookup_default_factor(self):
        """Known activity/unit pairs resolve, unknown ones do not."""
        assert lookup_default_factor("purchased_electricity", "kWh") == 0.42
        assert lookup_default_factor("stationary_combustion", "Diesel L") == 2.68
        assert lookup_default_factor("purchased_electricity", "therm") is None
        assert lookup_default_factor("unknown_type", "kwh") is None


# =============================================================================
# Activity factors
# =============================================================================


class TestActivityFactorResolution:
    """Test FactorResolver.resolve."""

    def test_default_factor_when_store_empty(self, resolver):
        """The built-in table answers when the store has nothing."""
        resolution = resolver.resolve("purchased_electricity", "kWh", "scope2")
        assert resolution.factor == 0.42
        assert resolution.source == "default"

    def test_global_store_beats_default(self, resolver, add_factor):
        """A global store row wins over the built-in default."""
        add_factor(factor_value=2.1, source="DEFRA 2024")
        resolution = resolver.resolve("stationary_combustion", "natural_gas_m3")
        assert resolution.factor == 2.1
        assert resolution.source == "DEFRA 2024"

    def test_project_row_beats_global_row(self, resolver, add_factor):
        """A project override shadows the global row for that project only."""
        add_factor(factor_value=2.1, source="global")
        add_factor(factor_value=1.9, source="supplier", project_id="p-1")

        assert resolver.resolve(
            "stationary_combustion", "natural_gas_m3", project_id="p-1",
        ).source == "supplier"
        assert resolver.resolve(
            "stationary_combustion", "natural_gas_m3", project_id="p-2",
        ).source == "global"

    def test_most_recent_year_preferred(self, resolver, add_factor):
        """Among global rows the latest year wins."""
        add_factor(factor_value=2.0, source="2022 edition", year=2022)
        add_factor(factor_value=2.2, source="2024 edition", year=2024)
        assert resolver.resolve("stationary_combustion", "natural_gas_m3").source == "2024 edition"

    def test_estimate_when_nothing_matches(self, resolver, cache):
        """An unknown type falls back to the estimate and is not cached."""
        resolution = resolver.resolve("mystery_process", "widgets", "scope3")
        assert resolution.factor == 1.0
        assert resolution.source == "estimate"
        assert FactorResolver.factor_cache_key("mystery_process", "widgets") not in cache

    def test_resolution_is_cached(self, resolver, cache, add_factor):
        """Resolved factors are cached and served without the store."""
        add_factor(factor_value=2.1, source="DEFRA 2024")
        resolver.resolve("stationary_combustion", "natural_gas_m3")
        key = FactorResolver.factor_cache_key("stationary_combustion", "natural_gas_m3")
        assert cache.get(key) == {"factor": 2.1, "source": "DEFRA 2024"}

        cache.set(key, {"factor": 9.9, "source": "cached"})
        assert resolver.resolve("stationary_combustion", "natural_gas_m3").factor == 9.9

    def test_invalidate_drops_cached_factor(self, resolver, cache, add_factor):
        """invalidate removes the cached entry so the store is read again."""
        add_factor(factor_value=2.1, source="DEFRA 2024")
        resolver.resolve("stationary_combustion", "natural_gas_m3")
        resolver.invalidate("stationary_combustion", "natural_gas_m3")
        key = FactorResolver.factor_cache_key("stationary_combustion", "natural_gas_m3")
        assert key not in cache

    def test_project_cache_key_is_separate(self):
        """Project-scoped lookups use their own cache keys."""
        assert FactorResolver.factor_cache_key("t", "u") == "ef:t:u"
        assert FactorResolver.factor_cache_key("t", "u", "p-1") == "ef:p-1:t:u"


class TestExternalFactorResolution:
    """Test the external search step of the chain."""

    def _external(self):
        return ExternalFactor(
            activity_type="mystery_process", factor=3.3, unit="widgets",
            source="www.epa.gov", url="https://www.epa.gov/x", confidence=TrustTier.HIGH,
        )

    def test_search_skipped_when_disabled(self, session_factory, cache, config):
        """With external search disabled the estimate is used."""
        search = StubSearch(self._external())
        resolver = FactorResolver(session_factory, cache, config=config, search=search)
        assert resolver.resolve("mystery_process", "widgets").source == "estimate"
        assert search.calls == []

    def test_search_used_when_enabled(self, session_factory, cache, config):
        """With external search enabled a trusted result is used and tagged."""
        config.external_search_enabled = True
        search = StubSearch(self._external())
        resolver = FactorResolver(session_factory, cache, config=config, search=search)
        resolution = resolver.resolve("mystery_process", "widgets")
        assert resolution.factor == 3.3
        assert resolution.source == "external:www.epa.gov"

    def test_defaults_checked_before_search(self, session_factory, cache, config):
        """The search is not consulted when a default exists."""
        config.external_search_enabled = True
        search = StubSearch(self._external())
        resolver = FactorResolver(session_factory, cache, config=config, search=search)
        assert resolver.resolve("purchased_electricity", "kwh").source == "default"
        assert search.calls == []


# =============================================================================
# Grid factors
# =============================================================================


class TestGridFactorResolution:
    """Test FactorResolver.resolve_grid_factor."""

    def test_exact_year(self, resolver, cache, add_grid_factor):
        """An exact-year row is returned and cached."""
        add_grid_factor("South Korea", 2024, 0.459, source="KPX")
        resolution = resolver.resolve_grid_factor("Korea", 2024)
        assert resolution.factor == 0.459
        assert resolution.source == "KPX"
        assert "grid_ef:Korea:2024" in cache

    def test_earlier_year_tagged(self, resolver, cache, add_grid_factor):
        """A row from an earlier year carries its year in the source."""
        add_grid_factor("Korea", 2021, 0.47, source="KPX")
        add_grid_factor("Korea", 2022, 0.46, source="KPX")
        resolution = resolver.resolve_grid_factor("Korea", 2024)
        assert resolution.factor == 0.46
        assert resolution.source == "KPX (2022)"
        assert "grid_ef:Korea:2024" not in cache

    def test_future_rows_ignored(self, resolver, add_grid_factor):
        """Rows newer than the requested year are never used."""
        add_grid_factor("Korea", 2025, 0.40)
        resolution = resolver.resolve_grid_factor("Korea", 2024)
        assert resolution.source == "global_average"
        assert resolution.factor == 0.42

    def test_unknown_region_global_average(self, resolver):
        """An unknown region yields the global average."""
        resolution = resolver.resolve_grid_factor("Atlantis", 2024)
        assert resolution.factor == 0.42
        assert resolution.source == "global_average"

    def test_project_row_shadows_global(self, resolver, cache, add_grid_factor):
        """A project's own grid factor replaces the global row for that project only."""
        add_grid_factor("Korea", 2024, 0.459, source="KPX")
        add_grid_factor("Korea", 2024, 0.31, source="PPA mix", project_id="p-1")

        own = resolver.resolve_grid_factor("Korea", 2024, project_id="p-1")
        assert (own.factor, own.source) == (0.31, "PPA mix")
        assert "grid_ef:p-1:Korea:2024" in cache

        other = resolver.resolve_grid_factor("Korea", 2024, project_id="p-2")
        assert (other.factor, other.source) == (0.459, "KPX")
        assert resolver.resolve_grid_factor("Korea", 2024).factor == 0.459


# =============================================================================
# Precursors and CBAM defaults
# =============================================================================


class TestPrecursorFactors:
    """Test FactorResolver.precursor_factors."""

    def test_matches_material_substring(self, resolver, add_precursor):
        """Materials match on a case-insensitive substring."""
        add_precursor("Pig iron", 1.9)
        add_precursor("Aluminium ingot", 8.6)
        matches = resolver.precursor_factors("iron")
        assert [m.material_type for m in matches] == ["Pig iron"]

    def test_matches_activity_type(self, resolver, add_precursor):
        """The activity type column is searched too."""
        add_precursor("Sinter", 0.2, activity_type="steel_production")
        assert len(resolver.precursor_factors("steel")) == 1

    def test_project_row_shadows_global(self, resolver, add_precursor):
        """A project row replaces the global row with the same material and route."""
        add_precursor("Pig iron", 1.9, source="global")
        add_precursor("Pig iron", 1.7, source="supplier", project_id="p-1")
        matches = resolver.precursor_factors("iron", project_id="p-1")
        assert [(m.source, m.factor_kg_co2_per_kg) for m in matches] == [("supplier", 1.7)]

    def test_production_route_filter(self, resolver, add_precursor):
        """A production route restricts the matches."""
        add_precursor("Crude steel", 2.3, production_route="BF-BOF")
        add_precursor("Crude steel", 0.6, production_route="EAF")
        matches = resolver.precursor_factors("steel", production_route="EAF")
        assert [m.factor_kg_co2_per_kg for m in matches] == [0.6]

    def test_empty_term(self, resolver):
        """An empty term matches nothing."""
        assert resolver.precursor_factors("") == []

    def test_store_failure_yields_nothing(self, cache, config):
        """A failing store is logged and treated as no matching factors."""
        resolver = FactorResolver(failing_session_factory, cache, config=config)
        assert resolver.precursor_factors("iron") == []


class TestCBAMDefaults:
    """Test FactorResolver.cbam_default_factors."""

    def test_known_category(self, resolver):
        defaults = resolver.cbam_default_factors("iron_steel")
        assert (defaults.direct_emissions, defaults.indirect_emissions,
                defaults.precursor_emissions) == (1.85, 0.2, 0.3)
        assert defaults.source == "cbam_default"

    def test_unknown_category_generic(self, resolver):
        defaults = resolver.cbam_default_factors("glass")
        assert (defaults.direct_emissions, defaults.indirect_emissions,
                defaults.precursor_emissions) == (1.0, 0.2, 0.1)
