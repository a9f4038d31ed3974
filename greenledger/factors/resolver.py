# -*- coding: utf-8 -*-
"""
Emission Factor Resolver

Resolves the emission factor for an (activity type, unit) pair through a
priority chain that always produces a value:

    1. Cache (``ef:{activity_type}:{unit}``, project-qualified when scoped)
    2. Factor store: project overrides first, then most recent year
    3. Built-in default table (source ``default``)
    4. External factor search, when enabled (source ``external:{host}``)
    5. Conservative estimate 1.0 (source ``estimate``), never cached

Grid factors resolve by region containment and year, falling back to the
most recent earlier year and finally to the global average. Precursor
factors are matched by material or activity type with project rows
shadowing global rows for the same (material, route).

Example:
    >>> resolver = FactorResolver(session_factory, InMemoryCache())
    >>> resolver.resolve("purchased_electricity", "kWh", "scope2")
    FactorResolution(factor=0.42, source='default')

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import case, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from greenledger import metrics
from greenledger.cache import CacheBackend
from greenledger.config import LedgerConfig, get_config
from greenledger.db.base import session_scope
from greenledger.db.models import (
    EmissionFactorRecord,
    GridEmissionFactorRecord,
    PrecursorFactorRecord,
)
from greenledger.factors.defaults import (
    CBAM_DEFAULT_SOURCE,
    DEFAULT_FACTOR_SOURCE,
    cbam_defaults,
    lookup_default_factor,
)
from greenledger.factors.search import EmissionFactorSearch
from greenledger.models import CBAMDefaultFactors

logger = logging.getLogger(__name__)

ESTIMATE_SOURCE = "estimate"
GLOBAL_AVERAGE_SOURCE = "global_average"


@dataclass(frozen=True)
class FactorResolution:
    """A resolved emission factor and its provenance tag."""

    factor: float
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PrecursorFactor:
    """A precursor factor row detached from its session."""

    material_type: str
    factor_kg_co2_per_kg: float
    source: str
    production_route: Optional[str] = None
    project_id: Optional[str] = None


class FactorResolver:
    """Resolves activity, grid and precursor emission factors.

    Attributes:
        config: Ledger configuration (TTLs and fallback constants).
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: CacheBackend,
        config: Optional[LedgerConfig] = None,
        search: Optional[EmissionFactorSearch] = None,
    ) -> None:
        self.config = config or get_config()
        self._session_factory = session_factory
        self._cache = cache
        self._search = search

    # ------------------------------------------------------------------
    # Activity factors
    # ------------------------------------------------------------------

    @staticmethod
    def factor_cache_key(activity_type: str, unit: str, project_id: Optional[str] = None) -> str:
        if project_id:
            return f"ef:{project_id}:{activity_type}:{unit}"
        return f"ef:{activity_type}:{unit}"

    def resolve(
        self,
        activity_type: str,
        unit: Optional[str],
        scope: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> FactorResolution:
        """Resolve the factor for an activity type and unit.

        Args:
            activity_type: Activity type key, e.g. ``stationary_combustion``.
            unit: Activity unit as entered.
            scope: Activity scope (informational).
            project_id: Project whose overrides take precedence.

        Returns:
            FactorResolution; never raises for a miss.
        """
        unit = unit or ""
        cache_key = self.factor_cache_key(activity_type, unit, project_id)

        cached = self._cache.get(cache_key)
        if cached is not None:
            metrics.record_factor_resolution("activity", "cache")
            return FactorResolution(float(cached["factor"]), cached["source"])

        resolution = self._from_store(activity_type, unit, project_id)
        kind = "database"

        if resolution is None:
            default = lookup_default_factor(activity_type, unit)
            if default is not None:
                resolution = FactorResolution(default, DEFAULT_FACTOR_SOURCE)
                kind = "default"

        if resolution is None:
            resolution = self._from_search(activity_type, unit)
            kind = "external"

        if resolution is None:
            logger.warning(
                "No emission factor found for %s/%s (%s), using estimate %.2f",
                activity_type, unit, scope or "unscoped",
                self.config.fallback_emission_factor,
            )
            metrics.record_factor_resolution("activity", ESTIMATE_SOURCE)
            return FactorResolution(self.config.fallback_emission_factor, ESTIMATE_SOURCE)

        self._cache.set(
            cache_key, resolution.to_dict(), self.config.factor_cache_ttl_seconds,
        )
        metrics.record_factor_resolution("activity", kind)
        return resolution

    def invalidate(self, activity_type: str, unit: str, project_id: Optional[str] = None) -> None:
        """Drop a cached activity factor after the factor store changes."""
        self._cache.delete(self.factor_cache_key(activity_type, unit, project_id))

    def _from_store(
        self,
        activity_type: str,
        unit: str,
        project_id: Optional[str],
    ) -> Optional[FactorResolution]:
        stmt = select(EmissionFactorRecord).where(
            EmissionFactorRecord.activity_type == activity_type,
            EmissionFactorRecord.unit == unit,
            self._scope_clause(EmissionFactorRecord.project_id, project_id),
        ).order_by(
            case((EmissionFactorRecord.project_id.is_(None), 1), else_=0),
            EmissionFactorRecord.year.desc().nulls_last(),
            EmissionFactorRecord.created_at.desc(),
        ).limit(1)

        try:
            with session_scope(self._session_factory) as session:
                row = session.execute(stmt).scalars().first()
                if row is None:
                    return None
                return FactorResolution(float(row.factor_value), row.source)
        except SQLAlchemyError as exc:
            logger.error(
                "Factor store lookup failed for %s/%s: %s", activity_type, unit, exc,
            )
            return None

    def _from_search(self, activity_type: str, unit: str) -> Optional[FactorResolution]:
        if self._search is None or not self.config.external_search_enabled:
            return None
        result = self._search.best_factor(activity_type, unit or None)
        if result is None:
            return None
        logger.info(
            "Using external factor %.4f for %s/%s from %s",
            result.factor, activity_type, unit, result.source,
        )
        return FactorResolution(result.factor, f"external:{result.source}")

    @staticmethod
    def _scope_clause(column, project_id: Optional[str]):
        if project_id:
            return or_(column.is_(None), column == project_id)
        return column.is_(None)

    # ------------------------------------------------------------------
    # Grid factors
    # ------------------------------------------------------------------

    def resolve_grid_factor(
        self,
        region: str,
        year: int,
        project_id: Optional[str] = None,
    ) -> FactorResolution:
        """Resolve the electricity grid factor (kg CO2e per kWh).

        An exact-year row is cached. A row from an earlier year is returned
        with its year appended to the source and is not cached. With no row
        at all the global average is returned.
        """
        if project_id:
            cache_key = f"grid_ef:{project_id}:{region}:{year}"
        else:
            cache_key = f"grid_ef:{region}:{year}"

        cached = self._cache.get(cache_key)
        if cached is not None:
            metrics.record_factor_resolution("grid", "cache")
            return FactorResolution(float(cached["factor"]), cached["source"])

        stmt = select(GridEmissionFactorRecord).where(
            GridEmissionFactorRecord.region.ilike(f"%{region}%"),
            GridEmissionFactorRecord.year <= year,
            self._scope_clause(GridEmissionFactorRecord.project_id, project_id),
        ).order_by(
            GridEmissionFactorRecord.year.desc(),
            case((GridEmissionFactorRecord.project_id.is_(None), 1), else_=0),
            GridEmissionFactorRecord.created_at.desc(),
        ).limit(1)

        row_data = None
        try:
            with session_scope(self._session_factory) as session:
                row = session.execute(stmt).scalars().first()
                if row is not None:
                    row_data = (float(row.factor_kg_co2_per_kwh), row.source, row.year)
        except SQLAlchemyError as exc:
            logger.error("Grid factor lookup failed for %s/%s: %s", region, year, exc)

        if row_data is not None:
            factor, source, row_year = row_data
            if row_year == year:
                resolution = FactorResolution(factor, source)
                self._cache.set(
                    cache_key, resolution.to_dict(),
                    self.config.grid_factor_cache_ttl_seconds,
                )
                metrics.record_factor_resolution("grid", "database")
                return resolution

            logger.info(
                "Using %d grid EF for %s (%d not found)", row_year, region, year,
            )
            metrics.record_factor_resolution("grid", "previous_year")
            return FactorResolution(factor, f"{source} ({row_year})")

        logger.warning(
            "No grid emission factor found for %s, using global average", region,
        )
        metrics.record_factor_resolution("grid", GLOBAL_AVERAGE_SOURCE)
        return FactorResolution(self.config.global_average_grid_factor, GLOBAL_AVERAGE_SOURCE)

    # ------------------------------------------------------------------
    # Precursor factors
    # ------------------------------------------------------------------

    def precursor_factors(
        self,
        term: str,
        project_id: Optional[str] = None,
        production_route: Optional[str] = None,
    ) -> List[PrecursorFactor]:
        """Precursor factors whose material or activity type contains ``term``.

        Project rows shadow global rows with the same (material, route).
        A store failure is logged and yields no factors.
        """
        if not term:
            return []
        pattern = f"%{term}%"
        stmt = select(PrecursorFactorRecord).where(
            or_(
                PrecursorFactorRecord.material_type.ilike(pattern),
                PrecursorFactorRecord.activity_type.ilike(pattern),
            ),
            self._scope_clause(PrecursorFactorRecord.project_id, project_id),
        ).order_by(PrecursorFactorRecord.material_type, PrecursorFactorRecord.created_at)
        if production_route:
            stmt = stmt.where(PrecursorFactorRecord.production_route == production_route)

        try:
            with session_scope(self._session_factory) as session:
                rows = [
                    PrecursorFactor(
                        material_type=r.material_type,
                        factor_kg_co2_per_kg=float(r.factor_kg_co2_per_kg),
                        source=r.source,
                        production_route=r.production_route,
                        project_id=r.project_id,
                    )
                    for r in session.execute(stmt).scalars()
                ]
        except SQLAlchemyError as exc:
            logger.error("Precursor factor lookup failed for %s: %s", term, exc)
            return []

        overridden = {
            (r.material_type.lower(), r.production_route)
            for r in rows if r.project_id is not None
        }
        return [
            r for r in rows
            if r.project_id is not None
            or (r.material_type.lower(), r.production_route) not in overridden
        ]

    # ------------------------------------------------------------------
    # CBAM defaults
    # ------------------------------------------------------------------

    def cbam_default_factors(self, goods_category: str) -> CBAMDefaultFactors:
        """CBAM default embedded-emission intensities for a goods category."""
        direct, indirect, precursor = cbam_defaults(goods_category)
        return CBAMDefaultFactors(
            goods_category=goods_category,
            direct_emissions=direct,
            indirect_emissions=indirect,
            precursor_emissions=precursor,
            source=CBAM_DEFAULT_SOURCE,
        )


__all__ = [
    "ESTIMATE_SOURCE",
    "GLOBAL_AVERAGE_SOURCE",
    "FactorResolution",
    "PrecursorFactor",
    "FactorResolver",
]
