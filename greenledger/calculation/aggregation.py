# -*- coding: utf-8 -*-
"""
Emission Aggregation Engine

Rolls calculated activities up into the three canonical views used by
reports:

    - Scope summary (scope1 / scope2 / scope3 plus Scope 3 categories)
    - Carbon Footprint of Product (CFP) by lifecycle stage
    - Carbon Footprint of Organization (CFO) by scope and value-chain side

Every component is rounded half-up to 4 dp first and the stated total is
the Decimal sum of the rounded components. Breakdowns reconcile exactly in
Decimal; the float fields of a result agree to 4 dp, so compare them with
``round(a + b + c, 4) == total`` rather than exact float equality.
CFP and CFO results are append-only snapshots: each computation inserts a
new row and the latest row wins.

Example:
    >>> engine = AggregationEngine(session_factory, audit)
    >>> summary = engine.aggregate("project-1")
    >>> round(summary.scope1 + summary.scope2 + summary.scope3, 4) == summary.total
    True

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from greenledger import metrics
from greenledger.audit.trail import AuditTrail
from greenledger.config import LedgerConfig, get_config
from greenledger.db.base import session_scope
from greenledger.db.models import ActivityRecord, CFOResultRecord, CFPResultRecord
from greenledger.determinism import (
    DeterministicClock,
    decimal_sum,
    new_id,
    round_decimal,
    to_decimal,
    utcnow_naive,
)
from greenledger.exceptions import BadRequestError
from greenledger.models import (
    AuditAction,
    CalculationStatus,
    CFOResult,
    CFPResult,
    EmissionScope,
    EmissionsSummary,
    LifecycleBreakdown,
    LifecycleStage,
    Scope3Category,
    ScopeDirection,
)

logger = logging.getLogger(__name__)

NO_CALCULATED_ACTIVITIES = (
    "No calculated activities found. Please calculate activities first."
)
UNCATEGORIZED = "other"

_STAGE_BY_CATEGORY: Dict[str, LifecycleStage] = {
    Scope3Category.PURCHASED_GOODS.value: LifecycleStage.RAW_MATERIALS,
    Scope3Category.CAPITAL_GOODS.value: LifecycleStage.RAW_MATERIALS,
    Scope3Category.FUEL_ENERGY.value: LifecycleStage.RAW_MATERIALS,
    Scope3Category.UPSTREAM_TRANSPORT.value: LifecycleStage.DISTRIBUTION,
    Scope3Category.DOWNSTREAM_TRANSPORT.value: LifecycleStage.DISTRIBUTION,
    Scope3Category.WASTE.value: LifecycleStage.END_OF_LIFE,
    Scope3Category.END_OF_LIFE.value: LifecycleStage.END_OF_LIFE,
    Scope3Category.USE_OF_PRODUCTS.value: LifecycleStage.USE,
    Scope3Category.PROCESSING.value: LifecycleStage.USE,
}


def lifecycle_stage(scope: str, scope3_category: Optional[str]) -> LifecycleStage:
    """Lifecycle stage an activity contributes to in a CFP."""
    if scope != EmissionScope.SCOPE3.value:
        return LifecycleStage.PRODUCTION
    return _STAGE_BY_CATEGORY.get(scope3_category or "", LifecycleStage.PRODUCTION)


def scope3_direction(scope3_category: Optional[str]) -> ScopeDirection:
    """Upstream/downstream side of a Scope 3 category; unknown is downstream."""
    try:
        return Scope3Category(scope3_category).direction
    except ValueError:
        return ScopeDirection.DOWNSTREAM


@dataclass
class _Emission:
    scope: str
    scope3_category: Optional[str]
    emissions: Decimal


class AggregationEngine:
    """Scope, CFP and CFO aggregation over calculated activities."""

    def __init__(
        self,
        session_factory: sessionmaker,
        audit: AuditTrail,
        config: Optional[LedgerConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self._session_factory = session_factory
        self._audit = audit

    def _calculated(self, project_id: str) -> List[_Emission]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(
                    ActivityRecord.scope,
                    ActivityRecord.scope3_category,
                    ActivityRecord.total_emissions_kg_co2e,
                ).where(
                    ActivityRecord.project_id == project_id,
                    ActivityRecord.calculation_status == CalculationStatus.CALCULATED.value,
                ).order_by(ActivityRecord.scope, ActivityRecord.scope3_category)
            ).all()
        return [
            _Emission(scope, category, to_decimal(emissions or 0))
            for scope, category, emissions in rows
        ]

    # ------------------------------------------------------------------
    # Scope summary
    # ------------------------------------------------------------------

    def aggregate(self, project_id: str) -> EmissionsSummary:
        """Scope totals of calculated activities; zero when there are none."""
        by_scope: Dict[str, Decimal] = defaultdict(Decimal)
        by_category: Dict[str, Decimal] = defaultdict(Decimal)
        for item in self._calculated(project_id):
            by_scope[item.scope] += item.emissions
            if item.scope == EmissionScope.SCOPE3.value and item.scope3_category:
                by_category[item.scope3_category] += item.emissions

        scope1 = round_decimal(by_scope[EmissionScope.SCOPE1.value], 4)
        scope2 = round_decimal(by_scope[EmissionScope.SCOPE2.value], 4)
        scope3 = round_decimal(by_scope[EmissionScope.SCOPE3.value], 4)

        metrics.record_aggregation("summary")
        return EmissionsSummary(
            scope1=float(scope1),
            scope2=float(scope2),
            scope3=float(scope3),
            scope3_categories={
                key: float(round_decimal(value, 4))
                for key, value in sorted(by_category.items())
            },
            total=float(scope1 + scope2 + scope3),
        )

    # ------------------------------------------------------------------
    # Carbon Footprint of Product
    # ------------------------------------------------------------------

    def compute_cfp(
        self,
        project_id: str,
        product_name: Optional[str] = None,
        functional_unit: Optional[str] = None,
        production_volume: Optional[float] = None,
        allocation_method: Optional[str] = None,
        include_biogenic: bool = False,
        user_id: Optional[str] = None,
    ) -> CFPResult:
        """Compute and persist a CFP snapshot.

        Raises:
            BadRequestError: The project has no calculated activities.
        """
        activities = self._calculated(project_id)
        if not activities:
            raise BadRequestError(
                message=NO_CALCULATED_ACTIVITIES, context={"project_id": project_id},
            )

        stages: Dict[LifecycleStage, Decimal] = {stage: Decimal("0") for stage in LifecycleStage}
        for item in activities:
            stages[lifecycle_stage(item.scope, item.scope3_category)] += item.emissions
        rounded = {stage: round_decimal(value, 4) for stage, value in stages.items()}
        total = decimal_sum(rounded.values())

        volume = to_decimal(production_volume) if production_volume is not None else None
        if volume is not None and volume > 0:
            per_unit = round_decimal(total / volume, 6)
        else:
            per_unit = round_decimal(total, 6)

        biogenic = Decimal("0")
        if include_biogenic:
            biogenic = round_decimal(self._biogenic_emissions(project_id), 4)

        breakdown = LifecycleBreakdown(
            raw_materials=float(rounded[LifecycleStage.RAW_MATERIALS]),
            production=float(rounded[LifecycleStage.PRODUCTION]),
            distribution=float(rounded[LifecycleStage.DISTRIBUTION]),
            use=float(rounded[LifecycleStage.USE]),
            end_of_life=float(rounded[LifecycleStage.END_OF_LIFE]),
        )
        record_id = new_id()
        created_at = utcnow_naive()
        with session_scope(self._session_factory) as session:
            session.add(CFPResultRecord(
                id=record_id,
                project_id=project_id,
                product_name=product_name,
                functional_unit=functional_unit,
                production_volume=production_volume,
                allocation_method=allocation_method or "mass",
                raw_materials_emissions=breakdown.raw_materials,
                production_emissions=breakdown.production,
                distribution_emissions=breakdown.distribution,
                use_emissions=breakdown.use,
                end_of_life_emissions=breakdown.end_of_life,
                cfp_total=float(total),
                cfp_per_unit=float(per_unit),
                biogenic_carbon=float(biogenic),
                calculated_by=user_id,
                created_at=created_at,
            ))

        metrics.record_aggregation("cfp")
        logger.info(
            "CFP calculated for project %s: %s kg CO2e (%s per unit)",
            project_id, total, per_unit,
        )
        self._audit.record(
            AuditAction.CALCULATE_CFP,
            "cfp_result",
            record_id,
            {
                "productName": product_name,
                "totalEmissions": float(total),
                "cfpPerUnit": float(per_unit),
            },
            user_id=user_id,
            project_id=project_id,
        )
        return CFPResult(
            id=record_id,
            project_id=project_id,
            product_name=product_name,
            functional_unit=functional_unit,
            production_volume=production_volume,
            allocation_method=allocation_method or "mass",
            lifecycle_stages=breakdown,
            cfp_total=float(total),
            cfp_per_unit=float(per_unit),
            biogenic_carbon=float(biogenic),
            created_at=created_at,
        )

    def _biogenic_emissions(self, project_id: str) -> Decimal:
        with session_scope(self._session_factory) as session:
            blobs = session.execute(
                select(ActivityRecord.activity_metadata).where(
                    ActivityRecord.project_id == project_id,
                )
            ).scalars().all()

        values = []
        for blob in blobs:
            if not isinstance(blob, dict):
                continue
            try:
                values.append(to_decimal(blob.get("biogenic_emissions") or 0))
            except ValueError:
                logger.warning(
                    "Ignoring non-numeric biogenic_emissions in project %s", project_id,
                )
        return decimal_sum(values)

    # ------------------------------------------------------------------
    # Carbon Footprint of Organization
    # ------------------------------------------------------------------

    def compute_cfo(
        self,
        project_id: str,
        organization_name: Optional[str] = None,
        consolidation_method: Optional[str] = None,
        operational_boundary: Optional[str] = None,
        reporting_year: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> CFOResult:
        """Compute and persist a CFO snapshot.

        Raises:
            BadRequestError: The project has no calculated activities.
        """
        activities = self._calculated(project_id)
        if not activities:
            raise BadRequestError(
                message=NO_CALCULATED_ACTIVITIES, context={"project_id": project_id},
            )

        scope1 = Decimal("0")
        scope2 = Decimal("0")
        upstream = Decimal("0")
        downstream = Decimal("0")
        categories: Dict[str, Decimal] = defaultdict(Decimal)
        for item in activities:
            if item.scope == EmissionScope.SCOPE1.value:
                scope1 += item.emissions
            elif item.scope == EmissionScope.SCOPE2.value:
                scope2 += item.emissions
            elif item.scope == EmissionScope.SCOPE3.value:
                category = item.scope3_category or UNCATEGORIZED
                categories[category] += item.emissions
                if scope3_direction(item.scope3_category) is ScopeDirection.UPSTREAM:
                    upstream += item.emissions
                else:
                    downstream += item.emissions

        scope1 = round_decimal(scope1, 4)
        scope2 = round_decimal(scope2, 4)
        upstream = round_decimal(upstream, 4)
        downstream = round_decimal(downstream, 4)
        total = scope1 + scope2 + upstream + downstream
        breakdown = {
            key: float(round_decimal(value, 4)) for key, value in sorted(categories.items())
        }

        year = reporting_year or DeterministicClock.now().year
        consolidation = consolidation_method or "operational_control"
        boundary = operational_boundary or "all"
        record_id = new_id()
        created_at = utcnow_naive()
        with session_scope(self._session_factory) as session:
            session.add(CFOResultRecord(
                id=record_id,
                project_id=project_id,
                organization_name=organization_name,
                reporting_year=year,
                consolidation_method=consolidation,
                operational_boundary=boundary,
                scope1_emissions=float(scope1),
                scope2_location_emissions=float(scope2),
                scope2_market_emissions=0.0,
                scope3_upstream_emissions=float(upstream),
                scope3_downstream_emissions=float(downstream),
                scope3_category_breakdown=breakdown,
                cfo_total=float(total),
                calculated_by=user_id,
                created_at=created_at,
            ))

        metrics.record_aggregation("cfo")
        logger.info(
            "CFO calculated for project %s (%d): %s kg CO2e", project_id, year, total,
        )
        self._audit.record(
            AuditAction.CALCULATE_CFO,
            "cfo_result",
            record_id,
            {
                "organizationName": organization_name,
                "cfoTotal": float(total),
                "scope1": float(scope1),
                "scope2": float(scope2),
                "scope3": float(upstream + downstream),
            },
            user_id=user_id,
            project_id=project_id,
        )
        return CFOResult(
            id=record_id,
            project_id=project_id,
            organization_name=organization_name,
            reporting_year=year,
            consolidation_method=consolidation,
            operational_boundary=boundary,
            scope1=float(scope1),
            scope2_location=float(scope2),
            scope2_market=0.0,
            scope3_upstream=float(upstream),
            scope3_downstream=float(downstream),
            scope3_category_breakdown=breakdown,
            cfo_total=float(total),
            created_at=created_at,
        )

    def compute_both(
        self,
        project_id: str,
        product_name: Optional[str] = None,
        functional_unit: Optional[str] = None,
        production_volume: Optional[float] = None,
        organization_name: Optional[str] = None,
        reporting_year: Optional[int] = None,
        user_id: Optional[str] = None,
        **options: Any,
    ) -> Tuple[CFPResult, CFOResult]:
        """Compute CFP then CFO for the same project state."""
        cfp = self.compute_cfp(
            project_id,
            product_name=product_name,
            functional_unit=functional_unit,
            production_volume=production_volume,
            allocation_method=options.get("allocation_method"),
            include_biogenic=options.get("include_biogenic", False),
            user_id=user_id,
        )
        cfo = self.compute_cfo(
            project_id,
            organization_name=organization_name,
            consolidation_method=options.get("consolidation_method"),
            operational_boundary=options.get("operational_boundary"),
            reporting_year=reporting_year,
            user_id=user_id,
        )
        return cfp, cfo

    # ------------------------------------------------------------------
    # Snapshot queries
    # ------------------------------------------------------------------

    def latest_cfp(self, project_id: str) -> Optional[CFPResult]:
        results = self.list_cfp_results(project_id, limit=1)
        return results[0] if results else None

    def latest_cfo(self, project_id: str) -> Optional[CFOResult]:
        results = self.list_cfo_results(project_id, limit=1)
        return results[0] if results else None

    def list_cfp_results(self, project_id: str, limit: Optional[int] = None) -> List[CFPResult]:
        """CFP snapshots of a project, most recent first."""
        stmt = (
            select(CFPResultRecord)
            .where(CFPResultRecord.project_id == project_id)
            .order_by(CFPResultRecord.created_at.desc(), CFPResultRecord.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        with session_scope(self._session_factory) as session:
            return [_cfp_from_row(row) for row in session.execute(stmt).scalars()]

    def list_cfo_results(
        self,
        project_id: str,
        reporting_year: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[CFOResult]:
        """CFO snapshots of a project, most recent first."""
        stmt = select(CFOResultRecord).where(CFOResultRecord.project_id == project_id)
        if reporting_year is not None:
            stmt = stmt.where(CFOResultRecord.reporting_year == reporting_year)
        stmt = stmt.order_by(CFOResultRecord.created_at.desc(), CFOResultRecord.id.desc())
        if limit:
            stmt = stmt.limit(limit)
        with session_scope(self._session_factory) as session:
            return [_cfo_from_row(row) for row in session.execute(stmt).scalars()]


def _cfp_from_row(row: CFPResultRecord) -> CFPResult:
    return CFPResult(
        id=row.id,
        project_id=row.project_id,
        product_name=row.product_name,
        functional_unit=row.functional_unit,
        production_volume=row.production_volume,
        allocation_method=row.allocation_method,
        lifecycle_stages=LifecycleBreakdown(
            raw_materials=row.raw_materials_emissions,
            production=row.production_emissions,
            distribution=row.distribution_emissions,
            use=row.use_emissions,
            end_of_life=row.end_of_life_emissions,
        ),
        cfp_total=row.cfp_total,
        cfp_per_unit=row.cfp_per_unit,
        biogenic_carbon=row.biogenic_carbon or 0.0,
        created_at=row.created_at,
    )


def _cfo_from_row(row: CFOResultRecord) -> CFOResult:
    return CFOResult(
        id=row.id,
        project_id=row.project_id,
        organization_name=row.organization_name,
        reporting_year=row.reporting_year,
        consolidation_method=row.consolidation_method,
        operational_boundary=row.operational_boundary,
        scope1=row.scope1_emissions,
        scope2_location=row.scope2_location_emissions,
        scope2_market=row.scope2_market_emissions,
        scope3_upstream=row.scope3_upstream_emissions,
        scope3_downstream=row.scope3_downstream_emissions,
        scope3_category_breakdown=dict(row.scope3_category_breakdown or {}),
        cfo_total=row.cfo_total,
        created_at=row.created_at,
    )


__all__ = [
    "AggregationEngine",
    "lifecycle_stage",
    "scope3_direction",
    "NO_CALCULATED_ACTIVITIES",
    "UNCATEGORIZED",
]
