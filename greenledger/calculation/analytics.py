# -*- coding: utf-8 -*-
"""
Project Emission Analytics

Read-only views over calculated activities and CFO snapshots:

    - Project totals (scope summary plus activity counts)
    - Hot spots (top emitting activities, scopes and activity types)
    - Emission-weighted data quality score with recommendations
    - Baseline vs reporting year comparison of CFO snapshots

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from greenledger.calculation.aggregation import AggregationEngine
from greenledger.db.base import session_scope
from greenledger.db.models import ActivityRecord, ProjectRecord
from greenledger.determinism import decimal_sum, round_decimal, to_decimal
from greenledger.exceptions import BadRequestError, NotFoundError
from greenledger.models import (
    CalculationStatus,
    CFOResult,
    DataQuality,
    DataQualityReport,
    EmissionShare,
    HotSpot,
    HotSpotReport,
    ProjectTotals,
    TierLevel,
    YearComparison,
)

logger = logging.getLogger(__name__)

HOT_SPOT_LIMIT = 20
ACTIVITY_TYPE_LIMIT = 10

QUALITY_WEIGHTS: Dict[str, Decimal] = {
    DataQuality.HIGH.value: Decimal("1.0"),
    DataQuality.MEDIUM.value: Decimal("0.7"),
    DataQuality.LOW.value: Decimal("0.4"),
    DataQuality.UNKNOWN.value: Decimal("0.3"),
}


def quality_rating(score: float) -> str:
    if score >= 0.9:
        return "excellent"
    if score >= 0.7:
        return "good"
    if score >= 0.5:
        return "moderate"
    return "needs_improvement"


def _percentage(part: Decimal, total: Decimal) -> float:
    if total <= 0:
        return 0.0
    return float(round_decimal(part / total * 100, 2))


class ProjectAnalytics:
    """Analytics over a project's calculated activities."""

    def __init__(self, session_factory: sessionmaker, aggregation: AggregationEngine) -> None:
        self._session_factory = session_factory
        self._aggregation = aggregation

    def project_totals(self, project_id: str) -> ProjectTotals:
        """Scope summary plus total tonnes and activity counts."""
        summary = self._aggregation.aggregate(project_id)
        with session_scope(self._session_factory) as session:
            counts = dict(session.execute(
                select(ActivityRecord.calculation_status, func.count(ActivityRecord.id))
                .where(ActivityRecord.project_id == project_id)
                .group_by(ActivityRecord.calculation_status)
            ).all())

        return ProjectTotals(
            **summary.model_dump(),
            total_tonnes_co2e=float(round_decimal(to_decimal(summary.total) / 1000, 2)),
            activity_count=counts.get(CalculationStatus.CALCULATED.value, 0),
            pending_activities=counts.get(CalculationStatus.PENDING.value, 0),
        )

    def _calculated_rows(self, project_id: str) -> List[ActivityRecord]:
        with session_scope(self._session_factory) as session:
            return list(session.execute(
                select(ActivityRecord).where(
                    ActivityRecord.project_id == project_id,
                    ActivityRecord.calculation_status == CalculationStatus.CALCULATED.value,
                )
            ).scalars())

    def hot_spots(self, project_id: str) -> HotSpotReport:
        """Top emitters by activity, scope and activity type."""
        rows = self._calculated_rows(project_id)
        emissions = {row.id: to_decimal(row.total_emissions_kg_co2e or 0) for row in rows}
        total = decimal_sum(emissions.values())

        ranked = sorted(rows, key=lambda r: (-emissions[r.id], r.name, r.id))[:HOT_SPOT_LIMIT]
        hot_spots = [
            HotSpot(
                id=row.id,
                name=row.name,
                scope=row.scope,
                scope3_category=row.scope3_category,
                activity_type=row.activity_type,
                emissions=float(emissions[row.id]),
                percentage=_percentage(emissions[row.id], total),
                quantity=row.quantity,
                unit=row.unit,
            )
            for row in ranked
        ]

        by_scope: Dict[str, Decimal] = defaultdict(Decimal)
        by_type: Dict[str, Decimal] = defaultdict(Decimal)
        for row in rows:
            by_scope[row.scope] += emissions[row.id]
            by_type[row.activity_type] += emissions[row.id]

        def _shares(groups: Dict[str, Decimal], limit: Optional[int] = None) -> List[EmissionShare]:
            ordered = sorted(groups.items(), key=lambda kv: (-kv[1], kv[0]))
            if limit:
                ordered = ordered[:limit]
            return [
                EmissionShare(key=key, emissions=float(value), percentage=_percentage(value, total))
                for key, value in ordered
            ]

        return HotSpotReport(
            hot_spots=hot_spots,
            by_scope=_shares(by_scope),
            by_activity_type=_shares(by_type, ACTIVITY_TYPE_LIMIT),
            total_emissions=float(round_decimal(total, 4)),
        )

    def data_quality(self, project_id: str) -> DataQualityReport:
        """Emission-weighted data quality (high 1.0, medium 0.7, low 0.4, unknown 0.3)."""
        breakdown: Dict[str, Dict[str, Dict[str, Any]]] = {
            "byQuality": {},
            "byDataSource": {},
            "byTierLevel": {},
            "byScope": {},
        }
        weighted = Decimal("0")
        total = Decimal("0")

        def _add(group: str, key: str, emissions: Decimal) -> None:
            bucket = breakdown[group].setdefault(key, {"count": 0, "emissions": Decimal("0")})
            bucket["count"] += 1
            bucket["emissions"] += emissions

        for row in self._calculated_rows(project_id):
            emissions = to_decimal(row.total_emissions_kg_co2e or 0)
            quality = row.data_quality_score or DataQuality.UNKNOWN.value
            weighted += QUALITY_WEIGHTS.get(quality, QUALITY_WEIGHTS["unknown"]) * emissions
            total += emissions
            _add("byQuality", quality, emissions)
            _add("byDataSource", row.data_source or "unknown", emissions)
            _add("byTierLevel", row.tier_level or TierLevel.TIER1.value, emissions)
            _add("byScope", row.scope, emissions)

        for group in breakdown.values():
            for bucket in group.values():
                bucket["emissions"] = float(round_decimal(bucket["emissions"], 4))

        score = float(round_decimal(weighted / total, 2)) if total > 0 else 0.0
        return DataQualityReport(
            overall_score=score,
            quality_rating=quality_rating(score),
            breakdown=breakdown,
            recommendations=self._recommendations(breakdown),
        )

    @staticmethod
    def _recommendations(breakdown: Dict[str, Dict[str, Dict[str, Any]]]) -> List[str]:
        recommendations = []
        if breakdown["byQuality"].get("low", {}).get("emissions", 0) > 0:
            recommendations.append("Consider improving data quality for low-quality activities")
        if breakdown["byDataSource"].get("estimate", {}).get("emissions", 0) > 0:
            recommendations.append(
                "Replace estimated data with measured or invoiced data where possible"
            )
        tiers = breakdown["byTierLevel"]
        if tiers.get("tier1", {}).get("count", 0) > tiers.get("tier2", {}).get("count", 0):
            recommendations.append(
                "Consider using Tier 2+ calculations for more accurate results"
            )
        return recommendations

    def compare_years(
        self,
        project_id: str,
        baseline_year: Optional[int] = None,
        reporting_year: Optional[int] = None,
    ) -> YearComparison:
        """Compare the latest CFO snapshots of the baseline and reporting years.

        Raises:
            NotFoundError: Unknown project.
            BadRequestError: Either year has no CFO snapshot.
        """
        with session_scope(self._session_factory) as session:
            project = session.get(ProjectRecord, project_id)
            if project is None:
                raise NotFoundError(message="Project not found", context={"project_id": project_id})
            baseline_year = baseline_year or project.baseline_year
            reporting_year = reporting_year or project.reporting_year

        baseline = self._latest_for_year(project_id, baseline_year)
        reporting = self._latest_for_year(project_id, reporting_year)
        if baseline is None or reporting is None:
            raise BadRequestError(
                message="CFO results not found for both baseline and reporting years",
                context={"baseline_year": baseline_year, "reporting_year": reporting_year},
            )

        change = to_decimal(reporting.cfo_total) - to_decimal(baseline.cfo_total)
        base_total = to_decimal(baseline.cfo_total)
        percentage = change / base_total * 100 if base_total > 0 else Decimal("0")
        if change > 0:
            direction = "increase"
        elif change < 0:
            direction = "decrease"
        else:
            direction = "unchanged"

        return YearComparison(
            baseline_year=baseline_year,
            reporting_year=reporting_year,
            baseline=_cfo_figures(baseline),
            reporting=_cfo_figures(reporting),
            absolute_change=float(round_decimal(change, 4)),
            percentage_change=float(round_decimal(percentage, 2)),
            direction=direction,
        )

    def _latest_for_year(self, project_id: str, year: Optional[int]) -> Optional[CFOResult]:
        if year is None:
            return None
        results = self._aggregation.list_cfo_results(project_id, reporting_year=year, limit=1)
        return results[0] if results else None


def _cfo_figures(cfo: CFOResult) -> Dict[str, float]:
    return {
        "total": cfo.cfo_total,
        "scope1": cfo.scope1,
        "scope2": cfo.scope2_location,
        "scope3": float(to_decimal(cfo.scope3_upstream) + to_decimal(cfo.scope3_downstream)),
    }


__all__ = [
    "ProjectAnalytics",
    "QUALITY_WEIGHTS",
    "quality_rating",
]
