# -*- coding: utf-8 -*-
"""
Activity Emissions Calculator

Computes total emissions (kg CO2e) for individual activities and for every
pending activity of a project:

    total = round_half_up(quantity * factor * tier_multiplier + precursors, 4)

Features:
    - Factor precedence: custom value > explicit factor id > FactorResolver
    - Tier 2+ multiplier (configurable, default 1.3)
    - Precursor (embedded) emissions for Scope 3 activities, with one
      precursor-calculation row per matched factor; recalculation replaces
      the activity's earlier rows
    - The result is written only if quantity and unit still match what was
      read, so an edit during calculation is never overwritten
    - Batch calculation with per-activity transactions, failure isolation
      and cooperative cancellation between units
    - Standalone precursor estimates and market-based Scope 2

All arithmetic uses ``Decimal`` so stored figures reconcile exactly.

Example:
    >>> calc = ActivityCalculator(session_factory, resolver, audit)
    >>> calc.calculate("activity-1").total_emissions_kg_co2e
    4200.0

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from greenledger import metrics
from greenledger.audit.trail import AuditTrail
from greenledger.config import LedgerConfig, get_config
from greenledger.db.base import session_scope
from greenledger.db.models import (
    ActivityRecord,
    EmissionFactorRecord,
    PrecursorCalculationRecord,
)
from greenledger.determinism import (
    decimal_sum,
    round_decimal,
    to_decimal,
    utcnow_naive,
)
from greenledger.exceptions import (
    BadRequestError,
    ConflictError,
    GreenLedgerException,
    NotFoundError,
)
from greenledger.factors.resolver import FactorResolution, FactorResolver
from greenledger.models import (
    AuditAction,
    BatchCalculatedItem,
    BatchCalculationResult,
    BatchItemError,
    CalculationResult,
    CalculationStatus,
    ContractualInstrument,
    EmissionScope,
    MarketBasedResult,
    PrecursorEstimate,
    PrecursorLine,
    PrecursorMaterial,
    TierLevel,
)

logger = logging.getLogger(__name__)

CUSTOM_SOURCE = "custom"
DEFAULT_ESTIMATE_SOURCE = "default_estimate"
MARKET_BASED_SOURCE = "market_based"


def quantity_in_kg(quantity: Decimal, unit: Optional[str]) -> Decimal:
    """Convert a mass quantity to kilograms (tonne/tonnes/t x1000, g /1000)."""
    normalized = (unit or "").strip().lower()
    if normalized in ("tonne", "tonnes", "t"):
        return quantity * 1000
    if normalized == "g":
        return quantity / 1000
    return quantity


@dataclass
class _ActivitySnapshot:
    id: str
    project_id: str
    name: str
    scope: str
    activity_type: str
    material_type: Optional[str]
    quantity: Any
    unit: Optional[str]
    tier_level: Optional[str]


@dataclass
class _PrecursorMatch:
    precursor_type: str
    quantity_kg: Decimal
    factor: Decimal
    emissions: Decimal
    production_route: Optional[str]


class ActivityCalculator:
    """Activity-level emission calculation.

    Attributes:
        config: Ledger configuration (tier multiplier and fallbacks).
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        resolver: FactorResolver,
        audit: AuditTrail,
        config: Optional[LedgerConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self._session_factory = session_factory
        self._resolver = resolver
        self._audit = audit

    # ------------------------------------------------------------------
    # Single activity
    # ------------------------------------------------------------------

    def calculate(
        self,
        activity_id: str,
        project_id: Optional[str] = None,
        custom_factor: Optional[float] = None,
        emission_factor_id: Optional[str] = None,
        tier_override: Optional[Union[TierLevel, str]] = None,
        include_precursors: bool = False,
        user_id: Optional[str] = None,
    ) -> CalculationResult:
        """Calculate and persist the emissions of one activity.

        Raises:
            NotFoundError: Activity or explicit emission factor does not exist.
            BadRequestError: Quantity missing, negative or non-numeric, or
                the tier override is unknown.
            ConflictError: Quantity or unit changed while calculating.
        """
        started = time.perf_counter()
        snapshot = self._load(activity_id, project_id)
        try:
            result = self._calculate(
                snapshot,
                custom_factor=custom_factor,
                emission_factor_id=emission_factor_id,
                tier_override=tier_override,
                include_precursors=include_precursors,
                persist_tier=True,
            )
        except Exception:
            metrics.record_calculation(snapshot.scope, "error", time.perf_counter() - started)
            raise
        metrics.record_calculation(snapshot.scope, "success", time.perf_counter() - started)

        self._audit.record(
            AuditAction.CALCULATE,
            "activity",
            snapshot.id,
            {
                "emissionFactor": result.emission_factor,
                "emissionFactorSource": result.emission_factor_source,
                "totalEmissions": result.total_emissions_kg_co2e,
                "tierLevel": result.tier_level.value,
                "precursorEmissions": result.precursor_emissions,
            },
            user_id=user_id,
            project_id=snapshot.project_id,
        )
        return result

    def _load(self, activity_id: str, project_id: Optional[str]) -> _ActivitySnapshot:
        stmt = select(ActivityRecord).where(ActivityRecord.id == activity_id)
        if project_id:
            stmt = stmt.where(ActivityRecord.project_id == project_id)
        with session_scope(self._session_factory) as session:
            row = session.execute(stmt).scalars().first()
            if row is None:
                raise NotFoundError(
                    message="Activity not found",
                    context={"activity_id": activity_id, "project_id": project_id},
                )
            return _ActivitySnapshot(
                id=row.id,
                project_id=row.project_id,
                name=row.name,
                scope=row.scope,
                activity_type=row.activity_type,
                material_type=row.material_type,
                quantity=row.quantity,
                unit=row.unit,
                tier_level=row.tier_level,
            )

    def _calculate(
        self,
        activity: _ActivitySnapshot,
        custom_factor: Optional[float] = None,
        emission_factor_id: Optional[str] = None,
        tier_override: Optional[Union[TierLevel, str]] = None,
        include_precursors: bool = False,
        persist_tier: bool = False,
    ) -> CalculationResult:
        quantity = self._validated_quantity(activity)
        tier = self._effective_tier(activity, tier_override)
        resolution = self._factor_for(activity, custom_factor, emission_factor_id)

        multiplier = Decimal("1")
        if tier is TierLevel.TIER2PLUS:
            multiplier = to_decimal(self.config.tier2plus_multiplier)
        emissions = quantity * to_decimal(resolution.factor) * multiplier

        matches: List[_PrecursorMatch] = []
        if include_precursors and activity.scope == EmissionScope.SCOPE3.value:
            matches = self._precursor_matches(activity, quantity)
        precursor_total = round_decimal(decimal_sum(m.emissions for m in matches), 4)

        total = round_decimal(emissions + precursor_total, 4)

        with session_scope(self._session_factory) as session:
            row = session.get(ActivityRecord, activity.id)
            if row is None:
                raise NotFoundError(
                    message="Activity not found",
                    context={"activity_id": activity.id},
                )
            if row.quantity != activity.quantity or row.unit != activity.unit:
                raise ConflictError(
                    message="Activity changed during calculation. Please calculate again.",
                    context={"activity_id": activity.id},
                )
            row.calculation_status = CalculationStatus.CALCULATED.value
            row.total_emissions_kg_co2e = float(total)
            row.emission_factor_used = {
                "factor": resolution.factor,
                "source": resolution.source,
            }
            if persist_tier:
                row.tier_level = tier.value
            row.calculated_at = utcnow_naive()
            session.execute(
                delete(PrecursorCalculationRecord)
                .where(PrecursorCalculationRecord.activity_id == activity.id)
            )
            for match in matches:
                session.add(PrecursorCalculationRecord(
                    activity_id=activity.id,
                    precursor_type=match.precursor_type,
                    quantity_kg=float(match.quantity_kg),
                    emission_factor=float(match.factor),
                    emissions_kg_co2e=float(round_decimal(match.emissions, 4)),
                    production_route=match.production_route,
                ))

        logger.debug(
            "Calculated activity %s: %s x %s (%s) = %s kg CO2e",
            activity.id, quantity, resolution.factor, tier.value, total,
        )
        return CalculationResult(
            activity_id=activity.id,
            quantity=float(quantity),
            unit=activity.unit,
            emission_factor=resolution.factor,
            emission_factor_source=resolution.source,
            tier_level=tier,
            tier_multiplier=float(multiplier),
            precursor_emissions=float(precursor_total),
            total_emissions_kg_co2e=float(total),
        )

    @staticmethod
    def _validated_quantity(activity: _ActivitySnapshot) -> Decimal:
        if activity.quantity is None:
            raise BadRequestError(
                message="Activity quantity is missing",
                context={"activity_id": activity.id},
            )
        try:
            quantity = to_decimal(activity.quantity)
        except ValueError as exc:
            raise BadRequestError(
                message="Activity quantity is not numeric",
                context={"activity_id": activity.id, "quantity": str(activity.quantity)},
            ) from exc
        if not quantity.is_finite() or quantity < 0:
            raise BadRequestError(
                message="Activity quantity must be a non-negative number",
                context={"activity_id": activity.id, "quantity": str(activity.quantity)},
            )
        return quantity

    @staticmethod
    def _effective_tier(
        activity: _ActivitySnapshot,
        tier_override: Optional[Union[TierLevel, str]],
    ) -> TierLevel:
        value = tier_override or activity.tier_level or TierLevel.TIER1.value
        try:
            return TierLevel(value)
        except ValueError as exc:
            raise BadRequestError(
                message=f"Unknown tier level: {value}",
                context={"activity_id": activity.id},
            ) from exc

    def _factor_for(
        self,
        activity: _ActivitySnapshot,
        custom_factor: Optional[float],
        emission_factor_id: Optional[str],
    ) -> FactorResolution:
        if custom_factor is not None:
            return FactorResolution(float(custom_factor), CUSTOM_SOURCE)

        if emission_factor_id:
            with session_scope(self._session_factory) as session:
                row = session.get(EmissionFactorRecord, emission_factor_id)
                if row is None:
                    raise NotFoundError(
                        message="Emission factor not found",
                        context={"emission_factor_id": emission_factor_id},
                    )
                return FactorResolution(float(row.factor_value), row.source)

        return self._resolver.resolve(
            activity.activity_type,
            activity.unit,
            activity.scope,
            project_id=activity.project_id,
        )

    def _precursor_matches(
        self,
        activity: _ActivitySnapshot,
        quantity: Decimal,
    ) -> List[_PrecursorMatch]:
        term = activity.material_type or activity.activity_type
        factors = self._resolver.precursor_factors(term, project_id=activity.project_id)
        quantity_kg = quantity_in_kg(quantity, activity.unit)
        matches = []
        for factor in factors:
            value = to_decimal(factor.factor_kg_co2_per_kg)
            matches.append(_PrecursorMatch(
                precursor_type=factor.material_type,
                quantity_kg=quantity_kg,
                factor=value,
                emissions=quantity_kg * value,
                production_route=factor.production_route,
            ))
        return matches

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def calculate_all(
        self,
        project_id: str,
        include_precursors: bool = False,
        user_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchCalculationResult:
        """Calculate every pending activity of a project.

        Each activity commits independently. A failing activity is marked
        ``error`` and reported; it never rolls back other activities. An
        activity edited mid-calculation stays ``pending``.
        """
        started = time.perf_counter()
        with session_scope(self._session_factory) as session:
            pending = [
                _ActivitySnapshot(
                    id=r.id,
                    project_id=r.project_id,
                    name=r.name,
                    scope=r.scope,
                    activity_type=r.activity_type,
                    material_type=r.material_type,
                    quantity=r.quantity,
                    unit=r.unit,
                    tier_level=r.tier_level,
                )
                for r in session.execute(
                    select(ActivityRecord)
                    .where(
                        ActivityRecord.project_id == project_id,
                        ActivityRecord.calculation_status == CalculationStatus.PENDING.value,
                    )
                    .order_by(ActivityRecord.created_at, ActivityRecord.id)
                ).scalars()
            ]

        result = BatchCalculationResult(project_id=project_id, total=len(pending))
        for activity in pending:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    "Batch calculation for project %s cancelled after %d of %d activities",
                    project_id, len(result.calculated) + len(result.errors), len(pending),
                )
                result.cancelled = True
                break

            unit_started = time.perf_counter()
            try:
                calculated = self._calculate(activity, include_precursors=include_precursors)
            except Exception as exc:
                message = exc.message if isinstance(exc, GreenLedgerException) else str(exc)
                logger.warning("Calculation failed for activity %s: %s", activity.id, message)
                if not isinstance(exc, ConflictError):
                    self._mark_error(activity.id)
                metrics.record_calculation(
                    activity.scope, "error", time.perf_counter() - unit_started,
                )
                result.errors.append(BatchItemError(
                    activity_id=activity.id, name=activity.name, error=message,
                ))
                continue

            metrics.record_calculation(
                activity.scope, "success", time.perf_counter() - unit_started,
            )
            result.calculated.append(BatchCalculatedItem(
                activity_id=activity.id,
                name=activity.name,
                total_emissions_kg_co2e=calculated.total_emissions_kg_co2e,
            ))

        metrics.record_batch_duration(time.perf_counter() - started)
        logger.info(
            "Batch calculation for project %s: %d calculated, %d errors",
            project_id, len(result.calculated), len(result.errors),
        )
        self._audit.record(
            AuditAction.BULK_CALCULATE,
            "activity",
            None,
            {
                "calculated": len(result.calculated),
                "errors": len(result.errors),
                "cancelled": result.cancelled,
            },
            user_id=user_id,
            project_id=project_id,
        )
        return result

    def _mark_error(self, activity_id: str) -> None:
        with session_scope(self._session_factory) as session:
            row = session.get(ActivityRecord, activity_id)
            if row is not None:
                row.calculation_status = CalculationStatus.ERROR.value

    # ------------------------------------------------------------------
    # Standalone estimates
    # ------------------------------------------------------------------

    def calculate_precursors(
        self,
        project_id: Optional[str],
        materials: Sequence[Union[PrecursorMaterial, Dict[str, Any]]],
        user_id: Optional[str] = None,
    ) -> PrecursorEstimate:
        """Estimate embedded emissions for a list of precursor materials.

        Unmatched materials use the default precursor factor with source
        ``default_estimate``. Nothing is persisted except the audit entry.
        """
        if not materials:
            raise BadRequestError(message="Materials array is required")

        lines: List[PrecursorLine] = []
        for item in materials:
            material = item if isinstance(item, PrecursorMaterial) else PrecursorMaterial(**item)
            quantity_kg = quantity_in_kg(to_decimal(material.quantity), material.unit)

            matches = self._resolver.precursor_factors(
                material.material_type,
                project_id=project_id,
                production_route=material.production_route,
            )
            if matches:
                factor = to_decimal(matches[0].factor_kg_co2_per_kg)
                source = matches[0].source
            else:
                factor = to_decimal(self.config.default_precursor_factor)
                source = DEFAULT_ESTIMATE_SOURCE

            lines.append(PrecursorLine(
                material_type=material.material_type,
                quantity_kg=float(quantity_kg),
                emission_factor=float(factor),
                emissions_kg_co2e=float(round_decimal(quantity_kg * factor, 4)),
                production_route=material.production_route,
                source=source,
            ))

        total = round_decimal(decimal_sum(line.emissions_kg_co2e for line in lines), 4)
        self._audit.record(
            AuditAction.CALCULATE_PRECURSORS,
            "precursor",
            None,
            {"materials": len(lines), "totalEmissions": float(total)},
            user_id=user_id,
            project_id=project_id,
        )
        return PrecursorEstimate(
            project_id=project_id or "",
            lines=lines,
            total_emissions_kg_co2e=float(total),
        )

    def calculate_scope2_market_based(
        self,
        electricity_kwh: float,
        instruments: Sequence[Union[ContractualInstrument, Dict[str, Any]]] = (),
    ) -> MarketBasedResult:
        """Market-based Scope 2: instruments in order, remainder at the residual mix."""
        remaining = to_decimal(electricity_kwh)
        if remaining < 0:
            raise BadRequestError(message="Electricity consumption must be non-negative")

        emissions = Decimal("0")
        covered = Decimal("0")
        for item in instruments:
            if remaining <= 0:
                break
            instrument = (
                item if isinstance(item, ContractualInstrument)
                else ContractualInstrument(**item)
            )
            applied = min(to_decimal(instrument.quantity_kwh), remaining)
            emissions += applied * to_decimal(instrument.emission_factor)
            covered += applied
            remaining -= applied

        if remaining > 0:
            emissions += remaining * to_decimal(self.config.residual_mix_factor)

        return MarketBasedResult(
            emissions=float(round_decimal(emissions, 4)),
            source=MARKET_BASED_SOURCE,
            covered_kwh=float(covered),
            residual_kwh=float(remaining),
        )


__all__ = [
    "ActivityCalculator",
    "quantity_in_kg",
    "CUSTOM_SOURCE",
    "DEFAULT_ESTIMATE_SOURCE",
    "MARKET_BASED_SOURCE",
]
