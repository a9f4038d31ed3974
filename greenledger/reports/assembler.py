# -*- coding: utf-8 -*-
"""
Report Assembler

Builds the standard-agnostic ReportData document for a project and merges
in the standard-specific fields each jurisdiction expects. The document is
what the ValidationEngine checks, the ReportRenderer serializes and the
SignatureService hashes, so for a given project state, standard, options
and clock it is always identical.

Standard-specific defaults (applied when an option is absent or falsy):
    - eu_cbam: goodsCategory ``iron_steel``, empty cnCode and
      countryOfOrigin, carbonPricePaid 0, precursor totals from the
      project's precursor calculations
    - uk_cbam: embeddedEmissions = scope1 + scope2
    - china_carbon: facilityType ``power_generation``, complianceStatus
      ``pending``, fuel/electricity consumption from Scope 1/2 quantities
    - k_esg: emissionIntensity = total / revenue (revenue defaults to 1)
    - maff_esg / thai_esg: empty strings and zeros

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from greenledger.calculation.aggregation import AggregationEngine
from greenledger.db.base import session_scope
from greenledger.db.models import (
    ActivityRecord,
    PrecursorCalculationRecord,
    ProjectRecord,
)
from greenledger.determinism import decimal_sum, round_decimal, to_decimal, utcnow
from greenledger.exceptions import NotFoundError
from greenledger.models import (
    ActivityLine,
    CalculationStatus,
    CFOSnapshot,
    CFPSnapshot,
    EmissionScope,
    ProjectIdentity,
    ReportData,
    ReportingPeriod,
    ReportOptions,
    ReportStandard,
)
from greenledger.standards.registry import StandardLike, StandardRegistry

logger = logging.getLogger(__name__)

OptionsLike = Union[ReportOptions, Dict[str, Any], None]


def coerce_options(options: OptionsLike) -> ReportOptions:
    """Accept ReportOptions, a snake_case or camelCase dict, or None."""
    if options is None:
        return ReportOptions()
    if isinstance(options, ReportOptions):
        return options
    return ReportOptions.model_validate(options)


class ReportAssembler:
    """Assembles report documents from project state."""

    def __init__(
        self,
        session_factory: sessionmaker,
        aggregation: AggregationEngine,
        registry: Optional[StandardRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._aggregation = aggregation
        self._registry = registry or StandardRegistry()
        self._clock = clock

    def generate_report_data(
        self,
        project_id: str,
        standard: StandardLike,
        options: OptionsLike = None,
    ) -> ReportData:
        """Assemble the report document for one standard.

        Raises:
            NotFoundError: Unknown project.
            BadRequestError: Unknown standard.
        """
        parsed = self._registry.parse(standard)
        opts = coerce_options(options)

        with session_scope(self._session_factory) as session:
            project = session.get(ProjectRecord, project_id)
            if project is None:
                raise NotFoundError(message="Project not found", context={"project_id": project_id})
            identity = ProjectIdentity(
                id=project.id,
                name=project.name,
                company=project.company,
                facility_name=project.facility_name,
                facility_location=project.facility_location,
                industry=project.industry,
                baseline_year=project.baseline_year,
                reporting_year=project.reporting_year,
            )
            activities = [
                ActivityLine(
                    name=row.name,
                    scope=row.scope,
                    category=row.scope3_category,
                    quantity=row.quantity or 0.0,
                    unit=row.unit,
                    emissions=row.total_emissions_kg_co2e or 0.0,
                    tier_level=row.tier_level,
                )
                for row in session.execute(
                    select(ActivityRecord)
                    .where(
                        ActivityRecord.project_id == project_id,
                        ActivityRecord.calculation_status == CalculationStatus.CALCULATED.value,
                    )
                    .order_by(
                        ActivityRecord.scope,
                        ActivityRecord.scope3_category,
                        ActivityRecord.name,
                        ActivityRecord.id,
                    )
                ).scalars()
            ]

        cfp = self._aggregation.latest_cfp(project_id)
        cfo = self._aggregation.latest_cfo(project_id)

        report = ReportData(
            project=identity,
            reporting_period=ReportingPeriod(
                start_date=f"{identity.reporting_year}-01-01",
                end_date=f"{identity.reporting_year}-12-31",
            ),
            emissions=self._aggregation.aggregate(project_id),
            activities=activities,
            cfp=CFPSnapshot(
                product_name=cfp.product_name,
                functional_unit=cfp.functional_unit,
                cfp_total=cfp.cfp_total,
                cfp_per_unit=cfp.cfp_per_unit,
            ) if cfp else None,
            cfo=CFOSnapshot(
                organization_name=cfo.organization_name,
                cfo_total=cfo.cfo_total,
            ) if cfo else None,
            generated_at=self._clock().isoformat(),
            standard=parsed,
        )
        report.standard_specific = self._standard_specific(report, parsed, opts)

        logger.debug(
            "Assembled %s report data for project %s (%d activities)",
            parsed.value, project_id, len(activities),
        )
        return report

    # ------------------------------------------------------------------
    # Standard-specific sections
    # ------------------------------------------------------------------

    def _standard_specific(
        self,
        report: ReportData,
        standard: ReportStandard,
        options: ReportOptions,
    ) -> Dict[str, Any]:
        builders = {
            ReportStandard.EU_CBAM: self._eu_cbam,
            ReportStandard.UK_CBAM: self._uk_cbam,
            ReportStandard.CHINA_CARBON: self._china_carbon,
            ReportStandard.K_ESG: self._k_esg,
            ReportStandard.MAFF_ESG: self._maff_esg,
            ReportStandard.THAI_ESG: self._thai_esg,
        }
        return builders[standard](report, options)

    @staticmethod
    def _scope_quantity(report: ReportData, scope: EmissionScope) -> float:
        return float(decimal_sum(a.quantity for a in report.activities if a.scope == scope.value))

    def _precursor_rows(self, project_id: str) -> List[Dict[str, Any]]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(PrecursorCalculationRecord)
                .join(ActivityRecord, PrecursorCalculationRecord.activity_id == ActivityRecord.id)
                .where(ActivityRecord.project_id == project_id)
                .order_by(
                    PrecursorCalculationRecord.precursor_type,
                    PrecursorCalculationRecord.created_at,
                    PrecursorCalculationRecord.id,
                )
            ).scalars().all()
            return [
                {
                    "material": row.precursor_type,
                    "quantity": row.quantity_kg,
                    "emissionFactor": row.emission_factor,
                    "emissions": row.emissions_kg_co2e,
                }
                for row in rows
            ]

    def _eu_cbam(self, report: ReportData, options: ReportOptions) -> Dict[str, Any]:
        details = self._precursor_rows(report.project.id)
        return {
            "goodsCategory": options.goods_category or "iron_steel",
            "cnCode": options.cn_code or "",
            "countryOfOrigin": options.country_of_origin or "",
            "installationOperator": report.project.company,
            "directEmissions": report.emissions.scope1,
            "indirectEmissions": report.emissions.scope2,
            "precursorEmissions": float(
                round_decimal(decimal_sum(d["emissions"] for d in details), 4)
            ),
            "carbonPricePaid": options.carbon_price_paid or 0,
            "precursorDetails": details,
        }

    @staticmethod
    def _uk_cbam(report: ReportData, options: ReportOptions) -> Dict[str, Any]:
        embedded = to_decimal(report.emissions.scope1) + to_decimal(report.emissions.scope2)
        return {
            "ukCommodityCode": options.uk_commodity_code or "",
            "goodsCategory": options.goods_category or "",
            "embeddedEmissions": float(embedded),
            "ukCarbonPriceEquivalent": options.uk_carbon_price_equivalent or 0,
            "overseasCarbonPrice": options.overseas_carbon_price or 0,
            "verification": options.verification,
        }

    def _china_carbon(self, report: ReportData, options: ReportOptions) -> Dict[str, Any]:
        return {
            "enterpriseName": report.project.company,
            "unifiedSocialCreditCode": options.unified_social_credit_code or "",
            "facilityType": options.facility_type or "power_generation",
            "fuelConsumption": self._scope_quantity(report, EmissionScope.SCOPE1),
            "electricityConsumption": self._scope_quantity(report, EmissionScope.SCOPE2),
            "totalEmissions": report.emissions.total,
            "emissionAllowance": options.emission_allowance or 0,
            "complianceStatus": options.compliance_status or "pending",
            "ccerOffset": options.ccer_offset,
            "verificationBody": options.verification_body,
        }

    @staticmethod
    def _k_esg(report: ReportData, options: ReportOptions) -> Dict[str, Any]:
        revenue = to_decimal(options.revenue or 1)
        return {
            "businessRegistrationNumber": options.business_registration_number or "",
            "governanceStructure": options.governance_structure or "",
            "reductionTarget": options.reduction_target or "",
            "reductionActivities": list(options.reduction_activities or []),
            "emissionIntensity": float(round_decimal(to_decimal(report.emissions.total) / revenue, 6)),
            "kEsgScore": options.k_esg_score or None,
            "kEsgGrade": options.k_esg_grade or None,
            "renewableEnergyUsage": options.renewable_energy_usage or 0,
        }

    @staticmethod
    def _maff_esg(report: ReportData, options: ReportOptions) -> Dict[str, Any]:
        return {
            "corporateNumber": options.corporate_number or "",
            "agriculturalEmissions": options.agricultural_emissions or 0,
            "foodLossReduction": options.food_loss_reduction or "",
            "sustainableSourcing": options.sustainable_sourcing or "",
            "biodiversityImpact": options.biodiversity_impact or "",
            "jgapStatus": options.jgap_status or None,
            "midoriStrategyAlignment": options.midori_strategy_alignment or "",
            "organicCertification": options.organic_certification,
            "jCreditUsage": options.j_credit_usage,
        }

    def _thai_esg(self, report: ReportData, options: ReportOptions) -> Dict[str, Any]:
        return {
            "taxId": options.tax_id or "",
            "setIndustryGroup": options.set_industry_group or "",
            "energyConsumption": self._scope_quantity(report, EmissionScope.SCOPE2),
            "waterWithdrawal": options.water_withdrawal or 0,
            "wasteManagement": options.waste_management or "",
            "employeeData": dict(options.employee_data or {}),
            "tcfdAlignment": bool(options.tcfd_alignment),
            "tVerCredits": options.t_ver_credits or 0,
        }


__all__ = ["ReportAssembler", "coerce_options", "OptionsLike"]
