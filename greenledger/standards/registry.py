# -*- coding: utf-8 -*-
"""
Reporting Standard Registry

Static table of the six supported jurisdictional reporting standards. Each
definition carries the standard's display name, required and optional
document fields (dotted camelCase paths), report sections, whether a
signature is required, the default signing declaration and its validation
rule.

Supported standards:
    - eu_cbam: EU Carbon Border Adjustment Mechanism
    - uk_cbam: UK Carbon Border Adjustment Mechanism
    - china_carbon: China national carbon market
    - k_esg: Korea K-ESG guideline (signature required)
    - maff_esg: Japan MAFF ESG guidance (signature required)
    - thai_esg: Thailand SET ESG disclosure

Example:
    >>> registry = StandardRegistry()
    >>> registry.requirements_for("k_esg").signature_required
    True

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple, Union

from greenledger.exceptions import BadRequestError
from greenledger.models import ReportStandard, StandardRequirements
from greenledger.standards.rules import (
    ValidationRule,
    validate_china_carbon,
    validate_eu_cbam,
    validate_k_esg,
    validate_maff_esg,
    validate_thai_esg,
    validate_uk_cbam,
)

logger = logging.getLogger(__name__)

StandardLike = Union[ReportStandard, str]

COMMON_REQUIRED_FIELDS: Tuple[str, ...] = (
    "project.name",
    "project.company",
    "reportingPeriod.startDate",
    "reportingPeriod.endDate",
    "emissions.scope1",
    "emissions.scope2",
)

DEFAULT_DECLARATION = (
    "I hereby declare that the information provided in this report is accurate "
    "and complete to the best of my knowledge."
)


@dataclass(frozen=True)
class StandardDefinition:
    """Static definition of one reporting standard."""

    standard: ReportStandard
    display_name: str
    required_fields: Tuple[str, ...]
    optional_fields: Tuple[str, ...]
    sections: Tuple[str, ...]
    signature_required: bool
    declaration: str
    validator: ValidationRule

    def requirements(self) -> StandardRequirements:
        return StandardRequirements(
            standard=self.standard,
            display_name=self.display_name,
            required_fields=list(self.required_fields),
            optional_fields=list(self.optional_fields),
            sections=list(self.sections),
            signature_required=self.signature_required,
        )


_DEFINITIONS: Dict[ReportStandard, StandardDefinition] = {
    ReportStandard.EU_CBAM: StandardDefinition(
        standard=ReportStandard.EU_CBAM,
        display_name="EU CBAM",
        required_fields=COMMON_REQUIRED_FIELDS + (
            "standardSpecific.cnCode",
            "standardSpecific.goodsCategory",
            "standardSpecific.countryOfOrigin",
            "standardSpecific.installationOperator",
            "standardSpecific.directEmissions",
            "standardSpecific.indirectEmissions",
        ),
        optional_fields=(
            "standardSpecific.precursorEmissions",
            "standardSpecific.carbonPricePaid",
        ),
        sections=("organization", "goods", "emissions", "precursors", "carbon_price"),
        signature_required=False,
        declaration=(
            "I hereby declare that the information provided in this EU CBAM report "
            "is accurate and complete to the best of my knowledge."
        ),
        validator=validate_eu_cbam,
    ),
    ReportStandard.UK_CBAM: StandardDefinition(
        standard=ReportStandard.UK_CBAM,
        display_name="UK CBAM",
        required_fields=COMMON_REQUIRED_FIELDS + (
            "standardSpecific.ukCommodityCode",
            "standardSpecific.goodsCategory",
            "standardSpecific.embeddedEmissions",
        ),
        optional_fields=(
            "standardSpecific.overseasCarbonPrice",
            "standardSpecific.verification",
        ),
        sections=("organization", "goods", "emissions", "verification"),
        signature_required=False,
        declaration=(
            "I hereby declare that the information provided in this UK CBAM report "
            "is accurate and complete to the best of my knowledge."
        ),
        validator=validate_uk_cbam,
    ),
    ReportStandard.CHINA_CARBON: StandardDefinition(
        standard=ReportStandard.CHINA_CARBON,
        display_name="China Carbon Market",
        required_fields=COMMON_REQUIRED_FIELDS + (
            "standardSpecific.enterpriseName",
            "standardSpecific.unifiedSocialCreditCode",
            "standardSpecific.fuelConsumption",
            "standardSpecific.electricityConsumption",
            "standardSpecific.totalEmissions",
        ),
        optional_fields=(
            "standardSpecific.ccerOffset",
            "standardSpecific.verificationBody",
        ),
        sections=("enterprise", "fuel", "electricity", "allowances"),
        signature_required=False,
        declaration=(
            "I hereby declare that the information provided in this China Carbon "
            "Market report is accurate and complete to the best of my knowledge."
        ),
        validator=validate_china_carbon,
    ),
    ReportStandard.K_ESG: StandardDefinition(
        standard=ReportStandard.K_ESG,
        display_name="Korea K-ESG",
        required_fields=COMMON_REQUIRED_FIELDS + (
            "emissions.scope3",
            "standardSpecific.governanceStructure",
            "standardSpecific.reductionTarget",
            "standardSpecific.reductionActivities",
        ),
        optional_fields=(
            "standardSpecific.kEsgScore",
            "standardSpecific.renewableEnergy",
        ),
        sections=("organization", "governance", "emissions", "targets", "declaration"),
        signature_required=True,
        declaration=(
            "본 보고서에 기재된 모든 정보가 정확하고 완전함을 선언합니다. "
            "(I hereby declare that all information in this K-ESG report is "
            "accurate and complete.)"
        ),
        validator=validate_k_esg,
    ),
    ReportStandard.MAFF_ESG: StandardDefinition(
        standard=ReportStandard.MAFF_ESG,
        display_name="Japan MAFF ESG",
        required_fields=COMMON_REQUIRED_FIELDS + (
            "emissions.scope3",
            "standardSpecific.agriculturalEmissions",
            "standardSpecific.foodLossReduction",
            "standardSpecific.sustainableSourcing",
        ),
        optional_fields=(
            "standardSpecific.organicCertification",
            "standardSpecific.jCreditUsage",
        ),
        sections=("organization", "agriculture", "food_loss", "sourcing", "declaration"),
        signature_required=True,
        declaration=(
            "本報告書に記載された情報が正確かつ完全であることを宣言します。"
            "(I hereby declare that the information in this MAFF ESG report is "
            "accurate and complete.)"
        ),
        validator=validate_maff_esg,
    ),
    ReportStandard.THAI_ESG: StandardDefinition(
        standard=ReportStandard.THAI_ESG,
        display_name="Thailand Thai-ESG",
        required_fields=COMMON_REQUIRED_FIELDS + (
            "standardSpecific.setIndustryGroup",
            "standardSpecific.energyConsumption",
            "standardSpecific.waterWithdrawal",
            "standardSpecific.wasteManagement",
        ),
        optional_fields=(
            "standardSpecific.tcfdAlignment",
            "standardSpecific.tVerCredits",
        ),
        sections=("organization", "energy", "water", "waste", "social"),
        signature_required=False,
        declaration=(
            "ข้าพเจ้าขอรับรองว่าข้อมูลในรายงานนี้ถูกต้องและครบถ้วน "
            "(I hereby declare that the information in this Thai-ESG report is "
            "accurate and complete.)"
        ),
        validator=validate_thai_esg,
    ),
}


class StandardRegistry:
    """Lookup over the static standard definitions."""

    @staticmethod
    def parse(value: StandardLike) -> ReportStandard:
        """Parse a standard key.

        Raises:
            BadRequestError: The key is not a supported standard.
        """
        if isinstance(value, ReportStandard):
            return value
        try:
            return ReportStandard(str(value).strip().lower())
        except ValueError as exc:
            raise BadRequestError(
                message=f"Invalid standard: {value}",
                context={"valid_standards": [s.value for s in ReportStandard]},
            ) from exc

    @staticmethod
    def is_supported(value: StandardLike) -> bool:
        try:
            StandardRegistry.parse(value)
        except BadRequestError:
            return False
        return True

    def definition(self, standard: StandardLike) -> StandardDefinition:
        return _DEFINITIONS[self.parse(standard)]

    def requirements_for(self, standard: StandardLike) -> StandardRequirements:
        return self.definition(standard).requirements()

    def display_name(self, standard: StandardLike) -> str:
        return self.definition(standard).display_name

    def declaration(self, standard: StandardLike) -> str:
        """Default signing declaration; generic text for unknown standards."""
        if not self.is_supported(standard):
            return DEFAULT_DECLARATION
        return self.definition(standard).declaration

    def list_standards(self) -> List[StandardRequirements]:
        return [definition.requirements() for definition in _DEFINITIONS.values()]

    def overlapping_fields(self, standards: Iterable[StandardLike]) -> Dict[str, object]:
        """Required fields shared by every given standard.

        ``conflicts`` maps a field required by one standard but only
        optional in another to the standards treating it as optional.
        Fewer than two standards yields no overlap.
        """
        definitions = [self.definition(s) for s in standards]
        if len(definitions) < 2:
            return {"common": [], "conflicts": {}}

        common = [
            field for field in definitions[0].required_fields
            if all(field in d.required_fields for d in definitions[1:])
        ]

        conflicts: Dict[str, List[str]] = {}
        required_anywhere = {f for d in definitions for f in d.required_fields}
        for d in definitions:
            for field in d.optional_fields:
                if field in required_anywhere:
                    conflicts.setdefault(field, []).append(d.standard.value)

        return {"common": common, "conflicts": conflicts}


__all__ = [
    "COMMON_REQUIRED_FIELDS",
    "DEFAULT_DECLARATION",
    "StandardDefinition",
    "StandardRegistry",
]
