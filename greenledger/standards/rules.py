# -*- coding: utf-8 -*-
"""
Standard-specific validation rules.

Each rule inspects the camelCase report document and returns the issues it
finds. Rules never mutate the document; the ValidationEngine folds their
issues into the ValidationResult.

Author: GreenLang Platform Team
Date: March 2026
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

from greenledger.models import ValidationIssue, ValidationSeverity

Document = Dict[str, Any]
ValidationRule = Callable[[Document], List[ValidationIssue]]


def _error(field: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, severity=ValidationSeverity.ERROR)


def _warning(field: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, severity=ValidationSeverity.WARNING)


def _specific(document: Document) -> Dict[str, Any]:
    return document.get("standardSpecific") or {}


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def validate_eu_cbam(document: Document) -> List[ValidationIssue]:
    issues = []
    if not _specific(document).get("cnCode"):
        issues.append(_warning("cnCode", "CN Code is recommended"))
    emissions = document.get("emissions") or {}
    if _number(emissions.get("scope1")) <= 0 and _number(emissions.get("scope2")) <= 0:
        issues.append(_error("emissions", "At least one emission type is required"))
    return issues


def validate_uk_cbam(document: Document) -> List[ValidationIssue]:
    if not _specific(document).get("ukCommodityCode"):
        return [_warning("ukCommodityCode", "UK Commodity Code is recommended")]
    return []


def validate_china_carbon(document: Document) -> List[ValidationIssue]:
    if not _specific(document).get("unifiedSocialCreditCode"):
        return [_error("unifiedSocialCreditCode", "Unified Social Credit Code is required")]
    return []


def validate_k_esg(document: Document) -> List[ValidationIssue]:
    issues = []
    scope3 = (document.get("emissions") or {}).get("scope3")
    if scope3 is None or _number(scope3) <= 0:
        issues.append(_warning("scope3", "Scope 3 emissions are recommended for K-ESG"))
    if not _specific(document).get("reductionTarget"):
        issues.append(_error("reductionTarget", "Reduction target is required for K-ESG"))
    return issues


def validate_maff_esg(document: Document) -> List[ValidationIssue]:
    if not _specific(document).get("foodLossReduction"):
        return [_warning("foodLossReduction", "Food loss reduction data is recommended")]
    return []


def validate_thai_esg(document: Document) -> List[ValidationIssue]:
    if not _specific(document).get("setIndustryGroup"):
        return [_warning("setIndustryGroup", "SET Industry Group is recommended")]
    return []


__all__ = [
    "Document",
    "ValidationRule",
    "validate_eu_cbam",
    "validate_uk_cbam",
    "validate_china_carbon",
    "validate_k_esg",
    "validate_maff_esg",
    "validate_thai_esg",
]
