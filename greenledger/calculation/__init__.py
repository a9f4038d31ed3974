# -*- coding: utf-8 -*-
"""
GreenLedger Calculation

Activity-level emission calculation, scope/CFP/CFO aggregation and
project analytics.

Author: GreenLang Platform Team
Date: March 2026
"""

from greenledger.calculation.aggregation import (
    AggregationEngine,
    lifecycle_stage,
    scope3_direction,
)
from greenledger.calculation.analytics import ProjectAnalytics, quality_rating
from greenledger.calculation.calculator import ActivityCalculator, quantity_in_kg

__all__ = [
    "ActivityCalculator",
    "AggregationEngine",
    "ProjectAnalytics",
    "lifecycle_stage",
    "quality_rating",
    "quantity_in_kg",
    "scope3_direction",
]
