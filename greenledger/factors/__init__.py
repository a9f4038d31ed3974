# -*- coding: utf-8 -*-
"""
GreenLedger Emission Factors

Factor resolution for activity, grid and precursor emissions, the built-in
default tables and the optional external factor search.

Author: GreenLang Platform Team
Date: March 2026
"""

from greenledger.factors.defaults import (
    CBAM_DEFAULT_FACTORS,
    DEFAULT_EMISSION_FACTORS,
    cbam_defaults,
    lookup_default_factor,
    normalize_unit,
)
from greenledger.factors.resolver import (
    FactorResolution,
    FactorResolver,
    PrecursorFactor,
)
from greenledger.factors.search import EmissionFactorSearch, TokenBucket

__all__ = [
    "CBAM_DEFAULT_FACTORS",
    "DEFAULT_EMISSION_FACTORS",
    "cbam_defaults",
    "lookup_default_factor",
    "normalize_unit",
    "FactorResolution",
    "FactorResolver",
    "PrecursorFactor",
    "EmissionFactorSearch",
    "TokenBucket",
]
