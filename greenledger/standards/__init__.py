# -*- coding: utf-8 -*-
"""
GreenLedger Reporting Standards

Static registry of the six supported standards and the validation engine
that checks report documents against them.

Author: GreenLang Platform Team
Date: March 2026
"""

from greenledger.standards.registry import (
    COMMON_REQUIRED_FIELDS,
    DEFAULT_DECLARATION,
    StandardDefinition,
    StandardRegistry,
)
from greenledger.standards.validation import ValidationEngine, has_field

__all__ = [
    "COMMON_REQUIRED_FIELDS",
    "DEFAULT_DECLARATION",
    "StandardDefinition",
    "StandardRegistry",
    "ValidationEngine",
    "has_field",
]
