# -*- coding: utf-8 -*-
"""
GreenLedger Reports

Report document assembly, PDF/XLSX rendering and the generation workflow
(single, batch, preview, regenerate, delete).

Author: GreenLang Platform Team
Date: March 2026
"""

from greenledger.reports.assembler import ReportAssembler, coerce_options
from greenledger.reports.generator import ReportGenerator, batch_cache_key
from greenledger.reports.renderer import ReportRenderer, sanitize_name

__all__ = [
    "ReportAssembler",
    "ReportGenerator",
    "ReportRenderer",
    "batch_cache_key",
    "coerce_options",
    "sanitize_name",
]
