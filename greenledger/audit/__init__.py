# -*- coding: utf-8 -*-
"""
GreenLedger Audit Trail

Immutable, queryable log of state-changing pipeline operations with a
seven-year default retention window.

Author: GreenLang Platform Team
Date: March 2026
"""

from greenledger.audit.trail import CSV_HEADERS, AuditTrail

__all__ = ["AuditTrail", "CSV_HEADERS"]
