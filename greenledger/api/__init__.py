# -*- coding: utf-8 -*-
"""
GreenLedger REST API

FastAPI router exposing the reporting pipeline under ``/api/v1``.

Author: GreenLang Platform Team
Date: March 2026
"""

from greenledger.api.router import router

__all__ = ["router"]
