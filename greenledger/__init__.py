# -*- coding: utf-8 -*-
"""
GreenLedger: GHG Emissions Calculation & Compliance Reporting
=============================================================

This package turns activity data into greenhouse-gas figures and signed
compliance reports. It supports:

- Factor Resolution: custom, catalog, default, external and estimated
  emission factors with a location-based grid factor chain
- Activity Calculation: tiered emissions with CBAM precursor estimates
- Aggregation: scope totals, Carbon Footprint of Product (ISO 14067) and
  Carbon Footprint of Organization (ISO 14064-1)
- Standards: EU CBAM, UK CBAM, China carbon market, Korea K-ESG,
  Japan MAFF ESG and Thailand Thai-ESG requirements and validation
- Reports: PDF/XLSX rendering, batch generation with progress tracking
- Digital Signatures: SHA-256 content binding, verification, revocation
- Audit Trail: immutable log with retention cleanup and CSV export
- Prometheus metrics and a FastAPI REST API
- Thread-safe configuration with GL_LEDGER_ env prefix

Key Components:
    - factors: FactorResolver and EmissionFactorSearch
    - calculation: ActivityCalculator, AggregationEngine, ProjectAnalytics
    - standards: StandardRegistry and ValidationEngine
    - reports: ReportAssembler, ReportRenderer, ReportGenerator
    - signatures: SignatureService
    - audit: AuditTrail
    - config: LedgerConfig with GL_LEDGER_ env prefix
    - setup: ReportingService facade

Example:
    >>> from greenledger import ReportingService
    >>> service = ReportingService()
    >>> service.startup()
    >>> service.calculate_all_pending("project-1").summary
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration and errors
# ---------------------------------------------------------------------------
from greenledger.config import LedgerConfig, get_config, reset_config, set_config
from greenledger.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    GreenLedgerException,
    InternalError,
    NotFoundError,
    ReportRenderingError,
)

# ---------------------------------------------------------------------------
# Pipeline components
# ---------------------------------------------------------------------------
from greenledger.audit import AuditTrail
from greenledger.calculation import ActivityCalculator, AggregationEngine, ProjectAnalytics
from greenledger.factors import EmissionFactorSearch, FactorResolver
from greenledger.reports import ReportAssembler, ReportGenerator, ReportRenderer
from greenledger.signatures import SignatureService
from greenledger.standards import StandardRegistry, ValidationEngine

# ---------------------------------------------------------------------------
# Service facade
# ---------------------------------------------------------------------------
from greenledger.setup import (
    ReportingService,
    configure_reporting_service,
    get_reporting_service,
)

__all__ = [
    "__version__",
    # Configuration
    "LedgerConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Errors
    "GreenLedgerException",
    "NotFoundError",
    "BadRequestError",
    "ForbiddenError",
    "ConflictError",
    "InternalError",
    "ReportRenderingError",
    # Components
    "FactorResolver",
    "EmissionFactorSearch",
    "ActivityCalculator",
    "AggregationEngine",
    "ProjectAnalytics",
    "StandardRegistry",
    "ValidationEngine",
    "ReportAssembler",
    "ReportRenderer",
    "ReportGenerator",
    "SignatureService",
    "AuditTrail",
    # Facade
    "ReportingService",
    "configure_reporting_service",
    "get_reporting_service",
]
