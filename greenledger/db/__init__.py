"""
Database module for GreenLedger
Provides SQLAlchemy models and database utilities
"""

from greenledger.db.base import (
    Base,
    build_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from greenledger.db.models import (
    ActivityRecord,
    AuditLogRecord,
    CFOResultRecord,
    CFPResultRecord,
    EmissionFactorRecord,
    GridEmissionFactorRecord,
    PrecursorCalculationRecord,
    PrecursorFactorRecord,
    ProjectRecord,
    ReportRecord,
    SignatureRecord,
)

__all__ = [
    "Base",
    "build_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
    "ProjectRecord",
    "ActivityRecord",
    "EmissionFactorRecord",
    "GridEmissionFactorRecord",
    "PrecursorFactorRecord",
    "PrecursorCalculationRecord",
    "CFPResultRecord",
    "CFOResultRecord",
    "ReportRecord",
    "SignatureRecord",
    "AuditLogRecord",
]
