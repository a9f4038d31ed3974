# -*- coding: utf-8 -*-
"""GreenLedger Exception Hierarchy.

Exception Hierarchy:
    GreenLedgerException (base)
    ├── NotFoundError          (404)
    ├── BadRequestError        (400)
    ├── ForbiddenError         (403)
    ├── ConflictError          (409)
    └── InternalError          (500)
        ├── ReportRenderingError
        └── ExternalSearchError

All exceptions carry rich context:
- error_code: Unique error identifier (``GL_LEDGER_NOT_FOUND_ERROR``)
- status_code: HTTP status used by the API layer
- context: Dictionary with error-specific details
- timestamp: When the error occurred

Factor-resolution misses are never raised; they degrade to lower-confidence
factor sources. Audit write failures are logged and swallowed by the audit
trail itself.

Example:
    >>> from greenledger.exceptions import NotFoundError
    >>> raise NotFoundError(
    ...     message="Activity not found",
    ...     context={"activity_id": "a-1"},
    ... )

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class GreenLedgerException(Exception):
    """Base exception for all GreenLedger errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "GL_LEDGER_NOT_FOUND_ERROR")
        status_code: HTTP status code for API responses
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    ERROR_PREFIX = "GL_LEDGER"
    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def _generate_error_code(self) -> str:
        """Generate error code from the class name.

        Returns:
            Error code like "GL_LEDGER_CONFLICT_ERROR"
        """
        error_type = re.sub(r"(?<!^)(?=[A-Z])", "_", self.__class__.__name__).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


# ==============================================================================
# Client Errors
# ==============================================================================

class NotFoundError(GreenLedgerException):
    """A referenced activity, report, factor, batch or signature does not exist."""

    status_code = 404


class BadRequestError(GreenLedgerException):
    """Invalid input for the requested operation.

    Example:
        >>> raise BadRequestError(
        ...     message="No calculated activities found",
        ...     context={"project_id": "p-1"},
        ... )
    """

    status_code = 400


class ForbiddenError(GreenLedgerException):
    """The caller's role may not perform the operation (sign, revoke)."""

    status_code = 403


class ConflictError(GreenLedgerException):
    """The target is in a state that forbids the operation.

    Raised for already-signed reports and already-revoked signatures.
    """

    status_code = 409


# ==============================================================================
# Server Errors
# ==============================================================================

class InternalError(GreenLedgerException):
    """Unexpected failure while serializing or rendering."""

    status_code = 500


class ReportRenderingError(InternalError):
    """A report artifact (PDF or XLSX) could not be written.

    The report generator persists the report as ``draft`` before
    re-raising so the failure stays visible to callers.
    """


class ExternalSearchError(InternalError):
    """The external emission-factor search service failed."""


# ==============================================================================
# Utilities
# ==============================================================================

def error_envelope(exc: GreenLedgerException) -> Dict[str, Any]:
    """Build the failure envelope returned by the API layer.

    Args:
        exc: The raised GreenLedger exception.

    Returns:
        Dictionary ``{"success": False, "error": {...}}``.
    """
    return {
        "success": False,
        "error": {
            "code": exc.error_code,
            "type": exc.__class__.__name__,
            "message": exc.message,
            "context": exc.context,
        },
    }


__all__ = [
    "GreenLedgerException",
    "NotFoundError",
    "BadRequestError",
    "ForbiddenError",
    "ConflictError",
    "InternalError",
    "ReportRenderingError",
    "ExternalSearchError",
    "error_envelope",
]
