# -*- coding: utf-8 -*-
"""
Reporting Service Setup - GHG Emissions Reporting Pipeline

Provides ``configure_reporting_service(app)`` which wires up the reporting
pipeline (factor resolution, activity calculation, CFP/CFO aggregation,
standards validation, report generation, digital signatures and the audit
trail) and mounts the REST API.

Also exposes ``get_reporting_service(app)`` for programmatic access and the
``ReportingService`` facade class.

Usage:
    >>> from fastapi import FastAPI
    >>> from greenledger.setup import configure_reporting_service
    >>> app = FastAPI()
    >>> configure_reporting_service(app)

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

import requests
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from greenledger.audit.trail import AuditTrail
from greenledger.cache import CacheBackend, InMemoryCache, RedisCache
from greenledger.calculation.aggregation import AggregationEngine
from greenledger.calculation.analytics import ProjectAnalytics
from greenledger.calculation.calculator import ActivityCalculator
from greenledger.config import LedgerConfig, get_config
from greenledger.db.base import build_engine, create_session_factory, init_db
from greenledger.determinism import utcnow
from greenledger.exceptions import GreenLedgerException, error_envelope
from greenledger.factors.resolver import FactorResolver
from greenledger.factors.search import EmissionFactorSearch
from greenledger.models import (
    AuditSummary,
    BatchCalculationResult,
    BatchManifest,
    BatchReportResult,
    BatchReportStatus,
    CalculationResult,
    CFOResult,
    CFPResult,
    ProjectTotals,
    ReportOutcome,
    ReportStandard,
    RevocationResult,
    SignatureOutcome,
    StandardRequirements,
    VerificationResult,
)
from greenledger.reports.assembler import OptionsLike, ReportAssembler
from greenledger.reports.generator import ReportGenerator
from greenledger.reports.renderer import ReportRenderer
from greenledger.signatures.service import SignatureService
from greenledger.standards.registry import StandardLike, StandardRegistry
from greenledger.standards.validation import ValidationEngine

logger = logging.getLogger(__name__)


# ===================================================================
# ReportingService facade
# ===================================================================

# Thread-safe singleton lock
_singleton_lock = threading.Lock()
_singleton_instance: Optional["ReportingService"] = None


def _build_cache(config: LedgerConfig) -> CacheBackend:
    if config.redis_url:
        logger.info("Using Redis cache at %s", config.redis_url)
        return RedisCache(url=config.redis_url)
    return InMemoryCache(max_size=config.cache_max_size)


class ReportingService:
    """Unified facade over the emissions reporting pipeline.

    Every component shares one session factory and one cache, so the
    facade can be pointed at an in-memory database in tests.

    Attributes:
        config: LedgerConfig instance.
        engine: SQLAlchemy engine.
        session_factory: Session factory shared by every component.
        cache: Cache backend (Redis when ``redis_url`` is set).
        audit: AuditTrail instance.
        search: EmissionFactorSearch instance.
        resolver: FactorResolver instance.
        calculator: ActivityCalculator instance.
        aggregation: AggregationEngine instance.
        analytics: ProjectAnalytics instance.
        registry: StandardRegistry instance.
        validator: ValidationEngine instance.
        assembler: ReportAssembler instance.
        renderer: ReportRenderer instance.
        generator: ReportGenerator instance.
        signatures: SignatureService instance.

    Example:
        >>> service = ReportingService()
        >>> service.calculate_all_pending("project-1").summary
        {'total': 3, 'calculated': 3, 'errors': 0}
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        engine: Optional[Engine] = None,
        session_factory: Optional[sessionmaker] = None,
        cache: Optional[CacheBackend] = None,
        http_session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the Reporting Service facade.

        Args:
            config: Optional ledger config. Uses global config if None.
            engine: Optional engine; built from ``database_url`` if None.
            session_factory: Optional session factory bound to ``engine``.
            cache: Optional cache backend.
            http_session: Optional ``requests`` session for factor search.
            clock: UTC clock used for report and signature timestamps.
        """
        self.config = config or get_config()
        logging.getLogger("greenledger").setLevel(self.config.log_level.upper())

        self.engine = engine or build_engine(self.config.database_url)
        self.session_factory = session_factory or create_session_factory(self.engine)
        self.cache = cache or _build_cache(self.config)

        self.audit = AuditTrail(self.session_factory, self.cache, config=self.config)
        self.search = EmissionFactorSearch(self.cache, config=self.config, session=http_session)
        self.resolver = FactorResolver(
            self.session_factory, self.cache, config=self.config, search=self.search,
        )
        self.calculator = ActivityCalculator(
            self.session_factory, self.resolver, self.audit, config=self.config,
        )
        self.aggregation = AggregationEngine(self.session_factory, self.audit, config=self.config)
        self.analytics = ProjectAnalytics(self.session_factory, self.aggregation)
        self.registry = StandardRegistry()
        self.validator = ValidationEngine(self.registry)
        self.assembler = ReportAssembler(
            self.session_factory, self.aggregation, registry=self.registry, clock=clock,
        )
        self.renderer = ReportRenderer(config=self.config, registry=self.registry, clock=clock)
        self.generator = ReportGenerator(
            self.session_factory,
            self.cache,
            self.assembler,
            self.validator,
            self.renderer,
            self.audit,
            registry=self.registry,
            config=self.config,
        )
        self.signatures = SignatureService(
            self.session_factory, self.audit, registry=self.registry,
            config=self.config, clock=clock,
        )
        self._started = False

        logger.info("ReportingService facade created")

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate_activity(self, activity_id: str, **options: Any) -> CalculationResult:
        return self.calculator.calculate(activity_id, **options)

    def calculate_all_pending(
        self,
        project_id: str,
        include_precursors: bool = False,
        user_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchCalculationResult:
        return self.calculator.calculate_all(
            project_id,
            include_precursors=include_precursors,
            user_id=user_id,
            cancel_event=cancel_event,
        )

    def compute_cfp(self, project_id: str, **options: Any) -> CFPResult:
        return self.aggregation.compute_cfp(project_id, **options)

    def compute_cfo(self, project_id: str, **options: Any) -> CFOResult:
        return self.aggregation.compute_cfo(project_id, **options)

    def compute_both(self, project_id: str, **options: Any) -> Tuple[CFPResult, CFOResult]:
        return self.aggregation.compute_both(project_id, **options)

    def project_totals(self, project_id: str) -> ProjectTotals:
        return self.analytics.project_totals(project_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def generate_report(
        self,
        project_id: str,
        standard: StandardLike,
        fmt: Optional[str] = None,
        options: OptionsLike = None,
        user_id: Optional[str] = None,
    ) -> ReportOutcome:
        return self.generator.generate_report(project_id, standard, fmt, options, user_id)

    def batch_generate_reports(
        self,
        project_id: str,
        standards: Sequence[str],
        fmt: Optional[str] = None,
        options: OptionsLike = None,
        user_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchReportResult:
        return self.generator.generate_batch_reports(
            project_id, standards, fmt, options, user_id, cancel_event=cancel_event,
        )

    def get_batch_status(self, batch_id: str) -> BatchReportStatus:
        return self.generator.get_batch_status(batch_id)

    def get_batch_manifest(self, batch_id: str) -> BatchManifest:
        return self.generator.get_batch_manifest(batch_id)

    def standard_requirements(
        self,
        standard: Optional[Union[ReportStandard, str]] = None,
    ) -> Union[StandardRequirements, list]:
        """Requirements of one standard, or of every standard when omitted."""
        if standard is None:
            return self.registry.list_standards()
        return self.registry.requirements_for(standard)

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def sign_report(
        self,
        report_id: str,
        user_id: str,
        user_role: str,
        **options: Any,
    ) -> SignatureOutcome:
        return self.signatures.sign_report(report_id, user_id, user_role, **options)

    def verify_signature(self, report_id: str, user_id: Optional[str] = None) -> VerificationResult:
        return self.signatures.verify_report_signature(report_id, user_id=user_id)

    def revoke_signature(
        self,
        signature_id: str,
        user_id: str,
        user_role: str,
        reason: Optional[str] = None,
    ) -> RevocationResult:
        return self.signatures.revoke_signature(signature_id, user_id, user_role, reason)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def get_audit_summary(
        self,
        project_id: str,
        start_date: Optional[Any] = None,
        end_date: Optional[Any] = None,
    ) -> AuditSummary:
        return self.audit.get_summary(project_id, start_date, end_date)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Get reporting service metrics summary.

        Returns:
            Dictionary with service metric summaries.
        """
        return {
            "started": self._started,
            "cache": self.cache.get_stats(),
            "standards": [s.value for s in ReportStandard],
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self) -> None:
        """Create tables and mark the service started.

        Safe to call multiple times.
        """
        if self._started:
            logger.debug("ReportingService already started; skipping")
            return

        logger.info("ReportingService starting up...")
        init_db(self.engine)
        self._started = True
        logger.info("ReportingService startup complete")

    def shutdown(self) -> None:
        """Shutdown the reporting service and release resources."""
        if not self._started:
            return

        self.engine.dispose()
        self._started = False
        logger.info("ReportingService shut down")


# ===================================================================
# Thread-safe singleton access
# ===================================================================


def _get_singleton() -> ReportingService:
    """Get or create the singleton ReportingService instance.

    Returns:
        The singleton ReportingService.
    """
    global _singleton_instance
    if _singleton_instance is None:
        with _singleton_lock:
            if _singleton_instance is None:
                _singleton_instance = ReportingService()
    return _singleton_instance


# ===================================================================
# FastAPI integration
# ===================================================================


def _handle_ledger_exception(request: Any, exc: GreenLedgerException) -> Any:
    from fastapi.responses import JSONResponse

    if exc.status_code >= 500:
        logger.error("Request %s failed: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_envelope(exc))


def configure_reporting_service(
    app: Any,
    config: Optional[LedgerConfig] = None,
    service: Optional[ReportingService] = None,
) -> ReportingService:
    """Configure the Reporting Service on a FastAPI application.

    Creates the ReportingService (unless one is given), stores it in
    app.state, mounts the reporting API router, registers the error
    envelope handler and starts the service.

    Args:
        app: FastAPI application instance.
        config: Optional ledger config.
        service: Optional pre-built service, e.g. bound to a test database.

    Returns:
        ReportingService instance.
    """
    global _singleton_instance

    service = service or ReportingService(config=config)

    # Store as singleton
    with _singleton_lock:
        _singleton_instance = service

    # Attach to app state
    app.state.reporting_service = service

    app.include_router(get_router())
    app.add_exception_handler(GreenLedgerException, _handle_ledger_exception)
    logger.info("Reporting service API router mounted")

    # Start service
    service.startup()

    logger.info("Reporting service configured on app")
    return service


def get_reporting_service(app: Any = None) -> ReportingService:
    """Get the ReportingService instance from app state.

    Without an app the process-wide singleton is returned, created from
    the global config on first use.

    Args:
        app: FastAPI application instance.

    Returns:
        ReportingService instance.

    Raises:
        RuntimeError: If reporting service not configured.
    """
    if app is None:
        return _get_singleton()
    service = getattr(app.state, "reporting_service", None)
    if service is None:
        raise RuntimeError(
            "Reporting service not configured. "
            "Call configure_reporting_service(app) first."
        )
    return service


def get_router() -> Any:
    """Get the reporting API router.

    Returns:
        FastAPI APIRouter mounted at ``/api/v1``.
    """
    from greenledger.api.router import router
    return router


__all__ = [
    "ReportingService",
    "configure_reporting_service",
    "get_reporting_service",
    "get_router",
]
