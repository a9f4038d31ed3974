# -*- coding: utf-8 -*-
"""
Report Generation Workflow

Orchestrates assemble -> validate -> render -> persist for single reports
and batches, plus the report lifecycle operations around them.

Features:
    - Single report generation with project/standard/activity preconditions
    - Preview (document and validation only, nothing written)
    - Regenerate in place and delete, both refused for signed reports
    - Batch generation across standards with per-standard failure isolation,
      a cached progress record (``batch:{id}``) updated under a lock after
      every standard, and cooperative cancellation between standards
    - Batch status lookup that falls back to persisted report rows
    - Batch manifest listing each report with its validation flags

A report whose validation has errors is stored as ``draft``; otherwise it
is ``generated``. When rendering fails the report is still stored as a
draft with the render error, and the failure propagates.

Example:
    >>> outcome = generator.generate_report("project-1", "eu_cbam", "pdf")
    >>> outcome.status
    <ReportStatus.GENERATED: 'generated'>

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from greenledger import metrics
from greenledger.audit.trail import AuditTrail
from greenledger.cache import CacheBackend
from greenledger.config import LedgerConfig, get_config
from greenledger.db.base import session_scope
from greenledger.db.models import ActivityRecord, ProjectRecord, ReportRecord
from greenledger.determinism import new_id, utcnow_naive
from greenledger.exceptions import (
    BadRequestError,
    ConflictError,
    GreenLedgerException,
    NotFoundError,
    ReportRenderingError,
)
from greenledger.models import (
    AuditAction,
    BatchManifest,
    BatchManifestItem,
    BatchReportResult,
    BatchReportStatus,
    BatchStatus,
    BatchUnitError,
    BatchWarning,
    CalculationStatus,
    ReportData,
    ReportFormat,
    ReportOutcome,
    ReportStandard,
    ReportStatus,
    ReportSummary,
    ValidationResult,
)
from greenledger.reports.assembler import OptionsLike, ReportAssembler
from greenledger.reports.renderer import ReportRenderer
from greenledger.standards.registry import StandardLike, StandardRegistry
from greenledger.standards.validation import ValidationEngine

logger = logging.getLogger(__name__)

NO_CALCULATED_ACTIVITIES = "No calculated activities found. Please calculate emissions first."


def batch_cache_key(batch_id: str) -> str:
    return f"batch:{batch_id}"


def _status_for(validation: ValidationResult) -> ReportStatus:
    return ReportStatus.DRAFT if validation.errors else ReportStatus.GENERATED


def _summary_from_row(row: ReportRecord, include_data: bool = False) -> ReportSummary:
    return ReportSummary(
        id=row.id,
        project_id=row.project_id,
        standard=row.standard,
        format=row.format,
        status=row.status,
        file_path=row.file_path,
        batch_id=row.batch_id,
        validation_errors=list(row.validation_errors or []),
        validation_warnings=list(row.validation_warnings or []),
        completeness=row.completeness,
        render_error=row.render_error,
        generated_by=row.generated_by,
        signed_at=row.signed_at,
        signed_by=row.signed_by,
        signature_id=row.signature_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        report_data=row.report_data if include_data else None,
    )


class ReportGenerator:
    """Report generation, batching and lifecycle operations."""

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: CacheBackend,
        assembler: ReportAssembler,
        validator: ValidationEngine,
        renderer: ReportRenderer,
        audit: AuditTrail,
        registry: Optional[StandardRegistry] = None,
        config: Optional[LedgerConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self._session_factory = session_factory
        self._cache = cache
        self._assembler = assembler
        self._validator = validator
        self._renderer = renderer
        self._audit = audit
        self._registry = registry or StandardRegistry()
        self._progress_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _configured_standards(self, project_id: str) -> List[str]:
        with session_scope(self._session_factory) as session:
            project = session.get(ProjectRecord, project_id)
            if project is None:
                raise NotFoundError(message="Project not found", context={"project_id": project_id})
            return list(project.reporting_standards or [])

    def _require_calculated(self, project_id: str) -> None:
        with session_scope(self._session_factory) as session:
            count = session.execute(
                select(func.count(ActivityRecord.id)).where(
                    ActivityRecord.project_id == project_id,
                    ActivityRecord.calculation_status == CalculationStatus.CALCULATED.value,
                )
            ).scalar_one()
        if not count:
            raise BadRequestError(
                message=NO_CALCULATED_ACTIVITIES, context={"project_id": project_id},
            )

    def _parse_format(self, fmt: Union[ReportFormat, str, None]) -> ReportFormat:
        try:
            return ReportFormat(fmt or self.config.default_report_format)
        except ValueError as exc:
            raise BadRequestError(
                message=f"Invalid report format: {fmt}",
                context={"valid_formats": [f.value for f in ReportFormat]},
            ) from exc

    # ------------------------------------------------------------------
    # Single report
    # ------------------------------------------------------------------

    def generate_report(
        self,
        project_id: str,
        standard: StandardLike,
        fmt: Union[ReportFormat, str, None] = None,
        options: OptionsLike = None,
        user_id: Optional[str] = None,
    ) -> ReportOutcome:
        """Generate, validate, render and persist one report.

        Raises:
            NotFoundError: Unknown project.
            BadRequestError: Unknown or unconfigured standard, bad format,
                or no calculated activities.
            ReportRenderingError: Rendering failed; a draft row was stored.
        """
        parsed = self._registry.parse(standard)
        report_format = self._parse_format(fmt)
        if parsed.value not in self._configured_standards(project_id):
            raise BadRequestError(
                message=f"Standard {parsed.value} is not configured for this project",
                context={"project_id": project_id},
            )
        self._require_calculated(project_id)

        outcome = self._generate_one(project_id, parsed, report_format, options, user_id)
        self._audit.record(
            AuditAction.GENERATE_REPORT,
            "report",
            outcome.id,
            {
                "standard": parsed.value,
                "format": report_format.value,
                "status": outcome.status.value,
                "completeness": outcome.validation.completeness,
            },
            user_id=user_id,
            project_id=project_id,
        )
        return outcome

    def _generate_one(
        self,
        project_id: str,
        standard: ReportStandard,
        report_format: ReportFormat,
        options: OptionsLike,
        user_id: Optional[str],
        batch_id: Optional[str] = None,
    ) -> ReportOutcome:
        report_data = self._assembler.generate_report_data(project_id, standard, options)
        validation = self._validator.validate(report_data, standard)
        report_id = new_id()

        try:
            artifacts = self._renderer.render(report_data, report_format, standard)
        except ReportRenderingError as exc:
            self._persist_new(
                report_id, project_id, standard, report_format, ReportStatus.DRAFT,
                report_data, validation, user_id, batch_id, render_error=exc.message,
            )
            metrics.record_report_generated(standard.value, "render_failed")
            raise

        status = _status_for(validation)
        created_at = self._persist_new(
            report_id, project_id, standard, report_format, status,
            report_data, validation, user_id, batch_id,
            file_path=artifacts.file_path, files=artifacts.files,
        )
        metrics.record_report_generated(standard.value, status.value)
        logger.info(
            "Generated %s report %s for project %s: status=%s, completeness=%d%%",
            standard.value, report_id, project_id, status.value, validation.completeness,
        )
        return ReportOutcome(
            id=report_id,
            project_id=project_id,
            standard=standard,
            format=report_format,
            status=status,
            validation=validation,
            file_path=artifacts.file_path,
            files=artifacts.files,
            batch_id=batch_id,
            created_at=created_at,
        )

    def _persist_new(
        self,
        report_id: str,
        project_id: str,
        standard: ReportStandard,
        report_format: ReportFormat,
        status: ReportStatus,
        report_data: ReportData,
        validation: ValidationResult,
        user_id: Optional[str],
        batch_id: Optional[str],
        file_path: Optional[str] = None,
        files: Optional[List[str]] = None,
        render_error: Optional[str] = None,
    ) -> datetime:
        now = utcnow_naive()
        with session_scope(self._session_factory) as session:
            session.add(ReportRecord(
                id=report_id,
                project_id=project_id,
                batch_id=batch_id,
                standard=standard.value,
                format=report_format.value,
                status=status.value,
                report_data=report_data.to_document(),
                file_path=file_path,
                files=files or [],
                validation_errors=[i.model_dump(mode="json") for i in validation.errors],
                validation_warnings=[i.model_dump(mode="json") for i in validation.warnings],
                missing_required=list(validation.missing_required),
                completeness=validation.completeness,
                render_error=render_error,
                generated_by=user_id,
                created_at=now,
                updated_at=now,
            ))
        return now

    def preview_report(
        self,
        project_id: str,
        standard: StandardLike,
        options: OptionsLike = None,
    ) -> Tuple[ReportData, ValidationResult]:
        """Assemble and validate without rendering or persisting."""
        report_data = self._assembler.generate_report_data(project_id, standard, options)
        return report_data, self._validator.validate(report_data, standard)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _load_report(self, session, project_id: Optional[str], report_id: str) -> ReportRecord:
        stmt = select(ReportRecord).where(ReportRecord.id == report_id)
        if project_id:
            stmt = stmt.where(ReportRecord.project_id == project_id)
        row = session.execute(stmt).scalars().first()
        if row is None:
            raise NotFoundError(message="Report not found", context={"report_id": report_id})
        return row

    def get_report(self, project_id: Optional[str], report_id: str) -> ReportSummary:
        with session_scope(self._session_factory) as session:
            return _summary_from_row(self._load_report(session, project_id, report_id), True)

    def list_reports(
        self,
        project_id: str,
        standard: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Reports of a project, newest first, without their documents."""
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        filters = [ReportRecord.project_id == project_id]
        if standard:
            filters.append(ReportRecord.standard == standard)
        if status:
            filters.append(ReportRecord.status == status)

        with session_scope(self._session_factory) as session:
            total = session.execute(
                select(func.count(ReportRecord.id)).where(*filters)
            ).scalar_one()
            rows = session.execute(
                select(ReportRecord)
                .where(*filters)
                .order_by(ReportRecord.created_at.desc(), ReportRecord.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars().all()
            reports = [_summary_from_row(row) for row in rows]

        return {"reports": reports, "total": total, "page": page, "limit": limit}

    def regenerate_report(
        self,
        project_id: str,
        report_id: str,
        options: OptionsLike = None,
        user_id: Optional[str] = None,
    ) -> ReportOutcome:
        """Rebuild a report's document, validation and files in place.

        Raises:
            NotFoundError: Unknown report.
            ConflictError: The report is signed.
            ReportRenderingError: Rendering failed; the row is left as draft.
        """
        with session_scope(self._session_factory) as session:
            row = self._load_report(session, project_id, report_id)
            if row.status == ReportStatus.SIGNED.value:
                raise ConflictError(
                    message="Cannot regenerate a signed report",
                    context={"report_id": report_id},
                )
            standard = ReportStandard(row.standard)
            report_format = ReportFormat(row.format)
            batch_id = row.batch_id
            created_at = row.created_at

        report_data = self._assembler.generate_report_data(project_id, standard, options)
        validation = self._validator.validate(report_data, standard)
        try:
            artifacts = self._renderer.render(report_data, report_format, standard)
        except ReportRenderingError as exc:
            self._update_existing(
                report_id, ReportStatus.DRAFT, report_data, validation, render_error=exc.message,
            )
            raise

        status = _status_for(validation)
        self._update_existing(
            report_id, status, report_data, validation,
            file_path=artifacts.file_path, files=artifacts.files,
        )
        self._audit.record(
            AuditAction.REGENERATE_REPORT,
            "report",
            report_id,
            {"standard": standard.value, "status": status.value},
            user_id=user_id,
            project_id=project_id,
        )
        return ReportOutcome(
            id=report_id,
            project_id=project_id,
            standard=standard,
            format=report_format,
            status=status,
            validation=validation,
            file_path=artifacts.file_path,
            files=artifacts.files,
            batch_id=batch_id,
            created_at=created_at,
        )

    def _update_existing(
        self,
        report_id: str,
        status: ReportStatus,
        report_data: ReportData,
        validation: ValidationResult,
        file_path: Optional[str] = None,
        files: Optional[List[str]] = None,
        render_error: Optional[str] = None,
    ) -> None:
        with session_scope(self._session_factory) as session:
            row = session.get(ReportRecord, report_id)
            if row is None:
                raise NotFoundError(message="Report not found", context={"report_id": report_id})
            if row.status == ReportStatus.SIGNED.value:
                raise ConflictError(
                    message="Cannot regenerate a signed report",
                    context={"report_id": report_id},
                )
            row.status = status.value
            row.report_data = report_data.to_document()
            if file_path is not None:
                row.file_path = file_path
                row.files = files or []
            row.validation_errors = [i.model_dump(mode="json") for i in validation.errors]
            row.validation_warnings = [i.model_dump(mode="json") for i in validation.warnings]
            row.missing_required = list(validation.missing_required)
            row.completeness = validation.completeness
            row.render_error = render_error
            row.updated_at = utcnow_naive()

    def delete_report(self, project_id: str, report_id: str, user_id: Optional[str] = None) -> None:
        """Delete an unsigned report row.

        Raises:
            NotFoundError: Unknown report.
            ConflictError: The report is signed.
        """
        with session_scope(self._session_factory) as session:
            row = self._load_report(session, project_id, report_id)
            if row.status == ReportStatus.SIGNED.value:
                raise ConflictError(
                    message="Cannot delete a signed report",
                    context={"report_id": report_id},
                )
            standard = row.standard
            session.delete(row)

        logger.info("Deleted report %s from project %s", report_id, project_id)
        self._audit.record(
            AuditAction.DELETE,
            "report",
            report_id,
            {"standard": standard},
            user_id=user_id,
            project_id=project_id,
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def generate_batch_reports(
        self,
        project_id: str,
        standards: Sequence[StandardLike],
        fmt: Union[ReportFormat, str, None] = None,
        options: OptionsLike = None,
        user_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchReportResult:
        """Generate one report per configured standard.

        Unknown and unconfigured standards become warnings. Each standard is
        generated independently; one failing never affects the others.

        Raises:
            BadRequestError: Empty standards list, bad format, or no
                requested standard is configured for the project.
            NotFoundError: Unknown project.
        """
        if not standards:
            raise BadRequestError(message="Standards array is required")
        report_format = self._parse_format(fmt)
        configured = self._configured_standards(project_id)

        valid: List[ReportStandard] = []
        unknown: List[str] = []
        unconfigured: List[str] = []
        for item in standards:
            key = item.value if isinstance(item, ReportStandard) else str(item)
            if not self._registry.is_supported(key):
                unknown.append(key)
                continue
            parsed = self._registry.parse(key)
            if parsed.value not in configured:
                unconfigured.append(parsed.value)
            elif parsed not in valid:
                valid.append(parsed)

        if not valid:
            raise BadRequestError(
                message="None of the specified standards are configured for this project",
                context={"project_id": project_id, "standards": [str(s) for s in standards]},
            )

        batch_id = new_id()
        result = BatchReportResult(batch_id=batch_id)
        if unconfigured:
            result.warnings.append(BatchWarning(
                type="invalid_standards",
                message="Some standards are not configured for this project",
                standards=unconfigured,
            ))
        if unknown:
            result.warnings.append(BatchWarning(
                type="unknown_standards",
                message="Some standards are not supported",
                standards=unknown,
            ))
        conflicts = self._registry.overlapping_fields(valid)["conflicts"]
        if conflicts:
            result.warnings.append(BatchWarning(
                type="data_conflicts",
                message="Some standards have conflicting data requirements",
                standards=sorted({s for names in conflicts.values() for s in names}),
            ))

        progress = BatchReportStatus(
            id=batch_id,
            project_id=project_id,
            standards=[s.value for s in valid],
            format=report_format.value,
            total_reports=len(valid),
            created_at=utcnow_naive(),
        )
        self._store_progress(progress)

        for standard in valid:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    "Batch %s cancelled after %d of %d standards",
                    batch_id, progress.processed_reports, progress.total_reports,
                )
                result.status = BatchStatus.CANCELLED
                break

            try:
                self._require_calculated(project_id)
                outcome = self._generate_one(
                    project_id, standard, report_format, options, user_id, batch_id=batch_id,
                )
            except Exception as exc:
                message = exc.message if isinstance(exc, GreenLedgerException) else str(exc)
                logger.warning(
                    "Batch %s: %s report failed: %s", batch_id, standard.value, message,
                )
                error = BatchUnitError(standard=standard.value, error=message)
                result.errors.append(error)
                with self._progress_lock:
                    progress.errors.append(error)
                    self._advance(progress, generated=False)
                continue

            result.generated.append(outcome)
            with self._progress_lock:
                self._advance(progress, generated=True)

        if result.status is not BatchStatus.CANCELLED:
            result.status = (
                BatchStatus.COMPLETED if not result.errors else BatchStatus.COMPLETED_WITH_ERRORS
            )
        with self._progress_lock:
            progress.status = result.status
            if result.status is not BatchStatus.CANCELLED:
                progress.progress = 100
            self._store_progress(progress)

        self._audit.record(
            AuditAction.BATCH_GENERATE_REPORT,
            "report",
            batch_id,
            {
                "standards": [s.value for s in valid],
                "generated": len(result.generated),
                "errors": len(result.errors),
                "status": result.status.value,
            },
            user_id=user_id,
            project_id=project_id,
        )
        return result

    def _advance(self, progress: BatchReportStatus, generated: bool) -> None:
        progress.processed_reports += 1
        if generated:
            progress.generated_reports += 1
        progress.progress = round(progress.processed_reports * 100 / progress.total_reports)
        self._store_progress(progress)

    def _store_progress(self, progress: BatchReportStatus) -> None:
        self._cache.set(
            batch_cache_key(progress.id),
            progress.model_dump(mode="json"),
            self.config.batch_status_ttl_seconds,
        )
        if progress.project_id:
            metrics.update_batch_progress(progress.project_id, progress.progress)

    def get_batch_status(self, batch_id: str) -> BatchReportStatus:
        """Cached progress record, else a summary rebuilt from report rows.

        Raises:
            NotFoundError: Neither the cache nor any report knows the batch.
        """
        cached = self._cache.get(batch_cache_key(batch_id))
        if cached is not None:
            return BatchReportStatus.model_validate(cached)

        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(ReportRecord)
                .where(ReportRecord.batch_id == batch_id)
                .order_by(ReportRecord.created_at, ReportRecord.id)
            ).scalars().all()
            if not rows:
                raise NotFoundError(message="Batch not found", context={"batch_id": batch_id})
            generated = sum(1 for row in rows if row.render_error is None)
            return BatchReportStatus(
                id=batch_id,
                project_id=rows[0].project_id,
                standards=[row.standard for row in rows],
                format=rows[0].format,
                status=BatchStatus.COMPLETED,
                progress=100,
                total_reports=len(rows),
                processed_reports=len(rows),
                generated_reports=generated,
                created_at=rows[0].created_at,
                reconstructed=True,
            )

    def get_batch_manifest(self, batch_id: str) -> BatchManifest:
        """Reports persisted for a batch, oldest first, with status counts.

        Raises:
            NotFoundError: No report row carries the batch id.
        """
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(ReportRecord, ProjectRecord.name)
                .join(ProjectRecord, ReportRecord.project_id == ProjectRecord.id)
                .where(ReportRecord.batch_id == batch_id)
                .order_by(ReportRecord.created_at, ReportRecord.id)
            ).all()
            if not rows:
                raise NotFoundError(
                    message="Batch not found or no reports generated",
                    context={"batch_id": batch_id},
                )
            reports = [
                BatchManifestItem(
                    id=report.id,
                    standard=report.standard,
                    format=report.format,
                    status=report.status,
                    file_path=report.file_path,
                    has_warnings=bool(report.validation_warnings),
                    has_errors=bool(report.validation_errors),
                    created_at=report.created_at,
                )
                for report, _ in rows
            ]
            project_id = rows[0][0].project_id
            project_name = rows[0][1]

        summary = {"total": len(reports)}
        for status in (ReportStatus.GENERATED, ReportStatus.DRAFT, ReportStatus.SIGNED):
            summary[status.value] = sum(1 for item in reports if item.status is status)
        return BatchManifest(
            batch_id=batch_id,
            project_id=project_id,
            project_name=project_name,
            reports=reports,
            summary=summary,
        )


__all__ = ["ReportGenerator", "batch_cache_key", "NO_CALCULATED_ACTIVITIES"]
