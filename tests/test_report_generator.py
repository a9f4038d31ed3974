# -*- coding: utf-8 -*-
"""
Tests for ReportGenerator

Covers:
- Single report generation, statuses and preconditions
- Render failures persisted as drafts
- Preview, get, list, regenerate and delete
- Signed report protection
- Batch generation with warnings, failure isolation, progress and cancellation
- Batch status reconstruction from persisted rows
- Batch manifest listing and status counts
"""

import os
import threading

import pytest

from greenledger.db.base import session_scope
from greenledger.db.models import AuditLogRecord, ReportRecord
from greenledger.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ReportRenderingError,
)
from greenledger.models import BatchStatus, ReportFormat, ReportStatus
from greenledger.reports.generator import NO_CALCULATED_ACTIVITIES, batch_cache_key


def _report_row(session_factory, report_id):
    with session_scope(session_factory) as session:
        return session.get(ReportRecord, report_id)


def _mark_signed(session_factory, report_id):
    with session_scope(session_factory) as session:
        session.get(ReportRecord, report_id).status = ReportStatus.SIGNED.value


@pytest.fixture
def failing_render(renderer, monkeypatch):
    """Make rendering fail for the given standards."""
    original = renderer.render

    def _install(*standards):
        def render(report_data, fmt, standard):
            if str(getattr(standard, "value", standard)) in standards:
                raise ReportRenderingError(message="disk full")
            return original(report_data, fmt, standard)
        monkeypatch.setattr(renderer, "render", render)

    return _install


# =============================================================================
# Single report
# =============================================================================


class TestGenerateReport:
    """Test ReportGenerator.generate_report."""

    def test_generated(self, generator, calculated_project, eu_options, session_factory):
        outcome = generator.generate_report(
            calculated_project, "eu_cbam", "pdf", eu_options, user_id="user-1",
        )
        assert outcome.status is ReportStatus.GENERATED
        assert outcome.format is ReportFormat.PDF
        assert outcome.validation.valid is True
        assert os.path.exists(outcome.file_path)

        row = _report_row(session_factory, outcome.id)
        assert row.status == "generated"
        assert row.report_data["standardSpecific"]["cnCode"] == "7208"
        assert row.completeness == outcome.validation.completeness
        assert row.generated_by == "user-1"

    def test_draft_when_validation_fails(self, generator, calculated_project):
        """K-ESG without a reduction target is stored as draft."""
        outcome = generator.generate_report(calculated_project, "k_esg", "xlsx")
        assert outcome.status is ReportStatus.DRAFT
        assert outcome.validation.valid is False
        assert outcome.file_path.endswith(".xlsx")

    def test_default_format(self, generator, calculated_project):
        assert generator.generate_report(calculated_project, "uk_cbam").format is ReportFormat.PDF

    def test_both_formats(self, generator, calculated_project, eu_options):
        outcome = generator.generate_report(calculated_project, "eu_cbam", "both", eu_options)
        assert len(outcome.files) == 2
        assert outcome.file_path.endswith(".pdf")

    def test_audited(self, generator, calculated_project, session_factory):
        outcome = generator.generate_report(calculated_project, "thai_esg", "pdf")
        with session_scope(session_factory) as session:
            entry = session.query(AuditLogRecord).filter_by(action="GENERATE_REPORT").one()
            assert entry.entity_id == outcome.id
            assert entry.details["standard"] == "thai_esg"

    def test_unknown_project(self, generator):
        with pytest.raises(NotFoundError, match="Project not found"):
            generator.generate_report("missing", "eu_cbam")

    def test_unconfigured_standard(self, generator, make_project):
        project_id = make_project(standards=["eu_cbam"])
        with pytest.raises(BadRequestError, match="Standard k_esg is not configured"):
            generator.generate_report(project_id, "k_esg")

    def test_invalid_standard(self, generator, calculated_project):
        with pytest.raises(BadRequestError, match="Invalid standard"):
            generator.generate_report(calculated_project, "us_sec")

    def test_invalid_format(self, generator, calculated_project):
        with pytest.raises(BadRequestError, match="Invalid report format: docx"):
            generator.generate_report(calculated_project, "eu_cbam", "docx")

    def test_no_calculated_activities(self, generator, project_id, make_activity):
        make_activity(project_id)
        with pytest.raises(BadRequestError) as exc_info:
            generator.generate_report(project_id, "eu_cbam")
        assert exc_info.value.message == NO_CALCULATED_ACTIVITIES

    def test_render_failure_persists_draft(self, generator, calculated_project,
                                           failing_render, session_factory):
        failing_render("eu_cbam")
        with pytest.raises(ReportRenderingError):
            generator.generate_report(calculated_project, "eu_cbam")

        with session_scope(session_factory) as session:
            row = session.query(ReportRecord).one()
            assert row.status == "draft"
            assert row.render_error == "disk full"
            assert row.file_path is None


# =============================================================================
# Lifecycle
# =============================================================================


class TestReportLifecycle:
    """Test preview, get, list, regenerate and delete."""

    def test_preview_writes_nothing(self, generator, calculated_project, session_factory, config):
        data, validation = generator.preview_report(calculated_project, "k_esg")
        assert data.standard.value == "k_esg"
        assert validation.valid is False
        with session_scope(session_factory) as session:
            assert session.query(ReportRecord).count() == 0
        assert not os.path.exists(config.reports_dir)

    def test_get_report(self, generator, calculated_project, eu_options):
        outcome = generator.generate_report(calculated_project, "eu_cbam", "pdf", eu_options)
        summary = generator.get_report(calculated_project, outcome.id)
        assert summary.status == "generated"
        assert summary.report_data["project"]["name"] == "Busan Steel Works"

    def test_get_report_wrong_project(self, generator, calculated_project, project_id):
        outcome = generator.generate_report(calculated_project, "uk_cbam")
        with pytest.raises(NotFoundError, match="Report not found"):
            generator.get_report(project_id, outcome.id)

    def test_list_reports(self, generator, calculated_project):
        for standard in ("eu_cbam", "uk_cbam", "k_esg"):
            generator.generate_report(calculated_project, standard)

        listing = generator.list_reports(calculated_project, limit=2)
        assert listing["total"] == 3
        assert len(listing["reports"]) == 2
        assert all(r.report_data is None for r in listing["reports"])

        drafts = generator.list_reports(calculated_project, status="draft")
        assert [r.standard for r in drafts["reports"]] == ["k_esg"]

    def test_regenerate_picks_up_options(self, generator, calculated_project, k_esg_options,
                                         session_factory):
        outcome = generator.generate_report(calculated_project, "k_esg")
        assert outcome.status is ReportStatus.DRAFT

        regenerated = generator.regenerate_report(
            calculated_project, outcome.id, options=k_esg_options,
        )
        assert regenerated.id == outcome.id
        assert regenerated.status is ReportStatus.GENERATED
        row = _report_row(session_factory, outcome.id)
        assert row.report_data["standardSpecific"]["reductionTarget"] == "30% by 2030"

    def test_regenerate_signed_conflict(self, generator, calculated_project, session_factory):
        outcome = generator.generate_report(calculated_project, "uk_cbam")
        _mark_signed(session_factory, outcome.id)
        with pytest.raises(ConflictError, match="Cannot regenerate a signed report"):
            generator.regenerate_report(calculated_project, outcome.id)

    def test_delete(self, generator, calculated_project, session_factory):
        outcome = generator.generate_report(calculated_project, "uk_cbam")
        generator.delete_report(calculated_project, outcome.id)
        assert _report_row(session_factory, outcome.id) is None

    def test_delete_signed_conflict(self, generator, calculated_project, session_factory):
        outcome = generator.generate_report(calculated_project, "uk_cbam")
        _mark_signed(session_factory, outcome.id)
        with pytest.raises(ConflictError, match="Cannot delete a signed report"):
            generator.delete_report(calculated_project, outcome.id)
        assert _report_row(session_factory, outcome.id) is not None

    def test_delete_unknown(self, generator, calculated_project):
        with pytest.raises(NotFoundError):
            generator.delete_report(calculated_project, "missing")


# =============================================================================
# Batch
# =============================================================================


class TestBatchGeneration:
    """Test ReportGenerator.generate_batch_reports."""

    @pytest.fixture
    def batch_project(self, make_project, make_activity):
        pid = make_project(standards=["eu_cbam", "k_esg", "thai_esg"])
        make_activity(pid, calculation_status="calculated", total_emissions_kg_co2e=100.0)
        return pid

    def test_warnings_for_unknown_and_unconfigured(self, generator, batch_project):
        result = generator.generate_batch_reports(
            batch_project, ["eu_cbam", "k_esg", "uk_cbam", "us_sec"],
        )
        assert [o.standard.value for o in result.generated] == ["eu_cbam", "k_esg"]
        assert {w.type: w.standards for w in result.warnings} == {
            "invalid_standards": ["uk_cbam"],
            "unknown_standards": ["us_sec"],
        }
        assert result.status is BatchStatus.COMPLETED
        assert result.summary == {"requested": 2, "generated": 2, "failed": 0, "warnings": 2}
        assert all(o.batch_id == result.batch_id for o in result.generated)

    def test_duplicates_generated_once(self, generator, batch_project):
        result = generator.generate_batch_reports(batch_project, ["eu_cbam", "EU_CBAM"])
        assert len(result.generated) == 1

    def test_failure_isolated(self, generator, batch_project, failing_render):
        failing_render("k_esg")
        result = generator.generate_batch_reports(batch_project, ["eu_cbam", "k_esg", "thai_esg"])
        assert [o.standard.value for o in result.generated] == ["eu_cbam", "thai_esg"]
        assert [(e.standard, e.error) for e in result.errors] == [("k_esg", "disk full")]
        assert result.status is BatchStatus.COMPLETED_WITH_ERRORS

    def test_progress_cached(self, generator, batch_project, cache):
        result = generator.generate_batch_reports(batch_project, ["eu_cbam", "thai_esg"])
        assert batch_cache_key(result.batch_id) in cache

        status = generator.get_batch_status(result.batch_id)
        assert status.status is BatchStatus.COMPLETED
        assert status.progress == 100
        assert status.total_reports == 2
        assert status.processed_reports == 2
        assert status.generated_reports == 2
        assert status.reconstructed is False

    def test_failures_counted_in_progress(self, generator, batch_project, failing_render):
        failing_render("thai_esg")
        result = generator.generate_batch_reports(batch_project, ["eu_cbam", "thai_esg"])
        status = generator.get_batch_status(result.batch_id)
        assert status.processed_reports == 2
        assert status.generated_reports == 1
        assert [e.standard for e in status.errors] == ["thai_esg"]
        assert status.status is BatchStatus.COMPLETED_WITH_ERRORS

    def test_status_reconstructed_from_rows(self, generator, batch_project, cache):
        """Without the cached record the status is rebuilt from report rows."""
        result = generator.generate_batch_reports(batch_project, ["eu_cbam", "thai_esg"])
        cache.clear()
        status = generator.get_batch_status(result.batch_id)
        assert status.reconstructed is True
        assert sorted(status.standards) == ["eu_cbam", "thai_esg"]
        assert status.generated_reports == 2

    def test_unknown_batch(self, generator):
        with pytest.raises(NotFoundError, match="Batch not found"):
            generator.get_batch_status("missing")

    def test_cancelled(self, generator, batch_project, session_factory):
        cancel = threading.Event()
        cancel.set()
        result = generator.generate_batch_reports(
            batch_project, ["eu_cbam", "thai_esg"], cancel_event=cancel,
        )
        assert result.status is BatchStatus.CANCELLED
        assert result.generated == []
        assert generator.get_batch_status(result.batch_id).status is BatchStatus.CANCELLED
        with session_scope(session_factory) as session:
            assert session.query(ReportRecord).count() == 0

    def test_standards_required(self, generator, batch_project):
        with pytest.raises(BadRequestError, match="Standards array is required"):
            generator.generate_batch_reports(batch_project, [])

    def test_none_configured(self, generator, batch_project):
        with pytest.raises(BadRequestError, match="None of the specified standards"):
            generator.generate_batch_reports(batch_project, ["uk_cbam", "us_sec"])

    def test_no_calculated_activities_per_standard(self, generator, make_project):
        """Missing calculations fail each standard instead of the whole batch."""
        pid = make_project(standards=["eu_cbam"])
        result = generator.generate_batch_reports(pid, ["eu_cbam"])
        assert result.errors[0].error == NO_CALCULATED_ACTIVITIES
        assert result.status is BatchStatus.COMPLETED_WITH_ERRORS


class TestBatchManifest:
    """Test ReportGenerator.get_batch_manifest."""

    def test_reports_and_summary(self, generator, signatures, calculated_project, eu_options):
        result = generator.generate_batch_reports(
            calculated_project, ["eu_cbam", "k_esg"], "xlsx", eu_options,
        )
        manifest = generator.get_batch_manifest(result.batch_id)

        assert manifest.batch_id == result.batch_id
        assert manifest.project_id == calculated_project
        assert manifest.project_name == "Busan Steel Works"
        by_standard = {item.standard: item for item in manifest.reports}
        assert by_standard["eu_cbam"].status is ReportStatus.GENERATED
        assert by_standard["eu_cbam"].has_errors is False
        assert by_standard["eu_cbam"].has_warnings is False
        assert by_standard["eu_cbam"].file_path.endswith(".xlsx")
        assert by_standard["k_esg"].status is ReportStatus.DRAFT
        assert by_standard["k_esg"].has_errors is True
        assert manifest.summary == {"total": 2, "generated": 1, "draft": 1, "signed": 0}

        signatures.sign_report(by_standard["eu_cbam"].id, "user-1", "editor")
        assert generator.get_batch_manifest(result.batch_id).summary == {
            "total": 2, "generated": 0, "draft": 1, "signed": 1,
        }

    def test_survives_cache_loss(self, generator, calculated_project, eu_options, cache):
        result = generator.generate_batch_reports(calculated_project, ["eu_cbam"], "pdf", eu_options)
        cache.clear()
        assert generator.get_batch_manifest(result.batch_id).summary["total"] == 1

    def test_unknown_batch(self, generator):
        with pytest.raises(NotFoundError, match="Batch not found"):
            generator.get_batch_manifest("missing")

    def test_cancelled_batch_has_no_manifest(self, generator, calculated_project):
        cancel = threading.Event()
        cancel.set()
        result = generator.generate_batch_reports(
            calculated_project, ["eu_cbam"], cancel_event=cancel,
        )
        with pytest.raises(NotFoundError):
            generator.get_batch_manifest(result.batch_id)
