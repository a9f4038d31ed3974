# -*- coding: utf-8 -*-
"""
Report Renderer

Serializes a ReportData document into PDF (reportlab) and/or XLSX
(openpyxl) artifacts under ``{reports_dir}/{project_id}/``. File names are
``{sanitized project name}_{standard}_{timestamp}`` where the timestamp is
milliseconds since the epoch from the injected clock.

PDF layout:
    - Title, company and reporting period
    - Emissions summary in tonnes CO2e and the Scope 3 category breakdown
    - CFP / CFO figures when present
    - A page of standard-specific information

XLSX sheets: ``Summary``, ``Activities``, ``Scope 3 Categories`` (only when
non-empty) and the upper-cased standard key.

Any failure is raised as ReportRenderingError.

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime
from typing import Any, Callable, List, Optional, Union
from xml.sax.saxutils import escape

import openpyxl
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer

from greenledger import metrics
from greenledger.config import LedgerConfig, get_config
from greenledger.determinism import round_half_up, utcnow
from greenledger.exceptions import ReportRenderingError
from greenledger.models import ReportArtifacts, ReportData, ReportFormat
from greenledger.standards.registry import StandardLike, StandardRegistry

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


def sanitize_name(name: str) -> str:
    """Replace every non-alphanumeric character with ``_``."""
    return _UNSAFE_CHARS.sub("_", name or "report")


def format_field_name(name: str) -> str:
    """``cnCode`` -> ``Cn Code``; underscores become spaces."""
    spaced = re.sub(r"([A-Z])", r" \1", name)
    return (spaced[:1].upper() + spaced[1:]).replace("_", " ")


def format_value(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(
            json.dumps(v, sort_keys=True) if isinstance(v, dict) else str(v) for v in value
        )
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, ensure_ascii=False)
    return str(value)


def _tonnes(kg: Optional[float]) -> float:
    return round_half_up((kg or 0) / 1000, 2)


class ReportRenderer:
    """Renders report documents to files."""

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        registry: Optional[StandardRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or get_config()
        self._registry = registry or StandardRegistry()
        self._clock = clock

    def render(
        self,
        report_data: ReportData,
        fmt: Union[ReportFormat, str],
        standard: StandardLike,
    ) -> ReportArtifacts:
        """Write the artifacts for one report.

        Args:
            report_data: Assembled report document.
            fmt: ``pdf``, ``xlsx`` or ``both``.
            standard: Standard the document was assembled for.

        Returns:
            ReportArtifacts; the PDF is primary when both are produced.

        Raises:
            ReportRenderingError: Directory creation or serialization failed.
        """
        parsed = self._registry.parse(standard)
        try:
            fmt = ReportFormat(fmt)
        except ValueError as exc:
            raise ReportRenderingError(
                message=f"Unsupported report format: {fmt}",
                context={"standard": parsed.value},
            ) from exc

        timestamp = int(self._clock().timestamp() * 1000)
        base_name = f"{sanitize_name(report_data.project.name)}_{parsed.value}_{timestamp}"
        project_dir = os.path.join(self.config.reports_dir, report_data.project.id)

        files: List[str] = []
        try:
            os.makedirs(project_dir, exist_ok=True)
            if fmt in (ReportFormat.PDF, ReportFormat.BOTH):
                pdf_path = os.path.join(project_dir, f"{base_name}.pdf")
                self._render_pdf(report_data, parsed.value, pdf_path)
                files.append(pdf_path)
            if fmt in (ReportFormat.XLSX, ReportFormat.BOTH):
                xlsx_path = os.path.join(project_dir, f"{base_name}.xlsx")
                self._render_xlsx(report_data, parsed.value, xlsx_path)
                files.append(xlsx_path)
        except Exception as exc:
            metrics.record_render_failure(parsed.value, fmt.value)
            logger.error(
                "Rendering %s %s report for project %s failed: %s",
                parsed.value, fmt.value, report_data.project.id, exc,
            )
            raise ReportRenderingError(
                message=f"Failed to render {fmt.value} report: {exc}",
                context={"standard": parsed.value, "project_id": report_data.project.id},
            ) from exc

        logger.info("Rendered %d artifact(s) for %s: %s", len(files), parsed.value, base_name)
        return ReportArtifacts(file_path=files[0], files=files)

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    def _render_pdf(self, data: ReportData, standard: str, path: str) -> None:
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "ReportTitle", parent=styles["Heading1"], fontSize=20, alignment=TA_CENTER,
        )
        heading = styles["Heading2"]
        subheading = styles["Heading3"]
        body = styles["Normal"]
        display_name = self._registry.display_name(standard)

        def para(text: str, style=body) -> Paragraph:
            return Paragraph(escape(text), style)

        story = [
            para(f"ESG Report - {display_name}", title_style),
            Spacer(1, 0.2 * inch),
            para(f"Generated: {data.generated_at}"),
            para(f"Company: {data.project.company or ''}"),
            para(
                f"Reporting Period: {data.reporting_period.start_date} "
                f"to {data.reporting_period.end_date}"
            ),
            Spacer(1, 0.2 * inch),
            para("Emissions Summary", heading),
            para(f"Scope 1: {_tonnes(data.emissions.scope1)} tonnes CO2e"),
            para(f"Scope 2: {_tonnes(data.emissions.scope2)} tonnes CO2e"),
            para(f"Scope 3: {_tonnes(data.emissions.scope3)} tonnes CO2e"),
            para(f"Total: {_tonnes(data.emissions.total)} tonnes CO2e"),
        ]

        if data.emissions.scope3_categories:
            story.append(para("Scope 3 by Category", subheading))
            for category, value in data.emissions.scope3_categories.items():
                story.append(para(f"{category}: {_tonnes(value)} tonnes CO2e"))

        if data.cfp:
            story.extend([
                para("Carbon Footprint of Product (CFP)", subheading),
                para(f"Product: {data.cfp.product_name or ''}"),
                para(f"CFP Total: {_tonnes(data.cfp.cfp_total)} tonnes CO2e"),
                para(
                    f"CFP per Unit: {round_half_up(data.cfp.cfp_per_unit, 4)} "
                    f"kg CO2e/{data.cfp.functional_unit or 'unit'}"
                ),
            ])

        if data.cfo:
            story.extend([
                para("Carbon Footprint of Organization (CFO)", subheading),
                para(f"Organization: {data.cfo.organization_name or ''}"),
                para(f"CFO Total: {_tonnes(data.cfo.cfo_total)} tonnes CO2e"),
            ])

        story.extend([PageBreak(), para(f"{display_name} Specific Information", heading)])
        for key, value in data.standard_specific.items():
            if value is None or value == "":
                continue
            story.append(para(f"{format_field_name(key)}: {format_value(value)}"))

        document = SimpleDocTemplate(
            path,
            pagesize=A4,
            title=f"ESG Report - {display_name}",
            author=data.project.company or "",
        )
        document.build(story)

    # ------------------------------------------------------------------
    # XLSX
    # ------------------------------------------------------------------

    def _render_xlsx(self, data: ReportData, standard: str, path: str) -> None:
        display_name = self._registry.display_name(standard)
        workbook = openpyxl.Workbook()

        summary = workbook.active
        summary.title = "Summary"
        for row in (
            ["ESG Report Summary"],
            [],
            ["Company", data.project.company or ""],
            ["Facility", data.project.facility_name or ""],
            ["Reporting Year", data.project.reporting_year],
            ["Baseline Year", data.project.baseline_year],
            ["Standard", display_name],
            ["Generated", data.generated_at],
            [],
            ["Emissions Summary (tonnes CO2e)"],
            ["Scope 1", _tonnes(data.emissions.scope1)],
            ["Scope 2", _tonnes(data.emissions.scope2)],
            ["Scope 3", _tonnes(data.emissions.scope3)],
            ["Total", _tonnes(data.emissions.total)],
        ):
            summary.append(row)

        activities = workbook.create_sheet("Activities")
        activities.append([
            "Activity", "Scope", "Category", "Quantity", "Unit", "Emissions (kg CO2e)", "Tier",
        ])
        for line in data.activities:
            activities.append([
                line.name,
                line.scope,
                line.category or "",
                line.quantity,
                line.unit,
                round_half_up(line.emissions, 2),
                line.tier_level,
            ])

        if data.emissions.scope3_categories:
            categories = workbook.create_sheet("Scope 3 Categories")
            categories.append(["Category", "Emissions (tonnes CO2e)"])
            for category, value in data.emissions.scope3_categories.items():
                categories.append([category, _tonnes(value)])

        specific = workbook.create_sheet(standard.upper())
        specific.append([f"{display_name} Data"])
        specific.append([])
        for key, value in data.standard_specific.items():
            if value is None:
                continue
            specific.append([format_field_name(key), format_value(value)])

        workbook.save(path)


__all__ = [
    "ReportRenderer",
    "format_field_name",
    "format_value",
    "sanitize_name",
]
