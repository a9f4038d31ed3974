# -*- coding: utf-8 -*-
"""
Reporting REST API

FastAPI router for the emissions reporting pipeline, mounted at
``/api/v1`` by ``configure_reporting_service``.

Endpoints:
    POST /activities/{activity_id}/calculate      Calculate one activity
    POST /projects/{project_id}/calculate-all     Calculate pending activities
    POST /projects/{project_id}/cfp               Compute CFP
    POST /projects/{project_id}/cfo               Compute CFO
    GET  /projects/{project_id}/totals            Project emission totals
    POST /projects/{project_id}/reports           Generate a report
    POST /projects/{project_id}/reports/batch     Generate reports per standard
    GET  /reports/batch/{batch_id}                Batch progress
    GET  /reports/batch/{batch_id}/manifest       Reports in a batch
    POST /reports/{report_id}/sign                Sign a report
    GET  /reports/{report_id}/verify              Verify a report's signature
    GET  /signatures/{signature_id}/verify        Verify by signature id
    POST /signatures/{signature_id}/revoke        Revoke a signature
    GET  /projects/{project_id}/audit/summary     Audit summary
    GET  /standards                               All standard requirements
    GET  /standards/{standard}/requirements       One standard's requirements

The caller identity is taken from the ``X-User-Id`` and ``X-User-Role``
headers. Successful responses use ``{"success": true, "data": ...}``;
GreenLedger exceptions are rendered by the handler the setup module
registers.

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Header, Query, Request
from fastapi.encoders import jsonable_encoder

from greenledger.exceptions import BadRequestError
from greenledger.models import DocumentModel, ReportOptions, TierLevel
from greenledger.setup import ReportingService, get_reporting_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["greenledger"])


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class CalculateActivityRequest(DocumentModel):
    custom_factor: Optional[float] = None
    emission_factor_id: Optional[str] = None
    tier_override: Optional[TierLevel] = None
    include_precursors: bool = False


class CalculateAllRequest(DocumentModel):
    include_precursors: bool = False


class CFPRequest(DocumentModel):
    product_name: Optional[str] = None
    functional_unit: Optional[str] = None
    production_volume: Optional[float] = None
    allocation_method: Optional[str] = None
    include_biogenic: bool = False


class CFORequest(DocumentModel):
    organization_name: Optional[str] = None
    consolidation_method: Optional[str] = None
    operational_boundary: Optional[str] = None
    reporting_year: Optional[int] = None


class GenerateReportRequest(DocumentModel):
    standard: str
    format: Optional[str] = None
    options: Optional[ReportOptions] = None


class BatchReportRequest(DocumentModel):
    standards: List[str]
    format: Optional[str] = None
    options: Optional[ReportOptions] = None


class SignReportRequest(DocumentModel):
    signature_type: str = "approval"
    comments: Optional[str] = None
    declaration_text: Optional[str] = None


class RevokeSignatureRequest(DocumentModel):
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _svc(request: Request) -> ReportingService:
    return get_reporting_service(request.app)


def _ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": jsonable_encoder(data)}


def _require_identity(user_id: Optional[str], user_role: Optional[str]) -> None:
    if not user_id or not user_role:
        raise BadRequestError(
            message="X-User-Id and X-User-Role headers are required",
        )


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------


@router.post("/activities/{activity_id}/calculate")
def calculate_activity(
    activity_id: str,
    request: Request,
    body: Optional[CalculateActivityRequest] = None,
    x_user_id: Optional[str] = Header(None),
) -> Dict[str, Any]:
    body = body or CalculateActivityRequest()
    result = _svc(request).calculate_activity(
        activity_id,
        custom_factor=body.custom_factor,
        emission_factor_id=body.emission_factor_id,
        tier_override=body.tier_override,
        include_precursors=body.include_precursors,
        user_id=x_user_id,
    )
    return _ok(result)


@router.post("/projects/{project_id}/calculate-all")
def calculate_all_pending(
    project_id: str,
    request: Request,
    body: Optional[CalculateAllRequest] = None,
    x_user_id: Optional[str] = Header(None),
) -> Dict[str, Any]:
    body = body or CalculateAllRequest()
    result = _svc(request).calculate_all_pending(
        project_id, include_precursors=body.include_precursors, user_id=x_user_id,
    )
    return _ok({
        "projectId": project_id,
        "summary": result.summary,
        "calculated": result.calculated,
        "errors": result.errors,
        "cancelled": result.cancelled,
    })


@router.post("/projects/{project_id}/cfp")
def compute_cfp(
    project_id: str,
    request: Request,
    body: Optional[CFPRequest] = None,
    x_user_id: Optional[str] = Header(None),
) -> Dict[str, Any]:
    body = body or CFPRequest()
    result = _svc(request).compute_cfp(
        project_id, user_id=x_user_id, **body.model_dump(),
    )
    return _ok(result)


@router.post("/projects/{project_id}/cfo")
def compute_cfo(
    project_id: str,
    request: Request,
    body: Optional[CFORequest] = None,
    x_user_id: Optional[str] = Header(None),
) -> Dict[str, Any]:
    body = body or CFORequest()
    result = _svc(request).compute_cfo(
        project_id, user_id=x_user_id, **body.model_dump(),
    )
    return _ok(result)


@router.get("/projects/{project_id}/totals")
def project_totals(project_id: str, request: Request) -> Dict[str, Any]:
    return _ok(_svc(request).project_totals(project_id))


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/reports", status_code=201)
def generate_report(
    project_id: str,
    body: GenerateReportRequest,
    request: Request,
    x_user_id: Optional[str] = Header(None),
) -> Dict[str, Any]:
    outcome = _svc(request).generate_report(
        project_id, body.standard, body.format, body.options, user_id=x_user_id,
    )
    return _ok(outcome)


@router.post("/projects/{project_id}/reports/batch", status_code=201)
def batch_generate_reports(
    project_id: str,
    body: BatchReportRequest,
    request: Request,
    x_user_id: Optional[str] = Header(None),
) -> Dict[str, Any]:
    result = _svc(request).batch_generate_reports(
        project_id, body.standards, body.format, body.options, user_id=x_user_id,
    )
    return _ok({
        "batchId": result.batch_id,
        "status": result.status,
        "summary": result.summary,
        "reports": result.generated,
        "errors": result.errors,
        "warnings": result.warnings,
    })


@router.get("/reports/batch/{batch_id}")
def get_batch_status(batch_id: str, request: Request) -> Dict[str, Any]:
    return _ok(_svc(request).get_batch_status(batch_id))


@router.get("/reports/batch/{batch_id}/manifest")
def get_batch_manifest(batch_id: str, request: Request) -> Dict[str, Any]:
    return _ok(_svc(request).get_batch_manifest(batch_id))


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


@router.post("/reports/{report_id}/sign", status_code=201)
def sign_report(
    report_id: str,
    request: Request,
    body: Optional[SignReportRequest] = None,
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Dict[str, Any]:
    _require_identity(x_user_id, x_user_role)
    body = body or SignReportRequest()
    outcome = _svc(request).sign_report(
        report_id,
        x_user_id,
        x_user_role,
        signature_type=body.signature_type,
        comments=body.comments,
        declaration_text=body.declaration_text,
    )
    return _ok(outcome)


@router.get("/reports/{report_id}/verify")
def verify_report_signature(
    report_id: str,
    request: Request,
    x_user_id: Optional[str] = Header(None),
) -> Dict[str, Any]:
    return _ok(_svc(request).verify_signature(report_id, user_id=x_user_id))


@router.get("/signatures/{signature_id}/verify")
def verify_signature(
    signature_id: str,
    request: Request,
    x_user_id: Optional[str] = Header(None),
) -> Dict[str, Any]:
    service = _svc(request)
    signature = service.signatures.get_signature(signature_id)
    if signature.is_revoked:
        return _ok({
            "valid": False,
            "message": "Signature has been revoked",
            "details": {"revokedAt": signature.revoked_at, "reason": signature.revoked_reason},
        })
    return _ok(service.verify_signature(signature.report_id, user_id=x_user_id))


@router.post("/signatures/{signature_id}/revoke")
def revoke_signature(
    signature_id: str,
    request: Request,
    body: Optional[RevokeSignatureRequest] = None,
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Dict[str, Any]:
    _require_identity(x_user_id, x_user_role)
    body = body or RevokeSignatureRequest()
    result = _svc(request).revoke_signature(signature_id, x_user_id, x_user_role, body.reason)
    return _ok(result)


# ---------------------------------------------------------------------------
# Audit and standards
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/audit/summary")
def get_audit_summary(
    project_id: str,
    request: Request,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
) -> Dict[str, Any]:
    return _ok(_svc(request).get_audit_summary(project_id, start_date, end_date))


@router.get("/standards")
def list_standards(request: Request) -> Dict[str, Any]:
    return _ok(_svc(request).standard_requirements())


@router.get("/standards/{standard}/requirements")
def standard_requirements(standard: str, request: Request) -> Dict[str, Any]:
    return _ok(_svc(request).standard_requirements(standard))


__all__ = ["router"]
