# -*- coding: utf-8 -*-
"""
Tests for the reporting REST API

Covers:
- Calculation, CFP and totals endpoints
- Report generation, batch generation, batch status and batch manifest
- Sign, verify and revoke round trip over HTTP
- Error envelope for GreenLedger exceptions
- Standards and audit summary endpoints
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from greenledger.setup import configure_reporting_service, get_reporting_service, get_router

EDITOR = {"X-User-Id": "user-1", "X-User-Role": "editor"}


@pytest.fixture
def app(service):
    application = FastAPI()
    configure_reporting_service(application, service=service)
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


# =============================================================================
# Setup
# =============================================================================


class TestSetup:

    def test_service_on_app_state(self, app, service):
        assert get_reporting_service(app) is service

    def test_unconfigured_app(self):
        with pytest.raises(RuntimeError, match="not configured"):
            get_reporting_service(FastAPI())

    def test_router_prefix(self):
        assert get_router().prefix == "/api/v1"


# =============================================================================
# Calculation
# =============================================================================


class TestCalculationEndpoints:
    """Test calculation and aggregation routes."""

    def test_calculate_activity(self, client, project_id, make_activity):
        activity_id = make_activity(project_id, quantity=100.0)
        response = client.post(
            f"/api/v1/activities/{activity_id}/calculate",
            json={"customFactor": 0.5},
            headers=EDITOR,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["total_emissions_kg_co2e"] == 50.0
        assert body["data"]["emission_factor_source"] == "custom"

    def test_calculate_unknown_activity(self, client):
        response = client.post("/api/v1/activities/missing/calculate")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "GL_LEDGER_NOT_FOUND_ERROR"

    def test_calculate_all_nothing_pending(self, client, calculated_project):
        response = client.post(f"/api/v1/projects/{calculated_project}/calculate-all")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["summary"] == {"total": 0, "calculated": 0, "errors": 0}
        assert data["cancelled"] is False

    def test_cfp(self, client, calculated_project):
        response = client.post(
            f"/api/v1/projects/{calculated_project}/cfp",
            json={"productName": "Coil", "productionVolume": 10},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["cfpTotal"] == 7420.0
        assert data["cfpPerUnit"] == 742.0
        assert data["allocationMethod"] == "mass"

    def test_cfo_without_calculated_activities(self, client, project_id):
        response = client.post(f"/api/v1/projects/{project_id}/cfo")
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_totals(self, client, calculated_project):
        data = client.get(f"/api/v1/projects/{calculated_project}/totals").json()["data"]
        assert data["total"] == 7420.0
        assert data["activityCount"] == 4
        assert data["scope3Categories"]["purchased_goods"] == 1000.0


# =============================================================================
# Reports and signatures
# =============================================================================


class TestReportEndpoints:
    """Test report generation routes."""

    def test_generate(self, client, calculated_project, eu_options):
        response = client.post(
            f"/api/v1/projects/{calculated_project}/reports",
            json={"standard": "eu_cbam", "options": eu_options},
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "generated"
        assert data["standard"] == "eu_cbam"
        assert data["file_path"].endswith(".pdf")

    def test_generate_without_calculations(self, client, project_id):
        response = client.post(
            f"/api/v1/projects/{project_id}/reports", json={"standard": "eu_cbam"},
        )
        assert response.status_code == 400

    def test_batch_and_status(self, client, calculated_project):
        response = client.post(
            f"/api/v1/projects/{calculated_project}/reports/batch",
            json={"standards": ["eu_cbam", "thai_esg"], "format": "xlsx"},
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert len(data["reports"]) == 2
        assert data["errors"] == []

        status = client.get(f"/api/v1/reports/batch/{data['batchId']}").json()["data"]
        assert status["progress"] == 100
        assert status["total_reports"] == 2
        assert status["generated_reports"] == 2

    def test_unknown_batch(self, client):
        response = client.get("/api/v1/reports/batch/missing")
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "NotFoundError"

    def test_batch_manifest(self, client, calculated_project, eu_options):
        created = client.post(
            f"/api/v1/projects/{calculated_project}/reports/batch",
            json={"standards": ["eu_cbam", "k_esg"], "options": eu_options},
        ).json()["data"]
        response = client.get(f"/api/v1/reports/batch/{created['batchId']}/manifest")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["batch_id"] == created["batchId"]
        assert data["summary"] == {"total": 2, "generated": 1, "draft": 1, "signed": 0}
        flags = {r["standard"]: r["has_errors"] for r in data["reports"]}
        assert flags == {"eu_cbam": False, "k_esg": True}

    def test_unknown_batch_manifest(self, client):
        response = client.get("/api/v1/reports/batch/missing/manifest")
        assert response.status_code == 404


class TestSignatureEndpoints:
    """Test sign, verify and revoke routes."""

    @pytest.fixture
    def report_id(self, client, calculated_project, eu_options):
        response = client.post(
            f"/api/v1/projects/{calculated_project}/reports",
            json={"standard": "eu_cbam", "options": eu_options},
        )
        return response.json()["data"]["id"]

    def test_sign_verify_revoke(self, client, report_id):
        signed = client.post(f"/api/v1/reports/{report_id}/sign", headers=EDITOR)
        assert signed.status_code == 201
        signature_id = signed.json()["data"]["id"]

        verified = client.get(f"/api/v1/reports/{report_id}/verify").json()["data"]
        assert verified["valid"] is True

        revoked = client.post(
            f"/api/v1/signatures/{signature_id}/revoke",
            json={"reason": "Figures restated"},
            headers=EDITOR,
        )
        assert revoked.status_code == 200
        assert revoked.json()["data"]["reason"] == "Figures restated"

        after = client.get(f"/api/v1/signatures/{signature_id}/verify").json()["data"]
        assert after["valid"] is False
        assert after["message"] == "Signature has been revoked"

    def test_sign_requires_identity(self, client, report_id):
        response = client.post(f"/api/v1/reports/{report_id}/sign")
        assert response.status_code == 400

    def test_viewer_forbidden(self, client, report_id):
        response = client.post(
            f"/api/v1/reports/{report_id}/sign",
            headers={"X-User-Id": "user-9", "X-User-Role": "viewer"},
        )
        assert response.status_code == 403

    def test_double_sign_conflict(self, client, report_id):
        client.post(f"/api/v1/reports/{report_id}/sign", headers=EDITOR)
        response = client.post(f"/api/v1/reports/{report_id}/sign", headers=EDITOR)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "GL_LEDGER_CONFLICT_ERROR"

    def test_revoke_someone_elses_signature(self, client, report_id):
        signed = client.post(f"/api/v1/reports/{report_id}/sign", headers=EDITOR)
        response = client.post(
            f"/api/v1/signatures/{signed.json()['data']['id']}/revoke",
            headers={"X-User-Id": "user-2", "X-User-Role": "editor"},
        )
        assert response.status_code == 403


# =============================================================================
# Standards and audit
# =============================================================================


class TestReferenceEndpoints:

    def test_list_standards(self, client):
        data = client.get("/api/v1/standards").json()["data"]
        assert {item["standard"] for item in data} == {
            "eu_cbam", "uk_cbam", "china_carbon", "k_esg", "maff_esg", "thai_esg",
        }

    def test_requirements(self, client):
        data = client.get("/api/v1/standards/eu_cbam/requirements").json()["data"]
        assert data["display_name"] == "EU CBAM"
        assert "standardSpecific.cnCode" in data["required_fields"]

    def test_unknown_standard(self, client):
        assert client.get("/api/v1/standards/us_sec/requirements").status_code == 400

    def test_audit_summary(self, client, calculated_project):
        client.post(f"/api/v1/projects/{calculated_project}/cfp", headers=EDITOR)
        data = client.get(f"/api/v1/projects/{calculated_project}/audit/summary").json()["data"]
        assert data["total_logs"] == 1
        assert data["period"] == {"start": "all-time", "end": "now"}

    def test_audit_summary_malformed_date(self, client, calculated_project):
        response = client.get(
            f"/api/v1/projects/{calculated_project}/audit/summary",
            params={"startDate": "not-a-date"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["type"] == "BadRequestError"
