# -*- coding: utf-8 -*-
"""
Tests for SignatureService

Covers:
- Signature construction and verification primitives
- Signing authority by role and standard
- Sign, verify, revoke and re-sign flows against persisted reports
- Tamper detection on the stored report document
- Reports regenerated or signed elsewhere while a signature is being made
- Signature queries and certificate data
"""

import pytest

from greenledger.db.base import session_scope
from greenledger.db.models import AuditLogRecord, ReportRecord, SignatureRecord
from greenledger.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from greenledger.models import SignatureType, UserRole
from greenledger.provenance import sha256_hex
from greenledger.signatures.service import DEFAULT_REVOCATION_REASON

DOCUMENT = {"project": {"name": "Busan Steel Works"}, "emissions": {"total": 7420.0}}


@pytest.fixture
def eu_report(generator, calculated_project, eu_options):
    return generator.generate_report(calculated_project, "eu_cbam", "pdf", eu_options).id


@pytest.fixture
def k_esg_report(generator, calculated_project, k_esg_options):
    return generator.generate_report(calculated_project, "k_esg", "pdf", k_esg_options).id


def _report(session_factory, report_id):
    with session_scope(session_factory) as session:
        return session.get(ReportRecord, report_id)


# =============================================================================
# Primitives
# =============================================================================


class TestSignaturePrimitives:
    """Test generate_signature and verify_signature."""

    def test_content_hash_binds_document(self, signatures):
        signature = signatures.generate_signature("user-1", "report-1", DOCUMENT)
        assert signature.content_hash == sha256_hex(DOCUMENT)
        assert signature.payload.report_id == "report-1"
        assert signature.payload.signature_type == "approval"
        assert signature.hash == sha256_hex(signature.payload.to_document())
        assert signature.algorithm == "sha256"
        assert signature.version == "1.0"

    def test_nonce_makes_signatures_unique(self, signatures):
        first = signatures.generate_signature("user-1", "report-1", DOCUMENT)
        second = signatures.generate_signature("user-1", "report-1", DOCUMENT)
        assert first.content_hash == second.content_hash
        assert first.hash != second.hash

    def test_verify_valid(self, signatures):
        signature = signatures.generate_signature(
            "user-1", "report-1", DOCUMENT, SignatureType.SUBMISSION,
        )
        result = signatures.verify_signature(signature.hash, DOCUMENT, signature.to_document())
        assert result.valid is True
        assert result.message == "Signature verified successfully"
        assert result.details["signatureType"] == "submission"

    def test_verify_modified_document(self, signatures):
        signature = signatures.generate_signature("user-1", "report-1", DOCUMENT)
        modified = {**DOCUMENT, "emissions": {"total": 1.0}}
        result = signatures.verify_signature(signature.hash, modified, signature)
        assert result.valid is False
        assert result.message == "Report data has been modified since signing"
        assert result.details["expectedHash"] == signature.content_hash

    def test_verify_wrong_hash(self, signatures):
        signature = signatures.generate_signature("user-1", "report-1", DOCUMENT)
        result = signatures.verify_signature("0" * 64, DOCUMENT, signature)
        assert result.valid is False
        assert result.message == "Signature hash verification failed"

    def test_verify_malformed_data(self, signatures):
        result = signatures.verify_signature("abc", DOCUMENT, {"hash": "abc"})
        assert result.valid is False
        assert result.message == "Signature verification failed due to an error"

    def test_invalid_signature_type(self, signatures):
        with pytest.raises(BadRequestError, match="Invalid signature type: notary"):
            signatures.generate_signature("user-1", "report-1", DOCUMENT, "notary")

    def test_audit_record(self, signatures):
        signature = signatures.generate_signature("user-1", "report-1", DOCUMENT)
        record = signatures.create_audit_record(signature, "user-1", "report-1", "SIGN")
        assert record["signatureHash"] == signature.hash
        assert record["metadata"]["nonce"] == signature.payload.nonce
        assert record["action"] == "SIGN"


class TestSigningAuthority:
    """Test validate_signing_authority."""

    @pytest.mark.parametrize("role,standard,allowed", [
        ("owner", "eu_cbam", True),
        ("editor", "eu_cbam", True),
        ("viewer", "eu_cbam", False),
        ("editor", "k_esg", False),
        ("editor", "maff_esg", False),
        ("director", "k_esg", True),
        (UserRole.AUDITOR, "maff_esg", True),
        ("viewer", "k_esg", False),
    ])
    def test_roles(self, signatures, role, standard, allowed):
        assert signatures.validate_signing_authority(role, standard) is allowed


# =============================================================================
# Report signing
# =============================================================================


class TestSignReport:
    """Test SignatureService.sign_report."""

    def test_sign(self, signatures, eu_report, session_factory, registry):
        outcome = signatures.sign_report(eu_report, "user-1", "editor", comments="Checked")
        assert outcome.report_id == eu_report
        assert outcome.standard == "eu_cbam"
        assert outcome.signer_role == "editor"
        assert outcome.declaration_text == registry.declaration("eu_cbam")
        assert outcome.is_revoked is False

        row = _report(session_factory, eu_report)
        assert row.status == "signed"
        assert row.signed_by == "user-1"
        assert row.signature_id == outcome.id
        assert outcome.content_hash == sha256_hex(row.report_data)

    def test_custom_declaration(self, signatures, eu_report):
        outcome = signatures.sign_report(
            eu_report, "user-1", "owner", declaration_text="Approved by the board",
        )
        assert outcome.declaration_text == "Approved by the board"

    def test_audited(self, signatures, eu_report, session_factory):
        outcome = signatures.sign_report(eu_report, "user-1", "editor")
        with session_scope(session_factory) as session:
            entry = session.query(AuditLogRecord).filter_by(action="SIGN_REPORT").one()
            assert entry.entity_id == outcome.id
            assert entry.details["reportId"] == eu_report

    def test_unauthorized_role(self, signatures, eu_report):
        with pytest.raises(ForbiddenError, match=r"Your role \(viewer\) is not authorized"):
            signatures.sign_report(eu_report, "user-1", "viewer")

    def test_strict_standard_requires_elevated_role(self, signatures, k_esg_report):
        with pytest.raises(ForbiddenError) as exc_info:
            signatures.sign_report(k_esg_report, "user-1", "editor")
        assert exc_info.value.message == (
            "Standard k_esg requires signing by: owner, director, auditor"
        )
        assert signatures.sign_report(k_esg_report, "user-2", "director").standard == "k_esg"

    def test_report_with_errors(self, signatures, generator, calculated_project):
        draft = generator.generate_report(calculated_project, "china_carbon").id
        with pytest.raises(BadRequestError, match="validation errors"):
            signatures.sign_report(draft, "user-1", "owner")

    def test_already_signed(self, signatures, eu_report):
        signatures.sign_report(eu_report, "user-1", "editor")
        with pytest.raises(ConflictError, match="Report is already signed"):
            signatures.sign_report(eu_report, "user-2", "owner")

    def test_regenerated_with_errors_while_signing(self, signatures, generator,
                                                   calculated_project, session_factory,
                                                   monkeypatch):
        report_id = generator.generate_report(
            calculated_project, "china_carbon", "pdf",
            {"unifiedSocialCreditCode": "91110000600037341L"},
        ).id
        assert _report(session_factory, report_id).status == "generated"
        build = signatures.generate_signature

        def regenerate_then_build(*args, **kwargs):
            generator.regenerate_report(calculated_project, report_id, {})
            return build(*args, **kwargs)

        monkeypatch.setattr(signatures, "generate_signature", regenerate_then_build)
        with pytest.raises(BadRequestError, match="validation errors"):
            signatures.sign_report(report_id, "user-1", "owner")

        row = _report(session_factory, report_id)
        assert row.status == "draft"
        assert row.signature_id is None

    def test_document_changed_while_signing(self, signatures, eu_report, session_factory,
                                            monkeypatch):
        build = signatures.generate_signature

        def edit_then_build(*args, **kwargs):
            with session_scope(session_factory) as session:
                row = session.get(ReportRecord, eu_report)
                row.report_data = dict(row.report_data, generatedAt="2025-03-02T00:00:00+00:00")
            return build(*args, **kwargs)

        monkeypatch.setattr(signatures, "generate_signature", edit_then_build)
        with pytest.raises(ConflictError, match="regenerated while signing"):
            signatures.sign_report(eu_report, "user-1", "editor")
        assert _report(session_factory, eu_report).status == "generated"

    def test_signed_concurrently(self, signatures, eu_report, session_factory, monkeypatch):
        build = signatures.generate_signature

        def sign_elsewhere_then_build(*args, **kwargs):
            with session_scope(session_factory) as session:
                session.get(ReportRecord, eu_report).status = "signed"
            return build(*args, **kwargs)

        monkeypatch.setattr(signatures, "generate_signature", sign_elsewhere_then_build)
        with pytest.raises(ConflictError, match="Report is already signed"):
            signatures.sign_report(eu_report, "user-1", "editor")
        with session_scope(session_factory) as session:
            assert session.query(SignatureRecord).filter_by(report_id=eu_report).count() == 0

    def test_unknown_report(self, signatures):
        with pytest.raises(NotFoundError, match="Report not found"):
            signatures.sign_report("missing", "user-1", "owner")

    def test_signed_report_cannot_be_regenerated(self, signatures, generator,
                                                 calculated_project, eu_report):
        signatures.sign_report(eu_report, "user-1", "editor")
        with pytest.raises(ConflictError):
            generator.regenerate_report(calculated_project, eu_report)


class TestVerifyReportSignature:
    """Test SignatureService.verify_report_signature."""

    def test_valid(self, signatures, eu_report):
        signatures.sign_report(eu_report, "user-1", "editor", signature_type="submission")
        result = signatures.verify_report_signature(eu_report, user_id="auditor-1")
        assert result.valid is True
        assert result.details["signatureType"] == "submission"

    def test_tampered_document(self, signatures, eu_report, session_factory):
        """Editing the stored document after signing is detected."""
        signatures.sign_report(eu_report, "user-1", "editor")
        with session_scope(session_factory) as session:
            row = session.get(ReportRecord, eu_report)
            document = dict(row.report_data)
            document["emissions"] = dict(document["emissions"], total=1.0)
            row.report_data = document

        result = signatures.verify_report_signature(eu_report)
        assert result.valid is False
        assert result.message == "Report data has been modified since signing"
        assert result.details["currentHash"] != result.details["expectedHash"]

    def test_unsigned(self, signatures, eu_report):
        result = signatures.verify_report_signature(eu_report)
        assert result.valid is False
        assert result.message == "Report has not been signed"

    def test_unknown_report(self, signatures):
        with pytest.raises(NotFoundError):
            signatures.verify_report_signature("missing")


class TestRevokeSignature:
    """Test SignatureService.revoke_signature."""

    def test_revoke_by_signer(self, signatures, eu_report, session_factory):
        signature = signatures.sign_report(eu_report, "user-1", "editor")
        result = signatures.revoke_signature(signature.id, "user-1", "editor", "Wrong period")
        assert result.reason == "Wrong period"
        assert result.report_id == eu_report

        row = _report(session_factory, eu_report)
        assert row.status == "generated"
        assert row.signature_id is None
        assert row.signed_by is None
        with session_scope(session_factory) as session:
            stored = session.get(SignatureRecord, signature.id)
            assert stored.is_revoked is True
            assert stored.revoked_by == "user-1"

    def test_default_reason(self, signatures, eu_report):
        signature = signatures.sign_report(eu_report, "user-1", "editor")
        assert signatures.revoke_signature(signature.id, "user-1", "editor").reason == (
            DEFAULT_REVOCATION_REASON
        )

    def test_owner_may_revoke_others(self, signatures, eu_report):
        signature = signatures.sign_report(eu_report, "user-1", "editor")
        assert signatures.revoke_signature(signature.id, "owner-1", "owner").revoked_by == "owner-1"

    def test_other_user_forbidden(self, signatures, eu_report):
        signature = signatures.sign_report(eu_report, "user-1", "editor")
        with pytest.raises(ForbiddenError, match="You can only revoke your own signatures"):
            signatures.revoke_signature(signature.id, "user-2", "director")

    def test_twice_conflict(self, signatures, eu_report):
        signature = signatures.sign_report(eu_report, "user-1", "editor")
        signatures.revoke_signature(signature.id, "user-1", "editor")
        with pytest.raises(ConflictError, match="Signature is already revoked"):
            signatures.revoke_signature(signature.id, "user-1", "editor")

    def test_unknown_signature(self, signatures):
        with pytest.raises(NotFoundError, match="Signature not found"):
            signatures.revoke_signature("missing", "user-1", "owner")

    def test_resign_after_revoke(self, signatures, eu_report):
        """A revoked report can be signed again and verifies against the new signature."""
        first = signatures.sign_report(eu_report, "user-1", "editor")
        signatures.revoke_signature(first.id, "user-1", "editor")
        assert signatures.verify_report_signature(eu_report).valid is False

        second = signatures.sign_report(eu_report, "user-2", "owner")
        assert second.id != first.id
        assert signatures.verify_report_signature(eu_report).valid is True


# =============================================================================
# Queries
# =============================================================================


class TestSignatureQueries:
    """Test get_signature, list_project_signatures and certificate_data."""

    def test_get_signature(self, signatures, eu_report, calculated_project):
        outcome = signatures.sign_report(eu_report, "user-1", "editor")
        fetched = signatures.get_signature(outcome.id)
        assert fetched.project_id == calculated_project
        assert fetched.signature_hash == outcome.signature_hash

    def test_get_unknown(self, signatures):
        with pytest.raises(NotFoundError):
            signatures.get_signature("missing")

    def test_list_includes_revoked(self, signatures, eu_report, calculated_project):
        first = signatures.sign_report(eu_report, "user-1", "editor")
        signatures.revoke_signature(first.id, "user-1", "editor")
        signatures.sign_report(eu_report, "user-1", "editor")

        listing = signatures.list_project_signatures(calculated_project)
        assert listing["total"] == 2
        assert sorted(s.is_revoked for s in listing["signatures"]) == [False, True]

    def test_certificate(self, signatures, eu_report):
        outcome = signatures.sign_report(eu_report, "user-1", "director")
        certificate = signatures.certificate_data(
            outcome.id, signer_name="Kim Minji", signer_email="minji@example.com",
        )
        assert certificate.signature_hash == outcome.signature_hash
        assert certificate.signer == {
            "name": "Kim Minji", "email": "minji@example.com", "role": "director",
        }
        assert certificate.report == {"id": eu_report, "standard": "eu_cbam", "reportingYear": 2024}
        assert certificate.verification["verificationUrl"] == (
            f"/api/v1/signatures/{outcome.id}/verify"
        )
