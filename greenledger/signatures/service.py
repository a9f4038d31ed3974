# -*- coding: utf-8 -*-
"""
Digital Signature Service

Binds a signer to the exact content of a report document and records the
binding alongside the report.

Signature construction:
    content_hash = sha256(canonical(report document))
    payload      = {reportId, userId, contentHash, signatureType,
                    timestamp, nonce}
    hash         = sha256(canonical(payload))

Verification recomputes both hashes; any change to the stored document
after signing makes the content hash differ.

Signing rules:
    - Only configured signer roles may sign (owner, director, editor,
      auditor by default)
    - Reports with validation errors cannot be signed
    - K-ESG and MAFF ESG reports require an elevated signer (owner,
      director, auditor)
    - A report is signed at most once; the status flip is a conditional
      UPDATE so concurrent signers cannot both succeed
    - Only the signer or a project owner may revoke; revocation returns the
      report to ``generated``

Example:
    >>> outcome = signatures.sign_report(report_id, "user-1", "director")
    >>> signatures.verify_report_signature(report_id).valid
    True

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.orm import sessionmaker

from greenledger import metrics
from greenledger.audit.trail import AuditTrail
from greenledger.config import LedgerConfig, get_config
from greenledger.db.base import session_scope
from greenledger.db.models import ReportRecord, SignatureRecord
from greenledger.determinism import new_id, utcnow
from greenledger.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from greenledger.models import (
    AuditAction,
    CertificateData,
    ReportStatus,
    RevocationResult,
    SignatureData,
    SignatureOutcome,
    SignaturePayload,
    SignatureType,
    UserRole,
    VerificationResult,
)
from greenledger.provenance import sha256_hex
from greenledger.standards.registry import StandardLike, StandardRegistry

logger = logging.getLogger(__name__)

DEFAULT_REVOCATION_REASON = "No reason provided"
VERIFICATION_URL = "/api/v1/signatures/{signature_id}/verify"

RoleLike = Union[UserRole, str]


def _role_value(role: RoleLike) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo else value


def _signature_type(value: Union[SignatureType, str]) -> SignatureType:
    try:
        return SignatureType(value)
    except ValueError as exc:
        raise BadRequestError(
            message=f"Invalid signature type: {value}",
            context={"allowed": [t.value for t in SignatureType]},
        ) from exc


def _outcome_from_row(
    row: SignatureRecord,
    project_id: Optional[str] = None,
    standard: Optional[str] = None,
) -> SignatureOutcome:
    return SignatureOutcome(
        id=row.id,
        report_id=row.report_id,
        project_id=project_id,
        standard=standard,
        signature_type=row.signature_type,
        signature_hash=row.signature_hash,
        content_hash=row.content_hash,
        signer_id=row.user_id,
        signer_role=row.signer_role,
        declaration_text=row.declaration_text,
        comments=row.comments,
        is_revoked=bool(row.is_revoked),
        revoked_at=row.revoked_at,
        revoked_by=row.revoked_by,
        revoked_reason=row.revoked_reason,
        signed_at=row.created_at,
    )


class SignatureService:
    """Report signing, verification and revocation.

    Attributes:
        config: Ledger configuration (signer roles, strict standards,
            algorithm and version).
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        audit: AuditTrail,
        registry: Optional[StandardRegistry] = None,
        config: Optional[LedgerConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or get_config()
        self._session_factory = session_factory
        self._audit = audit
        self._registry = registry or StandardRegistry()
        self._clock = clock

    # ------------------------------------------------------------------
    # Hashing primitives
    # ------------------------------------------------------------------

    def generate_signature(
        self,
        user_id: str,
        report_id: str,
        report_data: Any,
        signature_type: Union[SignatureType, str] = SignatureType.APPROVAL,
    ) -> SignatureData:
        """Build the signature over a report document.

        Args:
            user_id: Signer id.
            report_id: Signed report id.
            report_data: Report document (dict or ReportData).
            signature_type: approval, submission or audit.

        Returns:
            SignatureData with the payload hash, content hash and payload.
        """
        payload = SignaturePayload(
            report_id=report_id,
            user_id=user_id,
            content_hash=sha256_hex(report_data),
            signature_type=_signature_type(signature_type).value,
            timestamp=self._clock().isoformat(),
            nonce=secrets.token_hex(16),
        )
        return SignatureData(
            hash=sha256_hex(payload.to_document()),
            content_hash=payload.content_hash,
            payload=payload,
            algorithm=self.config.signature_algorithm,
            version=self.config.signature_version,
        )

    def verify_signature(
        self,
        signature_hash: str,
        report_data: Any,
        signature_data: Union[SignatureData, Dict[str, Any]],
    ) -> VerificationResult:
        """Check a signature against the current report document.

        Never raises; malformed signature data yields an invalid result.
        """
        try:
            data = (
                signature_data
                if isinstance(signature_data, SignatureData)
                else SignatureData.model_validate(signature_data)
            )
            current_hash = sha256_hex(report_data)
            if current_hash != data.content_hash:
                return VerificationResult(
                    valid=False,
                    message="Report data has been modified since signing",
                    details={"expectedHash": data.content_hash, "currentHash": current_hash},
                )
            if sha256_hex(data.payload.to_document()) != signature_hash:
                return VerificationResult(
                    valid=False,
                    message="Signature hash verification failed",
                )
            return VerificationResult(
                valid=True,
                message="Signature verified successfully",
                details={
                    "signedAt": data.payload.timestamp,
                    "signatureType": data.payload.signature_type,
                },
            )
        except Exception as exc:
            logger.warning("Signature verification error: %s", exc)
            return VerificationResult(
                valid=False,
                message="Signature verification failed due to an error",
                details={"error": str(exc)},
            )

    def validate_signing_authority(self, user_role: RoleLike, standard: StandardLike) -> bool:
        """Whether a role may sign reports of ``standard``."""
        role = _role_value(user_role)
        if role not in self.config.signature_authorized_roles:
            return False
        if self._registry.parse(standard).value in self.config.signature_strict_standards:
            return role in self.config.signature_elevated_roles
        return True

    def create_audit_record(
        self,
        signature_data: Union[SignatureData, Dict[str, Any]],
        user_id: str,
        report_id: str,
        action: str,
    ) -> Dict[str, Any]:
        """Self-contained record of a signature event for external archives."""
        data = (
            signature_data
            if isinstance(signature_data, SignatureData)
            else SignatureData.model_validate(signature_data)
        )
        return {
            "timestamp": self._clock().isoformat(),
            "action": action,
            "userId": user_id,
            "reportId": report_id,
            "signatureHash": data.hash,
            "contentHash": data.content_hash,
            "metadata": {
                "algorithm": data.algorithm,
                "version": data.version,
                "nonce": data.payload.nonce,
            },
        }

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_report(
        self,
        report_id: str,
        user_id: str,
        user_role: RoleLike,
        signature_type: Union[SignatureType, str] = SignatureType.APPROVAL,
        comments: Optional[str] = None,
        declaration_text: Optional[str] = None,
    ) -> SignatureOutcome:
        """Sign a generated report.

        Raises:
            ForbiddenError: Role may not sign, or may not sign this standard.
            NotFoundError: Unknown report.
            ConflictError: The report is already signed.
            BadRequestError: The report has validation errors.
        """
        role = _role_value(user_role)
        signature_type = _signature_type(signature_type)
        authorized = self.config.signature_authorized_roles
        if role not in authorized:
            metrics.record_signature_operation("sign", "forbidden")
            raise ForbiddenError(
                message=(
                    f"Your role ({role}) is not authorized to sign reports. "
                    f"Authorized roles: {', '.join(authorized)}"
                ),
                context={"report_id": report_id, "role": role},
            )

        with session_scope(self._session_factory) as session:
            report = session.get(ReportRecord, report_id)
            if report is None:
                raise NotFoundError(message="Report not found", context={"report_id": report_id})
            if report.status == ReportStatus.SIGNED.value:
                raise ConflictError(
                    message="Report is already signed",
                    context={"report_id": report_id},
                )
            if report.validation_errors:
                raise BadRequestError(
                    message="Cannot sign a report with validation errors. Please resolve errors first.",
                    context={"report_id": report_id, "errors": len(report.validation_errors)},
                )
            standard = report.standard
            project_id = report.project_id
            report_data = report.report_data or {}

        if (
            standard in self.config.signature_strict_standards
            and role not in self.config.signature_elevated_roles
        ):
            metrics.record_signature_operation("sign", "forbidden")
            raise ForbiddenError(
                message=(
                    f"Standard {standard} requires signing by: "
                    f"{', '.join(self.config.signature_elevated_roles)}"
                ),
                context={"report_id": report_id, "standard": standard, "role": role},
            )

        signature = self.generate_signature(user_id, report_id, report_data, signature_type)
        signature_id = new_id()
        signed_at = _naive(self._clock())

        with session_scope(self._session_factory) as session:
            current = session.execute(
                select(ReportRecord).where(ReportRecord.id == report_id).with_for_update()
            ).scalar_one_or_none()
            if current is None:
                raise NotFoundError(message="Report not found", context={"report_id": report_id})
            if current.validation_errors:
                raise BadRequestError(
                    message="Cannot sign a report with validation errors. Please resolve errors first.",
                    context={"report_id": report_id, "errors": len(current.validation_errors)},
                )
            if sha256_hex(current.report_data or {}) != signature.content_hash:
                raise ConflictError(
                    message="Report was regenerated while signing. Please sign again.",
                    context={"report_id": report_id},
                )

            if current.updated_at is None:
                unchanged = ReportRecord.updated_at.is_(None)
            else:
                unchanged = ReportRecord.updated_at == current.updated_at
            flipped = session.execute(
                update(ReportRecord)
                .where(
                    ReportRecord.id == report_id,
                    ReportRecord.status != ReportStatus.SIGNED.value,
                    unchanged,
                )
                .values(
                    status=ReportStatus.SIGNED.value,
                    signed_at=signed_at,
                    signed_by=user_id,
                    signature_id=signature_id,
                    updated_at=signed_at,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if not flipped:
                raise ConflictError(
                    message="Report is already signed",
                    context={"report_id": report_id},
                )
            row = SignatureRecord(
                id=signature_id,
                report_id=report_id,
                user_id=user_id,
                signer_role=role,
                signature_type=signature.payload.signature_type,
                signature_hash=signature.hash,
                content_hash=signature.content_hash,
                signature_data=signature.to_document(),
                declaration_text=declaration_text or self._registry.declaration(standard),
                comments=comments,
                is_revoked=False,
                created_at=signed_at,
            )
            session.add(row)
            session.flush()
            outcome = _outcome_from_row(row, project_id, standard)

        metrics.record_signature_operation("sign", "success")
        logger.info(
            "Report %s (%s) signed by %s as %s", report_id, standard, user_id, role,
        )
        self._audit.record(
            AuditAction.SIGN_REPORT,
            "signature",
            signature_id,
            {
                "reportId": report_id,
                "standard": standard,
                "signatureType": signature.payload.signature_type,
            },
            user_id=user_id,
            project_id=project_id,
        )
        return outcome

    def verify_report_signature(
        self,
        report_id: str,
        user_id: Optional[str] = None,
    ) -> VerificationResult:
        """Verify the active signature of a report against its stored document.

        Raises:
            NotFoundError: Unknown report.
        """
        with session_scope(self._session_factory) as session:
            report = session.get(ReportRecord, report_id)
            if report is None:
                raise NotFoundError(message="Report not found", context={"report_id": report_id})
            project_id = report.project_id
            signature = None
            if report.status == ReportStatus.SIGNED.value and report.signature_id:
                signature = session.get(SignatureRecord, report.signature_id)
            if signature is None or signature.is_revoked:
                return VerificationResult(
                    valid=False,
                    message="Report has not been signed",
                    details={"reportId": report_id},
                )
            signature_id = signature.id
            result = self.verify_signature(
                signature.signature_hash, report.report_data or {}, signature.signature_data,
            )

        metrics.record_signature_operation("verify", "valid" if result.valid else "invalid")
        self._audit.record(
            AuditAction.VERIFY_SIGNATURE,
            "signature",
            signature_id,
            {"reportId": report_id, "valid": result.valid, "message": result.message},
            user_id=user_id,
            project_id=project_id,
        )
        return result

    def revoke_signature(
        self,
        signature_id: str,
        user_id: str,
        user_role: RoleLike,
        reason: Optional[str] = None,
    ) -> RevocationResult:
        """Revoke a signature and return its report to ``generated``.

        Raises:
            NotFoundError: Unknown signature.
            ConflictError: Already revoked.
            ForbiddenError: Caller is neither the signer nor an owner.
        """
        role = _role_value(user_role)
        reason = reason or DEFAULT_REVOCATION_REASON
        revoked_at = _naive(self._clock())

        with session_scope(self._session_factory) as session:
            signature = session.get(SignatureRecord, signature_id)
            if signature is None:
                raise NotFoundError(
                    message="Signature not found", context={"signature_id": signature_id},
                )
            if signature.is_revoked:
                raise ConflictError(
                    message="Signature is already revoked",
                    context={"signature_id": signature_id},
                )
            if signature.user_id != user_id and role != UserRole.OWNER.value:
                metrics.record_signature_operation("revoke", "forbidden")
                raise ForbiddenError(
                    message="You can only revoke your own signatures",
                    context={"signature_id": signature_id},
                )

            signature.is_revoked = True
            signature.revoked_at = revoked_at
            signature.revoked_by = user_id
            signature.revoked_reason = reason

            report = session.get(ReportRecord, signature.report_id)
            project_id = report.project_id if report is not None else None
            if report is not None and report.signature_id == signature_id:
                report.status = ReportStatus.GENERATED.value
                report.signed_at = None
                report.signed_by = None
                report.signature_id = None
                report.updated_at = revoked_at
            report_id = signature.report_id

        metrics.record_signature_operation("revoke", "success")
        logger.info("Signature %s on report %s revoked by %s", signature_id, report_id, user_id)
        self._audit.record(
            AuditAction.REVOKE_SIGNATURE,
            "signature",
            signature_id,
            {"reportId": report_id, "reason": reason},
            user_id=user_id,
            project_id=project_id,
        )
        return RevocationResult(
            id=signature_id,
            report_id=report_id,
            revoked_at=revoked_at,
            revoked_by=user_id,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_signature(self, signature_id: str) -> SignatureOutcome:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(SignatureRecord, ReportRecord.project_id, ReportRecord.standard)
                .outerjoin(ReportRecord, SignatureRecord.report_id == ReportRecord.id)
                .where(SignatureRecord.id == signature_id)
            ).first()
            if row is None:
                raise NotFoundError(
                    message="Signature not found", context={"signature_id": signature_id},
                )
            return _outcome_from_row(row[0], row[1], row[2])

    def list_project_signatures(
        self,
        project_id: str,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Signatures on a project's reports, newest first, revoked included."""
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        with session_scope(self._session_factory) as session:
            total = session.execute(
                select(func.count(SignatureRecord.id))
                .join(ReportRecord, SignatureRecord.report_id == ReportRecord.id)
                .where(ReportRecord.project_id == project_id)
            ).scalar_one()
            rows = session.execute(
                select(SignatureRecord, ReportRecord.standard)
                .join(ReportRecord, SignatureRecord.report_id == ReportRecord.id)
                .where(ReportRecord.project_id == project_id)
                .order_by(SignatureRecord.created_at.desc(), SignatureRecord.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            signatures = [_outcome_from_row(sig, project_id, standard) for sig, standard in rows]

        return {"signatures": signatures, "total": total, "page": page, "limit": limit}

    def certificate_data(
        self,
        signature_id: str,
        signer_name: Optional[str] = None,
        signer_email: Optional[str] = None,
    ) -> CertificateData:
        """Certificate fields for displaying a signature."""
        with session_scope(self._session_factory) as session:
            signature = session.get(SignatureRecord, signature_id)
            if signature is None:
                raise NotFoundError(
                    message="Signature not found", context={"signature_id": signature_id},
                )
            report = session.get(ReportRecord, signature.report_id)
            data = SignatureData.model_validate(signature.signature_data)
            role = signature.signer_role
            report_info: Dict[str, Any] = {"id": signature.report_id}
            if report is not None:
                report_info["standard"] = report.standard
                report_info["reportingYear"] = (
                    (report.report_data or {}).get("project", {}).get("reportingYear")
                )

        return CertificateData(
            certificate_id=signature_id,
            issue_date=self._clock().isoformat(),
            signature_hash=data.hash,
            content_hash=data.content_hash,
            signer={"name": signer_name, "email": signer_email, "role": role},
            report=report_info,
            verification={
                "algorithm": data.algorithm,
                "version": data.version,
                "verificationUrl": VERIFICATION_URL.format(signature_id=signature_id),
            },
        )


__all__ = [
    "DEFAULT_REVOCATION_REASON",
    "SignatureService",
]
