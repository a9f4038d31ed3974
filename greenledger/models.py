# -*- coding: utf-8 -*-
"""
GreenLedger Data Models

Pydantic v2 data models for the GreenLedger reporting pipeline. These are
the public result and document shapes; persistence lives in
``greenledger.db.models``.

Models:
    - Enums: EmissionScope, Scope3Category, TierLevel, CalculationStatus,
             LifecycleStage, ReportStandard, ReportStatus, ReportFormat,
             SignatureType, UserRole, AuditAction, BatchStatus,
             ValidationSeverity, TrustTier, DataQuality
    - Calculation: CalculationResult, BatchCalculationResult,
                   PrecursorEstimate, MarketBasedResult, CBAMDefaultFactors
    - Aggregation: EmissionsSummary, ProjectTotals, LifecycleBreakdown,
                   CFPResult, CFOResult
    - Documents: ReportOptions, ReportData (camelCase document form)
    - Validation: ValidationIssue, ValidationResult, StandardRequirements
    - Reports: ReportArtifacts, ReportOutcome, BatchReportStatus,
               BatchReportResult
    - Signatures: SignaturePayload, SignatureData, VerificationResult,
                  SignatureOutcome, RevocationResult, CertificateData
    - Audit: AuditLogEntry, AuditLogPage, AuditSummary, RetentionInfo,
             CleanupResult
    - External: ExternalFactor

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from greenledger.determinism import utcnow


# =============================================================================
# Enumerations
# =============================================================================


class EmissionScope(str, Enum):
    """GHG Protocol emission scope."""
    SCOPE1 = "scope1"
    SCOPE2 = "scope2"
    SCOPE3 = "scope3"


class ScopeDirection(str, Enum):
    """Value-chain direction of a Scope 3 category."""
    UPSTREAM = "upstream"
    DOWNSTREAM = "downstream"


class Scope3Category(str, Enum):
    """The 15 GHG Protocol Scope 3 categories."""
    PURCHASED_GOODS = "purchased_goods"
    CAPITAL_GOODS = "capital_goods"
    FUEL_ENERGY = "fuel_energy"
    UPSTREAM_TRANSPORT = "upstream_transport"
    WASTE = "waste"
    BUSINESS_TRAVEL = "business_travel"
    EMPLOYEE_COMMUTING = "employee_commuting"
    UPSTREAM_LEASED = "upstream_leased"
    DOWNSTREAM_TRANSPORT = "downstream_transport"
    PROCESSING = "processing"
    USE_OF_PRODUCTS = "use_of_products"
    END_OF_LIFE = "end_of_life"
    DOWNSTREAM_LEASED = "downstream_leased"
    FRANCHISES = "franchises"
    INVESTMENTS = "investments"

    @property
    def direction(self) -> ScopeDirection:
        """Upstream for categories 1-8, downstream for 9-15."""
        if self in _UPSTREAM_CATEGORIES:
            return ScopeDirection.UPSTREAM
        return ScopeDirection.DOWNSTREAM


_UPSTREAM_CATEGORIES = frozenset({
    Scope3Category.PURCHASED_GOODS,
    Scope3Category.CAPITAL_GOODS,
    Scope3Category.FUEL_ENERGY,
    Scope3Category.UPSTREAM_TRANSPORT,
    Scope3Category.WASTE,
    Scope3Category.BUSINESS_TRAVEL,
    Scope3Category.EMPLOYEE_COMMUTING,
    Scope3Category.UPSTREAM_LEASED,
})


class TierLevel(str, Enum):
    """Calculation methodology tier."""
    TIER1 = "tier1"
    TIER2 = "tier2"
    TIER2PLUS = "tier2plus"


class CalculationStatus(str, Enum):
    """Calculation state of an activity."""
    PENDING = "pending"
    CALCULATED = "calculated"
    ERROR = "error"


class LifecycleStage(str, Enum):
    """Product lifecycle stage used for CFP allocation."""
    RAW_MATERIALS = "raw_materials"
    PRODUCTION = "production"
    DISTRIBUTION = "distribution"
    USE = "use"
    END_OF_LIFE = "end_of_life"


class ReportStandard(str, Enum):
    """Supported jurisdictional reporting standards."""
    EU_CBAM = "eu_cbam"
    UK_CBAM = "uk_cbam"
    CHINA_CARBON = "china_carbon"
    K_ESG = "k_esg"
    MAFF_ESG = "maff_esg"
    THAI_ESG = "thai_esg"


class ReportStatus(str, Enum):
    """Report lifecycle status."""
    DRAFT = "draft"
    GENERATED = "generated"
    SIGNED = "signed"


class ReportFormat(str, Enum):
    """Rendered artifact formats."""
    PDF = "pdf"
    XLSX = "xlsx"
    BOTH = "both"


class SignatureType(str, Enum):
    """Purpose of a digital signature."""
    APPROVAL = "approval"
    SUBMISSION = "submission"
    AUDIT = "audit"


class UserRole(str, Enum):
    """Project member roles relevant to signing."""
    OWNER = "owner"
    DIRECTOR = "director"
    AUDITOR = "auditor"
    EDITOR = "editor"
    VIEWER = "viewer"


class AuditAction(str, Enum):
    """State-changing operations recorded in the audit trail."""
    CALCULATE = "CALCULATE"
    BULK_CALCULATE = "BULK_CALCULATE"
    CALCULATE_CFP = "CALCULATE_CFP"
    CALCULATE_CFO = "CALCULATE_CFO"
    CALCULATE_PRECURSORS = "CALCULATE_PRECURSORS"
    GENERATE_REPORT = "GENERATE_REPORT"
    BATCH_GENERATE_REPORT = "BATCH_GENERATE_REPORT"
    REGENERATE_REPORT = "REGENERATE_REPORT"
    DELETE = "DELETE"
    SIGN_REPORT = "SIGN_REPORT"
    VERIFY_SIGNATURE = "VERIFY_SIGNATURE"
    REVOKE_SIGNATURE = "REVOKE_SIGNATURE"
    CLEANUP_AUDIT_LOGS = "CLEANUP_AUDIT_LOGS"


class BatchStatus(str, Enum):
    """Batch report generation status."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"


class ValidationSeverity(str, Enum):
    """Severity of a validation issue."""
    ERROR = "error"
    WARNING = "warning"


class TrustTier(str, Enum):
    """Trust ranking of an external emission-factor source."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DataQuality(str, Enum):
    """Activity data quality rating."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


# =============================================================================
# Base configurations
# =============================================================================

_DOCUMENT_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="forbid",
)


class DocumentModel(BaseModel):
    """Model serialized with camelCase keys at the document boundary."""

    model_config = _DOCUMENT_CONFIG

    def to_document(self) -> Dict[str, Any]:
        """Dump as a JSON-compatible camelCase dictionary."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Calculation Models
# =============================================================================


class CalculationResult(BaseModel):
    """Outcome of calculating one activity."""
    activity_id: str = Field(..., description="Calculated activity id")
    quantity: float = Field(..., description="Activity quantity")
    unit: Optional[str] = Field(None, description="Activity unit")
    emission_factor: float = Field(..., description="Factor applied (kg CO2e per unit)")
    emission_factor_source: str = Field(..., description="Factor provenance tag")
    tier_level: TierLevel = Field(..., description="Effective tier level")
    tier_multiplier: float = Field(1.0, description="Multiplier applied for the tier")
    precursor_emissions: float = Field(0.0, description="Embedded precursor emissions (kg CO2e)")
    total_emissions_kg_co2e: float = Field(..., description="Total emissions rounded to 4 dp")

    model_config = {"extra": "forbid"}


class BatchCalculatedItem(BaseModel):
    """One successfully calculated activity in a batch."""
    activity_id: str
    name: str
    total_emissions_kg_co2e: float

    model_config = {"extra": "forbid"}


class BatchItemError(BaseModel):
    """One failed unit of a batch operation."""
    activity_id: str
    name: str
    error: str

    model_config = {"extra": "forbid"}


class BatchCalculationResult(BaseModel):
    """Result of calculating every pending activity of a project."""
    project_id: str = Field(..., description="Project id")
    total: int = Field(0, description="Pending activities considered")
    calculated: List[BatchCalculatedItem] = Field(default_factory=list)
    errors: List[BatchItemError] = Field(default_factory=list)
    cancelled: bool = Field(False, description="Whether the batch stopped early")

    model_config = {"extra": "forbid"}

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "calculated": len(self.calculated),
            "errors": len(self.errors),
        }


class PrecursorMaterial(BaseModel):
    """Input to a standalone precursor estimate."""
    material_type: str = Field(..., description="Precursor material, e.g. steel")
    quantity: float = Field(..., ge=0, description="Quantity in ``unit``")
    unit: str = Field("kg", description="kg, g, tonne or tonnes")
    production_route: Optional[str] = Field(None, description="Production route filter")

    model_config = {"extra": "forbid"}


class PrecursorLine(BaseModel):
    """Per-material precursor estimate."""
    material_type: str
    quantity_kg: float
    emission_factor: float
    emissions_kg_co2e: float
    production_route: Optional[str] = None
    source: str

    model_config = {"extra": "forbid"}


class PrecursorEstimate(BaseModel):
    """Standalone precursor estimate for a list of materials."""
    project_id: str
    lines: List[PrecursorLine] = Field(default_factory=list)
    total_emissions_kg_co2e: float = 0.0

    model_config = {"extra": "forbid"}


class ContractualInstrument(BaseModel):
    """Energy attribute certificate or contract for market-based Scope 2."""
    type: str = Field(..., description="ppa, rec or goo")
    quantity_kwh: float = Field(..., ge=0)
    emission_factor: float = Field(..., ge=0)
    supplier: Optional[str] = None

    model_config = {"extra": "forbid"}


class MarketBasedResult(BaseModel):
    """Market-based Scope 2 result."""
    emissions: float
    source: str = "market_based"
    covered_kwh: float = 0.0
    residual_kwh: float = 0.0

    model_config = {"extra": "forbid"}


class CBAMDefaultFactors(BaseModel):
    """CBAM default embedded-emission intensities (tCO2e per tonne of goods)."""
    goods_category: str
    direct_emissions: float
    indirect_emissions: float
    precursor_emissions: float
    source: str

    model_config = {"extra": "forbid"}


# =============================================================================
# Aggregation Models
# =============================================================================


class EmissionsSummary(DocumentModel):
    """Canonical scope summary of calculated activities (kg CO2e)."""
    scope1: float = 0.0
    scope2: float = 0.0
    scope3: float = 0.0
    scope3_categories: Dict[str, float] = Field(default_factory=dict)
    total: float = 0.0


class ProjectTotals(EmissionsSummary):
    """Emissions summary plus activity counts."""
    total_tonnes_co2e: float = 0.0
    activity_count: int = 0
    pending_activities: int = 0


class LifecycleBreakdown(DocumentModel):
    """CFP emissions per lifecycle stage (kg CO2e)."""
    raw_materials: float = 0.0
    production: float = 0.0
    distribution: float = 0.0
    use: float = 0.0
    end_of_life: float = 0.0

    def stage_values(self) -> List[float]:
        return [
            self.raw_materials,
            self.production,
            self.distribution,
            self.use,
            self.end_of_life,
        ]


class CFPResult(DocumentModel):
    """Carbon Footprint of Product snapshot."""
    id: str
    project_id: str
    product_name: Optional[str] = None
    functional_unit: Optional[str] = None
    production_volume: Optional[float] = None
    allocation_method: str = "mass"
    lifecycle_stages: LifecycleBreakdown
    cfp_total: float
    cfp_per_unit: float
    biogenic_carbon: float = 0.0
    created_at: Optional[datetime] = None


class CFOResult(DocumentModel):
    """Carbon Footprint of Organization snapshot."""
    id: str
    project_id: str
    organization_name: Optional[str] = None
    reporting_year: int
    consolidation_method: str = "operational_control"
    operational_boundary: str = "all"
    scope1: float = 0.0
    scope2_location: float = 0.0
    scope2_market: float = 0.0
    scope3_upstream: float = 0.0
    scope3_downstream: float = 0.0
    scope3_category_breakdown: Dict[str, float] = Field(default_factory=dict)
    cfo_total: float = 0.0
    created_at: Optional[datetime] = None


class HotSpot(DocumentModel):
    """A high-emitting activity."""
    id: str
    name: str
    scope: str
    scope3_category: Optional[str] = None
    activity_type: str
    emissions: float
    percentage: float
    quantity: Optional[float] = None
    unit: Optional[str] = None


class EmissionShare(DocumentModel):
    """Emissions of one group and its share of the project total."""
    key: str
    emissions: float
    percentage: float


class HotSpotReport(DocumentModel):
    """Top emitters of a project."""
    hot_spots: List[HotSpot] = Field(default_factory=list)
    by_scope: List[EmissionShare] = Field(default_factory=list)
    by_activity_type: List[EmissionShare] = Field(default_factory=list)
    total_emissions: float = 0.0


class DataQualityReport(DocumentModel):
    """Emission-weighted data quality assessment."""
    overall_score: float
    quality_rating: str
    breakdown: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)


class YearComparison(DocumentModel):
    """Baseline vs reporting year CFO comparison."""
    baseline_year: int
    reporting_year: int
    baseline: Dict[str, float]
    reporting: Dict[str, float]
    absolute_change: float
    percentage_change: float
    direction: str


# =============================================================================
# Report Documents
# =============================================================================


class ReportOptions(DocumentModel):
    """Caller-supplied supplemental fields for standard-specific sections.

    Accepts snake_case or camelCase keys. Absent values are defaulted by
    the report assembler.
    """
    # EU / UK CBAM
    goods_category: Optional[str] = None
    cn_code: Optional[str] = None
    country_of_origin: Optional[str] = None
    carbon_price_paid: Optional[float] = None
    uk_commodity_code: Optional[str] = None
    uk_carbon_price_equivalent: Optional[float] = None
    overseas_carbon_price: Optional[float] = None
    verification: Optional[str] = None
    # China carbon market
    unified_social_credit_code: Optional[str] = None
    facility_type: Optional[str] = None
    emission_allowance: Optional[float] = None
    compliance_status: Optional[str] = None
    ccer_offset: Optional[float] = None
    verification_body: Optional[str] = None
    # K-ESG
    business_registration_number: Optional[str] = None
    governance_structure: Optional[str] = None
    reduction_target: Optional[str] = None
    reduction_activities: Optional[List[str]] = None
    revenue: Optional[float] = None
    k_esg_score: Optional[float] = None
    k_esg_grade: Optional[str] = None
    renewable_energy_usage: Optional[float] = None
    # MAFF ESG
    corporate_number: Optional[str] = None
    agricultural_emissions: Optional[float] = None
    food_loss_reduction: Optional[str] = None
    sustainable_sourcing: Optional[str] = None
    biodiversity_impact: Optional[str] = None
    jgap_status: Optional[str] = None
    midori_strategy_alignment: Optional[str] = None
    organic_certification: Optional[str] = None
    j_credit_usage: Optional[float] = None
    # Thai ESG
    tax_id: Optional[str] = None
    set_industry_group: Optional[str] = None
    water_withdrawal: Optional[float] = None
    waste_management: Optional[str] = None
    employee_data: Optional[Dict[str, Any]] = None
    tcfd_alignment: Optional[bool] = None
    t_ver_credits: Optional[float] = None


class ProjectIdentity(DocumentModel):
    """Project block of a report document."""
    id: str
    name: str
    company: Optional[str] = None
    facility_name: Optional[str] = None
    facility_location: Optional[str] = None
    industry: Optional[str] = None
    baseline_year: Optional[int] = None
    reporting_year: int


class ReportingPeriod(DocumentModel):
    """Calendar reporting period."""
    start_date: str
    end_date: str


class ActivityLine(DocumentModel):
    """Calculated activity as listed in a report."""
    name: str
    scope: str
    category: Optional[str] = None
    quantity: float
    unit: Optional[str] = None
    emissions: float
    tier_level: str


class CFPSnapshot(DocumentModel):
    """Latest CFP figures embedded in a report."""
    product_name: Optional[str] = None
    functional_unit: Optional[str] = None
    cfp_total: float
    cfp_per_unit: float


class CFOSnapshot(DocumentModel):
    """Latest CFO figures embedded in a report."""
    organization_name: Optional[str] = None
    cfo_total: float


class ReportData(DocumentModel):
    """Standard-agnostic report document plus standard-specific fields.

    ``to_document()`` yields the camelCase form that validation inspects
    by dotted path, renderers serialize and signatures hash.
    """
    project: ProjectIdentity
    reporting_period: ReportingPeriod
    emissions: EmissionsSummary
    activities: List[ActivityLine] = Field(default_factory=list)
    cfp: Optional[CFPSnapshot] = None
    cfo: Optional[CFOSnapshot] = None
    generated_at: str
    standard: ReportStandard
    standard_specific: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Validation Models
# =============================================================================


class ValidationIssue(BaseModel):
    """One validation error or warning."""
    field: str = Field(..., description="Dotted path or field name")
    message: str = Field(..., description="Human-readable message")
    severity: ValidationSeverity = Field(..., description="error or warning")

    model_config = {"extra": "forbid"}


class ValidationResult(BaseModel):
    """Result of validating a report document against a standard."""
    valid: bool = True
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    missing_required: List[str] = Field(default_factory=list)
    completeness: int = Field(100, ge=0, le=100)

    model_config = {"extra": "forbid"}


class StandardRequirements(BaseModel):
    """Data requirements of a reporting standard."""
    standard: ReportStandard
    display_name: str
    required_fields: List[str]
    optional_fields: List[str]
    sections: List[str]
    signature_required: bool = False

    model_config = {"extra": "forbid"}


# =============================================================================
# Report Workflow Models
# =============================================================================


class ReportArtifacts(BaseModel):
    """Rendered files for one report."""
    file_path: str = Field(..., description="Primary artifact path")
    files: List[str] = Field(default_factory=list, description="All artifact paths")

    model_config = {"extra": "forbid"}


class ReportOutcome(BaseModel):
    """A generated or regenerated report."""
    id: str
    project_id: str
    standard: ReportStandard
    format: ReportFormat
    status: ReportStatus
    validation: ValidationResult
    file_path: Optional[str] = None
    files: List[str] = Field(default_factory=list)
    batch_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"extra": "forbid"}


class ReportSummary(BaseModel):
    """Report row without the full document."""
    id: str
    project_id: str
    standard: str
    format: str
    status: str
    file_path: Optional[str] = None
    batch_id: Optional[str] = None
    validation_errors: List[Dict[str, Any]] = Field(default_factory=list)
    validation_warnings: List[Dict[str, Any]] = Field(default_factory=list)
    completeness: Optional[int] = None
    render_error: Optional[str] = None
    generated_by: Optional[str] = None
    signed_at: Optional[datetime] = None
    signed_by: Optional[str] = None
    signature_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    report_data: Optional[Dict[str, Any]] = None

    model_config = {"extra": "forbid"}


class BatchUnitError(BaseModel):
    """A standard that failed during batch generation."""
    standard: str
    error: str

    model_config = {"extra": "forbid"}


class BatchReportStatus(BaseModel):
    """Progress record of a batch report generation."""
    id: str
    project_id: Optional[str] = None
    standards: List[str] = Field(default_factory=list)
    format: str = "pdf"
    status: BatchStatus = BatchStatus.PROCESSING
    progress: int = Field(0, ge=0, le=100)
    total_reports: int = 0
    processed_reports: int = 0
    generated_reports: int = 0
    errors: List[BatchUnitError] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    reconstructed: bool = Field(False, description="Rebuilt from persisted report rows")

    model_config = {"extra": "forbid"}


class BatchManifestItem(BaseModel):
    """One report of a batch as listed in its manifest."""
    id: str
    standard: str
    format: str
    status: ReportStatus
    file_path: Optional[str] = None
    has_warnings: bool = False
    has_errors: bool = False
    created_at: Optional[datetime] = None

    model_config = {"extra": "forbid"}


class BatchManifest(BaseModel):
    """Reports persisted for a batch with a count per status."""
    batch_id: str
    project_id: str
    project_name: Optional[str] = None
    reports: List[BatchManifestItem] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class BatchWarning(BaseModel):
    """Non-fatal batch condition, e.g. unconfigured standards."""
    type: str
    message: str
    standards: List[str] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class BatchReportResult(BaseModel):
    """Per-standard outcomes of a batch generation."""
    batch_id: str
    generated: List[ReportOutcome] = Field(default_factory=list)
    errors: List[BatchUnitError] = Field(default_factory=list)
    warnings: List[BatchWarning] = Field(default_factory=list)
    status: BatchStatus = BatchStatus.COMPLETED

    model_config = {"extra": "forbid"}

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "requested": len(self.generated) + len(self.errors),
            "generated": len(self.generated),
            "failed": len(self.errors),
            "warnings": len(self.warnings),
        }


# =============================================================================
# Signature Models
# =============================================================================


class SignaturePayload(DocumentModel):
    """Signed payload; hashed in canonical camelCase form."""
    report_id: str
    user_id: str
    content_hash: str
    signature_type: str
    timestamp: str
    nonce: str


class SignatureData(DocumentModel):
    """Full signature material stored alongside a signature row."""
    hash: str
    content_hash: str
    payload: SignaturePayload
    algorithm: str = "sha256"
    version: str = "1.0"


class VerificationResult(BaseModel):
    """Outcome of verifying a signature against report content."""
    valid: bool
    timestamp: datetime = Field(default_factory=utcnow)
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class SignatureOutcome(BaseModel):
    """A stored signature."""
    id: str
    report_id: str
    project_id: Optional[str] = None
    standard: Optional[str] = None
    signature_type: str
    signature_hash: str
    content_hash: str
    signer_id: str
    signer_role: Optional[str] = None
    declaration_text: Optional[str] = None
    comments: Optional[str] = None
    is_revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None
    revoked_reason: Optional[str] = None
    signed_at: Optional[datetime] = None

    model_config = {"extra": "forbid"}


class RevocationResult(BaseModel):
    """Outcome of revoking a signature."""
    id: str
    report_id: str
    revoked_at: datetime
    revoked_by: str
    reason: str

    model_config = {"extra": "forbid"}


class CertificateData(DocumentModel):
    """Display certificate for a signature."""
    certificate_id: str
    issue_date: str
    signature_hash: str
    content_hash: str
    signer: Dict[str, Optional[str]]
    report: Dict[str, Any]
    verification: Dict[str, str]


# =============================================================================
# Audit Models
# =============================================================================


class AuditLogEntry(BaseModel):
    """Immutable audit fact."""
    id: str
    project_id: Optional[str] = None
    user_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    created_at: datetime

    model_config = {"extra": "forbid"}


class AuditLogPage(BaseModel):
    """A page of audit entries."""
    logs: List[AuditLogEntry] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50

    model_config = {"extra": "forbid"}


class AuditSummary(BaseModel):
    """Aggregate audit statistics for a project."""
    total_logs: int = 0
    action_counts: Dict[str, int] = Field(default_factory=dict)
    entity_counts: Dict[str, int] = Field(default_factory=dict)
    top_users: List[Dict[str, Any]] = Field(default_factory=list)
    daily_activity: List[Dict[str, Any]] = Field(default_factory=list)
    period: Dict[str, str] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class RetentionInfo(BaseModel):
    """Audit retention policy description."""
    retention_days: int
    retention_years: float
    oldest_retained_date: datetime
    policy: str

    model_config = {"extra": "forbid"}


class CleanupResult(BaseModel):
    """Outcome of an audit retention cleanup run."""
    success: bool = True
    deleted_count: int = 0
    cutoff_date: datetime
    batches: int = 0
    message: str = ""

    model_config = {"extra": "forbid"}


# =============================================================================
# External Search Models
# =============================================================================


class ExternalFactor(BaseModel):
    """Emission factor parsed from an external search result."""
    activity_type: str
    factor: float
    unit: str
    source: str
    url: str = ""
    confidence: TrustTier = TrustTier.LOW
    notes: Optional[str] = None

    model_config = {"extra": "forbid"}


__all__ = [
    # Enums
    "EmissionScope",
    "ScopeDirection",
    "Scope3Category",
    "TierLevel",
    "CalculationStatus",
    "LifecycleStage",
    "ReportStandard",
    "ReportStatus",
    "ReportFormat",
    "SignatureType",
    "UserRole",
    "AuditAction",
    "BatchStatus",
    "ValidationSeverity",
    "TrustTier",
    "DataQuality",
    # Base
    "DocumentModel",
    # Calculation
    "CalculationResult",
    "BatchCalculatedItem",
    "BatchItemError",
    "BatchCalculationResult",
    "PrecursorMaterial",
    "PrecursorLine",
    "PrecursorEstimate",
    "ContractualInstrument",
    "MarketBasedResult",
    "CBAMDefaultFactors",
    # Aggregation
    "EmissionsSummary",
    "ProjectTotals",
    "LifecycleBreakdown",
    "CFPResult",
    "CFOResult",
    "HotSpot",
    "EmissionShare",
    "HotSpotReport",
    "DataQualityReport",
    "YearComparison",
    # Documents
    "ReportOptions",
    "ProjectIdentity",
    "ReportingPeriod",
    "ActivityLine",
    "CFPSnapshot",
    "CFOSnapshot",
    "ReportData",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    "StandardRequirements",
    # Reports
    "ReportArtifacts",
    "ReportOutcome",
    "ReportSummary",
    "BatchUnitError",
    "BatchReportStatus",
    "BatchManifestItem",
    "BatchManifest",
    "BatchWarning",
    "BatchReportResult",
    # Signatures
    "SignaturePayload",
    "SignatureData",
    "VerificationResult",
    "SignatureOutcome",
    "RevocationResult",
    "CertificateData",
    # Audit
    "AuditLogEntry",
    "AuditLogPage",
    "AuditSummary",
    "RetentionInfo",
    "CleanupResult",
    # External
    "ExternalFactor",
]
