"""
Database models for the GreenLedger reporting pipeline

Supports:
- Projects and their activity data (read by the core, written by callers)
- Emission, grid and precursor factor tables with project overrides
- Append-only CFP / CFO snapshots
- Reports, signatures and the audit log

All timestamps are naive UTC.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm.base import NEVER_SET, NO_VALUE

from greenledger.db.base import Base
from greenledger.determinism import new_id, utcnow_naive


class ProjectRecord(Base):
    """Reporting project; the core only reads it"""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    company = Column(String(255), nullable=True)
    facility_name = Column(String(255), nullable=True)
    facility_location = Column(String(255), nullable=True)
    industry = Column(String(100), nullable=True)
    baseline_year = Column(Integer, nullable=True)
    reporting_year = Column(Integer, nullable=False)
    reporting_standards = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class ActivityRecord(Base):
    """Emission-generating activity with its calculation state"""

    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Classification
    scope = Column(String(10), nullable=False)  # scope1, scope2, scope3
    scope3_category = Column(String(50), nullable=True)
    activity_type = Column(String(100), nullable=False)
    material_type = Column(String(100), nullable=True)

    # Activity data
    quantity = Column(Float, nullable=True)
    unit = Column(String(50), nullable=True)
    tier_level = Column(String(20), nullable=False, default="tier1")

    # Calculation state
    calculation_status = Column(String(20), nullable=False, default="pending")
    total_emissions_kg_co2e = Column(Float, nullable=True)
    emission_factor_used = Column(JSON, nullable=True)  # {factor, source}
    calculated_at = Column(DateTime, nullable=True)

    # Data quality
    data_quality_score = Column(String(20), nullable=True)  # high, medium, low
    data_source = Column(String(100), nullable=True)
    activity_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive, nullable=False)

    __table_args__ = (
        Index("idx_activities_project_status", "project_id", "calculation_status"),
    )


def _reset_calculation(target, value, oldvalue):
    if oldvalue is NO_VALUE or oldvalue is NEVER_SET:
        return
    if value == oldvalue:
        return
    target.calculation_status = "pending"
    target.total_emissions_kg_co2e = None


@event.listens_for(ActivityRecord.quantity, "set", active_history=True)
def _quantity_set(target, value, oldvalue, initiator):
    _reset_calculation(target, value, oldvalue)


@event.listens_for(ActivityRecord.unit, "set", active_history=True)
def _unit_set(target, value, oldvalue, initiator):
    _reset_calculation(target, value, oldvalue)


class EmissionFactorRecord(Base):
    """Emission factor per activity type and unit; project rows override global"""

    __tablename__ = "emission_factors"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), nullable=True, index=True)
    activity_type = Column(String(100), nullable=False)
    unit = Column(String(50), nullable=False)
    factor_value = Column(Float, nullable=False)  # kg CO2e per unit
    source = Column(String(255), nullable=False)
    year = Column(Integer, nullable=True)
    region = Column(String(100), nullable=True)
    standard = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)

    __table_args__ = (
        Index("idx_emission_factors_lookup", "activity_type", "unit"),
    )


class GridEmissionFactorRecord(Base):
    """Electricity grid emission factor per region and year"""

    __tablename__ = "grid_emission_factors"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), nullable=True, index=True)
    region = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    factor_kg_co2_per_kwh = Column(Float, nullable=False)
    source = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)

    __table_args__ = (
        Index("idx_grid_factors_region_year", "region", "year"),
    )


class PrecursorFactorRecord(Base):
    """Embedded emissions of precursor materials (kg CO2e per kg)"""

    __tablename__ = "precursor_factors"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), nullable=True, index=True)
    material_type = Column(String(100), nullable=False)
    activity_type = Column(String(100), nullable=True)
    production_route = Column(String(100), nullable=True)
    factor_kg_co2_per_kg = Column(Float, nullable=False)
    source = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class PrecursorCalculationRecord(Base):
    """One matched precursor factor applied to an activity"""

    __tablename__ = "precursor_calculations"

    id = Column(String(36), primary_key=True, default=new_id)
    activity_id = Column(
        String(36), ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    precursor_type = Column(String(100), nullable=False)
    quantity_kg = Column(Float, nullable=False)
    emission_factor = Column(Float, nullable=False)
    emissions_kg_co2e = Column(Float, nullable=False)
    production_route = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class CFPResultRecord(Base):
    """Append-only Carbon Footprint of Product snapshot"""

    __tablename__ = "cfp_results"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    product_name = Column(String(255), nullable=True)
    functional_unit = Column(String(100), nullable=True)
    production_volume = Column(Float, nullable=True)
    allocation_method = Column(String(50), nullable=False, default="mass")

    # Lifecycle stages (kg CO2e)
    raw_materials_emissions = Column(Float, nullable=False, default=0.0)
    production_emissions = Column(Float, nullable=False, default=0.0)
    distribution_emissions = Column(Float, nullable=False, default=0.0)
    use_emissions = Column(Float, nullable=False, default=0.0)
    end_of_life_emissions = Column(Float, nullable=False, default=0.0)

    cfp_total = Column(Float, nullable=False)
    cfp_per_unit = Column(Float, nullable=False)
    biogenic_carbon = Column(Float, nullable=False, default=0.0)

    calculated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False, index=True)


class CFOResultRecord(Base):
    """Append-only Carbon Footprint of Organization snapshot"""

    __tablename__ = "cfo_results"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    organization_name = Column(String(255), nullable=True)
    reporting_year = Column(Integer, nullable=False)
    consolidation_method = Column(String(50), nullable=False, default="operational_control")
    operational_boundary = Column(String(50), nullable=False, default="all")

    scope1_emissions = Column(Float, nullable=False, default=0.0)
    scope2_location_emissions = Column(Float, nullable=False, default=0.0)
    scope2_market_emissions = Column(Float, nullable=False, default=0.0)
    scope3_upstream_emissions = Column(Float, nullable=False, default=0.0)
    scope3_downstream_emissions = Column(Float, nullable=False, default=0.0)
    scope3_category_breakdown = Column(JSON, nullable=False, default=dict)

    cfo_total = Column(Float, nullable=False)

    calculated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False, index=True)


class ReportRecord(Base):
    """Generated compliance report and its validation snapshot"""

    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    batch_id = Column(String(36), nullable=True, index=True)
    standard = Column(String(50), nullable=False)
    format = Column(String(10), nullable=False, default="pdf")
    status = Column(String(20), nullable=False, default="draft")

    report_data = Column(JSON, nullable=True)
    file_path = Column(Text, nullable=True)
    files = Column(JSON, nullable=True)

    # Validation snapshot
    validation_errors = Column(JSON, nullable=True)
    validation_warnings = Column(JSON, nullable=True)
    missing_required = Column(JSON, nullable=True)
    completeness = Column(Integer, nullable=True)
    render_error = Column(Text, nullable=True)

    generated_by = Column(String(36), nullable=True)

    # Signing
    signed_at = Column(DateTime, nullable=True)
    signed_by = Column(String(36), nullable=True)
    signature_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive, nullable=False)


class SignatureRecord(Base):
    """Digital signature binding a signer to report content"""

    __tablename__ = "signatures"

    id = Column(String(36), primary_key=True, default=new_id)
    report_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    signer_role = Column(String(20), nullable=True)
    signature_type = Column(String(20), nullable=False, default="approval")

    signature_hash = Column(String(64), nullable=False)
    content_hash = Column(String(64), nullable=False)
    signature_data = Column(JSON, nullable=False)  # payload, algorithm, version

    declaration_text = Column(Text, nullable=True)
    comments = Column(Text, nullable=True)

    # Revocation
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    revoked_by = Column(String(36), nullable=True)
    revoked_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class AuditLogRecord(Base):
    """Immutable audit fact"""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), nullable=True, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False, index=True)

    __table_args__ = (
        Index("idx_audit_logs_entity", "entity_type", "entity_id"),
    )


__all__ = [
    "ProjectRecord",
    "ActivityRecord",
    "EmissionFactorRecord",
    "GridEmissionFactorRecord",
    "PrecursorFactorRecord",
    "PrecursorCalculationRecord",
    "CFPResultRecord",
    "CFOResultRecord",
    "ReportRecord",
    "SignatureRecord",
    "AuditLogRecord",
]
