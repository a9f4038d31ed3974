# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database, an in-process cache and
a config whose report directory lives under ``tmp_path``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pytest

from greenledger.audit.trail import AuditTrail
from greenledger.cache import InMemoryCache
from greenledger.calculation.aggregation import AggregationEngine
from greenledger.calculation.analytics import ProjectAnalytics
from greenledger.calculation.calculator import ActivityCalculator
from greenledger.config import LedgerConfig, reset_config, set_config
from greenledger.db.base import build_engine, create_session_factory, init_db, session_scope
from greenledger.db.models import ActivityRecord, ProjectRecord
from greenledger.factors.resolver import FactorResolver
from greenledger.models import ReportStandard
from greenledger.reports.assembler import ReportAssembler
from greenledger.reports.generator import ReportGenerator
from greenledger.reports.renderer import ReportRenderer
from greenledger.setup import ReportingService
from greenledger.signatures.service import SignatureService
from greenledger.standards.registry import StandardRegistry
from greenledger.standards.validation import ValidationEngine

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

ALL_STANDARDS = [s.value for s in ReportStandard]


def fixed_clock() -> datetime:
    return FIXED_NOW


# =============================================================================
# Configuration and storage
# =============================================================================


@pytest.fixture
def config(tmp_path):
    """Test configuration writing reports under tmp_path."""
    cfg = LedgerConfig(
        database_url="sqlite://",
        reports_dir=str(tmp_path / "reports"),
        log_level="DEBUG",
    )
    set_config(cfg)
    yield cfg
    reset_config()


@pytest.fixture
def engine():
    """In-memory SQLite engine with every table created."""
    eng = build_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def cache():
    return InMemoryCache(max_size=1000)


# =============================================================================
# Components
# =============================================================================


@pytest.fixture
def audit(session_factory, cache, config):
    return AuditTrail(session_factory, cache, config=config)


@pytest.fixture
def resolver(session_factory, cache, config):
    return FactorResolver(session_factory, cache, config=config)


@pytest.fixture
def calculator(session_factory, resolver, audit, config):
    return ActivityCalculator(session_factory, resolver, audit, config=config)


@pytest.fixture
def aggregation(session_factory, audit, config):
    return AggregationEngine(session_factory, audit, config=config)


@pytest.fixture
def analytics(session_factory, aggregation):
    return ProjectAnalytics(session_factory, aggregation)


@pytest.fixture
def registry():
    return StandardRegistry()


@pytest.fixture
def validator(registry):
    return ValidationEngine(registry)


@pytest.fixture
def assembler(session_factory, aggregation, registry):
    return ReportAssembler(session_factory, aggregation, registry=registry, clock=fixed_clock)


@pytest.fixture
def renderer(config, registry):
    return ReportRenderer(config=config, registry=registry, clock=fixed_clock)


@pytest.fixture
def generator(session_factory, cache, assembler, validator, renderer, audit, registry, config):
    return ReportGenerator(
        session_factory,
        cache,
        assembler,
        validator,
        renderer,
        audit,
        registry=registry,
        config=config,
    )


@pytest.fixture
def signatures(session_factory, audit, registry, config):
    return SignatureService(session_factory, audit, registry=registry, config=config)


@pytest.fixture
def service(config, engine, session_factory, cache):
    """Reporting facade bound to the test database."""
    svc = ReportingService(
        config=config,
        engine=engine,
        session_factory=session_factory,
        cache=cache,
        clock=fixed_clock,
    )
    svc.startup()
    return svc


# =============================================================================
# Data builders
# =============================================================================


@pytest.fixture
def make_project(session_factory):
    """Factory inserting a project row and returning its id."""

    def _make(
        name: str = "Busan Steel Works",
        company: Optional[str] = "Hanbit Steel Co.",
        standards=None,
        reporting_year: int = 2024,
        baseline_year: Optional[int] = 2023,
    ) -> str:
        with session_scope(session_factory) as session:
            project = ProjectRecord(
                name=name,
                company=company,
                facility_name="Plant 1",
                facility_location="Busan, KR",
                industry="steel",
                baseline_year=baseline_year,
                reporting_year=reporting_year,
                reporting_standards=list(ALL_STANDARDS if standards is None else standards),
            )
            session.add(project)
            session.flush()
            return project.id

    return _make


@pytest.fixture
def make_activity(session_factory):
    """Factory inserting an activity row and returning its id."""

    def _make(project_id: str, **fields: Any) -> str:
        values: Dict[str, Any] = {
            "name": "Activity",
            "scope": "scope1",
            "activity_type": "stationary_combustion",
            "quantity": 100.0,
            "unit": "natural_gas_m3",
        }
        values.update(fields)
        with session_scope(session_factory) as session:
            activity = ActivityRecord(project_id=project_id, **values)
            session.add(activity)
            session.flush()
            return activity.id

    return _make


@pytest.fixture
def project_id(make_project):
    return make_project()


@pytest.fixture
def calculated_project(make_project, make_activity):
    """Project with four calculated activities.

    scope1 2020, scope2 4200, scope3 1200 (purchased_goods 1000 upstream,
    downstream_transport 200 downstream); total 7420 kg CO2e.
    """
    pid = make_project()
    make_activity(
        pid, name="Boiler natural gas", scope="scope1",
        activity_type="stationary_combustion", quantity=1000.0, unit="natural_gas_m3",
        calculation_status="calculated", total_emissions_kg_co2e=2020.0,
        data_quality_score="high", data_source="invoice",
    )
    make_activity(
        pid, name="Grid electricity", scope="scope2",
        activity_type="purchased_electricity", quantity=10000.0, unit="kWh",
        calculation_status="calculated", total_emissions_kg_co2e=4200.0,
        data_quality_score="medium", data_source="meter",
    )
    make_activity(
        pid, name="Purchased steel", scope="scope3", scope3_category="purchased_goods",
        activity_type="purchased_goods", quantity=500.0, unit="kg_generic",
        calculation_status="calculated", total_emissions_kg_co2e=1000.0,
        data_quality_score="low", data_source="estimate",
    )
    make_activity(
        pid, name="Outbound trucking", scope="scope3", scope3_category="downstream_transport",
        activity_type="downstream_transport", quantity=2000.0, unit="tonne_km",
        calculation_status="calculated", total_emissions_kg_co2e=200.0,
    )
    return pid


@pytest.fixture
def eu_options():
    """Options giving an EU CBAM report no validation warnings."""
    return {"cnCode": "7208", "countryOfOrigin": "KR", "goodsCategory": "iron_steel"}


@pytest.fixture
def k_esg_options():
    """Options satisfying every K-ESG required field."""
    return {
        "governanceStructure": "Board ESG committee",
        "reductionTarget": "30% by 2030",
        "reductionActivities": ["LED retrofit", "Heat recovery"],
        "revenue": 1000000,
    }
