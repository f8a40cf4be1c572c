"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

from decimal import Decimal

import pytest

from src.core.config import reset_estimator_settings
from src.core.enums import CopayLogic, PlanType
from src.schemas.estimate import Accumulators, Benefits, Procedure
from src.services.estimate.limits import AccumulatorState


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read ESTIMATOR_* settings for every test."""
    reset_estimator_settings()
    yield
    reset_estimator_settings()


@pytest.fixture
def individual_benefits():
    """Individual plan: $500 deductible, $2,000 OOP max, 20% coinsurance."""
    return Benefits(
        plan_type=PlanType.INDIVIDUAL,
        individual_deductible=Decimal("500"),
        individual_oop_max=Decimal("2000"),
        coinsurance_percentage=Decimal("20"),
        copay_logic=CopayLogic.STANDARD_WATERFALL,
    )


@pytest.fixture
def embedded_benefits():
    """Embedded family plan: $1,000/$3,000 deductible, $4,000/$8,000 OOP."""
    return Benefits(
        plan_type=PlanType.EMBEDDED_FAMILY,
        individual_deductible=Decimal("1000"),
        individual_oop_max=Decimal("4000"),
        family_deductible=Decimal("3000"),
        family_oop_max=Decimal("8000"),
        coinsurance_percentage=Decimal("20"),
    )


@pytest.fixture
def empty_state():
    """Individual-plan accumulator state with nothing met."""
    return AccumulatorState(patient=Accumulators())


@pytest.fixture
def make_procedure():
    """Factory for procedures with sensible defaults."""

    def _make(id=1, allowed="100", **overrides):
        data = {
            "id": id,
            "cpt_code": overrides.pop("cpt_code", f"9921{id}" if isinstance(id, int) else "99213"),
            "allowed_amount": allowed,
        }
        data.update(overrides)
        return Procedure(**data)

    return _make


@pytest.fixture
def sample_meta_data():
    """Opaque request metadata."""
    return {
        "patient": {"name": "Jane Doe", "member_id": "MBR-1001", "dob": "1985-04-12"},
        "insurance": {"name": "Aetna"},
        "practice": {"name": "Lakeside Clinic", "tax_id": "12-3456789"},
        "provider": {"name": "Dr. Smith", "npi": "1234567890"},
        "service": {"date": "2026-10-01"},
    }


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
