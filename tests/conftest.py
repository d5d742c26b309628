"""
Pytest configuration and shared fixtures.

Registers the integration marker/option and provides an isolated store
and API client per test.
"""

import pytest
from fastapi.testclient import TestClient

from pcard_approvals.api.deps import get_store
from pcard_approvals.api.main import app
from pcard_approvals.models.purchase_request import PurchaseRequestDraft
from pcard_approvals.services.storage import InMemoryPurchaseRequestStore


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Azure resources"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real Azure resources"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def store():
    """Fresh in-memory store for each test"""
    return InMemoryPurchaseRequestStore()


@pytest.fixture
def client(store):
    """API client wired to the per-test store"""
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_draft():
    """Build a complete request form; override any field by keyword"""
    def _make(**overrides) -> PurchaseRequestDraft:
        fields = {
            "cardholder_name": "Jane Doe",
            "p_card_name": "JANE DOE",
            "expense_date": "2026-10-15",
            "vendor_name": "Staples",
            "vendor_location": "Online",
            "purchase_amount": 100.0,
            "tax_amount": 8.25,
            "shipping_amount": 0.0,
            "business_purpose": "Team supplies",
            "detailed_description": "Notebooks and pens for the onboarding kit",
            "category": "Office Supplies",
        }
        fields.update(overrides)
        return PurchaseRequestDraft(**fields)

    return _make
