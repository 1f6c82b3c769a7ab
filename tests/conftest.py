"""Shared test fixtures for the PEO Portal test suite."""

import sys
from pathlib import Path

import pytest

# Add project root to path (config.py lives there)
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

from peo_portal import create_app  # noqa: E402
from peo_portal.extensions import db  # noqa: E402


@pytest.fixture
def app():
    """Application on an in-memory SQLite database with all tables created."""
    app = create_app("config.TestingConfig")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def budget_id(app):
    """FY2026 budget of 1,000,000.00."""
    from peo_portal.services.budget_ledger import create_budget

    return create_budget({"fiscal_year": 2026, "total_budget": "1000000.00", "status": "Approved"})["id"]


@pytest.fixture
def make_pow(app):
    """Factory: create a POW (FY2026 by default) and return {id, pow_number}."""
    from peo_portal.services.pows import create_pow

    def _make(estimated_cost="100000.00", fiscal_year=2026, budget_id=None, **extra):
        data = {
            "project_title": extra.pop("project_title", "Concreting of Barangay Road"),
            "fiscal_year": fiscal_year,
            "estimated_cost": estimated_cost,
            "budget_id": budget_id,
        }
        data.update(extra)
        return create_pow(data)

    return _make


@pytest.fixture
def contractor_id(app):
    from peo_portal.services.contractors import create_contractor

    return create_contractor({"name": "Palawan Builders Corp.", "tin": "123-456-789-000"})["id"]


@pytest.fixture
def make_contract(app):
    """Factory: create a ContractHistory row and return its id."""
    from peo_portal.services.contractors import create_contract_history

    def _make(contractor_id, contract_amount=None, status=None, **extra):
        data = {"contractor_id": contractor_id, "project_title": "Road Rehabilitation"}
        if contract_amount is not None:
            data["contract_amount"] = contract_amount
        if status is not None:
            data["status"] = status
        data.update(extra)
        return create_contract_history(data)["id"]

    return _make
