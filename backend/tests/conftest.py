"""
conftest.py — Shared pytest fixtures for the invoice engine test suite.

No database or external service fixtures are defined here. The engine tests
are pure unit tests; the API tests drive the FastAPI app in-process through
``TestClient``.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Line item fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def metal_rate():
    """24K metal rate used throughout: 6000 per gram."""
    return 6000.0


@pytest.fixture
def ring_item(metal_rate):
    """
    The reference jewelry item, built edit by edit:
      gross 10 g, diamond 1 ct @ 50 000/ct, purity 0.75, making 2 000.

    Expected:
      net = 10 − 1/5 = 9.8 g, gold = 9.8 × 0.75 × 6000 = 44 100,
      diamond = 50 000, subtotal = 96 100.
    """
    from app.services.line_item_engine import apply_field_edit, new_line_item

    item = new_line_item("item-ring")
    for field_name, value in [
        ("item_name", "Solitaire Ring"),
        ("purity_fraction", 0.75),
        ("gross_weight", 10),
        ("diamond_weight", 1),
        ("diamond_per_carat_price", 50_000),
        ("making_charges", 2_000),
    ]:
        item = apply_field_edit(item, field_name, value, metal_rate)
    return item


# ---------------------------------------------------------------------------
# Invoice fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def split_tax():
    """SGST 1.5 % + CGST 1.5 %, no shipping, 83 INR per USD."""
    from app.services.invoice_engine import TaxConfiguration
    return TaxConfiguration(mode="split", sgst_pct=1.5, cgst_pct=1.5, exchange_rate=83.0)


@pytest.fixture
def ring_invoice(ring_item, split_tax, metal_rate):
    """Complete, generate-ready invoice with one ring and a 10 % margin."""
    from app.services.invoice_engine import new_invoice

    invoice = new_invoice(
        estimate_name="Diamond Engagement Ring Order",
        customer_name="Priya Sharma",
        customer_phone="+91 98765 43210",
        metal_rate_24k=metal_rate,
        profit_margin_pct=10,
    )
    return invoice.with_tax(split_tax).add_line_item(ring_item)


@pytest.fixture
def ring_record(ring_invoice):
    from app.services.invoice_service import to_record
    return to_record(ring_invoice)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def client():
    from fastapi.testclient import TestClient
    from app.main import app
    with TestClient(app) as c:
        yield c
