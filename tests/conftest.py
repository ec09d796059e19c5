"""
Pytest configuration and shared fixtures for the purchasing test suite.
"""
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Generator

import pytest

from purchasing import create_app, services
from purchasing.extensions import db
from purchasing.logging_config import reset_logging
from purchasing.services import InvoiceInput, InvoiceLineInput, OrderLineInput


@pytest.fixture
def app(tmp_path: Path) -> Generator:
    """Application bound to an isolated SQLite file, with an active app context."""
    reset_logging()
    application = create_app(
        "config.TestConfig",
        {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'purchasing_test.db'}"},
    )
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
    reset_logging()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def supplier(app):
    """An active supplier on net 30 terms."""
    return services.create_supplier(
        {"code": "acme", "name": "Acme Industrial Supplies", "email": "orders@acme.example"},
        "tester",
    )


@pytest.fixture
def make_order(supplier):
    """
    Factory for purchase orders.

    Defaults to a single 100-unit line, approved and ready to receive.
    """

    def _make(lines=None, *, approve: bool = True, tax_rate: Decimal = Decimal("0")):
        lines = lines or [OrderLineInput("WIDGET", Decimal("100"), Decimal("2.50"), "Widget")]
        order = services.create_purchase_order(supplier.id, lines, "buyer", tax_rate=tax_rate)
        if approve:
            services.submit_purchase_order(order.id, "buyer")
            services.approve_purchase_order(order.id, "manager")
        return order

    return _make


@pytest.fixture
def make_invoice(supplier):
    """Factory for supplier invoices with a single line worth ``total``."""
    counter = {"n": 0}

    def _make(total: Decimal = Decimal("1000.00"), *, number: str | None = None,
              invoice_date: date = date(2024, 1, 1), due_date: date | None = None, **refs):
        counter["n"] += 1
        fields = InvoiceInput(
            supplier_id=supplier.id,
            supplier_invoice_number=number or f"ACME-{counter['n']:03d}",
            invoice_date=invoice_date,
            due_date=due_date,
            lines=[InvoiceLineInput("Goods as per delivery", Decimal("1"), total)],
            **refs,
        )
        return services.create_supplier_invoice(fields, "clerk")

    return _make


@pytest.fixture
def actor_headers():
    return {"X-Actor": "api-user"}
