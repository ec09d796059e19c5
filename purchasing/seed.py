"""
purchasing/seed.py

Seed demo suppliers for local development.

Rules:
- Safe to run multiple times (idempotent, matched by supplier code).
- Existing suppliers keep their status; only descriptive fields are synced.

NOTE:
- Purchase orders, receipts and invoices are never seeded: they only come into
  existence through the engine operations (numbering, audit, status rules).
"""

from __future__ import annotations

from .extensions import db
from .models import PaymentTerms, Supplier, SupplierStatus


DEMO_SUPPLIERS = [
    # code, name, email, payment terms
    ("ACME", "Acme Industrial Supplies", "orders@acme.example", PaymentTerms.NET_30),
    ("NORDIC", "Nordic Office Furniture", "sales@nordic.example", PaymentTerms.NET_60),
    ("QUICKPARTS", "QuickParts Wholesale", "ap@quickparts.example", PaymentTerms.DUE_ON_RECEIPT),
]


def seed_demo_suppliers() -> int:
    """Create the demo suppliers that don't exist yet. Returns the number created."""
    created = 0
    for code, name, email, terms in DEMO_SUPPLIERS:
        supplier = db.session.execute(db.select(Supplier).filter_by(code=code)).scalar_one_or_none()
        if supplier:
            # keep descriptive fields in sync
            supplier.name = name
            supplier.email = email
            supplier.payment_terms = terms
            continue

        db.session.add(
            Supplier(
                code=code,
                name=name,
                email=email,
                payment_terms=terms,
                status=SupplierStatus.ACTIVE,
            )
        )
        created += 1

    db.session.commit()
    return created
