"""
Human-readable document numbers: <PREFIX>-<YYYYMMDD>-<NNNN>, one sequence per prefix and day.

Uniqueness is enforced by the unique constraint on the number column. Two parallel
creations may compute the same number; the loser's commit fails and surfaces as a
retryable ConcurrentModificationError (see store.unit_of_work).
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from .extensions import db
from .models import GoodsReceipt, PurchaseOrder, SupplierInvoice, today

PURCHASE_ORDER_PREFIX = "PO"
GOODS_RECEIPT_PREFIX = "GR"
INVOICE_PREFIX = "INV"


def next_number(column, prefix: str, on: date | None = None) -> str:
    stem = f"{prefix}-{(on or today()).strftime('%Y%m%d')}-"
    count = db.session.scalar(
        db.select(func.count()).where(column.like(f"{stem}%"))
    )
    return f"{stem}{(count or 0) + 1:04d}"


def next_order_number(on: date | None = None) -> str:
    return next_number(PurchaseOrder.order_number, PURCHASE_ORDER_PREFIX, on)


def next_receipt_number(on: date | None = None) -> str:
    return next_number(GoodsReceipt.receipt_number, GOODS_RECEIPT_PREFIX, on)


def next_invoice_number(on: date | None = None) -> str:
    return next_number(SupplierInvoice.invoice_number, INVOICE_PREFIX, on)
