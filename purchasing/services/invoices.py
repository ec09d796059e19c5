"""
Supplier invoice service.

Invoice registration, payments (ledger appends), cancellation and the overdue
sweep. Payment arithmetic lives in engine/invoice_payments.py; this module adds
the transaction, locking and audit around it.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Sequence

from .. import store
from ..audit import log_action, serialize_model
from ..engine import invoice_payments
from ..engine.invoice_payments import PaymentEntry
from ..exceptions import (
    DuplicateInvoiceNumberError,
    GoodsReceiptNotFoundError,
    InvalidStateError,
    InvoiceNotFoundError,
    PurchaseOrderNotFoundError,
    SupplierNotFoundError,
    ValidationFailedError,
)
from ..extensions import db
from ..logging_config import get_logger
from ..models import (
    GoodsReceipt,
    InvoiceLine,
    InvoiceStatus,
    POStatus,
    PurchaseOrder,
    Supplier,
    SupplierInvoice,
    _is_finite,
    _to_decimal,
    today,
)
from ..numbering import next_invoice_number

logger = get_logger("services.invoices")

OPEN_STATUSES = (InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.OVERDUE)


@dataclass(frozen=True)
class InvoiceLineInput:
    description: str
    quantity: Decimal
    unit_price: Decimal
    item_code: str | None = None


@dataclass(frozen=True)
class InvoiceInput:
    supplier_id: int
    supplier_invoice_number: str
    invoice_date: date
    lines: Sequence[InvoiceLineInput] = field(default_factory=tuple)
    due_date: date | None = None
    tax_amount: Decimal = Decimal("0.00")
    purchase_order_id: int | None = None
    goods_receipt_id: int | None = None
    notes: str | None = None


def _validate_tax_amount(tax_amount) -> None:
    if not _is_finite(tax_amount) or _to_decimal(tax_amount) < 0:
        raise ValidationFailedError("tax_amount", "must not be negative")


def _validate_lines(lines: Sequence[InvoiceLineInput]) -> None:
    if not lines:
        raise ValidationFailedError("lines", "at least one line is required")

    for idx, line in enumerate(lines):
        if not (line.description or "").strip():
            raise ValidationFailedError(f"lines[{idx}].description", "is required")
        if line.quantity is None or not _is_finite(line.quantity) or _to_decimal(line.quantity) <= 0:
            raise ValidationFailedError(f"lines[{idx}].quantity", "must be greater than zero")
        if line.unit_price is None or not _is_finite(line.unit_price) or _to_decimal(line.unit_price) < 0:
            raise ValidationFailedError(f"lines[{idx}].unit_price", "must not be negative")


def _validate(fields: InvoiceInput) -> None:
    if not (fields.supplier_invoice_number or "").strip():
        raise ValidationFailedError("supplier_invoice_number", "is required")
    if fields.invoice_date is None:
        raise ValidationFailedError("invoice_date", "is required")
    if fields.due_date is not None and fields.due_date < fields.invoice_date:
        raise ValidationFailedError("due_date", "must not be before the invoice date")
    _validate_tax_amount(fields.tax_amount)
    _validate_lines(fields.lines)


def _apply_lines(invoice: SupplierInvoice, lines: Sequence[InvoiceLineInput]) -> None:
    """Set the invoice lines, reusing existing rows by position."""
    existing = list(invoice.lines)
    new_lines = []
    for line_no, spec in enumerate(lines, start=1):
        line = existing[line_no - 1] if line_no <= len(existing) else InvoiceLine()
        line.line_no = line_no
        line.item_code = (spec.item_code or "").strip() or None
        line.description = spec.description.strip()
        line.quantity = _to_decimal(spec.quantity)
        line.unit_price = _to_decimal(spec.unit_price)
        new_lines.append(line)
    invoice.lines = new_lines


def _resolve_references(fields: InvoiceInput, supplier: Supplier) -> tuple[PurchaseOrder | None, GoodsReceipt | None]:
    """Load the optional PO / GR references and check they belong together."""
    order = None
    receipt = None

    if fields.goods_receipt_id is not None:
        receipt = store.load(GoodsReceipt, fields.goods_receipt_id, GoodsReceiptNotFoundError)

    if fields.purchase_order_id is not None:
        order = store.load(PurchaseOrder, fields.purchase_order_id, PurchaseOrderNotFoundError)
    elif receipt is not None:
        order = receipt.purchase_order

    if receipt is not None and order is not None and receipt.purchase_order_id != order.id:
        raise ValidationFailedError("goods_receipt_id", "receipt belongs to a different purchase order")

    if order is not None:
        if order.supplier_id != supplier.id:
            raise ValidationFailedError("purchase_order_id", "purchase order belongs to a different supplier")
        if order.status in (POStatus.DRAFT, POStatus.CANCELLED):
            raise InvalidStateError(
                f"Purchase order {order.order_number} is {order.status.value}; it cannot be invoiced",
                entity_type="PurchaseOrder",
                entity_id=order.order_number,
                current_state=order.status.value,
            )

    return order, receipt


def get_invoice(invoice_id: int) -> SupplierInvoice:
    return store.load(SupplierInvoice, invoice_id, InvoiceNotFoundError)


def create_supplier_invoice(fields: InvoiceInput, actor: str) -> SupplierInvoice:
    """Register a supplier invoice. Totals come from the lines plus the stated tax."""
    if fields.supplier_id is None:
        raise ValidationFailedError("supplier_id", "is required")
    supplier = store.load(Supplier, fields.supplier_id, SupplierNotFoundError)
    _validate(fields)
    order, receipt = _resolve_references(fields, supplier)

    number = fields.supplier_invoice_number.strip()
    if store.find(
        SupplierInvoice,
        SupplierInvoice.supplier_id == supplier.id,
        SupplierInvoice.supplier_invoice_number == number,
    ):
        raise DuplicateInvoiceNumberError(supplier.id, number)

    with store.unit_of_work("create_supplier_invoice"):
        invoice = SupplierInvoice(
            invoice_number=next_invoice_number(),
            supplier_invoice_number=number,
            supplier=supplier,
            purchase_order=order,
            goods_receipt=receipt,
            invoice_date=fields.invoice_date,
            due_date=fields.due_date or supplier.due_date_for(fields.invoice_date),
            tax_amount=_to_decimal(fields.tax_amount),
            status=InvoiceStatus.UNPAID,
            notes=fields.notes,
            created_by=actor,
        )
        _apply_lines(invoice, fields.lines)
        invoice.recalc_totals()
        # A zero-total invoice is settled from the start
        invoice.status = invoice_payments.derive_status(invoice)

        db.session.add(invoice)
        db.session.flush()
        log_action(invoice, "CREATE", actor=actor, after=serialize_model(invoice))

    logger.info(
        "invoice_created",
        extra={
            "invoice_number": invoice.invoice_number,
            "supplier_code": supplier.code,
            "total_amount": invoice.total_amount,
        },
    )
    return invoice


def update_supplier_invoice(
    invoice_id: int,
    actor: str,
    *,
    due_date: date | None = None,
    notes: str | None = None,
    lines: Sequence[InvoiceLineInput] | None = None,
    tax_amount: Decimal | None = None,
    expected_version: int | None = None,
) -> SupplierInvoice:
    """
    Correct an invoice before anything is paid against it.

    Fields left as None are unchanged. Totals are recomputed from the lines and
    tax; the status is re-derived (the overdue sweep re-flags late invoices).
    """
    if not actor:
        raise ValidationFailedError("actor", "is required")

    invoice = store.load(SupplierInvoice, invoice_id, InvoiceNotFoundError, for_update=True)

    with store.unit_of_work("update_supplier_invoice", invoice):
        store.check_version(invoice, expected_version)
        if invoice.status == InvoiceStatus.CANCELLED or invoice.payments:
            raise InvalidStateError(
                f"Invoice {invoice.invoice_number} has payments or is cancelled; it can no longer be edited",
                entity_type="SupplierInvoice",
                entity_id=invoice.invoice_number,
                current_state=invoice.status.value,
            )
        if due_date is not None and due_date < invoice.invoice_date:
            raise ValidationFailedError("due_date", "must not be before the invoice date")
        if tax_amount is not None:
            _validate_tax_amount(tax_amount)
        if lines is not None:
            _validate_lines(lines)

        before = serialize_model(invoice)

        if due_date is not None:
            invoice.due_date = due_date
        if notes is not None:
            invoice.notes = notes
        if tax_amount is not None:
            invoice.tax_amount = _to_decimal(tax_amount)
        if lines is not None:
            _apply_lines(invoice, lines)
        invoice.recalc_totals()
        invoice.status = invoice_payments.derive_status(invoice)

        store.touch(invoice)
        db.session.flush()
        log_action(invoice, "UPDATE", actor=actor, before=before, after=serialize_model(invoice))

    logger.info(
        "invoice_updated",
        extra={"invoice_number": invoice.invoice_number, "total_amount": invoice.total_amount},
    )
    return invoice


def record_invoice_payment(invoice_id: int, entry: PaymentEntry, actor: str, *,
                           expected_version: int | None = None) -> SupplierInvoice:
    """Append a payment to the invoice ledger and re-derive its status."""
    invoice = store.load(SupplierInvoice, invoice_id, InvoiceNotFoundError, for_update=True)

    with store.unit_of_work("record_invoice_payment", invoice):
        store.check_version(invoice, expected_version)
        before = serialize_model(invoice)

        payment = invoice_payments.record_payment(invoice, entry, recorded_by=actor)
        store.touch(invoice)
        db.session.flush()

        log_action(payment, "CREATE", actor=actor, after=serialize_model(payment))
        log_action(invoice, "PAYMENT", actor=actor, before=before, after=serialize_model(invoice))

    return invoice


def mark_invoice_paid(invoice_id: int, actor: str, amount: Decimal | None = None, *,
                      expected_version: int | None = None) -> SupplierInvoice:
    """
    Legacy "mark as paid" entry point (DEPRECATED).

    Kept for older clients. It settles the balance with one ledger entry; new
    callers should use record_invoice_payment().
    """
    warnings.warn(
        "mark_invoice_paid is deprecated; record explicit payments with record_invoice_payment",
        DeprecationWarning,
        stacklevel=2,
    )
    return settle_invoice_balance(invoice_id, actor, amount, expected_version=expected_version)


def settle_invoice_balance(invoice_id: int, actor: str, amount: Decimal | None = None, *,
                           expected_version: int | None = None) -> SupplierInvoice:
    """Append one ledger entry for whatever is still missing up to ``amount`` (default: the total)."""
    invoice = store.load(SupplierInvoice, invoice_id, InvoiceNotFoundError, for_update=True)

    with store.unit_of_work("mark_invoice_paid", invoice):
        store.check_version(invoice, expected_version)
        before = serialize_model(invoice)

        payment = invoice_payments.settle_balance(invoice, amount, recorded_by=actor)
        store.touch(invoice)
        db.session.flush()

        if payment is not None:
            log_action(payment, "CREATE", actor=actor, after=serialize_model(payment))
        log_action(invoice, "MARK_PAID", actor=actor, before=before, after=serialize_model(invoice))

    return invoice


def cancel_supplier_invoice(invoice_id: int, actor: str, reason: str | None = None, *,
                            expected_version: int | None = None) -> SupplierInvoice:
    if not actor:
        raise ValidationFailedError("actor", "is required")

    invoice = store.load(SupplierInvoice, invoice_id, InvoiceNotFoundError, for_update=True)

    with store.unit_of_work("cancel_supplier_invoice", invoice):
        store.check_version(invoice, expected_version)
        before = serialize_model(invoice)

        invoice_payments.cancel_invoice(invoice, actor, reason)
        store.touch(invoice)
        db.session.flush()
        log_action(invoice, "CANCEL", actor=actor, before=before, after=serialize_model(invoice))

    return invoice


def flag_overdue_invoices(as_of: date | None = None, *, actor: str = "system") -> list[str]:
    """
    Sweep open invoices and re-evaluate their overdue flag.

    Returns the invoice numbers whose status changed. The sweep is a single
    transaction; a concurrent payment makes it fail with a retryable error.
    """
    as_of = as_of or today()
    candidates = store.find(
        SupplierInvoice,
        SupplierInvoice.status.in_(OPEN_STATUSES),
        SupplierInvoice.due_date < as_of,
        order_by=SupplierInvoice.id,
    )

    changed: list[str] = []
    with store.unit_of_work("flag_overdue_invoices"):
        for invoice in candidates:
            before = serialize_model(invoice)
            if invoice_payments.refresh_overdue(invoice, as_of):
                store.touch(invoice)
                db.session.flush()
                log_action(invoice, "OVERDUE_SWEEP", actor=actor, before=before, after=serialize_model(invoice))
                changed.append(invoice.invoice_number)

    logger.info("overdue_sweep_finished", extra={"as_of": as_of, "checked": len(candidates), "changed": len(changed)})
    return changed
