"""
Invoice payment reconciliation.

The payment ledger (SupplierInvoice.payments) is the only source of truth:
paid_amount and payment_status are derived from it on every read, and the
stored invoice status is re-derived after every ledger append.

Over-payment is recorded, not rejected (credits happen). A cancelled invoice
accepts no payments.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from ..exceptions import InvalidStateError, ValidationFailedError
from ..logging_config import get_logger
from ..models import (
    InvoicePayment,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    SupplierInvoice,
    _is_finite,
    _money,
    _to_decimal,
    today,
    utcnow,
)

logger = get_logger("engine.invoice_payments")

_STATUS_FOR_PAYMENT = {
    PaymentStatus.PAID: InvoiceStatus.PAID,
    PaymentStatus.PARTIAL: InvoiceStatus.PARTIALLY_PAID,
    PaymentStatus.UNPAID: InvoiceStatus.UNPAID,
}


@dataclass(frozen=True)
class PaymentEntry:
    """A payment as reported by the caller, before it joins the ledger."""

    amount: Decimal
    paid_on: date | None = None
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: str | None = None
    notes: str | None = None


def validate_payment_entry(entry: PaymentEntry) -> None:
    if entry.amount is None:
        raise ValidationFailedError("amount", "is required")
    if not _is_finite(entry.amount):
        raise ValidationFailedError("amount", "must be a finite number")
    if _to_decimal(entry.amount) <= 0:
        raise ValidationFailedError("amount", "must be greater than zero")


def _ensure_not_cancelled(invoice: SupplierInvoice, action: str) -> None:
    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} is cancelled; cannot {action}",
            entity_type="SupplierInvoice",
            entity_id=invoice.invoice_number or invoice.id,
            current_state=InvoiceStatus.CANCELLED.value,
        )


def derive_status(invoice: SupplierInvoice) -> InvoiceStatus:
    """Status implied by the ledger (cancelled is sticky)."""
    if invoice.status == InvoiceStatus.CANCELLED:
        return InvoiceStatus.CANCELLED
    return _STATUS_FOR_PAYMENT[invoice.payment_status]


def _append(invoice: SupplierInvoice, entry: PaymentEntry, recorded_by: str | None) -> InvoicePayment:
    payment = InvoicePayment(
        amount=_money(_to_decimal(entry.amount)),
        paid_on=entry.paid_on or today(),
        method=entry.method or PaymentMethod.BANK_TRANSFER,
        reference=entry.reference,
        notes=entry.notes,
        recorded_by=recorded_by,
    )
    invoice.payments.append(payment)
    return payment


def _apply_derived_status(invoice: SupplierInvoice) -> None:
    before = invoice.status
    invoice.status = derive_status(invoice)
    logger.info(
        "invoice_payment_reconciled",
        extra={
            "invoice_number": invoice.invoice_number,
            "paid_amount": invoice.paid_amount,
            "total_amount": invoice.total_amount,
            "payment_status": invoice.payment_status.value,
            "from_status": before.value if before else None,
            "to_status": invoice.status.value,
        },
    )


def record_payment(invoice: SupplierInvoice, entry: PaymentEntry, *,
                   recorded_by: str | None = None) -> InvoicePayment:
    """Append one ledger entry and re-derive the invoice status."""
    _ensure_not_cancelled(invoice, "record a payment")
    validate_payment_entry(entry)

    payment = _append(invoice, entry, recorded_by)
    _apply_derived_status(invoice)
    return payment


def mark_as_paid(invoice: SupplierInvoice, amount: Decimal | None = None, *,
                 recorded_by: str | None = None) -> InvoicePayment | None:
    """DEPRECATED: use record_payment(). Same effect as settle_balance()."""
    warnings.warn(
        "mark_as_paid is deprecated; record explicit payments with record_payment",
        DeprecationWarning,
        stacklevel=2,
    )
    return settle_balance(invoice, amount, recorded_by=recorded_by)


def settle_balance(invoice: SupplierInvoice, amount: Decimal | None = None, *,
                   recorded_by: str | None = None) -> InvoicePayment | None:
    """
    Bring the ledger up to ``amount`` (default: the invoice total).

    Appends a single entry for the missing balance instead of overwriting the
    paid amount, so the ledger stays authoritative. Returns None when the ledger
    already covers the target.
    """
    _ensure_not_cancelled(invoice, "mark it as paid")

    if amount is not None and not _is_finite(amount):
        raise ValidationFailedError("amount", "must be a finite number")
    target = _to_decimal(invoice.total_amount) if amount is None else _to_decimal(amount)
    if target < 0:
        raise ValidationFailedError("amount", "must not be negative")

    missing = _money(target - invoice.paid_amount)
    payment = None
    if missing > 0:
        payment = _append(
            invoice,
            PaymentEntry(amount=missing, method=PaymentMethod.OTHER, notes="balance settled via mark-paid"),
            recorded_by,
        )
    _apply_derived_status(invoice)
    return payment


def cancel_invoice(invoice: SupplierInvoice, actor: str, reason: str | None = None, *,
                   now: datetime | None = None) -> SupplierInvoice:
    """
    Cancel an invoice. Cancelled is sticky; a fully paid invoice cannot be cancelled.

    A zero-total invoice with an empty ledger reads as paid but has nothing
    settled against it, so it may still be cancelled.
    """
    _ensure_not_cancelled(invoice, "cancel it again")
    if invoice.payments and invoice.payment_status == PaymentStatus.PAID:
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} is fully paid and cannot be cancelled",
            entity_type="SupplierInvoice",
            entity_id=invoice.invoice_number or invoice.id,
            current_state=invoice.status.value if invoice.status else None,
        )

    invoice.status = InvoiceStatus.CANCELLED
    invoice.cancelled_by = actor
    invoice.cancelled_at = now or utcnow()
    invoice.cancellation_reason = reason
    logger.info("invoice_cancelled", extra={"invoice_number": invoice.invoice_number})
    return invoice


def refresh_overdue(invoice: SupplierInvoice, as_of: date) -> bool:
    """
    Re-evaluate the overdue flag as of a date. Returns True if the status changed.

    - cancelled: untouched
    - ledger covers the total: paid
    - past due and not covered: overdue
    """
    if invoice.status == InvoiceStatus.CANCELLED:
        return False

    before = invoice.status
    if invoice.payment_status == PaymentStatus.PAID:
        invoice.status = InvoiceStatus.PAID
    elif invoice.due_date is not None and invoice.due_date < as_of:
        invoice.status = InvoiceStatus.OVERDUE

    return invoice.status != before
