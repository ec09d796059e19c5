"""
Unit tests for invoice payment reconciliation (ledger-authoritative).
"""
import warnings
from datetime import date
from decimal import Decimal

import pytest

from purchasing.engine import invoice_payments
from purchasing.engine.invoice_payments import PaymentEntry
from purchasing.exceptions import InvalidStateError, ValidationFailedError
from purchasing.models import InvoiceStatus, PaymentMethod, PaymentStatus, SupplierInvoice


def _invoice(total="1000.00", status=InvoiceStatus.UNPAID, due=date(2024, 1, 31)):
    return SupplierInvoice(
        invoice_number="INV-20240101-0001",
        status=status,
        total_amount=Decimal(total),
        due_date=due,
    )


@pytest.mark.unit
class TestRecordPayment:
    """Each payment is one ledger entry; status is derived from the ledger sum."""

    def test_partial_then_full_payment(self):
        invoice = _invoice()

        invoice_payments.record_payment(invoice, PaymentEntry(Decimal("400")))
        assert invoice.paid_amount == Decimal("400.00")
        assert invoice.payment_status == PaymentStatus.PARTIAL
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID

        invoice_payments.record_payment(invoice, PaymentEntry(Decimal("600")))
        assert invoice.paid_amount == Decimal("1000.00")
        assert invoice.payment_status == PaymentStatus.PAID
        assert invoice.status == InvoiceStatus.PAID
        assert len(invoice.payments) == 2

    def test_over_payment_is_recorded(self):
        invoice = _invoice()

        invoice_payments.record_payment(invoice, PaymentEntry(Decimal("1200")))

        assert invoice.paid_amount == Decimal("1200.00")
        assert invoice.balance_due == Decimal("0.00")
        assert invoice.status == InvoiceStatus.PAID

    def test_entry_defaults(self):
        invoice = _invoice()

        payment = invoice_payments.record_payment(
            invoice, PaymentEntry(Decimal("10.005")), recorded_by="clerk"
        )

        assert payment.amount == Decimal("10.01")
        assert payment.method == PaymentMethod.BANK_TRANSFER
        assert payment.paid_on is not None
        assert payment.recorded_by == "clerk"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), None])
    def test_non_positive_amount_is_rejected(self, amount):
        invoice = _invoice()

        with pytest.raises(ValidationFailedError) as excinfo:
            invoice_payments.record_payment(invoice, PaymentEntry(amount))

        assert excinfo.value.field == "amount"
        assert invoice.payments == []

    @pytest.mark.parametrize("amount", [Decimal("NaN"), Decimal("sNaN"), Decimal("Infinity")])
    def test_non_finite_amount_is_rejected(self, amount):
        invoice = _invoice()

        with pytest.raises(ValidationFailedError) as excinfo:
            invoice_payments.record_payment(invoice, PaymentEntry(amount))

        assert excinfo.value.field == "amount"
        assert invoice.payments == []
        assert invoice.status == InvoiceStatus.UNPAID

    def test_zero_total_invoice_reads_as_paid(self):
        invoice = _invoice("0.00")

        assert invoice.payment_status == PaymentStatus.PAID
        assert invoice_payments.derive_status(invoice) == InvoiceStatus.PAID

    def test_cancelled_invoice_rejects_payment_and_keeps_ledger(self):
        invoice = _invoice(status=InvoiceStatus.CANCELLED)

        with pytest.raises(InvalidStateError):
            invoice_payments.record_payment(invoice, PaymentEntry(Decimal("100")))

        assert invoice.payments == []
        assert invoice.status == InvoiceStatus.CANCELLED

    def test_payment_on_overdue_invoice_clears_overdue(self):
        invoice = _invoice(status=InvoiceStatus.OVERDUE)

        invoice_payments.record_payment(invoice, PaymentEntry(Decimal("1000")))

        assert invoice.status == InvoiceStatus.PAID


@pytest.mark.unit
class TestMarkAsPaid:
    """Deprecated shortcut that tops the ledger up instead of overwriting it."""

    def test_appends_missing_balance(self):
        invoice = _invoice()
        invoice_payments.record_payment(invoice, PaymentEntry(Decimal("250")))

        with pytest.deprecated_call():
            payment = invoice_payments.mark_as_paid(invoice)

        assert payment.amount == Decimal("750.00")
        assert payment.method == PaymentMethod.OTHER
        assert invoice.paid_amount == Decimal("1000.00")
        assert invoice.status == InvoiceStatus.PAID
        assert len(invoice.payments) == 2

    def test_explicit_amount_below_total_leaves_partial(self):
        invoice = _invoice()

        with pytest.deprecated_call():
            invoice_payments.mark_as_paid(invoice, Decimal("300"))

        assert invoice.paid_amount == Decimal("300.00")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID

    def test_already_covered_appends_nothing(self):
        invoice = _invoice()
        invoice_payments.record_payment(invoice, PaymentEntry(Decimal("1000")))

        with pytest.deprecated_call():
            payment = invoice_payments.mark_as_paid(invoice)

        assert payment is None
        assert len(invoice.payments) == 1

    def test_cancelled_invoice_is_rejected(self):
        invoice = _invoice(status=InvoiceStatus.CANCELLED)

        with pytest.deprecated_call(), pytest.raises(InvalidStateError):
            invoice_payments.mark_as_paid(invoice)

    def test_settle_balance_does_not_warn(self):
        invoice = _invoice("300.00")

        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            payment = invoice_payments.settle_balance(invoice)

        assert payment.amount == Decimal("300.00")
        assert invoice.status == InvoiceStatus.PAID

    def test_infinite_target_is_rejected(self):
        invoice = _invoice()

        with pytest.raises(ValidationFailedError):
            invoice_payments.settle_balance(invoice, Decimal("Infinity"))

        assert invoice.payments == []


@pytest.mark.unit
class TestCancelAndOverdue:
    def test_cancel_partially_paid_invoice(self):
        invoice = _invoice()
        invoice_payments.record_payment(invoice, PaymentEntry(Decimal("100")))

        invoice_payments.cancel_invoice(invoice, "clerk", "duplicate billing")

        assert invoice.status == InvoiceStatus.CANCELLED
        assert invoice.cancelled_by == "clerk"
        assert invoice.paid_amount == Decimal("100.00")

    def test_cancel_fully_paid_invoice_fails(self):
        invoice = _invoice()
        invoice_payments.record_payment(invoice, PaymentEntry(Decimal("1000")))

        with pytest.raises(InvalidStateError):
            invoice_payments.cancel_invoice(invoice, "clerk")

        assert invoice.status == InvoiceStatus.PAID

    def test_cancel_zero_total_invoice_with_empty_ledger(self):
        invoice = _invoice("0.00")

        invoice_payments.cancel_invoice(invoice, "clerk", "raised in error")

        assert invoice.status == InvoiceStatus.CANCELLED

    def test_cancel_twice_fails(self):
        invoice = _invoice(status=InvoiceStatus.CANCELLED)

        with pytest.raises(InvalidStateError):
            invoice_payments.cancel_invoice(invoice, "clerk")

    def test_past_due_unpaid_becomes_overdue(self):
        invoice = _invoice()

        assert invoice_payments.refresh_overdue(invoice, date(2024, 2, 1)) is True
        assert invoice.status == InvoiceStatus.OVERDUE

    def test_not_yet_due_is_unchanged(self):
        invoice = _invoice()

        assert invoice_payments.refresh_overdue(invoice, date(2024, 1, 31)) is False
        assert invoice.status == InvoiceStatus.UNPAID

    def test_zero_total_invoice_is_never_overdue(self):
        invoice = _invoice("0.00")

        invoice_payments.refresh_overdue(invoice, date(2024, 6, 1))

        assert invoice.status == InvoiceStatus.PAID

    def test_cancelled_invoice_is_never_overdue(self):
        invoice = _invoice(status=InvoiceStatus.CANCELLED)

        assert invoice_payments.refresh_overdue(invoice, date(2025, 1, 1)) is False
        assert invoice.status == InvoiceStatus.CANCELLED

    def test_derive_status_keeps_cancelled(self):
        invoice = _invoice(status=InvoiceStatus.CANCELLED)

        assert invoice_payments.derive_status(invoice) == InvoiceStatus.CANCELLED
