"""
Purchasing – Domain Models

Entities:
- Supplier (master data, soft-deleted once referenced)
- PurchaseOrder + PurchaseOrderLine (versioned aggregate, never deleted, only cancelled)
- GoodsReceipt + GoodsReceiptLine (immutable delivery events)
- SupplierInvoice + InvoiceLine + InvoicePayment (versioned aggregate with append-only payment ledger)
- AuditLog

IMPORTANT:
- Status columns hold one canonical enum per entity. Legacy spellings are translated
  only at the JSON boundary (see parse_enum()).
- Derived values (remaining quantities, paid amount, payment status) are properties,
  computed on every read. They are never stored.
- PurchaseOrder and SupplierInvoice use SQLAlchemy's version_id_col: every UPDATE is
  guarded by "WHERE version_id = <loaded version>".
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import event
from sqlalchemy.orm import object_session

from .exceptions import ImmutableRecordError, ValidationFailedError
from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns store UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def _is_finite(value) -> bool:
    """False for NaN / sNaN / Infinity."""
    return _to_decimal(value).is_finite()


def _normalize_percent(rate: Decimal) -> Decimal:
    """
    Normalize percent value to fraction (inputs may be percent or fraction):
    - If rate is 24   => 0.24
    - If rate is 0.24 => 0.24
    """
    if rate > Decimal("1"):
        return (rate / Decimal("100")).quantize(Decimal("0.0000001"))
    return rate.quantize(Decimal("0.0000001"))


def _money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _qty(x) -> Decimal:
    return _to_decimal(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _str_money(value) -> str:
    return str(_money(_to_decimal(value)))


# ---------------------------------------------------------------------
# Canonical status vocabularies
# ---------------------------------------------------------------------
class SupplierStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BLACKLISTED = "blacklisted"


class PaymentTerms(str, enum.Enum):
    NET_30 = "net_30"
    NET_60 = "net_60"
    NET_90 = "net_90"
    DUE_ON_RECEIPT = "due_on_receipt"
    CUSTOM = "custom"


class POStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class ReceiptStatus(str, enum.Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    DAMAGED = "damaged"


class ReceiptLineCondition(str, enum.Enum):
    GOOD = "good"
    DAMAGED = "damaged"
    PARTIAL = "partial"


class InvoiceStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CASH = "cash"
    CARD = "card"
    OTHER = "other"


# Spellings used by older clients, normalized (lowercase, "_" separators).
LEGACY_ALIASES: dict[type, dict[str, enum.Enum]] = {
    POStatus: {
        "completed": POStatus.RECEIVED,
        "sent_to_supplier": POStatus.APPROVED,
        "pending": POStatus.PENDING_APPROVAL,
    },
    InvoiceStatus: {
        "pending": InvoiceStatus.UNPAID,
        "approved": InvoiceStatus.UNPAID,
        "partial": InvoiceStatus.PARTIALLY_PAID,
    },
    PaymentMethod: {
        "transfer": PaymentMethod.BANK_TRANSFER,
        "cheque": PaymentMethod.CHECK,
    },
}


def parse_enum(enum_cls, raw, field: str):
    """
    Translate an external value into a canonical enum member.

    Accepts the canonical value ("partially_received"), display spellings
    ("Partially Received", "Net 30") and known legacy aliases ("completed").
    """
    if isinstance(raw, enum_cls):
        return raw
    if raw is None:
        raise ValidationFailedError(field, "is required")

    key = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    for member in enum_cls:
        if member.value == key:
            return member

    alias = LEGACY_ALIASES.get(enum_cls, {}).get(key)
    if alias is not None:
        return alias

    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationFailedError(field, f"unknown value {raw!r} (allowed: {allowed})")


def _enum_type(enum_cls):
    return db.Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
        length=32,
    )


# ---------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------
class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    contact_person = db.Column(db.String(255))
    email = db.Column(db.String(255), index=True)
    phone = db.Column(db.String(50))

    street = db.Column(db.String(255))
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))
    postal_code = db.Column(db.String(20))
    country = db.Column(db.String(100))

    tax_id = db.Column(db.String(50))
    bank_name = db.Column(db.String(120))
    iban = db.Column(db.String(34))

    payment_terms = db.Column(_enum_type(PaymentTerms), nullable=False, default=PaymentTerms.NET_30)
    status = db.Column(_enum_type(SupplierStatus), nullable=False, default=SupplierStatus.ACTIVE, index=True)

    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    purchase_orders = db.relationship("PurchaseOrder", back_populates="supplier", lazy=True)

    def due_date_for(self, invoice_date: date) -> date:
        """Default invoice due date from the supplier's payment terms."""
        days = {
            PaymentTerms.NET_30: 30,
            PaymentTerms.NET_60: 60,
            PaymentTerms.NET_90: 90,
        }.get(self.payment_terms, 0)
        return invoice_date + timedelta(days=days)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": {
                "street": self.street,
                "city": self.city,
                "state": self.state,
                "postal_code": self.postal_code,
                "country": self.country,
            },
            "tax_id": self.tax_id,
            "bank_name": self.bank_name,
            "iban": self.iban,
            "payment_terms": self.payment_terms.value if self.payment_terms else None,
            "status": self.status.value if self.status else None,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Supplier {self.code} - {self.name}>"


# ---------------------------------------------------------------------
# Purchase orders
# ---------------------------------------------------------------------
class PurchaseOrder(db.Model):
    __tablename__ = "purchase_orders"

    id = db.Column(db.Integer, primary_key=True)

    order_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id"),
        nullable=False,
        index=True,
    )

    order_date = db.Column(db.Date, nullable=False, default=today)
    expected_delivery_date = db.Column(db.Date, nullable=True)
    # Most recent delivery event (stamped on every receive)
    actual_delivery_date = db.Column(db.DateTime, nullable=True)

    status = db.Column(_enum_type(POStatus), nullable=False, default=POStatus.DRAFT, index=True)

    tax_rate = db.Column(db.Numeric(7, 4), nullable=False, default=Decimal("0"))
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    notes = db.Column(db.Text, nullable=True)

    # Actor stamps
    created_by = db.Column(db.String(150), nullable=True)
    submitted_by = db.Column(db.String(150), nullable=True)
    submitted_at = db.Column(db.DateTime, nullable=True)
    approved_by = db.Column(db.String(150), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)
    rejected_by = db.Column(db.String(150), nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    rejection_notes = db.Column(db.Text, nullable=True)
    cancelled_by = db.Column(db.String(150), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", back_populates="purchase_orders")

    lines = db.relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.line_no",
    )

    receipts = db.relationship(
        "GoodsReceipt",
        back_populates="purchase_order",
        order_by="GoodsReceipt.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def line_for(self, item_code: str) -> "PurchaseOrderLine | None":
        for line in self.lines:
            if line.item_code == item_code:
                return line
        return None

    @property
    def fully_received(self) -> bool:
        return bool(self.lines) and all(line.is_fully_received for line in self.lines)

    def recalc_totals(self):
        total = Decimal("0.00")
        for line in self.lines:
            total += line.line_total

        self.subtotal = _money(total)

        if not self.tax_rate:
            self.tax_amount = Decimal("0.00")
            self.total_amount = self.subtotal
            return

        rate = _normalize_percent(_to_decimal(self.tax_rate))
        tax = _money(self.subtotal * rate)
        self.tax_amount = tax
        self.total_amount = _money(self.subtotal + tax)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "order_date": _iso(self.order_date),
            "expected_delivery_date": _iso(self.expected_delivery_date),
            "actual_delivery_date": _iso(self.actual_delivery_date),
            "status": self.status.value if self.status else None,
            "tax_rate": str(_to_decimal(self.tax_rate)),
            "subtotal": _str_money(self.subtotal),
            "tax_amount": _str_money(self.tax_amount),
            "total_amount": _str_money(self.total_amount),
            "notes": self.notes,
            "created_by": self.created_by,
            "submitted_by": self.submitted_by,
            "submitted_at": _iso(self.submitted_at),
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "approval_notes": self.approval_notes,
            "rejected_by": self.rejected_by,
            "rejection_notes": self.rejection_notes,
            "cancelled_by": self.cancelled_by,
            "cancelled_at": _iso(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "fully_received": self.fully_received,
            "version": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data

    def __repr__(self):
        return f"<PurchaseOrder {self.order_number} {self.status}>"


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"

    id = db.Column(db.Integer, primary_key=True)

    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    line_no = db.Column(db.Integer)
    item_code = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(50))

    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    quantity_ordered = db.Column(db.Numeric(12, 2), nullable=False)
    # Monotonically non-decreasing; only the quantity reconciler writes it
    quantity_received = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))

    purchase_order = db.relationship("PurchaseOrder", back_populates="lines")

    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "item_code", name="uq_po_line_item"),
    )

    @property
    def quantity_remaining(self) -> Decimal:
        remaining = _to_decimal(self.quantity_ordered) - _to_decimal(self.quantity_received)
        return max(Decimal("0"), remaining)

    @property
    def is_fully_received(self) -> bool:
        return _to_decimal(self.quantity_received) >= _to_decimal(self.quantity_ordered)

    @property
    def line_total(self) -> Decimal:
        if not self.quantity_ordered or not self.unit_price:
            return Decimal("0.00")
        return _money(_to_decimal(self.quantity_ordered) * _to_decimal(self.unit_price))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "item_code": self.item_code,
            "description": self.description,
            "unit": self.unit,
            "unit_price": _str_money(self.unit_price),
            "quantity_ordered": str(_qty(self.quantity_ordered)),
            "quantity_received": str(_qty(self.quantity_received)),
            "quantity_remaining": str(_qty(self.quantity_remaining)),
            "line_total": str(self.line_total),
        }


# ---------------------------------------------------------------------
# Goods receipts (immutable events)
# ---------------------------------------------------------------------
class GoodsReceipt(db.Model):
    __tablename__ = "goods_receipts"

    id = db.Column(db.Integer, primary_key=True)

    receipt_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id"),
        nullable=False,
        index=True,
    )
    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id"),
        nullable=False,
        index=True,
    )

    receipt_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    received_by = db.Column(db.String(150), nullable=False)
    status = db.Column(_enum_type(ReceiptStatus), nullable=False, default=ReceiptStatus.COMPLETE)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    purchase_order = db.relationship("PurchaseOrder", back_populates="receipts")
    supplier = db.relationship("Supplier")

    lines = db.relationship(
        "GoodsReceiptLine",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="GoodsReceiptLine.line_no",
    )

    @property
    def unmatched_items(self) -> list[str]:
        return [line.item_code for line in self.lines if not line.matched]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "purchase_order_id": self.purchase_order_id,
            "supplier_id": self.supplier_id,
            "receipt_date": _iso(self.receipt_date),
            "received_by": self.received_by,
            "status": self.status.value if self.status else None,
            "notes": self.notes,
            "unmatched_items": self.unmatched_items,
            "lines": [line.to_dict() for line in self.lines],
        }

    def __repr__(self):
        return f"<GoodsReceipt {self.receipt_number}>"


class GoodsReceiptLine(db.Model):
    __tablename__ = "goods_receipt_lines"

    id = db.Column(db.Integer, primary_key=True)

    goods_receipt_id = db.Column(
        db.Integer,
        db.ForeignKey("goods_receipts.id"),
        nullable=False,
        index=True,
    )

    line_no = db.Column(db.Integer)
    item_code = db.Column(db.String(64), nullable=False)
    quantity_received = db.Column(db.Numeric(12, 2), nullable=False)
    # Snapshot of the PO line's ordered quantity (None when unmatched)
    quantity_ordered = db.Column(db.Numeric(12, 2), nullable=True)
    condition = db.Column(_enum_type(ReceiptLineCondition), nullable=False, default=ReceiptLineCondition.GOOD)
    matched = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    receipt = db.relationship("GoodsReceipt", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "line_no": self.line_no,
            "item_code": self.item_code,
            "quantity_received": str(_qty(self.quantity_received)),
            "quantity_ordered": str(_qty(self.quantity_ordered)) if self.quantity_ordered is not None else None,
            "condition": self.condition.value if self.condition else None,
            "matched": bool(self.matched),
            "notes": self.notes,
        }


# ---------------------------------------------------------------------
# Supplier invoices + payment ledger
# ---------------------------------------------------------------------
class SupplierInvoice(db.Model):
    __tablename__ = "supplier_invoices"

    id = db.Column(db.Integer, primary_key=True)

    invoice_number = db.Column(db.String(50), nullable=False, unique=True, index=True)
    supplier_invoice_number = db.Column(db.String(100), nullable=False)

    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id"),
        nullable=False,
        index=True,
    )
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id"),
        nullable=True,
        index=True,
    )
    goods_receipt_id = db.Column(
        db.Integer,
        db.ForeignKey("goods_receipts.id"),
        nullable=True,
        index=True,
    )

    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    status = db.Column(_enum_type(InvoiceStatus), nullable=False, default=InvoiceStatus.UNPAID, index=True)

    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(150), nullable=True)
    cancelled_by = db.Column(db.String(150), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier")
    purchase_order = db.relationship("PurchaseOrder")
    goods_receipt = db.relationship("GoodsReceipt")

    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.line_no",
    )

    payments = db.relationship(
        "InvoicePayment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoicePayment.id",
    )

    __table_args__ = (
        db.UniqueConstraint("supplier_id", "supplier_invoice_number", name="uq_supplier_invoice_number"),
    )

    __mapper_args__ = {"version_id_col": version_id}

    # -----------------------------
    # Ledger-derived values
    # -----------------------------
    @property
    def paid_amount(self) -> Decimal:
        """Sum of the payment ledger, computed on every read."""
        total = Decimal("0.00")
        for entry in self.payments:
            total += _to_decimal(entry.amount)
        return _money(total)

    @property
    def balance_due(self) -> Decimal:
        return max(Decimal("0.00"), _money(_to_decimal(self.total_amount) - self.paid_amount))

    @property
    def payment_status(self) -> PaymentStatus:
        paid = self.paid_amount
        if paid >= _to_decimal(self.total_amount):
            return PaymentStatus.PAID
        if paid > 0:
            return PaymentStatus.PARTIAL
        return PaymentStatus.UNPAID

    @property
    def last_payment_date(self) -> date | None:
        if not self.payments:
            return None
        return max(entry.paid_on for entry in self.payments)

    def recalc_totals(self):
        total = Decimal("0.00")
        for line in self.lines:
            total += line.line_total
        self.subtotal = _money(total)
        self.tax_amount = _money(_to_decimal(self.tax_amount))
        self.total_amount = _money(self.subtotal + self.tax_amount)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "supplier_invoice_number": self.supplier_invoice_number,
            "supplier_id": self.supplier_id,
            "purchase_order_id": self.purchase_order_id,
            "goods_receipt_id": self.goods_receipt_id,
            "invoice_date": _iso(self.invoice_date),
            "due_date": _iso(self.due_date),
            "subtotal": _str_money(self.subtotal),
            "tax_amount": _str_money(self.tax_amount),
            "total_amount": _str_money(self.total_amount),
            "paid_amount": str(self.paid_amount),
            "balance_due": str(self.balance_due),
            "payment_status": self.payment_status.value,
            "status": self.status.value if self.status else None,
            "payment_date": _iso(self.last_payment_date),
            "notes": self.notes,
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "version": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [entry.to_dict() for entry in self.payments]
        return data

    def __repr__(self):
        return f"<SupplierInvoice {self.invoice_number} {self.status}>"


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("supplier_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    line_no = db.Column(db.Integer)
    item_code = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    invoice = db.relationship("SupplierInvoice", back_populates="lines")

    @property
    def line_total(self) -> Decimal:
        if not self.quantity or not self.unit_price:
            return Decimal("0.00")
        return _money(_to_decimal(self.quantity) * _to_decimal(self.unit_price))

    def to_dict(self) -> dict:
        return {
            "line_no": self.line_no,
            "item_code": self.item_code,
            "description": self.description,
            "quantity": str(_qty(self.quantity)),
            "unit_price": _str_money(self.unit_price),
            "line_total": str(self.line_total),
        }


class InvoicePayment(db.Model):
    """One payment ledger entry. Append-only."""

    __tablename__ = "invoice_payments"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("supplier_invoices.id"),
        nullable=False,
        index=True,
    )

    paid_on = db.Column(db.Date, nullable=False, default=today)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    method = db.Column(_enum_type(PaymentMethod), nullable=False, default=PaymentMethod.BANK_TRANSFER)
    reference = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    recorded_by = db.Column(db.String(150), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    invoice = db.relationship("SupplierInvoice", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "paid_on": _iso(self.paid_on),
            "amount": _str_money(self.amount),
            "method": self.method.value if self.method else None,
            "reference": self.reference,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Audit trail of every mutation."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    actor = db.Column(db.String(150), nullable=True, index=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)


# ---------------------------------------------------------------------
# Immutability of historical records (ORM layer)
# ---------------------------------------------------------------------
def _reject_update(mapper, connection, target):
    session = object_session(target)
    # before_update also fires for objects that only had collection changes
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise ImmutableRecordError(type(target).__name__, target.id, "update")


def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(type(target).__name__, target.id, "delete")


for _immutable in (GoodsReceipt, GoodsReceiptLine, InvoicePayment):
    event.listen(_immutable, "before_update", _reject_update)
    event.listen(_immutable, "before_delete", _reject_delete)
