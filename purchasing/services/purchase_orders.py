"""
Purchase order service.

Creation, draft edits and the explicit status actions (submit, approve, reject,
cancel). Receiving lives in services/receiving.py.

Each action is one transaction:
    load (row lock) -> version check -> status engine -> audit -> commit
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Sequence

from flask import current_app

from .. import store
from ..audit import log_action, serialize_model
from ..engine import po_status
from ..exceptions import (
    InvalidStateError,
    PurchaseOrderNotFoundError,
    SupplierNotFoundError,
    ValidationFailedError,
)
from ..extensions import db
from ..logging_config import get_logger
from ..models import POStatus, PurchaseOrder, PurchaseOrderLine, Supplier, SupplierStatus, _is_finite, _to_decimal
from ..numbering import next_order_number

logger = get_logger("services.purchase_orders")


@dataclass(frozen=True)
class OrderLineInput:
    item_code: str
    quantity: Decimal
    unit_price: Decimal
    description: str | None = None
    unit: str | None = None


def _validate_lines(lines: Sequence[OrderLineInput]) -> None:
    if not lines:
        raise ValidationFailedError("lines", "at least one line is required")

    seen: set[str] = set()
    for idx, line in enumerate(lines):
        code = (line.item_code or "").strip()
        if not code:
            raise ValidationFailedError(f"lines[{idx}].item_code", "is required")
        if code in seen:
            raise ValidationFailedError(f"lines[{idx}].item_code", f"duplicate item {code!r}")
        seen.add(code)

        if line.quantity is None or not _is_finite(line.quantity) or _to_decimal(line.quantity) <= 0:
            raise ValidationFailedError(f"lines[{idx}].quantity", "must be greater than zero")
        if line.unit_price is None or not _is_finite(line.unit_price) or _to_decimal(line.unit_price) < 0:
            raise ValidationFailedError(f"lines[{idx}].unit_price", "must not be negative")


def _validate_tax_rate(tax_rate) -> Decimal:
    rate = _to_decimal(tax_rate)
    if not rate.is_finite() or rate < 0:
        raise ValidationFailedError("tax_rate", "must not be negative")
    return rate


def _apply_lines(order: PurchaseOrder, lines: Sequence[OrderLineInput]) -> None:
    """
    Set the order's lines, reusing existing rows by item code.

    In-place reuse keeps (purchase_order_id, item_code) unique during the flush;
    lines no longer present are removed (delete-orphan).
    """
    existing = {line.item_code: line for line in order.lines}
    new_lines = []
    for line_no, spec in enumerate(lines, start=1):
        code = spec.item_code.strip()
        line = existing.pop(code, None)
        if line is None:
            line = PurchaseOrderLine(item_code=code, quantity_received=Decimal("0"))
        line.line_no = line_no
        line.description = (spec.description or "").strip() or None
        line.unit = (spec.unit or "").strip() or None
        line.quantity_ordered = _to_decimal(spec.quantity)
        line.unit_price = _to_decimal(spec.unit_price)
        new_lines.append(line)
    order.lines = new_lines


def get_purchase_order(po_id: int) -> PurchaseOrder:
    return store.load(PurchaseOrder, po_id, PurchaseOrderNotFoundError)


def create_purchase_order(
    supplier_id: int,
    lines: Sequence[OrderLineInput],
    actor: str,
    *,
    order_date: date | None = None,
    expected_delivery_date: date | None = None,
    tax_rate: Decimal | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    """Raise a draft purchase order against an active supplier."""
    if supplier_id is None:
        raise ValidationFailedError("supplier_id", "is required")
    supplier = store.load(Supplier, supplier_id, SupplierNotFoundError)
    if supplier.status != SupplierStatus.ACTIVE:
        raise InvalidStateError(
            f"Supplier {supplier.code} is {supplier.status.value}; new orders are not allowed",
            entity_type="Supplier",
            entity_id=supplier.code,
            current_state=supplier.status.value,
        )

    _validate_lines(lines)
    if tax_rate is None:
        tax_rate = current_app.config.get("DEFAULT_TAX_RATE", "0")
    rate = _validate_tax_rate(tax_rate)

    if order_date and expected_delivery_date and expected_delivery_date < order_date:
        raise ValidationFailedError("expected_delivery_date", "must not be before the order date")

    with store.unit_of_work("create_purchase_order"):
        order = PurchaseOrder(
            order_number=next_order_number(),
            supplier=supplier,
            status=POStatus.DRAFT,
            order_date=order_date,
            expected_delivery_date=expected_delivery_date,
            tax_rate=rate,
            notes=notes,
            created_by=actor,
        )
        _apply_lines(order, lines)
        order.recalc_totals()

        db.session.add(order)
        db.session.flush()
        log_action(order, "CREATE", actor=actor, after=serialize_model(order))

    logger.info(
        "purchase_order_created",
        extra={"order_number": order.order_number, "supplier_code": supplier.code, "lines": len(lines)},
    )
    return order


def update_purchase_order(
    po_id: int,
    actor: str,
    *,
    lines: Sequence[OrderLineInput] | None = None,
    expected_delivery_date: date | None = None,
    tax_rate: Decimal | None = None,
    notes: str | None = None,
    expected_version: int | None = None,
) -> PurchaseOrder:
    """Edit a draft order. Arguments left as None are unchanged."""
    order = store.load(PurchaseOrder, po_id, PurchaseOrderNotFoundError, for_update=True)

    with store.unit_of_work("update_purchase_order", order):
        store.check_version(order, expected_version)
        if order.status != POStatus.DRAFT:
            raise InvalidStateError(
                f"Purchase order {order.order_number} is {order.status.value}; only drafts can be edited",
                entity_type="PurchaseOrder",
                entity_id=order.order_number,
                current_state=order.status.value,
            )

        before = serialize_model(order)

        if lines is not None:
            _validate_lines(lines)
            _apply_lines(order, lines)
        if expected_delivery_date is not None:
            if order.order_date and expected_delivery_date < order.order_date:
                raise ValidationFailedError("expected_delivery_date", "must not be before the order date")
            order.expected_delivery_date = expected_delivery_date
        if tax_rate is not None:
            order.tax_rate = _validate_tax_rate(tax_rate)
        if notes is not None:
            order.notes = notes.strip() or None

        order.recalc_totals()
        store.touch(order)
        db.session.flush()
        log_action(order, "UPDATE", actor=actor, before=before, after=serialize_model(order))

    return order


def _run_action(
    po_id: int,
    actor: str,
    action: str,
    apply: Callable[[PurchaseOrder], object],
    expected_version: int | None,
) -> PurchaseOrder:
    if not actor:
        raise ValidationFailedError("actor", "is required")

    order = store.load(PurchaseOrder, po_id, PurchaseOrderNotFoundError, for_update=True)

    with store.unit_of_work(f"{action}_purchase_order", order):
        store.check_version(order, expected_version)
        before = serialize_model(order)
        apply(order)
        store.touch(order)
        db.session.flush()
        log_action(order, action.upper(), actor=actor, before=before, after=serialize_model(order))

    return order


def submit_purchase_order(po_id: int, actor: str, *, expected_version: int | None = None) -> PurchaseOrder:
    return _run_action(
        po_id, actor, po_status.SUBMIT,
        lambda order: po_status.submit(order, actor),
        expected_version,
    )


def approve_purchase_order(po_id: int, actor: str, notes: str | None = None, *,
                           expected_version: int | None = None) -> PurchaseOrder:
    return _run_action(
        po_id, actor, po_status.APPROVE,
        lambda order: po_status.approve(order, actor, notes),
        expected_version,
    )


def reject_purchase_order(po_id: int, actor: str, notes: str | None = None, *,
                          expected_version: int | None = None) -> PurchaseOrder:
    return _run_action(
        po_id, actor, po_status.REJECT,
        lambda order: po_status.reject(order, actor, notes),
        expected_version,
    )


def cancel_purchase_order(po_id: int, actor: str, reason: str | None = None, *,
                          expected_version: int | None = None) -> PurchaseOrder:
    return _run_action(
        po_id, actor, po_status.CANCEL,
        lambda order: po_status.cancel(order, actor, reason),
        expected_version,
    )
