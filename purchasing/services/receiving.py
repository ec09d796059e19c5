"""
Goods receiving service.

A receipt and the purchase order update it causes commit together or not at
all: the receipt is never saved without its quantities reaching the order.
resync_order_quantities() is the repair path for orders whose lines fell
behind their receipt history (e.g. data imported from an older system).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .. import store
from ..audit import log_action, serialize_model
from ..engine import po_status
from ..engine.quantities import ReceivedQuantity, ReconciliationWarning
from ..exceptions import GoodsReceiptNotFoundError, PurchaseOrderNotFoundError, ValidationFailedError
from ..extensions import db
from ..logging_config import get_logger
from ..models import (
    GoodsReceipt,
    GoodsReceiptLine,
    PurchaseOrder,
    ReceiptLineCondition,
    ReceiptStatus,
    _to_decimal,
    utcnow,
)
from ..numbering import next_receipt_number

logger = get_logger("services.receiving")


@dataclass
class ReceiptResult:
    receipt: GoodsReceipt
    order: PurchaseOrder
    fully_received: bool
    warnings: list[ReconciliationWarning] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "receipt": self.receipt.to_dict(),
            "purchase_order": self.order.to_dict(),
            "fully_received": self.fully_received,
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class ResyncResult:
    order: PurchaseOrder
    warnings: list[ReconciliationWarning] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "purchase_order": self.order.to_dict(),
            "fully_received": self.order.fully_received,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _receipt_status(lines: Sequence[ReceivedQuantity], fully_received: bool) -> ReceiptStatus:
    if any(line.condition == ReceiptLineCondition.DAMAGED for line in lines):
        return ReceiptStatus.DAMAGED
    return ReceiptStatus.COMPLETE if fully_received else ReceiptStatus.PARTIAL


def get_goods_receipt(receipt_id: int) -> GoodsReceipt:
    return store.load(GoodsReceipt, receipt_id, GoodsReceiptNotFoundError)


def create_goods_receipt(
    po_id: int,
    lines: Sequence[ReceivedQuantity],
    actor: str,
    *,
    receipt_date: datetime | None = None,
    notes: str | None = None,
    expected_version: int | None = None,
) -> ReceiptResult:
    """
    Record a delivery against a purchase order.

    The order must be approved or partially received. Quantities for items that
    are not on the order are stored on the receipt (matched=False) and reported
    as warnings; they never touch the order.
    """
    if not actor:
        raise ValidationFailedError("received_by", "is required")

    order = store.load(PurchaseOrder, po_id, PurchaseOrderNotFoundError, for_update=True)

    with store.unit_of_work("create_goods_receipt", order):
        store.check_version(order, expected_version)
        before = serialize_model(order)
        receipt_number = next_receipt_number()
        ordered = {line.item_code: line.quantity_ordered for line in order.lines}

        reconciliation = po_status.receive(order, lines)
        store.touch(order)

        receipt = GoodsReceipt(
            receipt_number=receipt_number,
            purchase_order=order,
            supplier_id=order.supplier_id,
            receipt_date=receipt_date or utcnow(),
            received_by=actor,
            status=_receipt_status(lines, reconciliation.fully_received),
            notes=notes,
        )
        receipt.lines = [
            GoodsReceiptLine(
                line_no=line_no,
                item_code=line.item_code,
                quantity_received=_to_decimal(line.quantity),
                quantity_ordered=ordered.get(line.item_code),
                condition=line.condition or ReceiptLineCondition.GOOD,
                matched=matched,
                notes=line.notes,
            )
            for line_no, (line, matched) in enumerate(zip(lines, reconciliation.matched), start=1)
        ]

        db.session.add(receipt)
        db.session.flush()

        log_action(receipt, "CREATE", actor=actor, after=serialize_model(receipt))
        log_action(order, "RECEIVE", actor=actor, before=before, after=serialize_model(order))

    logger.info(
        "goods_receipt_created",
        extra={
            "receipt_number": receipt.receipt_number,
            "order_number": order.order_number,
            "order_status": order.status.value,
            "warnings": len(reconciliation.warnings),
        },
    )
    return ReceiptResult(
        receipt=receipt,
        order=order,
        fully_received=reconciliation.fully_received,
        warnings=reconciliation.warnings,
    )


def resync_order_quantities(po_id: int, actor: str) -> ResyncResult:
    """Re-derive the order's received quantities and status from its receipts."""
    order = store.load(PurchaseOrder, po_id, PurchaseOrderNotFoundError, for_update=True)

    with store.unit_of_work("resync_order_quantities", order):
        before = serialize_model(order)
        reconciliation = po_status.resync(order, order.receipts)
        store.touch(order)
        db.session.flush()
        log_action(order, "RESYNC", actor=actor, before=before, after=serialize_model(order))

    if reconciliation.warnings:
        logger.warning(
            "order_resync_anomalies",
            extra={"order_number": order.order_number, "warnings": [w.to_dict() for w in reconciliation.warnings]},
        )
    return ResyncResult(order=order, warnings=reconciliation.warnings)
