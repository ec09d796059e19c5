"""
Quantity reconciliation.

Folds the lines of one goods receipt into a purchase order's lines:
received += delivered, remaining = max(0, ordered - received).

Not idempotent: applying the same receipt twice counts it twice. Each receipt is
applied exactly once, when it is created (see services/receiving.py).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Sequence

from ..exceptions import ValidationFailedError
from ..logging_config import get_logger
from ..models import PurchaseOrderLine, ReceiptLineCondition, _is_finite, _to_decimal

logger = get_logger("engine.quantities")

UNMATCHED_ITEM = "unmatched_item"
OVER_RECEIVED = "over_received"
RECEIVED_EXCEEDS_HISTORY = "received_exceeds_history"


@dataclass(frozen=True)
class ReceivedQuantity:
    """One line of a delivery, as reported by the receiving actor."""

    item_code: str
    quantity: Decimal
    condition: ReceiptLineCondition = ReceiptLineCondition.GOOD
    notes: str | None = None


@dataclass(frozen=True)
class ReconciliationWarning:
    """Non-fatal anomaly attached to a receipt result."""

    kind: str
    item_code: str
    detail: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "item_code": self.item_code, "detail": self.detail}


@dataclass(frozen=True)
class LineReconciliation:
    item_code: str
    ordered: Decimal
    received: Decimal
    remaining: Decimal


@dataclass
class QuantityReconciliation:
    lines: list[LineReconciliation]
    warnings: list[ReconciliationWarning] = field(default_factory=list)
    # One flag per input receipt line, in input order
    matched: list[bool] = field(default_factory=list)
    fully_received: bool = False


def validate_received_quantities(receipt_lines: Sequence[ReceivedQuantity]) -> None:
    """Reject malformed receipt lines before anything is mutated."""
    if not receipt_lines:
        raise ValidationFailedError("lines", "at least one receipt line is required")

    for idx, line in enumerate(receipt_lines):
        if not (line.item_code or "").strip():
            raise ValidationFailedError(f"lines[{idx}].item_code", "is required")
        if line.quantity is None:
            raise ValidationFailedError(f"lines[{idx}].quantity", "is required")
        if not _is_finite(line.quantity):
            raise ValidationFailedError(f"lines[{idx}].quantity", "must be a finite number")
        if _to_decimal(line.quantity) < 0:
            raise ValidationFailedError(f"lines[{idx}].quantity", "must not be negative")


def _snapshot(order_lines: Iterable[PurchaseOrderLine]) -> list[LineReconciliation]:
    return [
        LineReconciliation(
            item_code=line.item_code,
            ordered=_to_decimal(line.quantity_ordered),
            received=_to_decimal(line.quantity_received),
            remaining=line.quantity_remaining,
        )
        for line in order_lines
    ]


def _all_received(order_lines: Sequence[PurchaseOrderLine]) -> bool:
    return bool(order_lines) and all(line.is_fully_received for line in order_lines)


def reconcile_quantities(
    order_lines: Sequence[PurchaseOrderLine],
    receipt_lines: Sequence[ReceivedQuantity],
) -> QuantityReconciliation:
    """
    Apply one receipt's quantities to the order lines (mutates quantity_received).

    Receipt lines whose item code matches no order line are reported as
    UNMATCHED_ITEM warnings and skipped; the rest of the receipt still applies.
    """
    validate_received_quantities(receipt_lines)

    by_item = {line.item_code: line for line in order_lines}
    warnings: list[ReconciliationWarning] = []
    matched: list[bool] = []

    for receipt_line in receipt_lines:
        order_line = by_item.get(receipt_line.item_code)
        if order_line is None:
            matched.append(False)
            warnings.append(
                ReconciliationWarning(
                    kind=UNMATCHED_ITEM,
                    item_code=receipt_line.item_code,
                    detail="item is not on the purchase order; quantity ignored",
                )
            )
            logger.warning(
                "receipt_line_unmatched",
                extra={"item_code": receipt_line.item_code, "quantity": receipt_line.quantity},
            )
            continue

        matched.append(True)
        received = _to_decimal(order_line.quantity_received) + _to_decimal(receipt_line.quantity)
        order_line.quantity_received = received

        ordered = _to_decimal(order_line.quantity_ordered)
        if received > ordered:
            warnings.append(
                ReconciliationWarning(
                    kind=OVER_RECEIVED,
                    item_code=order_line.item_code,
                    detail=f"received {received} exceeds ordered {ordered}",
                )
            )
            logger.warning(
                "order_line_over_received",
                extra={"item_code": order_line.item_code, "ordered": ordered, "received": received},
            )

    return QuantityReconciliation(
        lines=_snapshot(order_lines),
        warnings=warnings,
        matched=matched,
        fully_received=_all_received(order_lines),
    )


def rederive_quantities(
    order_lines: Sequence[PurchaseOrderLine],
    receipts: Iterable,
) -> QuantityReconciliation:
    """
    Recompute quantity_received for every order line from the full receipt history.

    Repair path for an order whose lines fell behind its receipts. Received
    quantities never decrease: a line already above its history is left as it is
    and reported as RECEIVED_EXCEEDS_HISTORY.
    """
    totals: dict[str, Decimal] = {}
    for receipt in receipts:
        for receipt_line in receipt.lines:
            totals[receipt_line.item_code] = (
                totals.get(receipt_line.item_code, Decimal("0")) + _to_decimal(receipt_line.quantity_received)
            )

    warnings: list[ReconciliationWarning] = []
    for line in order_lines:
        derived = totals.get(line.item_code, Decimal("0"))
        current = _to_decimal(line.quantity_received)
        if derived > current:
            line.quantity_received = derived
        elif derived < current:
            warnings.append(
                ReconciliationWarning(
                    kind=RECEIVED_EXCEEDS_HISTORY,
                    item_code=line.item_code,
                    detail=f"received {current} is above the receipt history total {derived}",
                )
            )

    return QuantityReconciliation(
        lines=_snapshot(order_lines),
        warnings=warnings,
        fully_received=_all_received(order_lines),
    )
