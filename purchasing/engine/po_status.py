"""
Purchase order status engine.

State machine:

    draft -> pending_approval -> approved -> partially_received <-> received
      ^            |                 |              |
      +-- reject --+                 +-- cancel ----+--> cancelled

Terminal states: received, cancelled.

Every transition goes through _transition(): the guard runs first, so an
InvalidTransitionError always leaves the order untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from ..exceptions import InvalidTransitionError
from ..logging_config import get_logger
from ..models import POStatus, PurchaseOrder, _to_decimal, utcnow
from .quantities import QuantityReconciliation, ReceivedQuantity, reconcile_quantities, rederive_quantities

logger = get_logger("engine.po_status")


@dataclass(frozen=True)
class Transition:
    """Which states an action may start from, and where it leads (None: decided by the action)."""

    action: str
    from_states: frozenset[POStatus]
    to_state: POStatus | None


@dataclass(frozen=True)
class Workflow:
    name: str
    initial_state: POStatus
    terminal_states: frozenset[POStatus]
    transitions: tuple[Transition, ...]

    def transition_for(self, action: str) -> Transition:
        for transition in self.transitions:
            if transition.action == action:
                return transition
        raise KeyError(action)


SUBMIT = "submit"
APPROVE = "approve"
REJECT = "reject"
RECEIVE = "receive"
CANCEL = "cancel"
RESYNC = "resync"

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    initial_state=POStatus.DRAFT,
    terminal_states=frozenset({POStatus.RECEIVED, POStatus.CANCELLED}),
    transitions=(
        Transition(SUBMIT, frozenset({POStatus.DRAFT}), POStatus.PENDING_APPROVAL),
        Transition(APPROVE, frozenset({POStatus.PENDING_APPROVAL}), POStatus.APPROVED),
        Transition(REJECT, frozenset({POStatus.PENDING_APPROVAL}), POStatus.DRAFT),
        Transition(RECEIVE, frozenset({POStatus.APPROVED, POStatus.PARTIALLY_RECEIVED}), None),
        Transition(
            CANCEL,
            frozenset({
                POStatus.DRAFT,
                POStatus.PENDING_APPROVAL,
                POStatus.APPROVED,
                POStatus.PARTIALLY_RECEIVED,
            }),
            POStatus.CANCELLED,
        ),
        # Repair path: re-derive quantities from receipts; never leaves received
        Transition(
            RESYNC,
            frozenset({POStatus.APPROVED, POStatus.PARTIALLY_RECEIVED, POStatus.RECEIVED}),
            None,
        ),
    ),
)


def allowed_actions(order: PurchaseOrder) -> list[str]:
    """Actions the order accepts in its current state."""
    return [
        t.action
        for t in PURCHASE_ORDER_WORKFLOW.transitions
        if order.status in t.from_states
    ]


def is_terminal(order: PurchaseOrder) -> bool:
    return order.status in PURCHASE_ORDER_WORKFLOW.terminal_states


def _guard(order: PurchaseOrder, action: str) -> Transition:
    transition = PURCHASE_ORDER_WORKFLOW.transition_for(action)
    if order.status not in transition.from_states:
        current = order.status.value if order.status is not None else "unknown"
        logger.info(
            "po_transition_rejected",
            extra={"order_number": order.order_number, "current_state": current, "action": action},
        )
        raise InvalidTransitionError("PurchaseOrder", order.order_number or order.id, current, action)
    return transition


def _transition(order: PurchaseOrder, action: str, to_state: POStatus) -> None:
    from_state = order.status
    order.status = to_state
    logger.info(
        "po_transition",
        extra={
            "order_number": order.order_number,
            "action": action,
            "from_state": from_state.value if from_state else None,
            "to_state": to_state.value,
        },
    )


def _received_state(reconciliation: QuantityReconciliation) -> POStatus:
    return POStatus.RECEIVED if reconciliation.fully_received else POStatus.PARTIALLY_RECEIVED


# ---------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------
def submit(order: PurchaseOrder, actor: str, *, now: datetime | None = None) -> PurchaseOrder:
    transition = _guard(order, SUBMIT)
    order.submitted_by = actor
    order.submitted_at = now or utcnow()
    _transition(order, SUBMIT, transition.to_state)
    return order


def approve(order: PurchaseOrder, actor: str, notes: str | None = None, *,
            now: datetime | None = None) -> PurchaseOrder:
    transition = _guard(order, APPROVE)
    order.approved_by = actor
    order.approved_at = now or utcnow()
    order.approval_notes = notes
    _transition(order, APPROVE, transition.to_state)
    return order


def reject(order: PurchaseOrder, actor: str, notes: str | None = None, *,
           now: datetime | None = None) -> PurchaseOrder:
    """Send a pending order back to draft for rework."""
    transition = _guard(order, REJECT)
    order.rejected_by = actor
    order.rejected_at = now or utcnow()
    order.rejection_notes = notes
    order.submitted_by = None
    order.submitted_at = None
    _transition(order, REJECT, transition.to_state)
    return order


def receive(order: PurchaseOrder, receipt_lines: Sequence[ReceivedQuantity], *,
            now: datetime | None = None) -> QuantityReconciliation:
    """
    Fold one delivery into the order.

    Resulting status is received when every line is covered, else partially_received.
    actual_delivery_date reflects the most recent delivery.
    """
    _guard(order, RECEIVE)
    reconciliation = reconcile_quantities(order.lines, receipt_lines)
    order.actual_delivery_date = now or utcnow()
    _transition(order, RECEIVE, _received_state(reconciliation))
    return reconciliation


def cancel(order: PurchaseOrder, actor: str, reason: str | None = None, *,
           now: datetime | None = None) -> PurchaseOrder:
    transition = _guard(order, CANCEL)
    order.cancelled_by = actor
    order.cancelled_at = now or utcnow()
    order.cancellation_reason = reason
    _transition(order, CANCEL, transition.to_state)
    return order


def resync(order: PurchaseOrder, receipts: Iterable) -> QuantityReconciliation:
    """Re-derive line quantities (and the receiving status) from the order's receipts."""
    _guard(order, RESYNC)
    reconciliation = rederive_quantities(order.lines, receipts)

    anything_received = any(_to_decimal(line.quantity_received) > 0 for line in order.lines)
    if is_terminal(order):
        target = order.status
    elif reconciliation.fully_received:
        target = POStatus.RECEIVED
    elif anything_received:
        target = POStatus.PARTIALLY_RECEIVED
    else:
        target = order.status

    if target != order.status:
        _transition(order, RESYNC, target)
    return reconciliation
