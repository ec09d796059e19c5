"""
Integration tests for the purchase order service (SQLite, full transactions).
"""
from datetime import date
from decimal import Decimal

import pytest

from purchasing import services
from purchasing.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    PurchaseOrderNotFoundError,
    SupplierNotFoundError,
    ValidationFailedError,
)
from purchasing.extensions import db
from purchasing.models import AuditLog, POStatus, PurchaseOrder, SupplierStatus
from purchasing.services import OrderLineInput


def _audit_actions(entity_type, entity_id):
    rows = db.session.execute(
        db.select(AuditLog.action)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.id)
    ).scalars()
    return list(rows)


@pytest.mark.integration
class TestCreatePurchaseOrder:
    def test_creates_numbered_draft_with_totals(self, supplier):
        order = services.create_purchase_order(
            supplier.id,
            [
                OrderLineInput("WIDGET", Decimal("10"), Decimal("2.50")),
                OrderLineInput("BOLT", Decimal("4"), Decimal("0.25")),
            ],
            "buyer",
            tax_rate=Decimal("24"),
        )

        assert order.status == POStatus.DRAFT
        assert order.order_number.startswith("PO-")
        assert order.order_number.endswith("-0001")
        assert order.subtotal == Decimal("26.00")
        assert order.tax_amount == Decimal("6.24")
        assert order.total_amount == Decimal("32.24")
        assert order.version_id == 1
        assert [line.line_no for line in order.lines] == [1, 2]
        assert _audit_actions("PurchaseOrder", order.id) == ["CREATE"]

    def test_numbers_are_sequential(self, make_order):
        first = make_order(approve=False)
        second = make_order(approve=False)

        assert int(second.order_number[-4:]) == int(first.order_number[-4:]) + 1

    def test_default_tax_rate_from_config(self, app, supplier):
        app.config["DEFAULT_TAX_RATE"] = "0.10"

        order = services.create_purchase_order(
            supplier.id, [OrderLineInput("WIDGET", Decimal("1"), Decimal("100"))], "buyer"
        )

        assert order.total_amount == Decimal("110.00")

    @pytest.mark.parametrize(
        "lines, field",
        [
            ([], "lines"),
            ([OrderLineInput("", Decimal("1"), Decimal("1"))], "lines[0].item_code"),
            ([OrderLineInput("A", Decimal("0"), Decimal("1"))], "lines[0].quantity"),
            ([OrderLineInput("A", Decimal("1"), Decimal("-1"))], "lines[0].unit_price"),
            (
                [OrderLineInput("A", Decimal("1"), Decimal("1")), OrderLineInput("A", Decimal("2"), Decimal("1"))],
                "lines[1].item_code",
            ),
        ],
    )
    def test_invalid_lines(self, supplier, lines, field):
        with pytest.raises(ValidationFailedError) as excinfo:
            services.create_purchase_order(supplier.id, lines, "buyer")

        assert excinfo.value.field == field
        assert db.session.scalar(db.select(db.func.count(PurchaseOrder.id))) == 0

    def test_unknown_supplier(self, app):
        with pytest.raises(SupplierNotFoundError):
            services.create_purchase_order(999, [OrderLineInput("A", Decimal("1"), Decimal("1"))], "buyer")

    def test_inactive_supplier_cannot_receive_new_orders(self, supplier):
        services.set_supplier_status(supplier.id, "suspended", "admin")

        with pytest.raises(InvalidStateError) as excinfo:
            services.create_purchase_order(supplier.id, [OrderLineInput("A", Decimal("1"), Decimal("1"))], "buyer")

        assert excinfo.value.current_state == SupplierStatus.SUSPENDED.value


@pytest.mark.integration
class TestUpdatePurchaseOrder:
    def test_draft_lines_are_replaced(self, make_order):
        order = make_order(approve=False)

        services.update_purchase_order(
            order.id,
            "buyer",
            lines=[
                OrderLineInput("WIDGET", Decimal("50"), Decimal("2.50")),
                OrderLineInput("GADGET", Decimal("2"), Decimal("10")),
            ],
            expected_delivery_date=date(2099, 1, 1),
        )

        refreshed = services.get_purchase_order(order.id)
        assert [(line.item_code, line.quantity_ordered) for line in refreshed.lines] == [
            ("WIDGET", Decimal("50.00")),
            ("GADGET", Decimal("2.00")),
        ]
        assert refreshed.subtotal == Decimal("145.00")
        assert refreshed.expected_delivery_date == date(2099, 1, 1)
        assert refreshed.version_id == 2

    def test_approved_order_cannot_be_edited(self, make_order):
        order = make_order()

        with pytest.raises(InvalidStateError):
            services.update_purchase_order(order.id, "buyer", notes="late change")


@pytest.mark.integration
class TestStatusActions:
    def test_full_approval_flow_is_audited(self, make_order):
        order = make_order()

        assert order.status == POStatus.APPROVED
        assert order.submitted_by == "buyer"
        assert order.approved_by == "manager"
        assert _audit_actions("PurchaseOrder", order.id) == ["CREATE", "SUBMIT", "APPROVE"]

    def test_approve_on_draft_fails_without_side_effects(self, make_order):
        order = make_order(approve=False)

        with pytest.raises(InvalidTransitionError) as excinfo:
            services.approve_purchase_order(order.id, "manager")

        assert excinfo.value.current_state == "draft"
        refreshed = services.get_purchase_order(order.id)
        assert refreshed.status == POStatus.DRAFT
        assert refreshed.version_id == 1
        assert _audit_actions("PurchaseOrder", order.id) == ["CREATE"]

    def test_reject_then_resubmit(self, make_order):
        order = make_order(approve=False)
        services.submit_purchase_order(order.id, "buyer")

        services.reject_purchase_order(order.id, "manager", "split into two orders")
        assert services.get_purchase_order(order.id).status == POStatus.DRAFT

        services.submit_purchase_order(order.id, "buyer")
        assert services.get_purchase_order(order.id).status == POStatus.PENDING_APPROVAL

    def test_cancel_records_reason(self, make_order):
        order = make_order()

        services.cancel_purchase_order(order.id, "buyer", "budget withdrawn")

        refreshed = services.get_purchase_order(order.id)
        assert refreshed.status == POStatus.CANCELLED
        assert refreshed.cancellation_reason == "budget withdrawn"

    def test_cancelled_order_rejects_further_actions(self, make_order):
        order = make_order()
        services.cancel_purchase_order(order.id, "buyer")

        with pytest.raises(InvalidTransitionError):
            services.cancel_purchase_order(order.id, "buyer")
        with pytest.raises(InvalidTransitionError):
            services.approve_purchase_order(order.id, "manager")

    def test_missing_order(self, app):
        with pytest.raises(PurchaseOrderNotFoundError) as excinfo:
            services.submit_purchase_order(404, "buyer")

        assert excinfo.value.entity_id == 404

    def test_actor_is_required(self, make_order):
        order = make_order(approve=False)

        with pytest.raises(ValidationFailedError):
            services.submit_purchase_order(order.id, "")
