"""
purchasing/blueprints/purchase_orders/routes.py

Purchase order API.

Routes:
- GET  /api/purchase-orders                  list (filters: status, supplier_id)
- POST /api/purchase-orders                  create draft
- GET  /api/purchase-orders/<id>             detail (lines, allowed actions)
- PUT  /api/purchase-orders/<id>             edit draft
- PUT  /api/purchase-orders/<id>/submit
- PUT  /api/purchase-orders/<id>/approve
- PUT  /api/purchase-orders/<id>/reject
- PUT  /api/purchase-orders/<id>/cancel
- PUT  /api/purchase-orders/<id>/resync      re-derive received quantities from receipts

Status filters accept legacy spellings ("completed", "sent_to_supplier").
"""

from __future__ import annotations

from flask import Blueprint, request

from ... import services, store
from ...engine import po_status
from ...models import POStatus, PurchaseOrder, parse_enum
from ...utils import (
    clean_str,
    current_actor,
    expected_version,
    json_body,
    json_list,
    ok,
    parse_date,
    parse_decimal,
    parse_optional_int,
)

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _parse_lines(data: dict) -> list[services.OrderLineInput]:
    lines = []
    for idx, raw in enumerate(json_list(data, "lines")):
        quantity = raw.get("quantity", raw.get("quantity_ordered"))
        lines.append(
            services.OrderLineInput(
                item_code=clean_str(raw.get("item_code")) or "",
                quantity=parse_decimal(quantity, f"lines[{idx}].quantity"),
                unit_price=parse_decimal(raw.get("unit_price"), f"lines[{idx}].unit_price"),
                description=clean_str(raw.get("description")),
                unit=clean_str(raw.get("unit")),
            )
        )
    return lines


def _detail(order: PurchaseOrder) -> dict:
    data = order.to_dict()
    data["allowed_actions"] = po_status.allowed_actions(order)
    return data


@purchase_orders_bp.route("", methods=["GET"])
def list_purchase_orders():
    criteria = []

    status = request.args.get("status")
    if status:
        criteria.append(PurchaseOrder.status == parse_enum(POStatus, status, "status"))

    supplier_id = parse_optional_int(request.args.get("supplier_id"), "supplier_id")
    if supplier_id is not None:
        criteria.append(PurchaseOrder.supplier_id == supplier_id)

    orders = store.find(PurchaseOrder, *criteria, order_by=PurchaseOrder.id.desc())
    return ok([o.to_dict(include_lines=False) for o in orders])


@purchase_orders_bp.route("", methods=["POST"])
def create_purchase_order():
    data = json_body()
    actor = current_actor(data)

    order = services.create_purchase_order(
        parse_optional_int(data.get("supplier_id"), "supplier_id"),
        _parse_lines(data),
        actor,
        order_date=parse_date(data.get("order_date"), "order_date"),
        expected_delivery_date=parse_date(data.get("expected_delivery_date"), "expected_delivery_date"),
        tax_rate=parse_decimal(data.get("tax_rate"), "tax_rate"),
        notes=clean_str(data.get("notes")),
    )
    return ok(_detail(order), 201)


@purchase_orders_bp.route("/<int:po_id>", methods=["GET"])
def get_purchase_order(po_id: int):
    return ok(_detail(services.get_purchase_order(po_id)))


@purchase_orders_bp.route("/<int:po_id>", methods=["PUT"])
def update_purchase_order(po_id: int):
    data = json_body()
    actor = current_actor(data)

    order = services.update_purchase_order(
        po_id,
        actor,
        lines=_parse_lines(data) if "lines" in data else None,
        expected_delivery_date=parse_date(data.get("expected_delivery_date"), "expected_delivery_date"),
        tax_rate=parse_decimal(data.get("tax_rate"), "tax_rate"),
        notes=data.get("notes"),
        expected_version=expected_version(data),
    )
    return ok(_detail(order))


@purchase_orders_bp.route("/<int:po_id>/submit", methods=["PUT"])
def submit_purchase_order(po_id: int):
    data = json_body()
    order = services.submit_purchase_order(
        po_id, current_actor(data), expected_version=expected_version(data)
    )
    return ok(_detail(order))


@purchase_orders_bp.route("/<int:po_id>/approve", methods=["PUT"])
def approve_purchase_order(po_id: int):
    data = json_body()
    order = services.approve_purchase_order(
        po_id,
        current_actor(data),
        clean_str(data.get("notes")),
        expected_version=expected_version(data),
    )
    return ok(_detail(order))


@purchase_orders_bp.route("/<int:po_id>/reject", methods=["PUT"])
def reject_purchase_order(po_id: int):
    data = json_body()
    order = services.reject_purchase_order(
        po_id,
        current_actor(data),
        clean_str(data.get("notes")),
        expected_version=expected_version(data),
    )
    return ok(_detail(order))


@purchase_orders_bp.route("/<int:po_id>/cancel", methods=["PUT"])
def cancel_purchase_order(po_id: int):
    data = json_body()
    order = services.cancel_purchase_order(
        po_id,
        current_actor(data),
        clean_str(data.get("reason")),
        expected_version=expected_version(data),
    )
    return ok(_detail(order))


@purchase_orders_bp.route("/<int:po_id>/resync", methods=["PUT"])
def resync_purchase_order(po_id: int):
    data = json_body()
    result = services.resync_order_quantities(po_id, current_actor(data))
    return ok(result.to_dict())
