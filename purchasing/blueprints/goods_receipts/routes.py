"""
purchasing/blueprints/goods_receipts/routes.py

Goods receipt API.

Routes:
- GET  /api/goods-receipts          list (filters: purchase_order_id, supplier_id, status)
- POST /api/goods-receipts          record a delivery against a purchase order
- GET  /api/goods-receipts/<id>     detail

Receipts are immutable: there is no update or delete route.
"""

from __future__ import annotations

from flask import Blueprint, request

from ... import services, store
from ...engine.quantities import ReceivedQuantity
from ...exceptions import ValidationFailedError
from ...models import GoodsReceipt, ReceiptLineCondition, ReceiptStatus, parse_enum
from ...utils import (
    clean_str,
    current_actor,
    expected_version,
    json_body,
    json_list,
    ok,
    parse_datetime,
    parse_decimal,
    parse_optional_int,
)

goods_receipts_bp = Blueprint("goods_receipts", __name__, url_prefix="/api/goods-receipts")


def _parse_lines(data: dict) -> list[ReceivedQuantity]:
    lines = []
    for idx, raw in enumerate(json_list(data, "lines")):
        condition = raw.get("condition")
        lines.append(
            ReceivedQuantity(
                item_code=clean_str(raw.get("item_code")) or "",
                quantity=parse_decimal(
                    raw.get("quantity", raw.get("quantity_received")), f"lines[{idx}].quantity"
                ),
                condition=(
                    parse_enum(ReceiptLineCondition, condition, f"lines[{idx}].condition")
                    if condition is not None
                    else ReceiptLineCondition.GOOD
                ),
                notes=clean_str(raw.get("notes")),
            )
        )
    return lines


@goods_receipts_bp.route("", methods=["GET"])
def list_goods_receipts():
    criteria = []

    po_id = parse_optional_int(request.args.get("purchase_order_id"), "purchase_order_id")
    if po_id is not None:
        criteria.append(GoodsReceipt.purchase_order_id == po_id)

    supplier_id = parse_optional_int(request.args.get("supplier_id"), "supplier_id")
    if supplier_id is not None:
        criteria.append(GoodsReceipt.supplier_id == supplier_id)

    status = request.args.get("status")
    if status:
        criteria.append(GoodsReceipt.status == parse_enum(ReceiptStatus, status, "status"))

    receipts = store.find(GoodsReceipt, *criteria, order_by=GoodsReceipt.id.desc())
    return ok([r.to_dict() for r in receipts])


@goods_receipts_bp.route("", methods=["POST"])
def create_goods_receipt():
    data = json_body()
    # received_by is the historical field name for the receiving actor
    if data.get("received_by") and not data.get("actor"):
        data["actor"] = data["received_by"]
    actor = current_actor(data)

    po_id = parse_optional_int(data.get("purchase_order_id"), "purchase_order_id")
    if po_id is None:
        raise ValidationFailedError("purchase_order_id", "is required")

    result = services.create_goods_receipt(
        po_id,
        _parse_lines(data),
        actor,
        receipt_date=parse_datetime(data.get("receipt_date"), "receipt_date"),
        notes=clean_str(data.get("notes")),
        expected_version=expected_version(data),
    )
    return ok(result.to_dict(), 201)


@goods_receipts_bp.route("/<int:receipt_id>", methods=["GET"])
def get_goods_receipt(receipt_id: int):
    return ok(services.get_goods_receipt(receipt_id).to_dict())
