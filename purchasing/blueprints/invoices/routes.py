"""
purchasing/blueprints/invoices/routes.py

Supplier invoice API.

Routes:
- GET  /api/invoices                    list (filters: status, supplier_id, purchase_order_id)
- POST /api/invoices                    register a supplier invoice
- GET  /api/invoices/<id>               detail (lines + payment ledger)
- PUT  /api/invoices/<id>               correct due date, notes, lines or tax (no payments yet)
- PUT  /api/invoices/<id>/payment       append a payment to the ledger
- PUT  /api/invoices/<id>/mark-paid     DEPRECATED: settle the balance in one entry
- PUT  /api/invoices/<id>/cancel

Payment bodies accept "amount" (canonical) or "payment_amount" (older clients).
"""

from __future__ import annotations

from flask import Blueprint, request

from ... import services, store
from ...engine.invoice_payments import PaymentEntry
from ...models import InvoiceStatus, PaymentMethod, SupplierInvoice, parse_enum
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

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _parse_lines(data: dict) -> list[services.InvoiceLineInput]:
    lines = []
    for idx, raw in enumerate(json_list(data, "lines")):
        quantity = raw.get("quantity")
        lines.append(
            services.InvoiceLineInput(
                description=clean_str(raw.get("description")) or "",
                quantity=parse_decimal(quantity, f"lines[{idx}].quantity") if quantity is not None else 1,
                unit_price=parse_decimal(raw.get("unit_price"), f"lines[{idx}].unit_price"),
                item_code=clean_str(raw.get("item_code")),
            )
        )
    return lines


def _payment_amount(data: dict):
    raw = data.get("amount")
    if raw is None:
        raw = data.get("payment_amount")
    return parse_decimal(raw, "amount")


@invoices_bp.route("", methods=["GET"])
def list_invoices():
    criteria = []

    status = request.args.get("status")
    if status:
        criteria.append(SupplierInvoice.status == parse_enum(InvoiceStatus, status, "status"))

    supplier_id = parse_optional_int(request.args.get("supplier_id"), "supplier_id")
    if supplier_id is not None:
        criteria.append(SupplierInvoice.supplier_id == supplier_id)

    po_id = parse_optional_int(request.args.get("purchase_order_id"), "purchase_order_id")
    if po_id is not None:
        criteria.append(SupplierInvoice.purchase_order_id == po_id)

    invoices = store.find(SupplierInvoice, *criteria, order_by=SupplierInvoice.id.desc())
    return ok([i.to_dict(include_lines=False) for i in invoices])


@invoices_bp.route("", methods=["POST"])
def create_invoice():
    data = json_body()
    actor = current_actor(data)

    fields = services.InvoiceInput(
        supplier_id=parse_optional_int(data.get("supplier_id"), "supplier_id"),
        supplier_invoice_number=clean_str(data.get("supplier_invoice_number")) or "",
        invoice_date=parse_date(data.get("invoice_date"), "invoice_date"),
        due_date=parse_date(data.get("due_date"), "due_date"),
        tax_amount=parse_decimal(data.get("tax_amount"), "tax_amount") or 0,
        purchase_order_id=parse_optional_int(data.get("purchase_order_id"), "purchase_order_id"),
        goods_receipt_id=parse_optional_int(data.get("goods_receipt_id"), "goods_receipt_id"),
        notes=clean_str(data.get("notes")),
        lines=_parse_lines(data),
    )
    invoice = services.create_supplier_invoice(fields, actor)
    return ok(invoice.to_dict(), 201)


@invoices_bp.route("/<int:invoice_id>", methods=["GET"])
def get_invoice(invoice_id: int):
    return ok(services.get_invoice(invoice_id).to_dict())


@invoices_bp.route("/<int:invoice_id>", methods=["PUT"])
def update_invoice(invoice_id: int):
    data = json_body()
    actor = current_actor(data)

    invoice = services.update_supplier_invoice(
        invoice_id,
        actor,
        due_date=parse_date(data.get("due_date"), "due_date"),
        notes=data.get("notes"),
        lines=_parse_lines(data) if "lines" in data else None,
        tax_amount=parse_decimal(data.get("tax_amount"), "tax_amount"),
        expected_version=expected_version(data),
    )
    return ok(invoice.to_dict())


@invoices_bp.route("/<int:invoice_id>/payment", methods=["PUT"])
def record_payment(invoice_id: int):
    data = json_body()
    actor = current_actor(data)

    method = data.get("method", data.get("payment_method"))
    entry = PaymentEntry(
        amount=_payment_amount(data),
        paid_on=parse_date(data.get("paid_on", data.get("payment_date")), "paid_on"),
        method=parse_enum(PaymentMethod, method, "method") if method else PaymentMethod.BANK_TRANSFER,
        reference=clean_str(data.get("reference")),
        notes=clean_str(data.get("notes")),
    )
    invoice = services.record_invoice_payment(
        invoice_id, entry, actor, expected_version=expected_version(data)
    )
    return ok(invoice.to_dict())


@invoices_bp.route("/<int:invoice_id>/mark-paid", methods=["PUT"])
def mark_paid(invoice_id: int):
    data = json_body()
    actor = current_actor(data)

    # HTTP clients get the Deprecation header instead of a Python warning
    invoice = services.settle_invoice_balance(
        invoice_id,
        actor,
        _payment_amount(data),
        expected_version=expected_version(data),
    )

    response, status = ok(invoice.to_dict())
    response.headers["Deprecation"] = "true"
    return response, status


@invoices_bp.route("/<int:invoice_id>/cancel", methods=["PUT"])
def cancel_invoice(invoice_id: int):
    data = json_body()
    invoice = services.cancel_supplier_invoice(
        invoice_id,
        current_actor(data),
        clean_str(data.get("reason")),
        expected_version=expected_version(data),
    )
    return ok(invoice.to_dict())
