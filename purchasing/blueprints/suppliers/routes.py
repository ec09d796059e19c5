"""
purchasing/blueprints/suppliers/routes.py

Supplier master data API.

Routes:
- GET    /api/suppliers                 list (filters: status, q)
- POST   /api/suppliers                 create
- GET    /api/suppliers/<id>            detail
- PUT    /api/suppliers/<id>            update
- PUT    /api/suppliers/<id>/status     change status
- DELETE /api/suppliers/<id>            delete (deactivates referenced suppliers)
"""

from __future__ import annotations

from flask import Blueprint, request
from sqlalchemy import or_

from ... import services, store
from ...models import Supplier, SupplierStatus, parse_enum
from ...utils import current_actor, json_body, ok

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.route("", methods=["GET"])
def list_suppliers():
    criteria = []

    status = request.args.get("status")
    if status:
        criteria.append(Supplier.status == parse_enum(SupplierStatus, status, "status"))

    q = (request.args.get("q") or "").strip()
    if q:
        like = f"%{q}%"
        criteria.append(or_(Supplier.name.ilike(like), Supplier.code.ilike(like)))

    suppliers = store.find(Supplier, *criteria, order_by=Supplier.name.asc())
    return ok([s.to_dict() for s in suppliers])


@suppliers_bp.route("", methods=["POST"])
def create_supplier():
    data = json_body()
    supplier = services.create_supplier(data, current_actor(data))
    return ok(supplier.to_dict(), 201)


@suppliers_bp.route("/<int:supplier_id>", methods=["GET"])
def get_supplier(supplier_id: int):
    return ok(services.get_supplier(supplier_id).to_dict())


@suppliers_bp.route("/<int:supplier_id>", methods=["PUT"])
def update_supplier(supplier_id: int):
    data = json_body()
    supplier = services.update_supplier(supplier_id, data, current_actor(data))
    return ok(supplier.to_dict())


@suppliers_bp.route("/<int:supplier_id>/status", methods=["PUT"])
def set_supplier_status(supplier_id: int):
    data = json_body()
    supplier = services.set_supplier_status(supplier_id, data.get("status"), current_actor(data))
    return ok(supplier.to_dict())


@suppliers_bp.route("/<int:supplier_id>", methods=["DELETE"])
def delete_supplier(supplier_id: int):
    outcome = services.delete_supplier(supplier_id, current_actor())
    return ok({"id": supplier_id, "outcome": outcome})
