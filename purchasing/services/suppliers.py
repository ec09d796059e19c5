"""
Supplier master data.

Suppliers referenced by any purchase order or invoice are never physically
deleted; delete_supplier() deactivates them instead so history stays intact.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import func

from .. import store
from ..audit import log_action, serialize_model
from ..exceptions import SupplierNotFoundError, ValidationFailedError
from ..extensions import db
from ..logging_config import get_logger
from ..models import PaymentTerms, PurchaseOrder, Supplier, SupplierInvoice, SupplierStatus, parse_enum

logger = get_logger("services.suppliers")

TEXT_FIELDS = (
    "name",
    "contact_person",
    "email",
    "phone",
    "street",
    "city",
    "state",
    "postal_code",
    "country",
    "tax_id",
    "bank_name",
    "iban",
    "notes",
)

DELETED = "deleted"
DEACTIVATED = "deactivated"


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _apply_fields(supplier: Supplier, data: Mapping[str, Any]) -> None:
    for name in TEXT_FIELDS:
        if name in data:
            setattr(supplier, name, _clean(data[name]))

    if "payment_terms" in data and data["payment_terms"] is not None:
        supplier.payment_terms = parse_enum(PaymentTerms, data["payment_terms"], "payment_terms")

    if not supplier.name:
        raise ValidationFailedError("name", "is required")
    if supplier.email and "@" not in supplier.email:
        raise ValidationFailedError("email", "is not a valid e-mail address")


def _ensure_code_free(code: str, supplier_id: int | None = None) -> None:
    criteria = [Supplier.code == code]
    if supplier_id is not None:
        criteria.append(Supplier.id != supplier_id)
    if store.find(Supplier, *criteria):
        raise ValidationFailedError("code", f"supplier code {code!r} already exists")


def get_supplier(supplier_id: int) -> Supplier:
    return store.load(Supplier, supplier_id, SupplierNotFoundError)


def create_supplier(data: Mapping[str, Any], actor: str) -> Supplier:
    code = _clean(data.get("code"))
    if not code:
        raise ValidationFailedError("code", "is required")
    code = code.upper()
    _ensure_code_free(code)

    supplier = Supplier(code=code, status=SupplierStatus.ACTIVE, payment_terms=PaymentTerms.NET_30)
    _apply_fields(supplier, data)
    if data.get("status") is not None:
        supplier.status = parse_enum(SupplierStatus, data["status"], "status")

    with store.unit_of_work("create_supplier"):
        db.session.add(supplier)
        db.session.flush()
        log_action(supplier, "CREATE", actor=actor, after=serialize_model(supplier))

    logger.info("supplier_created", extra={"supplier_code": supplier.code})
    return supplier


def update_supplier(supplier_id: int, data: Mapping[str, Any], actor: str) -> Supplier:
    supplier = store.load(Supplier, supplier_id, SupplierNotFoundError, for_update=True)

    with store.unit_of_work("update_supplier", supplier):
        before = serialize_model(supplier)

        if "code" in data:
            code = _clean(data["code"])
            if not code:
                raise ValidationFailedError("code", "is required")
            code = code.upper()
            if code != supplier.code:
                _ensure_code_free(code, supplier.id)
                supplier.code = code

        _apply_fields(supplier, data)
        db.session.flush()
        log_action(supplier, "UPDATE", actor=actor, before=before, after=serialize_model(supplier))

    return supplier


def set_supplier_status(supplier_id: int, status: Any, actor: str) -> Supplier:
    """Change the supplier's status (accepts display spellings such as "Suspended")."""
    new_status = parse_enum(SupplierStatus, status, "status")
    supplier = store.load(Supplier, supplier_id, SupplierNotFoundError, for_update=True)

    with store.unit_of_work("set_supplier_status", supplier):
        before = serialize_model(supplier)
        supplier.status = new_status
        db.session.flush()
        log_action(supplier, "STATUS", actor=actor, before=before, after=serialize_model(supplier))

    logger.info("supplier_status_changed", extra={"supplier_code": supplier.code, "status": new_status.value})
    return supplier


def is_referenced(supplier: Supplier) -> bool:
    """True when any purchase order or invoice points at the supplier."""
    for model in (PurchaseOrder, SupplierInvoice):
        count = db.session.scalar(
            db.select(func.count()).select_from(model).where(model.supplier_id == supplier.id)
        )
        if count:
            return True
    return False


def delete_supplier(supplier_id: int, actor: str) -> str:
    """
    Delete a supplier, or deactivate it when documents reference it.

    Returns DELETED or DEACTIVATED.
    """
    supplier = store.load(Supplier, supplier_id, SupplierNotFoundError, for_update=True)

    with store.unit_of_work("delete_supplier", supplier):
        before = serialize_model(supplier)
        if is_referenced(supplier):
            supplier.status = SupplierStatus.INACTIVE
            db.session.flush()
            log_action(supplier, "DEACTIVATE", actor=actor, before=before, after=serialize_model(supplier))
            outcome = DEACTIVATED
        else:
            log_action(supplier, "DELETE", actor=actor, before=before)
            db.session.delete(supplier)
            outcome = DELETED

    logger.info("supplier_removed", extra={"supplier_code": before["code"], "outcome": outcome})
    return outcome
