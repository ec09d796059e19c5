"""
purchasing/exceptions.py

Typed exception hierarchy for the procurement engine.

Every error carries:
- a machine-readable ``code`` (stable, API-safe)
- the HTTP status the JSON layer renders it with
- a ``retryable`` flag (only concurrency conflicts and store failures are retryable)
- structured context attributes (never only a message string)

Hierarchy:

    ProcurementError
    +-- NotFoundError
    |   +-- SupplierNotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- GoodsReceiptNotFoundError
    |   +-- InvoiceNotFoundError
    +-- InvalidTransitionError
    +-- InvalidStateError
    |   +-- ImmutableRecordError
    +-- ValidationFailedError
    |   +-- DuplicateInvoiceNumberError
    +-- ConcurrentModificationError
    +-- StoreUnavailableError

IMPORTANT:
- The engine never retries by itself. Callers retry ConcurrentModificationError
  and StoreUnavailableError; everything else is final.
"""

from __future__ import annotations

from typing import Any, Dict


class ProcurementError(Exception):
    """Base exception for all engine errors."""

    code: str = "PROCUREMENT_ERROR"
    http_status: int = 400
    retryable: bool = False

    def context(self) -> Dict[str, Any]:
        """Structured fields for rendering (public attributes set by the subclass)."""
        return {k: v for k, v in vars(self).items() if not k.startswith("_")}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": str(self),
            "retryable": self.retryable,
        }
        payload.update(self.context())
        return payload


# ---------------------------------------------------------------------
# Missing entities
# ---------------------------------------------------------------------
class NotFoundError(ProcurementError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"
    http_status = 404
    entity_type = "Entity"

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")

    def context(self) -> Dict[str, Any]:
        return {"entity_type": self.entity_type, "entity_id": self.entity_id}


class SupplierNotFoundError(NotFoundError):
    code = "SUPPLIER_NOT_FOUND"
    entity_type = "Supplier"


class PurchaseOrderNotFoundError(NotFoundError):
    code = "PURCHASE_ORDER_NOT_FOUND"
    entity_type = "PurchaseOrder"


class GoodsReceiptNotFoundError(NotFoundError):
    code = "GOODS_RECEIPT_NOT_FOUND"
    entity_type = "GoodsReceipt"


class InvoiceNotFoundError(NotFoundError):
    code = "INVOICE_NOT_FOUND"
    entity_type = "SupplierInvoice"


# ---------------------------------------------------------------------
# State machine / state rules
# ---------------------------------------------------------------------
class InvalidTransitionError(ProcurementError):
    """The status engine rejected an action from the current state."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, entity_type: str, entity_id: Any, current_state: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} while it is {current_state}"
        )


class InvalidStateError(ProcurementError):
    """Operation not permitted in the entity's current (often terminal) state."""

    code = "INVALID_STATE"
    http_status = 409

    def __init__(self, message: str, *, entity_type: str | None = None, entity_id: Any = None,
                 current_state: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        super().__init__(message)


class ImmutableRecordError(InvalidStateError):
    """Historical records (receipts, ledger entries) cannot be changed."""

    code = "IMMUTABLE_RECORD"

    def __init__(self, entity_type: str, entity_id: Any, operation: str):
        self.operation = operation
        super().__init__(
            f"{entity_type} {entity_id} is immutable: {operation} rejected",
            entity_type=entity_type,
            entity_id=entity_id,
        )


# ---------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------
class ValidationFailedError(ProcurementError):
    """Malformed input (missing fields, negative quantities, bad references)."""

    code = "VALIDATION_FAILED"
    http_status = 422

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class DuplicateInvoiceNumberError(ValidationFailedError):
    code = "DUPLICATE_INVOICE_NUMBER"
    http_status = 409

    def __init__(self, supplier_id: int, supplier_invoice_number: str):
        self.supplier_id = supplier_id
        self.supplier_invoice_number = supplier_invoice_number
        super().__init__(
            "supplier_invoice_number",
            f"invoice {supplier_invoice_number!r} already recorded for supplier {supplier_id}",
        )


# ---------------------------------------------------------------------
# Store / concurrency (retryable)
# ---------------------------------------------------------------------
class ConcurrentModificationError(ProcurementError):
    """Optimistic lock conflict: the entity changed after it was read."""

    code = "CONCURRENT_MODIFICATION"
    http_status = 409
    retryable = True

    def __init__(self, entity_type: str, entity_id: Any, expected_version: int | None = None,
                 current_version: int | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            f"{entity_type} {entity_id} was modified by another transaction; reload and retry"
        )


class StoreUnavailableError(ProcurementError):
    """Persistence layer failed or timed out."""

    code = "STORE_UNAVAILABLE"
    http_status = 503
    retryable = True

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store unavailable during {operation}: {detail}")
