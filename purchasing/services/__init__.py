"""
Service layer: one function per engine operation, each its own transaction.

Blueprints and CLI commands call these; they never touch the session directly.
"""

from __future__ import annotations

from .invoices import (  # noqa: F401
    InvoiceInput,
    InvoiceLineInput,
    cancel_supplier_invoice,
    create_supplier_invoice,
    flag_overdue_invoices,
    get_invoice,
    mark_invoice_paid,
    record_invoice_payment,
    settle_invoice_balance,
    update_supplier_invoice,
)
from .purchase_orders import (  # noqa: F401
    OrderLineInput,
    approve_purchase_order,
    cancel_purchase_order,
    create_purchase_order,
    get_purchase_order,
    reject_purchase_order,
    submit_purchase_order,
    update_purchase_order,
)
from .receiving import (  # noqa: F401
    ReceiptResult,
    ResyncResult,
    create_goods_receipt,
    get_goods_receipt,
    resync_order_quantities,
)
from .suppliers import (  # noqa: F401
    create_supplier,
    delete_supplier,
    get_supplier,
    set_supplier_status,
    update_supplier,
)
