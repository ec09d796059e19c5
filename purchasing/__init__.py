"""
purchasing/__init__.py

Flask application factory for the procurement lifecycle engine.

Requirements:
- Production mindset: clear architecture, stable imports.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- Every engine error leaves the process as structured JSON with a stable code.

Request flow:
    before_request: bind request id + actor into the log context
    blueprint route -> service (one transaction) -> JSON envelope
    ProcurementError anywhere -> error handler -> {"success": false, "error": {...}}
"""

from __future__ import annotations

import uuid

import click
from flask import Flask, g, jsonify, request

from .exceptions import ProcurementError
from .extensions import db, migrate
from .logging_config import LogContext, configure_logging, get_logger

logger = get_logger("app")


def create_app(config_object: str | object = "config.Config", config_overrides: dict | None = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    if config_overrides:
        app.config.update(config_overrides)

    app.json.sort_keys = app.config.get("JSON_SORT_KEYS", False)

    configure_logging(
        level=app.config.get("LOG_LEVEL", "INFO"),
        json_output=app.config.get("LOG_JSON", True),
    )

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # ----------------------------------------------------------------------
    # Request context for logs
    # ----------------------------------------------------------------------
    @app.before_request
    def _bind_log_context():
        LogContext.clear()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        LogContext.set(request_id=g.request_id, actor=request.headers.get("X-Actor"))

    @app.after_request
    def _echo_request_id(response):
        request_id = g.get("request_id")
        if request_id:
            response.headers["X-Request-ID"] = request_id
        return response

    @app.teardown_request
    def _clear_log_context(exc):
        LogContext.clear()

    # ----------------------------------------------------------------------
    # Error rendering
    # ----------------------------------------------------------------------
    @app.errorhandler(ProcurementError)
    def _procurement_error(exc: ProcurementError):
        level = "error" if exc.http_status >= 500 else "warning"
        getattr(logger, level)(
            "request_failed",
            extra={"path": request.path, "method": request.method, "error_code": exc.code},
        )
        return jsonify({"success": False, "error": exc.to_dict()}), exc.http_status

    @app.errorhandler(404)
    def _not_found(exc):
        return jsonify({"success": False, "error": {"code": "NOT_FOUND", "message": "Resource not found",
                                                    "retryable": False}}), 404

    @app.errorhandler(405)
    def _method_not_allowed(exc):
        return jsonify({"success": False, "error": {"code": "METHOD_NOT_ALLOWED", "message": str(exc),
                                                    "retryable": False}}), 405

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.goods_receipts import goods_receipts_bp
    from .blueprints.invoices import invoices_bp
    from .blueprints.purchase_orders import purchase_orders_bp
    from .blueprints.suppliers import suppliers_bp

    app.register_blueprint(suppliers_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(goods_receipts_bp)
    app.register_blueprint(invoices_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed demo suppliers."""
        from .seed import seed_demo_suppliers

        created = seed_demo_suppliers()
        click.echo(f"Demo suppliers seeded ({created} created).")

    @app.cli.command("flag-overdue")
    @click.option("--as-of", "as_of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
                  help="Evaluate due dates as of this day (default: today).")
    def flag_overdue_command(as_of):
        """Mark open invoices past their due date as overdue."""
        from .services import flag_overdue_invoices

        try:
            changed = flag_overdue_invoices(as_of.date() if as_of else None)
        except ProcurementError as exc:
            raise click.ClickException(f"{exc.code}: {exc}") from exc
        for number in changed:
            click.echo(number)
        click.echo(f"{len(changed)} invoice(s) updated.")

    @app.cli.command("resync-order")
    @click.argument("order_number")
    @click.option("--actor", default="system", show_default=True)
    def resync_order_command(order_number, actor):
        """Re-derive an order's received quantities from its goods receipts."""
        from .models import PurchaseOrder
        from .services import resync_order_quantities

        order = db.session.execute(
            db.select(PurchaseOrder).filter_by(order_number=order_number)
        ).scalar_one_or_none()
        if order is None:
            raise click.ClickException(f"Purchase order {order_number} not found")

        try:
            result = resync_order_quantities(order.id, actor)
        except ProcurementError as exc:
            raise click.ClickException(f"{exc.code}: {exc}") from exc
        for warning in result.warnings:
            click.echo(f"WARNING {warning.kind} {warning.item_code}: {warning.detail}")
        click.echo(f"{result.order.order_number}: {result.order.status.value}")

    @app.route("/health")
    def health():
        return jsonify({"success": True, "data": {"status": "ok"}})

    return app
