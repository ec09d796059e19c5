"""
purchasing/blueprints/purchase_orders/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import purchase_orders_bp  # noqa: F401
