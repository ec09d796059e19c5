"""
purchasing/blueprints/goods_receipts/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import goods_receipts_bp  # noqa: F401
