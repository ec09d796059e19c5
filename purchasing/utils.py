"""
Request parsing helpers shared by the JSON blueprints.

- parse_decimal / parse_optional_int / parse_date: tolerant input parsing
  (comma or dot decimals, blank means "not given")
- current_actor: acting user from the X-Actor header or the body "actor" field
- json_body / ok: request and response envelopes

IMPORTANT:
- Malformed input raises ValidationFailedError; the app-level error handler
  renders it. Routes never build error responses themselves.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import jsonify, request

from .exceptions import ValidationFailedError


def parse_decimal(value: Any, field: str) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot)."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationFailedError(field, "must be a number")
    if isinstance(value, (int, Decimal)):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(str(value))
    else:
        raw = str(value).strip().replace(",", ".")
        if raw == "":
            return None
        try:
            number = Decimal(raw)
        except (InvalidOperation, ValueError):
            raise ValidationFailedError(field, f"{value!r} is not a number") from None

    # "NaN", "Infinity", "sNaN" parse as Decimals
    if not number.is_finite():
        raise ValidationFailedError(field, "must be a finite number")
    return number


def parse_optional_int(value: Any, field: str) -> int | None:
    """Parse optional int from body/query."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationFailedError(field, f"{value!r} is not an integer") from None


def parse_date(value: Any, field: str) -> date | None:
    """Parse ISO date ("2024-05-31"); datetimes are truncated to their date."""
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise ValidationFailedError(field, f"{value!r} is not an ISO date") from None


def parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationFailedError(field, f"{value!r} is not an ISO timestamp") from None


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def json_body() -> dict:
    """Request JSON object (empty dict when the body is empty)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailedError("body", "must be a JSON object")
    return data


def json_list(data: dict, field: str) -> list:
    items = data.get(field)
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationFailedError(field, "must be a list")
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationFailedError(f"{field}[{idx}]", "must be an object")
    return items


def current_actor(data: dict | None = None, *, required: bool = True) -> str | None:
    """Acting user: X-Actor header first, then the body "actor" field."""
    actor = clean_str(request.headers.get("X-Actor"))
    if actor is None and data is not None:
        actor = clean_str(data.get("actor"))
    if actor is None and required:
        raise ValidationFailedError("actor", "is required (X-Actor header or body field)")
    return actor


def expected_version(data: dict) -> int | None:
    """Version the client read (body "version" or If-Match header), for optimistic checks."""
    raw = data.get("version")
    if raw is None:
        raw = (request.headers.get("If-Match") or "").strip('"') or None
    return parse_optional_int(raw, "version")


def ok(data: Any, status: int = 200):
    return jsonify({"success": True, "data": data}), status
