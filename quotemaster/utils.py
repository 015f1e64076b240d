"""
Utility functions shared across the app. This includes:
- setup_logging: one-time logging configuration from the app config.
- parse_optional_int: lenient parsing of request values.
- request_categories: categories from a query string (repeatable or comma separated).
- json_body: the JSON request body as a dict.
- to_json: Decimal/datetime -> JSON friendly values, recursively.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from flask import request

from .errors import ValidationError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | int = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)


def parse_optional_int(value) -> int | None:
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def request_categories() -> list[str]:
    values = request.args.getlist("category")
    categories: list[str] = []
    for value in values:
        categories.extend(part.strip() for part in value.split(",") if part.strip())
    return categories


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def require_int_list(data: dict, key: str) -> list[int]:
    values = data.get(key)
    if not isinstance(values, list) or not values:
        raise ValidationError(f"'{key}' must be a non-empty list of ids.")
    ids = []
    for value in values:
        number = parse_optional_int(value)
        if number is None:
            raise ValidationError(f"'{key}' contains an invalid id: {value!r}")
        ids.append(number)
    return ids


def to_json(value):
    """Recursively convert Decimal/datetime for jsonify."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value
