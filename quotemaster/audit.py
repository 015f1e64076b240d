"""
quotemaster/audit.py

Audit trail for quotation state changes.

Each workflow transition records the acting user (plus an e-mail snapshot),
the quotation it touched and the relevant columns before and after.

IMPORTANT:
- log_action() only adds the row to the session; the workflow function that
  calls it owns the commit or rollback.
- Workflow functions also run from the CLI and tests, outside any request.
  The actor is then passed explicitly and no IP is recorded.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Mapping

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog, User


def _plain(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return format(value, "f")
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def serialize_model(instance: Any, only: tuple[str, ...] | None = None) -> dict[str, str | None]:
    """Column name -> string value for an instance; `only` limits the columns."""
    columns = instance.__table__.columns
    return {
        column.name: _plain(getattr(instance, column.name))
        for column in columns
        if not only or column.name in only
    }


def _dump(snapshot: Mapping[str, Any] | None) -> str | None:
    if not snapshot:
        return None
    return json.dumps(snapshot, ensure_ascii=False, sort_keys=True)


def _resolve_actor(actor: User | None) -> User | None:
    if actor is not None:
        return actor
    if has_request_context() and current_user.is_authenticated:
        return current_user
    return None


def _client_ip() -> str | None:
    if not has_request_context():
        return None
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()[:45]
    return request.remote_addr


def log_action(
    entity: Any,
    action: str,
    *,
    actor: User | None = None,
    before: Mapping[str, Any] | None = None,
    after: Mapping[str, Any] | None = None,
) -> AuditLog:
    """Queue an AuditLog row for `entity`, which must already be flushed."""
    if getattr(entity, "id", None) is None:
        raise ValueError(f"Cannot audit unsaved {entity.__class__.__name__}; flush it first.")

    user = _resolve_actor(actor)
    entry = AuditLog(
        user_id=user.id if user is not None else None,
        username_snapshot=user.email if user is not None else None,
        entity_type=type(entity).__name__,
        entity_id=entity.id,
        action=action,
        before_data=_dump(before),
        after_data=_dump(after),
        ip_address=_client_ip(),
    )
    db.session.add(entry)
    return entry
