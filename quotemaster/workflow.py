"""
quotemaster/workflow.py

Quotation negotiation and approval.

Status machine:
    pending -> negotiation -> approved
    pending ------------------> approved
    any (not approved) -------> cancelled
    approved -----------------> cancelled   (the only way out of approved)

Side effects:
- Approval writes approved_price / approved_at / approved_by on every line
  item with a positive final price and appends a PriceHistory row for it.
- Recording negotiated prices appends "negotiated" PriceHistory rows.
- Every transition adds an AuditLog row.

IMPORTANT:
- Each public function is one transaction: item updates, history rows,
  status change and audit commit together or roll back together.
- Functions take the acting user explicitly so they also run from the CLI.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from .audit import log_action, serialize_model
from .errors import InvalidTransitionError, NotFoundError, ValidationError
from .extensions import db
from .models import (
    PRICE_APPROVED,
    PRICE_NEGOTIATED,
    PriceHistory,
    QUOTATION_APPROVED,
    QUOTATION_CANCELLED,
    QUOTATION_NEGOTIATION,
    QUOTATION_PENDING,
    QUOTATION_STATUSES,
    Quotation,
    User,
)
from .pricing import to_decimal

logger = logging.getLogger(__name__)

NEGOTIABLE_STATUSES = (QUOTATION_PENDING, QUOTATION_NEGOTIATION)
APPROVABLE_STATUSES = (QUOTATION_PENDING, QUOTATION_NEGOTIATION)

_SNAPSHOT_FIELDS = ("status", "update_date")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _get_quotation(quotation_id: int) -> Quotation:
    quotation = (
        Quotation.query.options(joinedload(Quotation.supplier), joinedload(Quotation.items))
        .filter(Quotation.id == quotation_id)
        .first()
    )
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found.")
    return quotation


def _clean_ids(quotation_ids: Iterable) -> list[int]:
    ids = []
    for raw in quotation_ids or []:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid quotation id: {raw!r}") from None
        if value not in ids:
            ids.append(value)
    if not ids:
        raise ValidationError("No quotation ids given.")
    return ids


def _record_price(quotation: Quotation, item, price: Decimal, price_type: str, user: User | None) -> PriceHistory:
    entry = PriceHistory(
        product_id=item.product_id,
        supplier_id=quotation.supplier_id,
        period=quotation.period,
        region=quotation.region,
        price=price,
        price_type=price_type,
        recorded_by=user.id if user is not None else None,
    )
    db.session.add(entry)
    return entry


def _set_status(quotation: Quotation, status: str, user: User | None, action: str) -> None:
    before = serialize_model(quotation, only=_SNAPSHOT_FIELDS)
    quotation.status = status
    quotation.update_date = datetime.utcnow()
    db.session.flush()
    log_action(quotation, action, actor=user, before=before, after=serialize_model(quotation, only=_SNAPSHOT_FIELDS))


def _commit() -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def _parse_price_overrides(approved_prices: Mapping | None) -> dict[int, Decimal]:
    """{item_id: price}; keys may arrive as strings from JSON."""
    overrides: dict[int, Decimal] = {}
    for raw_id, raw_price in (approved_prices or {}).items():
        try:
            item_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid quote item id: {raw_id!r}") from None
        price = to_decimal(raw_price)
        if price is None or price < 0:
            raise ValidationError(f"Invalid price for item {item_id}.")
        overrides[item_id] = price
    return overrides


# ---------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------
def negotiate_quotation(quotation_id: int, user: User | None = None) -> dict:
    quotation = _get_quotation(quotation_id)
    if quotation.status not in NEGOTIABLE_STATUSES:
        raise InvalidTransitionError(
            f"Quotation in status '{quotation.status}' cannot be negotiated."
        )

    _set_status(quotation, QUOTATION_NEGOTIATION, user, "NEGOTIATE")
    _commit()

    logger.info("Quotation %s moved to negotiation", quotation.quotation_id)
    return {
        "success": f"Quotation from {quotation.supplier.name} moved to negotiation.",
        "quotation": quotation.to_dict(),
    }


def batch_negotiation(quotation_ids: Iterable, user: User | None = None) -> dict:
    ids = _clean_ids(quotation_ids)
    quotations = (
        Quotation.query.options(joinedload(Quotation.supplier))
        .filter(Quotation.id.in_(ids), Quotation.status.in_(NEGOTIABLE_STATUSES))
        .order_by(Quotation.id.asc())
        .all()
    )
    if not quotations:
        raise ValidationError("No quotations eligible for negotiation.")

    for quotation in quotations:
        _set_status(quotation, QUOTATION_NEGOTIATION, user, "NEGOTIATE")
    _commit()

    affected = sorted({q.supplier.name for q in quotations})
    logger.info("Batch negotiation: %d quotations, %d suppliers", len(quotations), len(affected))
    return {
        "success": f"Moved {len(quotations)} quotations to negotiation.",
        "updatedQuotations": len(quotations),
        "affectedSuppliers": affected,
    }


def record_negotiated_prices(quotation_id: int, prices: Mapping, user: User | None = None) -> dict:
    """
    Store a negotiation round: new negotiated prices for some items.

    Moves the quotation to negotiation when it was still pending.
    """
    quotation = _get_quotation(quotation_id)
    if quotation.status not in NEGOTIABLE_STATUSES:
        raise InvalidTransitionError(
            f"Quotation in status '{quotation.status}' cannot be negotiated."
        )

    new_prices = _parse_price_overrides(prices)
    if not new_prices:
        raise ValidationError("No negotiated prices given.")

    items = {item.id: item for item in quotation.items}
    unknown = sorted(set(new_prices) - set(items))
    if unknown:
        raise ValidationError(f"Items {unknown} do not belong to this quotation.")

    now = datetime.utcnow()
    updated = 0
    for item_id, price in new_prices.items():
        item = items[item_id]
        item.negotiated_price = price
        item.negotiation_rounds = (item.negotiation_rounds or 0) + 1
        item.last_negotiated_at = now
        if price > 0:
            _record_price(quotation, item, price, PRICE_NEGOTIATED, user)
        updated += 1

    _set_status(quotation, QUOTATION_NEGOTIATION, user, "NEGOTIATE_PRICES")
    _commit()

    logger.info("Quotation %s: %d negotiated prices recorded", quotation.quotation_id, updated)
    return {"success": f"Recorded {updated} negotiated prices.", "updatedItems": updated}


# ---------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------
def approve_quotation(quotation_id: int, approved_prices: Mapping | None = None, user: User | None = None) -> dict:
    """
    Approve one quotation.

    Final price per item: explicit override for the item id, else the
    negotiated price, else the initial price. Items whose final price is not
    positive keep no approved price.
    """
    quotation = _get_quotation(quotation_id)
    if quotation.status == QUOTATION_APPROVED:
        raise InvalidTransitionError("Quotation is already approved.")
    if quotation.status == QUOTATION_CANCELLED:
        raise InvalidTransitionError("A cancelled quotation cannot be approved.")

    overrides = _parse_price_overrides(approved_prices)
    now = datetime.utcnow()
    approved_items = 0
    logged = 0
    total_value = Decimal("0")

    try:
        for item in quotation.items:
            final_price = overrides.get(item.id)
            if not final_price:
                final_price = to_decimal(item.negotiated_price) or to_decimal(item.initial_price)
            if not final_price or final_price <= 0:
                continue

            item.approved_price = final_price
            item.approved_at = now
            item.approved_by = user.id if user is not None else None
            approved_items += 1
            total_value += final_price * (to_decimal(item.quantity) or Decimal("1"))

            _record_price(quotation, item, final_price, PRICE_APPROVED, user)
            logged += 1

        _set_status(quotation, QUOTATION_APPROVED, user, "APPROVE")
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Approval failed for quotation %s", quotation_id)
        raise

    logger.info(
        "Quotation %s approved: %d items, %d history rows",
        quotation.quotation_id, approved_items, logged,
    )
    return {
        "success": f"Approved quotation from {quotation.supplier.name} with {approved_items} products.",
        "approvedItems": approved_items,
        "totalApprovedValue": float(total_value),
        "loggedPriceHistory": logged,
    }


def approve_multiple_quotations(quotation_ids: Iterable, user: User | None = None) -> dict:
    """Approve several pending/negotiation quotations at negotiated ?? initial prices."""
    ids = _clean_ids(quotation_ids)
    quotations = (
        Quotation.query.options(joinedload(Quotation.supplier), joinedload(Quotation.items))
        .filter(Quotation.id.in_(ids), Quotation.status.in_(APPROVABLE_STATUSES))
        .order_by(Quotation.id.asc())
        .all()
    )
    if not quotations:
        raise ValidationError(
            "No quotations eligible for approval (only pending or negotiation can be approved)."
        )

    now = datetime.utcnow()
    logged = 0
    try:
        for quotation in quotations:
            for item in quotation.items:
                final_price = to_decimal(item.negotiated_price)
                if final_price is None:
                    final_price = to_decimal(item.initial_price)
                item.approved_price = final_price
                item.approved_at = now
                item.approved_by = user.id if user is not None else None
                if final_price and final_price > 0:
                    _record_price(quotation, item, final_price, PRICE_APPROVED, user)
                    logged += 1
            _set_status(quotation, QUOTATION_APPROVED, user, "APPROVE")
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Batch approval failed for %s", ids)
        raise

    affected = sorted({q.supplier.name for q in quotations})
    logger.info("Batch approval: %d quotations, %d history rows", len(quotations), logged)
    return {
        "success": f"Approved {len(quotations)} quotations from {len(affected)} suppliers.",
        "approvedQuotations": len(quotations),
        "affectedSuppliers": affected,
        "loggedPriceHistory": logged,
    }


# ---------------------------------------------------------------------
# Generic status changes
# ---------------------------------------------------------------------
def update_quotation_status(quotation_id: int, status: str, user: User | None = None) -> dict:
    if status not in QUOTATION_STATUSES:
        raise ValidationError(f"Unknown status '{status}'.")

    quotation = _get_quotation(quotation_id)
    if quotation.status == QUOTATION_APPROVED and status != QUOTATION_CANCELLED:
        raise InvalidTransitionError("An approved quotation can only be cancelled.")

    try:
        if status == QUOTATION_APPROVED:
            for item in quotation.items:
                price = to_decimal(item.approved_price)
                if price is not None:
                    _record_price(quotation, item, price, PRICE_APPROVED, user)
        _set_status(quotation, status, user, f"STATUS_{status.upper()}")
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Status change failed for quotation %s", quotation_id)
        raise

    logger.info("Quotation %s status -> %s", quotation.quotation_id, status)
    return {"success": "Quotation status updated.", "quotation": quotation.to_dict()}


def cancel_quotation(quotation_id: int, user: User | None = None) -> dict:
    return update_quotation_status(quotation_id, QUOTATION_CANCELLED, user)
