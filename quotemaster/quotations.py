"""
quotemaster/quotations.py

Quotation listing, detail and dropdown data.

NOTE:
- Sorting is whitelisted (SORTABLE_COLUMNS); anything else falls back to
  newest first.
- limit is clamped to 1..MAX_PAGE_SIZE.
"""

from __future__ import annotations

import math

from sqlalchemy import or_
from sqlalchemy.orm import joinedload

from .errors import NotFoundError, ValidationError
from .extensions import db
from .models import QUOTATION_STATUSES, Quotation, QuoteItem, Supplier, Team

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

SORTABLE_COLUMNS = {
    "period": Quotation.period,
    "region": Quotation.region,
    "status": Quotation.status,
    "created_at": Quotation.created_at,
    "updated_at": Quotation.updated_at,
    "supplier": Supplier.name,
}


def _positive_int(value, default: int, upper: int | None = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number < 1:
        return default
    if upper is not None:
        number = min(number, upper)
    return number


def list_quotations(filters: dict | None = None) -> dict:
    """
    Filters: period, region, supplier_id, status, search, sort, direction,
    page, limit.
    """
    filters = filters or {}
    page = _positive_int(filters.get("page"), 1)
    limit = _positive_int(filters.get("limit"), DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)

    query = Quotation.query.join(Supplier, Quotation.supplier_id == Supplier.id).options(
        joinedload(Quotation.supplier)
    )

    if filters.get("period"):
        query = query.filter(Quotation.period == filters["period"])
    if filters.get("region"):
        query = query.filter(Quotation.region == filters["region"])
    supplier_id = _positive_int(filters.get("supplier_id"), 0)
    if supplier_id:
        query = query.filter(Quotation.supplier_id == supplier_id)
    status = filters.get("status")
    if status:
        if status not in QUOTATION_STATUSES:
            raise ValidationError(f"Unknown status '{status}'.")
        query = query.filter(Quotation.status == status)

    search = (filters.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(
            or_(
                Quotation.quotation_id.ilike(like),
                Supplier.name.ilike(like),
                Supplier.supplier_code.ilike(like),
                Quotation.region.ilike(like),
            )
        )

    total = query.order_by(None).count()

    column = SORTABLE_COLUMNS.get(filters.get("sort") or "")
    if column is None:
        query = query.order_by(Quotation.created_at.desc(), Quotation.id.desc())
    elif (filters.get("direction") or "asc").lower() == "desc":
        query = query.order_by(column.desc(), Quotation.id.desc())
    else:
        query = query.order_by(column.asc(), Quotation.id.asc())

    quotations = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "data": [q.to_dict() for q in quotations],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


def get_quotation_details(quotation_id: int) -> dict:
    quotation = (
        Quotation.query.options(
            joinedload(Quotation.supplier),
            joinedload(Quotation.items).joinedload(QuoteItem.product),
        )
        .filter(Quotation.id == quotation_id)
        .first()
    )
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found.")

    data = quotation.to_dict(include_items=True)
    data["supplier"] = {
        "id": quotation.supplier.id,
        "supplierCode": quotation.supplier.supplier_code,
        "name": quotation.supplier.name,
        "contactPerson": quotation.supplier.contact_person,
        "phone": quotation.supplier.phone,
        "email": quotation.supplier.email,
    }
    data["creator"] = (
        {"id": quotation.creator.id, "name": quotation.creator.name, "email": quotation.creator.email}
        if quotation.creator else None
    )
    return data


def get_available_regions() -> list[str]:
    rows = (
        db.session.query(Team.region)
        .filter(Team.region.isnot(None), Team.region != "", Team.deleted_at.is_(None))
        .distinct()
        .order_by(Team.region.asc())
        .all()
    )
    return [region for (region,) in rows]


def get_available_suppliers() -> list[dict]:
    return [
        {"id": s.id, "code": s.supplier_code, "name": s.name}
        for s in Supplier.active().order_by(Supplier.supplier_code.asc()).all()
    ]
