"""
quotemaster/price_list.py

Kitchen price list: the approved prices a kitchen may buy at.

A supplier shows up for a kitchen only when
- it has an ACTIVE SupplierServiceScope for that kitchen, and
- its quotation for the kitchen's region/period is approved, and
- the line item has an approved price > 0.

Best price here compares prices WITH VAT (what the kitchen actually pays),
unlike the comparison matrix which compares unit prices.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from .errors import NotFoundError, ValidationError
from .extensions import db
from .models import (
    Product,
    QUOTATION_APPROVED,
    Quotation,
    QuoteItem,
    Supplier,
    SupplierServiceScope,
    Team,
    User,
)
from .pricing import coverage_percentage, find_best_price, is_valid_period, price_with_vat, round_half_up, to_decimal

logger = logging.getLogger(__name__)


def _get_team(team_id: int) -> Team:
    team = db.session.get(Team, team_id)
    if team is None or team.deleted_at is not None:
        raise NotFoundError(f"Team {team_id} not found.")
    if not team.region:
        raise ValidationError(f"Team {team.name} has no region configured.")
    return team


def _scoped_supplier_ids(team_id: int) -> list[int]:
    rows = (
        db.session.query(SupplierServiceScope.supplier_id)
        .filter(SupplierServiceScope.team_id == team_id, SupplierServiceScope.is_active.is_(True))
        .all()
    )
    return [supplier_id for (supplier_id,) in rows]


def _check_period(period: str) -> None:
    if not is_valid_period(period):
        raise ValidationError("Period must look like YYYY-MM-NN.")


def get_team_info(team_id: int) -> dict:
    team = _get_team(team_id)
    manager: User | None = team.manager
    return {
        "id": team.id,
        "name": team.name,
        "region": team.region,
        "teamCode": team.team_code,
        "manager": {"name": manager.name, "email": manager.email} if manager else None,
    }


def get_team_supplier_scopes(team_id: int) -> list[dict]:
    rows = (
        db.session.query(SupplierServiceScope, Supplier)
        .join(Supplier, SupplierServiceScope.supplier_id == Supplier.id)
        .filter(SupplierServiceScope.team_id == team_id)
        .order_by(Supplier.supplier_code.asc())
        .all()
    )
    return [
        {
            "supplierId": supplier.id,
            "supplierCode": supplier.supplier_code,
            "supplierName": supplier.name,
            "isActive": scope.is_active,
            "createdAt": scope.created_at,
            "updatedAt": scope.updated_at,
        }
        for scope, supplier in rows
    ]


def get_available_periods_for_team(team_id: int) -> list[dict]:
    """Periods with approved quotations usable by this kitchen, newest first."""
    team = _get_team(team_id)

    rows = (
        db.session.query(
            Quotation.period,
            func.count(func.distinct(Quotation.id)),
            func.count(func.distinct(Quotation.supplier_id)),
            func.count(func.distinct(QuoteItem.product_id)),
            func.max(Quotation.updated_at),
        )
        .join(QuoteItem, QuoteItem.quotation_id == Quotation.id)
        .join(
            SupplierServiceScope,
            db.and_(
                SupplierServiceScope.supplier_id == Quotation.supplier_id,
                SupplierServiceScope.team_id == team.id,
                SupplierServiceScope.is_active.is_(True),
            ),
        )
        .filter(Quotation.status == QUOTATION_APPROVED, Quotation.region == team.region)
        .group_by(Quotation.period)
        .order_by(Quotation.period.desc())
        .all()
    )
    return [
        {
            "period": period,
            "approvedQuotations": quotations,
            "availableSuppliers": suppliers,
            "totalProducts": products,
            "lastUpdated": last_updated,
        }
        for period, quotations, suppliers, products, last_updated in rows
    ]


def _empty_price_list(team: Team, period: str) -> dict:
    return {
        "products": [],
        "suppliers": [],
        "teamId": team.id,
        "teamName": team.name,
        "teamRegion": team.region,
        "period": period,
        "lastUpdated": datetime.utcnow(),
        "summary": {
            "totalProducts": 0,
            "quotedProducts": 0,
            "missingProducts": 0,
            "totalSuppliers": 0,
            "averageCoverage": 0,
        },
    }


def _approved_rows(team: Team, period: str, supplier_ids: list[int], product_id: int | None = None):
    query = (
        db.session.query(QuoteItem, Quotation, Supplier, Product)
        .join(Quotation, QuoteItem.quotation_id == Quotation.id)
        .join(Supplier, Quotation.supplier_id == Supplier.id)
        .join(Product, QuoteItem.product_id == Product.id)
        .filter(
            Quotation.status == QUOTATION_APPROVED,
            Quotation.period == period,
            Quotation.region == team.region,
            Quotation.supplier_id.in_(supplier_ids),
            QuoteItem.approved_price.isnot(None),
            QuoteItem.approved_price > 0,
        )
    )
    if product_id is not None:
        query = query.filter(QuoteItem.product_id == product_id)
    return query.order_by(Product.product_code.asc(), Supplier.supplier_code.asc()).all()


def get_price_list_matrix(team_id: int, period: str) -> dict:
    _check_period(period)
    team = _get_team(team_id)

    supplier_ids = _scoped_supplier_ids(team.id)
    if not supplier_ids:
        logger.info("Team %s has no active supplier scopes", team.id)
        return _empty_price_list(team, period)

    products: dict[int, dict] = OrderedDict()
    suppliers: dict[int, dict] = {}

    for item, quotation, supplier, product in _approved_rows(team, period, supplier_ids):
        row = products.get(product.id)
        if row is None:
            row = products[product.id] = {
                "productId": product.id,
                "productCode": product.product_code,
                "productName": product.name,
                "specification": product.specification,
                "unit": product.unit,
                "category": product.category,
                "suppliers": OrderedDict(),
                "bestSupplierId": None,
                "bestPrice": None,
                "availableSuppliers": 0,
            }
        column = suppliers.get(supplier.id)
        if column is None:
            column = suppliers[supplier.id] = {
                "id": supplier.id,
                "code": supplier.supplier_code,
                "name": supplier.name,
                "contactPerson": supplier.contact_person,
                "phone": supplier.phone,
                "email": supplier.email,
                "quotedProducts": 0,
                "totalProducts": 0,
                "coveragePercentage": 0,
            }

        approved = to_decimal(item.approved_price)
        vat = to_decimal(item.vat_percentage) or Decimal("0")
        row["suppliers"][supplier.id] = {
            "supplierId": supplier.id,
            "supplierCode": supplier.supplier_code,
            "supplierName": supplier.name,
            "approvedPrice": approved,
            "vatRate": vat,
            "pricePerUnit": approved,
            "totalPriceWithVAT": price_with_vat(approved, vat),
            "hasBestPrice": False,
            "quotationId": quotation.id,
            "approvedAt": item.approved_at,
        }
        row["availableSuppliers"] = len(row["suppliers"])
        column["quotedProducts"] += 1

    for row in products.values():
        best_id, best_price = find_best_price(row["suppliers"], key="totalPriceWithVAT")
        if best_id is not None:
            row["suppliers"][best_id]["hasBestPrice"] = True
            row["bestSupplierId"] = best_id
            row["bestPrice"] = best_price

    total = len(products)
    for column in suppliers.values():
        column["totalProducts"] = total
        column["coveragePercentage"] = coverage_percentage(column["quotedProducts"], total, places=2)

    average = (
        sum(Decimal(str(c["coveragePercentage"])) for c in suppliers.values()) / len(suppliers)
        if suppliers else Decimal("0")
    )

    logger.info("Price list team=%s period=%s: %d products, %d suppliers", team.id, period, total, len(suppliers))
    return {
        "products": list(products.values()),
        "suppliers": sorted(suppliers.values(), key=lambda c: c["code"]),
        "teamId": team.id,
        "teamName": team.name,
        "teamRegion": team.region,
        "period": period,
        "lastUpdated": datetime.utcnow(),
        "summary": {
            # only products with an approved price are listed, so nothing is "missing"
            "totalProducts": total,
            "quotedProducts": total,
            "missingProducts": 0,
            "totalSuppliers": len(suppliers),
            "averageCoverage": float(round_half_up(average, 2)),
        },
    }


def get_product_price_comparison(team_id: int, product_id: int, period: str) -> dict:
    _check_period(period)
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found.")
    team = _get_team(team_id)

    supplier_ids = _scoped_supplier_ids(team.id)
    if not supplier_ids:
        raise ValidationError("No supplier serves this team.")

    rows = _approved_rows(team, period, supplier_ids, product_id=product.id)
    if not rows:
        raise NotFoundError("No approved price for this product.")

    entries = []
    for item, _quotation, supplier, _product in rows:
        approved = to_decimal(item.approved_price)
        vat = to_decimal(item.vat_percentage) or Decimal("0")
        entries.append({
            "supplierId": supplier.id,
            "supplierCode": supplier.supplier_code,
            "supplierName": supplier.name,
            "approvedPrice": approved,
            "vatRate": vat,
            "totalPriceWithVAT": price_with_vat(approved, vat),
            "hasBestPrice": False,
            "approvedAt": item.approved_at,
        })

    prices = [e["totalPriceWithVAT"] for e in entries]
    best, worst = min(prices), max(prices)
    for entry in entries:
        entry["hasBestPrice"] = entry["totalPriceWithVAT"] == best

    return {
        "product": {
            "id": product.id,
            "code": product.product_code,
            "name": product.name,
            "specification": product.specification,
            "unit": product.unit,
            "category": product.category,
        },
        "suppliers": entries,
        "bestPrice": best,
        "priceRange": {
            "min": best,
            "max": worst,
            "difference": worst - best,
            "percentageDifference": (worst - best) / best * 100 if best > 0 else Decimal("0"),
        },
    }
