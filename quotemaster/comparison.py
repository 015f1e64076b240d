"""
quotemaster/comparison.py

Price comparison matrix: products (rows) x suppliers (columns) for one
period / region / set of categories.

Build order:
1) Load products, suppliers with quotations, kitchen demands.
2) Initialise every row and column (so a product nobody quoted still shows).
3) Populate cells from quote line items (effective price, VAT, totals).
4) Best price per row, coverage per supplier.
5) Previous approved period: variance per cell.
6) Grouped overview (region > category > supplier) and overview KPIs.
7) Supplier picker data (all active suppliers + their quotation status).

IMPORTANT:
- Only active, non-deleted suppliers/products take part.
- Best price only considers positive effective prices.
- Missing previous-period data is reported as hasPreviousData False; a
  failing lookup is logged and treated the same way.
- Computation uses Decimal; routes convert with utils.to_json().
"""

from __future__ import annotations

import logging
from collections import OrderedDict, defaultdict
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from .errors import ValidationError
from .extensions import db
from .models import (
    KitchenPeriodDemand,
    Product,
    QUOTATION_APPROVED,
    QUOTATION_CANCELLED,
    QUOTATION_NEGOTIATION,
    QUOTATION_PENDING,
    QUOTATION_STATUSES,
    Quotation,
    QuoteItem,
    Supplier,
)
from .pricing import (
    ZERO,
    calculate_price_metrics,
    compare_totals,
    coverage_percentage,
    find_best_price,
    is_valid_period,
    previous_months,
    to_decimal,
    variance_percentage,
    variance_trend,
)

logger = logging.getLogger(__name__)

QUANTITY_FROM_DEMAND = "kitchen_demand"
QUANTITY_FROM_BASE = "base_quantity"


# ---------------------------------------------------------------------
# Input handling
# ---------------------------------------------------------------------
def normalize_categories(categories) -> list[str]:
    """Accept a single category, a comma separated string or a list."""
    if categories is None:
        return []
    if isinstance(categories, str):
        categories = categories.split(",")
    seen = []
    for raw in categories:
        value = (raw or "").strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def _validate_inputs(period: str, region: str, categories: list[str]) -> None:
    if not is_valid_period(period):
        raise ValidationError("Period must look like YYYY-MM-NN.")
    if not region or not region.strip():
        raise ValidationError("Region is required.")
    if not categories:
        raise ValidationError("At least one category is required.")


def _empty_kpis() -> dict:
    return {
        "totalCurrentValue": ZERO,
        "comparisonVsInitial": {"difference": 0.0, "percentage": 0.0},
        "comparisonVsPrevious": {"difference": 0.0, "percentage": 0.0, "hasPreviousData": False},
        "comparisonVsBase": {"difference": 0.0, "percentage": 0.0, "hasBaseData": False},
    }


def _empty_matrix(period: str, region: str, categories: list[str]) -> dict:
    return {
        "products": [],
        "suppliers": [],
        "period": period,
        "region": region,
        "category": ", ".join(categories),
        "previousPeriod": None,
        "lastUpdated": datetime.utcnow(),
        "groupedOverview": {"regions": []},
        "availableSuppliers": [],
        "overviewKPIs": _empty_kpis(),
    }


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------
def _load_products(categories: list[str]) -> list[Product]:
    return (
        Product.active()
        .filter(Product.category.in_(categories))
        .order_by(Product.product_code.asc())
        .all()
    )


def _load_quoting_suppliers(period: str, region: str) -> list[Supplier]:
    return (
        Supplier.active()
        .join(Quotation, Quotation.supplier_id == Supplier.id)
        .filter(
            Quotation.period == period,
            Quotation.region == region,
            Quotation.status != QUOTATION_CANCELLED,
        )
        .distinct()
        .order_by(Supplier.supplier_code.asc())
        .all()
    )


def _load_demands(period: str, categories: list[str]) -> dict[int, Decimal]:
    """Active kitchen demand per product, summed across kitchens."""
    rows = (
        db.session.query(KitchenPeriodDemand.product_id, func.sum(KitchenPeriodDemand.quantity))
        .join(Product, Product.id == KitchenPeriodDemand.product_id)
        .filter(
            KitchenPeriodDemand.period == period,
            KitchenPeriodDemand.status == "active",
            Product.category.in_(categories),
        )
        .group_by(KitchenPeriodDemand.product_id)
        .all()
    )
    return {product_id: to_decimal(total) for product_id, total in rows if total}


def _load_line_items(period: str, region: str, categories: list[str]):
    return (
        db.session.query(QuoteItem, Quotation, Supplier)
        .join(Quotation, QuoteItem.quotation_id == Quotation.id)
        .join(Supplier, Quotation.supplier_id == Supplier.id)
        .join(Product, QuoteItem.product_id == Product.id)
        .filter(
            Quotation.period == period,
            Quotation.region == region,
            Quotation.status != QUOTATION_CANCELLED,
            Product.category.in_(categories),
            Product.status == "active",
            Product.deleted_at.is_(None),
            Supplier.status == "active",
            Supplier.deleted_at.is_(None),
        )
        .order_by(Supplier.supplier_code.asc(), QuoteItem.id.asc())
        .all()
    )


# ---------------------------------------------------------------------
# Rows / columns
# ---------------------------------------------------------------------
def _init_row(product: Product, demand: Decimal | None) -> dict:
    base_qty = to_decimal(product.base_quantity)
    base_price = to_decimal(product.base_price)

    if demand and demand > 0:
        quantity, source = demand, QUANTITY_FROM_DEMAND
    else:
        quantity, source = (base_qty if base_qty and base_qty > 0 else Decimal("1")), QUANTITY_FROM_BASE

    return {
        "productId": product.id,
        "productCode": product.product_code,
        "productName": product.name,
        "specification": product.specification,
        "unit": product.unit,
        "category": product.category,
        "quantity": quantity,
        "quantitySource": source,
        "baseQuantity": base_qty if base_qty and base_qty > 0 else Decimal("1"),
        "basePrice": base_price if base_price and base_price > 0 else None,
        "suppliers": OrderedDict(),
        "bestSupplierId": None,
        "bestPrice": None,
        "previousApprovedPrice": None,
    }


def _init_column(supplier: Supplier) -> dict:
    return {
        "id": supplier.id,
        "code": supplier.supplier_code,
        "name": supplier.name,
        "totalProducts": 0,
        "quotedProducts": 0,
        "coveragePercentage": 0,
    }


def _build_cell(item: QuoteItem, quotation: Quotation, supplier: Supplier, row: dict) -> dict:
    price = item.effective_price
    metrics = calculate_price_metrics(price, row["quantity"], item.vat_percentage)
    return {
        "id": item.id,
        "quotationId": quotation.id,
        "quotationStatus": quotation.status,
        "productId": row["productId"],
        "productCode": row["productCode"],
        "productName": row["productName"],
        "supplierId": supplier.id,
        "supplierCode": supplier.supplier_code,
        "supplierName": supplier.name,
        "initialPrice": to_decimal(item.initial_price),
        "negotiatedPrice": to_decimal(item.negotiated_price),
        "approvedPrice": to_decimal(item.approved_price),
        "vatRate": to_decimal(item.vat_percentage) or ZERO,
        "currency": item.currency,
        "quantity": row["quantity"],
        "unit": row["unit"],
        "pricePerUnit": metrics["price_per_unit"],
        "totalPrice": metrics["total_price"],
        "vatAmount": metrics["vat_amount"],
        "totalPriceWithVAT": metrics["total_price_with_vat"],
        "hasPrice": metrics["has_price"],
        "hasBestPrice": False,
        "previousPriceFromThisSupplier": None,
        "variancePercentage": None,
        "varianceTrend": None,
    }


def _mark_best_prices(rows: dict) -> None:
    for row in rows.values():
        scan = {sid: {"has_price": c["hasPrice"], "price_per_unit": c["pricePerUnit"]} for sid, c in row["suppliers"].items()}
        best_id, best_price = find_best_price(scan)
        if best_id is not None:
            row["bestSupplierId"] = best_id
            row["bestPrice"] = best_price
            row["suppliers"][best_id]["hasBestPrice"] = True


# ---------------------------------------------------------------------
# Previous approved period
# ---------------------------------------------------------------------
def find_previous_period(period: str, region: str, lookback_months: int = 12) -> str | None:
    """
    Latest approved period for the region in the months before `period`.

    Walks back month by month (nearest first, up to lookback_months); any
    sequence suffix inside a month matches and the highest one is taken.
    """
    for month in previous_months(period, lookback_months):
        found = (
            db.session.query(func.max(Quotation.period))
            .filter(
                Quotation.region == region,
                Quotation.status == QUOTATION_APPROVED,
                Quotation.period.like(f"{month}-%"),
            )
            .scalar()
        )
        if found:
            return found
    return None


def get_previous_approved_prices(period: str, region: str, categories: list[str], lookback_months: int = 12):
    """
    Returns (previous_period, best_prices, supplier_prices).

    best_prices:     product_id -> lowest approved price in the previous period
    supplier_prices: (product_id, supplier_id) -> most recently updated approved price
    """
    try:
        previous_period = find_previous_period(period, region, lookback_months)
        if previous_period is None:
            return None, {}, {}

        rows = (
            db.session.query(QuoteItem.product_id, Quotation.supplier_id, QuoteItem.approved_price)
            .join(Quotation, QuoteItem.quotation_id == Quotation.id)
            .join(Product, QuoteItem.product_id == Product.id)
            .filter(
                Quotation.period == previous_period,
                Quotation.region == region,
                Quotation.status == QUOTATION_APPROVED,
                Product.category.in_(categories),
                QuoteItem.approved_price.isnot(None),
            )
            .order_by(QuoteItem.updated_at.desc(), QuoteItem.id.desc())
            .all()
        )
    except SQLAlchemyError:
        logger.exception("Previous approved price lookup failed for %s / %s", period, region)
        db.session.rollback()
        return None, {}, {}

    best_prices: dict[int, Decimal] = {}
    supplier_prices: dict[tuple[int, int], Decimal] = {}
    for product_id, supplier_id, approved in rows:
        price = to_decimal(approved)
        if not price or price <= 0:
            continue
        supplier_prices.setdefault((product_id, supplier_id), price)
        if product_id not in best_prices or price < best_prices[product_id]:
            best_prices[product_id] = price

    logger.debug(
        "Previous period %s: %d best prices, %d supplier prices",
        previous_period, len(best_prices), len(supplier_prices),
    )
    return previous_period, best_prices, supplier_prices


def _apply_variance(rows: dict, best_prices: dict, supplier_prices: dict, threshold) -> None:
    for product_id, row in rows.items():
        previous = best_prices.get(product_id)
        if previous is None:
            continue
        row["previousApprovedPrice"] = previous

        for supplier_id, cell in row["suppliers"].items():
            if not cell["hasPrice"] or previous <= 0:
                continue
            cell["previousPriceFromThisSupplier"] = supplier_prices.get((product_id, supplier_id))
            pct = variance_percentage(cell["pricePerUnit"], previous)
            cell["variancePercentage"] = pct
            cell["varianceTrend"] = variance_trend(pct, threshold)


# ---------------------------------------------------------------------
# Supplier picker / status overlay
# ---------------------------------------------------------------------
def _available_suppliers(period: str, region: str) -> dict[int, dict]:
    current = {
        q.supplier_id: q
        for q in Quotation.query.filter_by(period=period, region=region).all()
    }

    counts: dict[int, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    rows = (
        db.session.query(Quotation.supplier_id, Quotation.status, func.count(Quotation.id))
        .filter(Quotation.region == region)
        .group_by(Quotation.supplier_id, Quotation.status)
        .all()
    )
    for supplier_id, status, count in rows:
        counts[supplier_id][status] += count

    result: dict[int, dict] = OrderedDict()
    for supplier in Supplier.active().order_by(Supplier.supplier_code.asc()).all():
        quotation = current.get(supplier.id)
        by_status = counts.get(supplier.id, {})
        result[supplier.id] = {
            "supplierId": supplier.id,
            "supplierCode": supplier.supplier_code,
            "supplierName": supplier.name,
            "quotationId": quotation.id if quotation else None,
            "quotationKey": quotation.quotation_id if quotation else None,
            "quotationStatus": quotation.status if quotation else None,
            "quotationLastUpdated": (quotation.update_date or quotation.updated_at) if quotation else None,
            "totalQuotations": sum(by_status.values()),
            "pendingQuotations": by_status.get(QUOTATION_PENDING, 0),
            "negotiationQuotations": by_status.get(QUOTATION_NEGOTIATION, 0),
            "approvedQuotations": by_status.get(QUOTATION_APPROVED, 0),
        }
    return result


# ---------------------------------------------------------------------
# Grouped overview + KPIs
# ---------------------------------------------------------------------
def _grouped_overview(rows: dict, region: str, supplier_stats: dict[int, dict]) -> dict:
    by_category: dict[str, dict[int, dict]] = defaultdict(dict)

    for row in rows.values():
        base_qty = row["baseQuantity"]
        base_price = row["basePrice"] or ZERO
        category = row["category"] or ""
        for supplier_id, cell in row["suppliers"].items():
            if not cell["hasPrice"]:
                continue
            agg = by_category[category].get(supplier_id)
            if agg is None:
                stats = supplier_stats.get(supplier_id) or {}
                agg = by_category[category][supplier_id] = {
                    "supplierId": supplier_id,
                    "supplierCode": cell["supplierCode"],
                    "supplierName": cell["supplierName"],
                    "productCount": 0,
                    "totalBaseValue": ZERO,
                    "totalPreviousValue": ZERO,
                    "totalInitialValue": ZERO,
                    "totalCurrentValue": ZERO,
                    "hasAnyPreviousData": False,
                    "quotationStatus": stats.get("quotationStatus"),
                }
            agg["productCount"] += 1
            agg["totalBaseValue"] += base_price * base_qty
            agg["totalInitialValue"] += (cell["initialPrice"] or ZERO) * base_qty
            agg["totalCurrentValue"] += cell["pricePerUnit"] * base_qty
            previous = cell["previousPriceFromThisSupplier"]
            if previous and previous > 0:
                agg["totalPreviousValue"] += previous * base_qty
                agg["hasAnyPreviousData"] = True

    categories = []
    for category in sorted(by_category):
        performances = []
        for agg in sorted(by_category[category].values(), key=lambda a: a["supplierCode"]):
            has_previous = agg.pop("hasAnyPreviousData")
            agg["varianceVsBase"] = compare_totals(agg["totalCurrentValue"], agg["totalBaseValue"])
            agg["varianceVsInitial"] = compare_totals(agg["totalCurrentValue"], agg["totalInitialValue"])
            agg["varianceVsPrevious"] = (
                compare_totals(agg["totalCurrentValue"], agg["totalPreviousValue"]) if has_previous else None
            )
            if not has_previous:
                agg["totalPreviousValue"] = None
            performances.append(agg)
        categories.append({"category": category, "supplierPerformances": performances})

    if not categories:
        return {"regions": []}
    return {"regions": [{"region": region, "categories": categories}]}


def _overview_kpis(rows: dict) -> dict:
    """
    Matrix-wide totals at base quantity.

    Each comparison only sums cells that have the reference value, so a
    product without a base price does not skew the vs-base delta.
    """
    current_total = ZERO
    initial_ref = initial_cur = ZERO
    previous_ref = previous_cur = ZERO
    base_ref = base_cur = ZERO
    has_previous = has_base = False

    for row in rows.values():
        qty = row["baseQuantity"]
        for cell in row["suppliers"].values():
            if not cell["hasPrice"]:
                continue
            current = cell["pricePerUnit"] * qty
            current_total += current

            if cell["initialPrice"]:
                initial_ref += cell["initialPrice"] * qty
                initial_cur += current
            previous = cell["previousPriceFromThisSupplier"]
            if previous and previous > 0:
                previous_ref += previous * qty
                previous_cur += current
                has_previous = True
            if row["basePrice"]:
                base_ref += row["basePrice"] * qty
                base_cur += current
                has_base = True

    vs_previous = compare_totals(previous_cur, previous_ref) if has_previous else {"difference": 0.0, "percentage": 0.0}
    vs_base = compare_totals(base_cur, base_ref) if has_base else {"difference": 0.0, "percentage": 0.0}
    return {
        "totalCurrentValue": current_total,
        "comparisonVsInitial": compare_totals(initial_cur, initial_ref),
        "comparisonVsPrevious": {**vs_previous, "hasPreviousData": has_previous},
        "comparisonVsBase": {**vs_base, "hasBaseData": has_base},
    }


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------
def get_comparison_matrix(period: str, region: str, categories) -> dict:
    """
    Build the product x supplier comparison matrix.

    `categories` may be a single category or a list. Values are Decimal;
    pass the result through utils.to_json() before serialising.
    """
    categories = normalize_categories(categories)
    region = (region or "").strip()
    _validate_inputs(period, region, categories)

    lookback = current_app.config.get("PREVIOUS_PERIOD_LOOKBACK_MONTHS", 12)
    threshold = current_app.config.get("VARIANCE_STABLE_THRESHOLD", 0.5)

    products = _load_products(categories)
    if not products:
        logger.info("No active products for categories %s", categories)
        return _empty_matrix(period, region, categories)

    suppliers = _load_quoting_suppliers(period, region)
    demands = _load_demands(period, categories)

    rows: dict[int, dict] = OrderedDict((p.id, _init_row(p, demands.get(p.id))) for p in products)
    columns: dict[int, dict] = OrderedDict((s.id, _init_column(s)) for s in suppliers)

    line_items = _load_line_items(period, region, categories)
    for item, quotation, supplier in line_items:
        row = rows.get(item.product_id)
        column = columns.get(supplier.id)
        if row is None or column is None:
            continue
        cell = _build_cell(item, quotation, supplier, row)
        row["suppliers"][supplier.id] = cell
        column["quotedProducts"] += 1

    _mark_best_prices(rows)

    total = len(rows)
    for column in columns.values():
        column["totalProducts"] = total
        column["coveragePercentage"] = coverage_percentage(column["quotedProducts"], total)

    previous_period, best_prices, supplier_prices = get_previous_approved_prices(
        period, region, categories, lookback
    )
    _apply_variance(rows, best_prices, supplier_prices, threshold)

    supplier_stats = _available_suppliers(period, region)

    logger.info(
        "Comparison matrix %s/%s: %d products, %d suppliers, %d line items, previous period %s",
        period, region, len(rows), len(columns), len(line_items), previous_period,
    )

    return {
        "products": list(rows.values()),
        "suppliers": list(columns.values()),
        "period": period,
        "region": region,
        "category": ", ".join(categories),
        "previousPeriod": previous_period,
        "lastUpdated": datetime.utcnow(),
        "groupedOverview": _grouped_overview(rows, region, supplier_stats),
        "availableSuppliers": list(supplier_stats.values()),
        "overviewKPIs": _overview_kpis(rows),
    }


# ---------------------------------------------------------------------
# Filter helpers
# ---------------------------------------------------------------------
def get_available_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.status == "active", Product.deleted_at.is_(None), Product.category.isnot(None))
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [category for (category,) in rows if category]


def get_quotation_summary(period: str, region: str) -> dict:
    rows = (
        db.session.query(Quotation.status, func.count(Quotation.id))
        .filter(Quotation.period == period, Quotation.region == region)
        .group_by(Quotation.status)
        .all()
    )
    by_status = {status: 0 for status in QUOTATION_STATUSES}
    for status, count in rows:
        by_status[status] = count

    suppliers = (
        db.session.query(func.count(func.distinct(Quotation.supplier_id)))
        .filter(Quotation.period == period, Quotation.region == region)
        .scalar()
    )
    return {
        "totalQuotations": sum(by_status.values()),
        "pendingQuotations": by_status[QUOTATION_PENDING],
        "negotiationQuotations": by_status[QUOTATION_NEGOTIATION],
        "approvedQuotations": by_status[QUOTATION_APPROVED],
        "cancelledQuotations": by_status[QUOTATION_CANCELLED],
        "totalSuppliers": suppliers or 0,
    }


def get_regions_for_period(period: str) -> list[str]:
    rows = (
        db.session.query(Quotation.region)
        .filter(Quotation.period == period, Quotation.status != QUOTATION_CANCELLED)
        .distinct()
        .order_by(Quotation.region.asc())
        .all()
    )
    return [region for (region,) in rows]


def get_categories_for_period_and_region(period: str, region: str) -> list[str]:
    rows = (
        db.session.query(Product.category)
        .join(QuoteItem, QuoteItem.product_id == Product.id)
        .join(Quotation, QuoteItem.quotation_id == Quotation.id)
        .filter(
            Quotation.period == period,
            Quotation.region == region,
            Quotation.status != QUOTATION_CANCELLED,
            Product.status == "active",
            Product.deleted_at.is_(None),
            Product.category.isnot(None),
        )
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [category for (category,) in rows]


def get_available_periods() -> list[str]:
    rows = db.session.query(Quotation.period).distinct().order_by(Quotation.period.desc()).all()
    return [period for (period,) in rows]
