"""
quotemaster/dashboard.py

Home dashboard KPIs and price trends.

Role filtering:
- Admin / procurement: all quotations.
- Kitchen managers: quotations of the regions their kitchens are in.
- Everyone else (or no team at all): zero quotations.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import func

from .extensions import db
from .models import (
    PRICE_APPROVED,
    PriceHistory,
    Product,
    Quotation,
    ROLE_ADMIN,
    ROLE_KITCHEN_MANAGER,
    ROLE_PROCUREMENT_MANAGER,
    ROLE_PROCUREMENT_STAFF,
    Supplier,
    TEAM_KITCHEN,
    Team,
    User,
)
from .pricing import to_decimal, variance_percentage

logger = logging.getLogger(__name__)


def _kitchen_regions(user: User) -> list[str]:
    team_ids = user.managed_team_ids()
    if not team_ids:
        return []
    rows = (
        db.session.query(Team.region)
        .filter(
            Team.id.in_(team_ids),
            Team.team_type == TEAM_KITCHEN,
            Team.deleted_at.is_(None),
            Team.region.isnot(None),
        )
        .distinct()
        .all()
    )
    return [region for (region,) in rows]


def get_dashboard_stats(user: User) -> dict:
    if not user.memberships:
        return {"totalKitchens": 0, "totalProducts": 0, "totalSuppliers": 0, "totalQuotations": 0}

    total_kitchens = (
        db.session.query(func.count(Team.id))
        .filter(Team.team_type == TEAM_KITCHEN, Team.deleted_at.is_(None))
        .scalar()
    )
    total_products = Product.active().count()
    total_suppliers = Supplier.active().count()

    if user.has_any_role(ROLE_ADMIN, ROLE_PROCUREMENT_MANAGER, ROLE_PROCUREMENT_STAFF):
        total_quotations = db.session.query(func.count(Quotation.id)).scalar()
    elif user.has_any_role(ROLE_KITCHEN_MANAGER):
        regions = _kitchen_regions(user)
        total_quotations = (
            db.session.query(func.count(Quotation.id)).filter(Quotation.region.in_(regions)).scalar()
            if regions else 0
        )
    else:
        total_quotations = 0

    return {
        "totalKitchens": int(total_kitchens or 0),
        "totalProducts": int(total_products or 0),
        "totalSuppliers": int(total_suppliers or 0),
        "totalQuotations": int(total_quotations or 0),
    }


def get_price_trends(limit: int = 20, region: str | None = None) -> dict:
    """
    Period-over-period movement of approved prices.

    For each product the lowest approved price of its latest period is
    compared with the lowest approved price of the period before it.
    """
    query = (
        db.session.query(PriceHistory, Product, Supplier)
        .join(Product, PriceHistory.product_id == Product.id)
        .join(Supplier, PriceHistory.supplier_id == Supplier.id)
        .filter(PriceHistory.price_type == PRICE_APPROVED, PriceHistory.price > 0)
    )
    if region:
        query = query.filter(PriceHistory.region == region)

    # product -> period -> (best price, supplier name)
    best: dict[int, dict[str, tuple]] = defaultdict(dict)
    products: dict[int, Product] = {}
    for entry, product, supplier in query.all():
        price = to_decimal(entry.price)
        products[product.id] = product
        current = best[product.id].get(entry.period)
        if current is None or price < current[0]:
            best[product.id][entry.period] = (price, supplier.name)

    increases, decreases = [], []
    for product_id, by_period in best.items():
        if len(by_period) < 2:
            continue
        periods = sorted(by_period)
        current_period, previous_period = periods[-1], periods[-2]
        current_price, supplier_name = by_period[current_period]
        previous_price, _ = by_period[previous_period]
        pct = variance_percentage(current_price, previous_price)
        if pct is None or pct == 0:
            continue

        product = products[product_id]
        trend = {
            "productId": product.id,
            "productCode": product.product_code,
            "productName": product.name,
            "currentPrice": float(current_price),
            "previousPrice": float(previous_price),
            "priceChange": float(current_price - previous_price),
            "priceChangePercentage": float(pct),
            "supplier": supplier_name,
            "period": current_period,
            "previousPeriod": previous_period,
        }
        (increases if pct > 0 else decreases).append(trend)

    increases.sort(key=lambda t: t["priceChangePercentage"], reverse=True)
    decreases.sort(key=lambda t: t["priceChangePercentage"])
    logger.debug("Price trends: %d up, %d down", len(increases), len(decreases))
    return {"priceIncreases": increases[:limit], "priceDecreases": decreases[:limit]}
