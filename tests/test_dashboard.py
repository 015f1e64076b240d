"""Tests for dashboard statistics and price trends."""

from decimal import Decimal

import pytest

from quotemaster import dashboard
from quotemaster.extensions import db
from quotemaster.models import (
    PRICE_APPROVED,
    PRICE_NEGOTIATED,
    PriceHistory,
    ROLE_ADMIN,
    ROLE_KITCHEN_MANAGER,
    ROLE_KITCHEN_STAFF,
    ROLE_PROCUREMENT_STAFF,
    User,
)


@pytest.fixture
def world(build):
    hcm = build.team(name="Kitchen HCM", region="HCM")
    hn = build.team(name="Kitchen HN", region="HN")

    p1 = build.product("VEG-001")
    build.product("VEG-002")
    build.product("VEG-OLD", status="inactive")

    a = build.supplier("SUP-A")
    b = build.supplier("SUP-B")
    build.supplier("SUP-X", deleted=True)

    build.quotation(a, "2024-02-01", items=[{"product": p1, "initial": 10}])
    build.quotation(b, "2024-02-01")
    build.quotation(a, "2024-02-01", region="HN")
    return {"hcm": hcm, "hn": hn}


class TestStats:

    @pytest.mark.parametrize("role", [ROLE_ADMIN, ROLE_PROCUREMENT_STAFF])
    def test_procurement_sees_everything(self, build, world, role):
        stats = dashboard.get_dashboard_stats(build.user(role=role))
        assert stats == {"totalKitchens": 2, "totalProducts": 2, "totalSuppliers": 2, "totalQuotations": 3}

    def test_kitchen_manager_sees_own_region(self, build, world):
        chef = build.user(role=ROLE_KITCHEN_MANAGER, team=world["hcm"])
        assert dashboard.get_dashboard_stats(chef)["totalQuotations"] == 2

    def test_kitchen_staff_sees_no_quotations(self, build, world):
        cook = build.user(role=ROLE_KITCHEN_STAFF, team=world["hn"])
        stats = dashboard.get_dashboard_stats(cook)
        assert stats["totalQuotations"] == 0
        assert stats["totalProducts"] == 2

    def test_user_without_team(self, world):
        loner = User(name="Loner", email="loner@example.com")
        loner.set_password("x")
        db.session.add(loner)
        db.session.commit()
        assert dashboard.get_dashboard_stats(loner) == {
            "totalKitchens": 0, "totalProducts": 0, "totalSuppliers": 0, "totalQuotations": 0,
        }


@pytest.fixture
def history(build):
    p1 = build.product("VEG-001")
    p2 = build.product("VEG-002")
    p3 = build.product("VEG-003")
    a = build.supplier("SUP-A", name="Alpha")
    b = build.supplier("SUP-B", name="Beta")

    def add(product, supplier, period, price, price_type=PRICE_APPROVED, region="HCM"):
        db.session.add(PriceHistory(
            product_id=product.id,
            supplier_id=supplier.id,
            period=period,
            region=region,
            price=Decimal(str(price)),
            price_type=price_type,
        ))

    add(p1, a, "2024-01-01", 100)
    add(p1, b, "2024-01-01", 90)
    add(p1, a, "2024-02-01", 99)
    add(p1, b, "2024-02-01", 50, price_type=PRICE_NEGOTIATED)

    add(p2, a, "2024-01-01", 50)
    add(p2, b, "2024-02-01", 40)
    add(p2, a, "2024-03-01", 80, region="HN")

    add(p3, a, "2024-02-01", 10)
    db.session.commit()
    return {"p1": p1, "p2": p2, "p3": p3}


class TestPriceTrends:

    def test_region_filtered(self, history):
        trends = dashboard.get_price_trends(region="HCM")

        assert len(trends["priceIncreases"]) == 1
        up = trends["priceIncreases"][0]
        assert up["productCode"] == "VEG-001"
        assert up["currentPrice"] == 99.0
        assert up["previousPrice"] == 90.0
        assert up["priceChangePercentage"] == pytest.approx(10.0)
        assert up["supplier"] == "Alpha"
        assert (up["period"], up["previousPeriod"]) == ("2024-02-01", "2024-01-01")

        assert len(trends["priceDecreases"]) == 1
        down = trends["priceDecreases"][0]
        assert down["productCode"] == "VEG-002"
        assert down["priceChange"] == -10.0
        assert down["priceChangePercentage"] == pytest.approx(-20.0)
        assert down["supplier"] == "Beta"

    def test_all_regions(self, history):
        trends = dashboard.get_price_trends()
        codes = [t["productCode"] for t in trends["priceIncreases"]]
        # VEG-002 doubled in HN, so it sorts first
        assert codes == ["VEG-002", "VEG-001"]
        assert trends["priceDecreases"] == []

    def test_limit(self, history):
        trends = dashboard.get_price_trends(limit=1)
        assert len(trends["priceIncreases"]) == 1

    def test_no_history(self, app):
        assert dashboard.get_price_trends() == {"priceIncreases": [], "priceDecreases": []}
