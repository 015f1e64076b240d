"""Pytest configuration and shared fixtures for QuoteMaster."""

from datetime import datetime
from decimal import Decimal

import pytest

from quotemaster import create_app
from quotemaster.extensions import db
from quotemaster.models import (
    KitchenPeriodDemand,
    Product,
    QUOTATION_PENDING,
    ROLE_PROCUREMENT_MANAGER,
    Quotation,
    QuoteItem,
    Supplier,
    SupplierServiceScope,
    TEAM_KITCHEN,
    TEAM_OFFICE,
    Team,
    TeamMember,
    User,
)

PASSWORD = "secret-pass"


def _dec(value):
    if value is None:
        return None
    return Decimal(str(value))


class Builder:
    """Small helpers that insert committed rows."""

    def __init__(self):
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def team(self, name="Kitchen", team_type=TEAM_KITCHEN, region="HCM", code=None):
        team = Team(
            name=name,
            team_type=team_type,
            region=region,
            team_code=code or f"T-{self._next()}",
        )
        db.session.add(team)
        db.session.commit()
        return team

    def user(self, role=ROLE_PROCUREMENT_MANAGER, team=None, email=None, status="active"):
        if team is None:
            team = self.team(name="Office", team_type=TEAM_OFFICE)
        user = User(name=f"User {self._next()}", email=email or f"user{self._seq}@example.com", status=status)
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.flush()
        db.session.add(TeamMember(user_id=user.id, team_id=team.id, role=role))
        db.session.commit()
        return user

    def supplier(self, code, name=None, status="active", deleted=False):
        supplier = Supplier(
            supplier_code=code,
            name=name or f"Supplier {code}",
            status=status,
            deleted_at=datetime.utcnow() if deleted else None,
        )
        db.session.add(supplier)
        db.session.commit()
        return supplier

    def product(self, code, category="Vegetables", base_price=None, base_quantity=None, status="active", unit="kg"):
        product = Product(
            product_code=code,
            name=f"Product {code}",
            unit=unit,
            category=category,
            base_price=_dec(base_price),
            base_quantity=_dec(base_quantity),
            status=status,
        )
        db.session.add(product)
        db.session.commit()
        return product

    def quotation(self, supplier, period, region="HCM", status=QUOTATION_PENDING, items=()):
        """
        items: iterable of dicts with product and optional initial, negotiated,
        approved, vat, quantity.
        """
        quotation = Quotation(
            quotation_id=Quotation.build_business_key(supplier.supplier_code, period, region),
            period=period,
            region=region,
            supplier_id=supplier.id,
            status=status,
        )
        for line in items:
            quotation.items.append(
                QuoteItem(
                    product_id=line["product"].id,
                    quantity=_dec(line.get("quantity", 1)),
                    initial_price=_dec(line.get("initial")),
                    negotiated_price=_dec(line.get("negotiated")),
                    approved_price=_dec(line.get("approved")),
                    vat_percentage=_dec(line.get("vat", 0)),
                )
            )
        db.session.add(quotation)
        db.session.commit()
        return quotation

    def demand(self, team, product, period, quantity, status="active"):
        demand = KitchenPeriodDemand(
            team_id=team.id,
            product_id=product.id,
            period=period,
            quantity=_dec(quantity),
            status=status,
        )
        db.session.add(demand)
        db.session.commit()
        return demand

    def scope(self, supplier, team, is_active=True):
        scope = SupplierServiceScope(supplier_id=supplier.id, team_id=team.id, is_active=is_active)
        db.session.add(scope)
        db.session.commit()
        return scope


@pytest.fixture
def app():
    """Create application for testing with a fresh in-memory database."""
    app = create_app("config.TestingConfig")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture
def build(app):
    return Builder()


@pytest.fixture
def manager(build):
    return build.user(role=ROLE_PROCUREMENT_MANAGER, email="manager@example.com")


@pytest.fixture
def login_as(client):
    """Log the test client in as the given user."""
    def _login(user):
        resp = client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return client

    return _login


@pytest.fixture
def auth_client(login_as, manager):
    """Test client logged in as a procurement manager."""
    return login_as(manager)
