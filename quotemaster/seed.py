"""
quotemaster/seed.py

Demo data for local development (`flask seed-demo`).

Rules:
- Safe to run multiple times (idempotent): rows are matched by their
  business key (email, team code, supplier code, product code, quotation key).
- Builds two periods for region "HCM" so the comparison matrix has a
  previous approved period to compare against:
    2024-01-01  approved
    2024-02-01  pending / negotiation
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app

from .extensions import db
from .models import (
    KitchenPeriodDemand,
    Product,
    QUOTATION_APPROVED,
    QUOTATION_NEGOTIATION,
    QUOTATION_PENDING,
    ROLE_ADMIN,
    ROLE_KITCHEN_MANAGER,
    ROLE_PROCUREMENT_MANAGER,
    ROLE_PROCUREMENT_STAFF,
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

DEMO_PASSWORD = "quotemaster"

DEFAULT_TEAMS = [
    # team_code, name, team_type, region
    ("HQ", "Procurement Office", TEAM_OFFICE, "HCM"),
    ("K-HCM-01", "Kitchen District 1", TEAM_KITCHEN, "HCM"),
    ("K-HN-01", "Kitchen Hoan Kiem", TEAM_KITCHEN, "HN"),
]

DEFAULT_USERS = [
    # email, name, employee_code, team_code, role
    ("admin@quotemaster.local", "System Admin", "EMP-001", "HQ", ROLE_ADMIN),
    ("manager@quotemaster.local", "Procurement Manager", "EMP-002", "HQ", ROLE_PROCUREMENT_MANAGER),
    ("staff@quotemaster.local", "Procurement Staff", "EMP-003", "HQ", ROLE_PROCUREMENT_STAFF),
    ("kitchen@quotemaster.local", "Kitchen Manager", "EMP-004", "K-HCM-01", ROLE_KITCHEN_MANAGER),
]

DEFAULT_SUPPLIERS = [
    ("SUP-A", "Fresh Farm Co."),
    ("SUP-B", "Green Market Ltd."),
    ("SUP-C", "Ocean Foods"),
]

DEFAULT_PRODUCTS = [
    # code, name, unit, category, base_price, base_quantity
    ("VEG-001", "Cabbage", "kg", "Vegetables", Decimal("12000"), Decimal("50")),
    ("VEG-002", "Carrot", "kg", "Vegetables", Decimal("15000"), Decimal("30")),
    ("VEG-003", "Tomato", "kg", "Vegetables", None, Decimal("20")),
    ("SEA-001", "Shrimp", "kg", "Seafood", Decimal("180000"), Decimal("10")),
    ("SEA-002", "Squid", "kg", "Seafood", Decimal("150000"), None),
]

# period -> status -> supplier -> {product: (initial, negotiated)}
DEFAULT_QUOTES = {
    "2024-01-01": {
        "SUP-A": (QUOTATION_APPROVED, {"VEG-001": ("11000", None), "VEG-002": ("16000", "15500"), "SEA-001": ("175000", None)}),
        "SUP-B": (QUOTATION_APPROVED, {"VEG-001": ("11500", None), "VEG-003": ("20000", None)}),
    },
    "2024-02-01": {
        "SUP-A": (QUOTATION_NEGOTIATION, {"VEG-001": ("11800", "11400"), "VEG-002": ("15800", None), "SEA-001": ("182000", None)}),
        "SUP-B": (QUOTATION_PENDING, {"VEG-001": ("11200", None), "VEG-003": ("21000", None), "SEA-002": ("149000", None)}),
        "SUP-C": (QUOTATION_PENDING, {"SEA-001": ("179000", None), "SEA-002": ("152000", None)}),
    },
}

DEFAULT_REGION = "HCM"
DEFAULT_VAT = Decimal("8")


def _seed_teams_and_users() -> dict[str, Team]:
    teams: dict[str, Team] = {}
    for code, name, team_type, region in DEFAULT_TEAMS:
        team = Team.query.filter_by(team_code=code).first()
        if not team:
            team = Team(team_code=code, name=name, team_type=team_type, region=region)
            db.session.add(team)
        teams[code] = team
    db.session.flush()

    for email, name, employee_code, team_code, role in DEFAULT_USERS:
        user = User.query.filter_by(email=email).first()
        if not user:
            user = User(email=email, name=name, employee_code=employee_code)
            user.set_password(DEMO_PASSWORD)
            db.session.add(user)
            db.session.flush()

        team = teams[team_code]
        if not TeamMember.query.filter_by(user_id=user.id, team_id=team.id).first():
            db.session.add(TeamMember(user_id=user.id, team_id=team.id, role=role))
        if role == ROLE_KITCHEN_MANAGER and team.manager_id is None:
            team.manager_id = user.id

    db.session.flush()
    return teams


def _seed_master_data(kitchen: Team) -> tuple[dict[str, Supplier], dict[str, Product]]:
    suppliers: dict[str, Supplier] = {}
    for code, name in DEFAULT_SUPPLIERS:
        supplier = Supplier.query.filter_by(supplier_code=code).first()
        if not supplier:
            supplier = Supplier(supplier_code=code, name=name)
            db.session.add(supplier)
        suppliers[code] = supplier

    products: dict[str, Product] = {}
    for code, name, unit, category, base_price, base_quantity in DEFAULT_PRODUCTS:
        product = Product.query.filter_by(product_code=code).first()
        if not product:
            product = Product(
                product_code=code,
                name=name,
                unit=unit,
                category=category,
                base_price=base_price,
                base_quantity=base_quantity,
            )
            db.session.add(product)
        products[code] = product
    db.session.flush()

    for supplier in suppliers.values():
        if not SupplierServiceScope.query.filter_by(supplier_id=supplier.id, team_id=kitchen.id).first():
            db.session.add(SupplierServiceScope(supplier_id=supplier.id, team_id=kitchen.id, is_active=True))

    return suppliers, products


def _seed_quotations(suppliers, products, creator: User | None) -> int:
    created = 0
    now = datetime.utcnow()
    currency = current_app.config.get("DEFAULT_CURRENCY", "VND")
    for period, by_supplier in DEFAULT_QUOTES.items():
        for supplier_code, (status, lines) in by_supplier.items():
            supplier = suppliers[supplier_code]
            key = Quotation.build_business_key(supplier_code, period, DEFAULT_REGION)
            if Quotation.query.filter_by(quotation_id=key).first():
                continue

            quotation = Quotation(
                quotation_id=key,
                period=period,
                region=DEFAULT_REGION,
                supplier_id=supplier.id,
                status=status,
                quote_date=now,
                created_by=creator.id if creator else None,
            )
            db.session.add(quotation)
            for product_code, (initial, negotiated) in lines.items():
                initial_price = Decimal(initial)
                negotiated_price = Decimal(negotiated) if negotiated else None
                item = QuoteItem(
                    product=products[product_code],
                    quantity=Decimal("1"),
                    initial_price=initial_price,
                    negotiated_price=negotiated_price,
                    vat_percentage=DEFAULT_VAT,
                    currency=currency,
                )
                if status == QUOTATION_APPROVED:
                    item.approved_price = negotiated_price or initial_price
                    item.approved_at = now
                quotation.items.append(item)
            created += 1
    db.session.flush()
    return created


def seed_demo_data() -> dict:
    """Create demo rows if missing and commit. Returns what was created."""
    teams = _seed_teams_and_users()
    kitchen = teams["K-HCM-01"]
    suppliers, products = _seed_master_data(kitchen)

    creator = User.query.filter_by(email="manager@quotemaster.local").first()
    created = _seed_quotations(suppliers, products, creator)

    demand = KitchenPeriodDemand.query.filter_by(
        team_id=kitchen.id, product_id=products["VEG-001"].id, period="2024-02-01"
    ).first()
    if not demand:
        db.session.add(
            KitchenPeriodDemand(
                team_id=kitchen.id,
                product_id=products["VEG-001"].id,
                period="2024-02-01",
                quantity=Decimal("80"),
                unit="kg",
                created_by=creator.id if creator else None,
            )
        )

    db.session.commit()
    return {"quotations": created}


def create_user(email: str, name: str, password: str, role: str, team_code: str = "HQ") -> User:
    """Create (or reset the password of) a user with a role in the given team."""
    team = Team.query.filter_by(team_code=team_code).first()
    if team is None:
        team = Team(team_code=team_code, name=team_code, team_type=TEAM_OFFICE)
        db.session.add(team)
        db.session.flush()

    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=name)
        db.session.add(user)
    user.set_password(password)
    db.session.flush()

    if not TeamMember.query.filter_by(user_id=user.id, team_id=team.id).first():
        db.session.add(TeamMember(user_id=user.id, team_id=team.id, role=role))
    db.session.commit()
    return user
