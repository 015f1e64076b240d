"""
QuoteMaster – Domain Models

Master data:
- User (staff) + Team + TeamMember (role per team)
- Supplier, Product
- SupplierServiceScope (which suppliers serve which kitchen)
- KitchenPeriodDemand (planned quantities per kitchen / product / period)

Quotation flow:
- Quotation (one per supplier / period / region)
- QuoteItem (one per quotation / product; initial -> negotiated -> approved price)
- PriceHistory (append-only log of recorded prices)

IMPORTANT:
- Soft delete: master data carries deleted_at; queries must filter it out.
- Money is Numeric(12, 2) and handled as Decimal in Python.
- Period keys look like YYYY-MM-NN where NN is a sequence within the month.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from sqlalchemy.orm import validates
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import ValidationError
from .extensions import db

EMPLOYEE_CODE_RE = re.compile(r"^[A-Z0-9_-]+$")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


# ---------------------------------------------------------------------
# Status / role vocabularies
# ---------------------------------------------------------------------
QUOTATION_PENDING = "pending"
QUOTATION_NEGOTIATION = "negotiation"
QUOTATION_APPROVED = "approved"
QUOTATION_CANCELLED = "cancelled"
QUOTATION_STATUSES = (
    QUOTATION_PENDING,
    QUOTATION_NEGOTIATION,
    QUOTATION_APPROVED,
    QUOTATION_CANCELLED,
)

PRICE_INITIAL = "initial"
PRICE_NEGOTIATED = "negotiated"
PRICE_APPROVED = "approved"
PRICE_TYPES = (PRICE_INITIAL, PRICE_NEGOTIATED, PRICE_APPROVED)

TEAM_KITCHEN = "KITCHEN"
TEAM_OFFICE = "OFFICE"

ROLE_ADMIN = "ADMIN_SUPER_ADMIN"
ROLE_PROCUREMENT_MANAGER = "PROCUREMENT_MANAGER"
ROLE_PROCUREMENT_STAFF = "PROCUREMENT_STAFF"
ROLE_KITCHEN_MANAGER = "KITCHEN_MANAGER"
ROLE_KITCHEN_STAFF = "KITCHEN_STAFF"


# ---------------------------------------------------------------------
# Staff & teams
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """Staff member and login identity."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    employee_code = db.Column(db.String(50), unique=True, nullable=True, index=True)
    phone = db.Column(db.String(20), nullable=True)
    job_title = db.Column(db.String(100), nullable=True)
    department = db.Column(db.String(100), nullable=True)

    # active | inactive | terminated
    status = db.Column(db.String(20), default="active", nullable=False, index=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = db.relationship(
        "TeamMember",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @validates("employee_code")
    def _check_employee_code(self, key, value):
        if value is not None and not EMPLOYEE_CODE_RE.fullmatch(value):
            raise ValidationError("Employee code may only contain A-Z, 0-9, \"_\" and \"-\".")
        return value

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_active(self) -> bool:
        return self.status == "active" and self.deleted_at is None

    def roles(self) -> set[str]:
        return {m.role for m in self.memberships}

    def has_any_role(self, *roles: str) -> bool:
        mine = self.roles()
        return any(role in mine for role in roles)

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles()

    def can_view_procurement(self) -> bool:
        return self.has_any_role(ROLE_ADMIN, ROLE_PROCUREMENT_MANAGER, ROLE_PROCUREMENT_STAFF)

    def can_negotiate(self) -> bool:
        return self.has_any_role(ROLE_ADMIN, ROLE_PROCUREMENT_MANAGER, ROLE_PROCUREMENT_STAFF)

    def can_approve(self) -> bool:
        return self.has_any_role(ROLE_ADMIN, ROLE_PROCUREMENT_MANAGER)

    def managed_team_ids(self) -> list[int]:
        return [m.team_id for m in self.memberships if m.role == ROLE_KITCHEN_MANAGER]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "employeeCode": self.employee_code,
            "department": self.department,
            "roles": sorted(self.roles()),
        }

    def __repr__(self):
        return f"<User {self.email}>"


class Team(db.Model):
    """Kitchen or office. Kitchens carry a region used for price lists."""

    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    team_code = db.Column(db.String(50), nullable=True, index=True)
    region = db.Column(db.String(100), nullable=True, index=True)
    address = db.Column(db.Text, nullable=True)

    manager_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # KITCHEN | OFFICE
    team_type = db.Column(db.String(20), default=TEAM_KITCHEN, nullable=False, index=True)
    status = db.Column(db.String(20), default="active", nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    manager = db.relationship("User", foreign_keys=[manager_id])
    members = db.relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.CheckConstraint(
            "team_type <> 'KITCHEN' OR team_code IS NOT NULL",
            name="ck_teams_kitchen_code",
        ),
    )

    def __repr__(self):
        return f"<Team {self.team_code or self.name}>"


class TeamMember(db.Model):
    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(50), nullable=False)

    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User", back_populates="memberships")
    team = db.relationship("Team", back_populates="members")

    __table_args__ = (
        db.UniqueConstraint("user_id", "team_id", name="uq_team_member"),
    )


# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------
class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)

    supplier_code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    tax_id = db.Column(db.String(50), nullable=True)
    address = db.Column(db.Text, nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), default="active", nullable=False, index=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def active(cls):
        return cls.query.filter(cls.status == "active", cls.deleted_at.is_(None))

    def __repr__(self):
        return f"<Supplier {self.supplier_code}>"


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    product_code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    specification = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(50), nullable=False)
    category = db.Column(db.String(100), nullable=True, index=True)

    base_price = db.Column(db.Numeric(12, 2), nullable=True)
    base_quantity = db.Column(db.Numeric(10, 2), nullable=True)

    status = db.Column(db.String(20), default="active", nullable=False, index=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def active(cls):
        return cls.query.filter(cls.status == "active", cls.deleted_at.is_(None))

    def __repr__(self):
        return f"<Product {self.product_code}>"


class SupplierServiceScope(db.Model):
    """A supplier serving a kitchen team."""

    __tablename__ = "supplier_service_scopes"

    id = db.Column(db.Integer, primary_key=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("service_scopes", lazy=True))
    team = db.relationship("Team", backref=db.backref("supplier_scopes", lazy=True))

    __table_args__ = (
        db.UniqueConstraint("supplier_id", "team_id", name="uq_supplier_team_scope"),
    )


class KitchenPeriodDemand(db.Model):
    """Planned quantity of a product for a kitchen in a period."""

    __tablename__ = "kitchen_period_demands"

    id = db.Column(db.Integer, primary_key=True)

    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    period = db.Column(db.String(10), nullable=False, index=True)

    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    unit = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), default="active", nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = db.relationship("Team")
    product = db.relationship("Product")

    __table_args__ = (
        db.UniqueConstraint("team_id", "product_id", "period", name="uq_kitchen_period_demand"),
        db.CheckConstraint("quantity > 0", name="ck_kitchen_demand_quantity_positive"),
    )


# ---------------------------------------------------------------------
# Quotations
# ---------------------------------------------------------------------
class Quotation(db.Model):
    __tablename__ = "quotations"

    id = db.Column(db.Integer, primary_key=True)

    # Business key: Q-<supplier code>-<period>-<region>
    quotation_id = db.Column(db.String(100), unique=True, nullable=False, index=True)
    period = db.Column(db.String(10), nullable=False, index=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True)
    region = db.Column(db.String(100), nullable=False, index=True)

    quote_date = db.Column(db.DateTime, default=datetime.utcnow)
    update_date = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(20), default=QUOTATION_PENDING, nullable=False, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("quotations", lazy=True))
    creator = db.relationship("User", foreign_keys=[created_by])
    items = db.relationship(
        "QuoteItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuoteItem.id",
    )

    __table_args__ = (
        db.UniqueConstraint("supplier_id", "period", "region", name="uq_quotation_supplier_period_region"),
    )

    @staticmethod
    def build_business_key(supplier_code: str, period: str, region: str) -> str:
        return f"Q-{supplier_code}-{period}-{region}"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "quotationId": self.quotation_id,
            "period": self.period,
            "region": self.region,
            "status": self.status,
            "supplierId": self.supplier_id,
            "supplierCode": self.supplier.supplier_code if self.supplier else None,
            "supplierName": self.supplier.name if self.supplier else None,
            "quoteDate": self.quote_date.isoformat() if self.quote_date else None,
            "updateDate": self.update_date.isoformat() if self.update_date else None,
            "itemCount": len(self.items),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<Quotation {self.quotation_id} {self.status}>"


class QuoteItem(db.Model):
    __tablename__ = "quote_items"

    id = db.Column(db.Integer, primary_key=True)

    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(10, 2), nullable=False, default=1)
    initial_price = db.Column(db.Numeric(12, 2), nullable=True)
    negotiated_price = db.Column(db.Numeric(12, 2), nullable=True)
    approved_price = db.Column(db.Numeric(12, 2), nullable=True)

    vat_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="VND")

    negotiation_rounds = db.Column(db.Integer, nullable=False, default=0)
    last_negotiated_at = db.Column(db.DateTime, nullable=True)

    approved_at = db.Column(db.DateTime, nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    quotation = db.relationship("Quotation", back_populates="items")
    product = db.relationship("Product")

    __table_args__ = (
        db.UniqueConstraint("quotation_id", "product_id", name="uq_quote_item_product"),
        db.CheckConstraint("quantity > 0", name="ck_quote_items_quantity_positive"),
        db.CheckConstraint("vat_percentage >= 0 AND vat_percentage <= 100", name="ck_quote_items_vat_range"),
        db.CheckConstraint("initial_price IS NULL OR initial_price >= 0", name="ck_quote_items_initial_price"),
        db.CheckConstraint("negotiated_price IS NULL OR negotiated_price >= 0", name="ck_quote_items_negotiated_price"),
        db.CheckConstraint("approved_price IS NULL OR approved_price >= 0", name="ck_quote_items_approved_price"),
    )

    @property
    def effective_price(self) -> Decimal | None:
        """approved ?? negotiated ?? initial; zero counts as missing."""
        for value in (self.approved_price, self.negotiated_price, self.initial_price):
            if value:
                return _to_decimal(value)
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productCode": self.product.product_code if self.product else None,
            "productName": self.product.name if self.product else None,
            "unit": self.product.unit if self.product else None,
            "quantity": float(_to_decimal(self.quantity)),
            "initialPrice": float(self.initial_price) if self.initial_price is not None else None,
            "negotiatedPrice": float(self.negotiated_price) if self.negotiated_price is not None else None,
            "approvedPrice": float(self.approved_price) if self.approved_price is not None else None,
            "vatPercentage": float(_to_decimal(self.vat_percentage)),
            "currency": self.currency,
            "negotiationRounds": self.negotiation_rounds,
            "notes": self.notes,
        }


class PriceHistory(db.Model):
    """Append-only record of prices as they were negotiated or approved."""

    __tablename__ = "price_history"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    # Kitchen-specific price. The quotation workflow records region-wide
    # prices, so it leaves this empty.
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)

    period = db.Column(db.String(10), nullable=False, index=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    price_type = db.Column(db.String(20), nullable=False, index=True)
    region = db.Column(db.String(100), nullable=True, index=True)

    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    recorded_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    product = db.relationship("Product")
    supplier = db.relationship("Supplier")

    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_price_history_price_non_negative"),
    )


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who changed what, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(30), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
