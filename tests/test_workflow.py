"""Tests for negotiation / approval (quotemaster.workflow)."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from quotemaster import workflow
from quotemaster.errors import InvalidTransitionError, NotFoundError, ValidationError
from quotemaster.extensions import db
from quotemaster.models import (
    AuditLog,
    PRICE_APPROVED,
    PRICE_NEGOTIATED,
    PriceHistory,
    QUOTATION_APPROVED,
    QUOTATION_CANCELLED,
    QUOTATION_NEGOTIATION,
    QUOTATION_PENDING,
    Quotation,
)

PERIOD = "2024-02-01"


@pytest.fixture
def products(build):
    return build.product("VEG-001"), build.product("VEG-002")


@pytest.fixture
def quotation(build, products):
    p1, p2 = products
    supplier = build.supplier("SUP-A", name="Alpha Foods")
    return build.quotation(supplier, PERIOD, items=[
        {"product": p1, "initial": 100, "quantity": 2},
        {"product": p2, "initial": 50, "negotiated": 45, "quantity": 4},
    ])


def _history(price_type=None):
    query = PriceHistory.query
    if price_type:
        query = query.filter_by(price_type=price_type)
    return query.order_by(PriceHistory.id).all()


def _audit(action):
    return AuditLog.query.filter_by(entity_type="Quotation", action=action).all()


class TestNegotiate:

    def test_pending_to_negotiation(self, quotation, manager):
        result = workflow.negotiate_quotation(quotation.id, manager)
        assert "Alpha Foods" in result["success"]
        assert result["quotation"]["status"] == QUOTATION_NEGOTIATION
        assert db.session.get(Quotation, quotation.id).status == QUOTATION_NEGOTIATION

        entries = _audit("NEGOTIATE")
        assert len(entries) == 1
        assert entries[0].user_id == manager.id
        assert entries[0].username_snapshot == manager.email
        assert '"pending"' in entries[0].before_data

    def test_negotiation_can_be_repeated(self, quotation, manager):
        workflow.negotiate_quotation(quotation.id, manager)
        result = workflow.negotiate_quotation(quotation.id, manager)
        assert result["quotation"]["status"] == QUOTATION_NEGOTIATION

    @pytest.mark.parametrize("status", [QUOTATION_APPROVED, QUOTATION_CANCELLED])
    def test_closed_quotation_rejected(self, build, status):
        q = build.quotation(build.supplier("SUP-Z"), PERIOD, status=status)
        with pytest.raises(InvalidTransitionError):
            workflow.negotiate_quotation(q.id)
        assert db.session.get(Quotation, q.id).status == status

    def test_unknown_quotation(self, app):
        with pytest.raises(NotFoundError):
            workflow.negotiate_quotation(999)


class TestBatchNegotiation:

    def test_only_eligible_quotations_move(self, build, quotation, manager):
        other = build.quotation(build.supplier("SUP-B", name="Beta"), PERIOD)
        closed = build.quotation(build.supplier("SUP-C"), PERIOD, status=QUOTATION_APPROVED)

        result = workflow.batch_negotiation([quotation.id, other.id, closed.id], manager)
        assert result["updatedQuotations"] == 2
        assert result["affectedSuppliers"] == ["Alpha Foods", "Beta"]
        assert db.session.get(Quotation, closed.id).status == QUOTATION_APPROVED

    def test_nothing_eligible(self, build):
        closed = build.quotation(build.supplier("SUP-C"), PERIOD, status=QUOTATION_CANCELLED)
        with pytest.raises(ValidationError):
            workflow.batch_negotiation([closed.id])

    @pytest.mark.parametrize("ids", [[], None, ["abc"]])
    def test_bad_ids(self, app, ids):
        with pytest.raises(ValidationError):
            workflow.batch_negotiation(ids)


class TestNegotiatedPrices:

    def test_records_round_and_history(self, quotation, manager):
        item = quotation.items[0]
        result = workflow.record_negotiated_prices(quotation.id, {str(item.id): "95,5"}, manager)

        assert result["updatedItems"] == 1
        assert item.negotiated_price == Decimal("95.5")
        assert item.negotiation_rounds == 1
        assert item.last_negotiated_at is not None
        assert quotation.status == QUOTATION_NEGOTIATION

        history = _history(PRICE_NEGOTIATED)
        assert len(history) == 1
        assert history[0].price == Decimal("95.5")
        assert history[0].recorded_by == manager.id

    def test_rejects_foreign_items(self, quotation):
        with pytest.raises(ValidationError):
            workflow.record_negotiated_prices(quotation.id, {"9999": 10})

    def test_rejects_negative_price(self, quotation):
        with pytest.raises(ValidationError):
            workflow.record_negotiated_prices(quotation.id, {str(quotation.items[0].id): -1})

    def test_rejects_empty(self, quotation):
        with pytest.raises(ValidationError):
            workflow.record_negotiated_prices(quotation.id, {})


class TestApprove:

    def test_negotiated_then_initial(self, quotation, manager):
        result = workflow.approve_quotation(quotation.id, user=manager)

        first, second = quotation.items
        assert first.approved_price == Decimal("100")
        assert second.approved_price == Decimal("45")
        assert first.approved_by == manager.id
        assert quotation.status == QUOTATION_APPROVED

        assert result["approvedItems"] == 2
        assert result["loggedPriceHistory"] == 2
        # 100 x 2 + 45 x 4
        assert result["totalApprovedValue"] == 380.0

        history = _history(PRICE_APPROVED)
        assert [h.price for h in history] == [Decimal("100"), Decimal("45")]
        assert all(h.period == PERIOD and h.region == "HCM" for h in history)
        assert all(h.team_id is None for h in history)
        assert len(_audit("APPROVE")) == 1

    def test_override_wins(self, quotation):
        first = quotation.items[0]
        result = workflow.approve_quotation(quotation.id, {str(first.id): 90})
        assert first.approved_price == Decimal("90")
        assert result["totalApprovedValue"] == 90 * 2 + 45 * 4

    def test_unpriced_items_are_skipped(self, build, products):
        p1, p2 = products
        q = build.quotation(build.supplier("SUP-B"), PERIOD, items=[
            {"product": p1, "initial": 10},
            {"product": p2},
        ])
        result = workflow.approve_quotation(q.id)
        assert result["approvedItems"] == 1
        assert q.items[1].approved_price is None
        assert q.status == QUOTATION_APPROVED

    def test_approve_from_negotiation(self, quotation):
        workflow.negotiate_quotation(quotation.id)
        workflow.approve_quotation(quotation.id)
        assert quotation.status == QUOTATION_APPROVED

    @pytest.mark.parametrize("status", [QUOTATION_APPROVED, QUOTATION_CANCELLED])
    def test_closed_quotation_rejected(self, build, status):
        q = build.quotation(build.supplier("SUP-Z"), PERIOD, status=status)
        with pytest.raises(InvalidTransitionError):
            workflow.approve_quotation(q.id)
        assert _history() == []


class TestBatchApprove:

    def test_approves_eligible(self, build, quotation, products, manager):
        p1, _ = products
        other = build.quotation(build.supplier("SUP-B", name="Beta"), PERIOD, status=QUOTATION_NEGOTIATION, items=[
            {"product": p1, "initial": 80, "negotiated": 75},
        ])
        closed = build.quotation(build.supplier("SUP-C"), PERIOD, status=QUOTATION_CANCELLED)

        result = workflow.approve_multiple_quotations([quotation.id, other.id, closed.id], manager)
        assert result["approvedQuotations"] == 2
        assert result["affectedSuppliers"] == ["Alpha Foods", "Beta"]
        assert result["loggedPriceHistory"] == 3
        assert other.items[0].approved_price == Decimal("75")
        assert db.session.get(Quotation, closed.id).status == QUOTATION_CANCELLED

    def test_nothing_eligible(self, build):
        q = build.quotation(build.supplier("SUP-C"), PERIOD, status=QUOTATION_APPROVED)
        with pytest.raises(ValidationError):
            workflow.approve_multiple_quotations([q.id])


class TestApprovalRollback:
    """A failure mid-approval leaves items, history and status untouched."""

    @pytest.fixture
    def failing_audit(self, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))

        monkeypatch.setattr(workflow, "log_action", boom)

    def _assert_untouched(self, quotation_id):
        quotation = db.session.get(Quotation, quotation_id)
        assert quotation.status == QUOTATION_PENDING
        assert all(item.approved_price is None for item in quotation.items)
        assert all(item.approved_at is None for item in quotation.items)
        assert PriceHistory.query.count() == 0

    def test_single_approval(self, quotation, manager, failing_audit):
        with pytest.raises(OperationalError):
            workflow.approve_quotation(quotation.id, user=manager)
        self._assert_untouched(quotation.id)

    def test_batch_approval(self, build, quotation, products, failing_audit):
        p1, _ = products
        other = build.quotation(build.supplier("SUP-B"), PERIOD, items=[{"product": p1, "initial": 80}])

        with pytest.raises(OperationalError):
            workflow.approve_multiple_quotations([quotation.id, other.id])
        self._assert_untouched(quotation.id)
        self._assert_untouched(other.id)


class TestStatusUpdates:

    def test_unknown_status(self, quotation):
        with pytest.raises(ValidationError):
            workflow.update_quotation_status(quotation.id, "archived")

    def test_approved_can_only_be_cancelled(self, quotation):
        workflow.approve_quotation(quotation.id)
        with pytest.raises(InvalidTransitionError):
            workflow.update_quotation_status(quotation.id, QUOTATION_PENDING)

        result = workflow.cancel_quotation(quotation.id)
        assert result["quotation"]["status"] == QUOTATION_CANCELLED
        assert len(_audit("STATUS_CANCELLED")) == 1

    def test_set_approved_logs_existing_prices(self, build, products):
        p1, p2 = products
        q = build.quotation(build.supplier("SUP-B"), PERIOD, items=[
            {"product": p1, "initial": 10, "approved": 9},
            {"product": p2, "initial": 20},
        ])
        workflow.update_quotation_status(q.id, QUOTATION_APPROVED)
        assert [h.price for h in _history(PRICE_APPROVED)] == [Decimal("9")]
        assert q.status == QUOTATION_APPROVED

    def test_reopen_pending(self, quotation):
        workflow.negotiate_quotation(quotation.id)
        workflow.update_quotation_status(quotation.id, QUOTATION_PENDING)
        assert quotation.status == QUOTATION_PENDING
        assert quotation.update_date is not None
