"""
quotemaster/blueprints/comparison/routes.py

Comparison matrix and the negotiate / approve actions launched from it.

IMPORTANT:
- Read endpoints: procurement roles.
- Negotiation: procurement staff and up. Approval: procurement managers and up.
- Routes stay thin; validation and transactions live in comparison.py / workflow.py.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import comparison, workflow
from ...errors import ValidationError
from ...security import approver_required, manager_required, procurement_required
from ...utils import json_body, request_categories, require_int_list, to_json

comparison_bp = Blueprint("comparison", __name__, url_prefix="/comparison")


def _required_arg(name: str) -> str:
    value = (request.args.get(name) or "").strip()
    if not value:
        raise ValidationError(f"'{name}' is required.")
    return value


# ---------------------------------------------------------------------
# Matrix + filter data
# ---------------------------------------------------------------------
@comparison_bp.route("/matrix")
@login_required
@procurement_required
def matrix():
    result = comparison.get_comparison_matrix(
        _required_arg("period"),
        _required_arg("region"),
        request_categories(),
    )
    return jsonify(to_json(result))


@comparison_bp.route("/categories")
@login_required
@procurement_required
def categories():
    return jsonify({"categories": comparison.get_available_categories()})


@comparison_bp.route("/summary")
@login_required
@procurement_required
def summary():
    return jsonify(comparison.get_quotation_summary(_required_arg("period"), _required_arg("region")))


@comparison_bp.route("/regions")
@login_required
@procurement_required
def regions():
    return jsonify({"regions": comparison.get_regions_for_period(_required_arg("period"))})


@comparison_bp.route("/period-categories")
@login_required
@procurement_required
def period_categories():
    return jsonify({
        "categories": comparison.get_categories_for_period_and_region(
            _required_arg("period"), _required_arg("region")
        )
    })


# ---------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------
@comparison_bp.route("/quotations/<int:quotation_id>/negotiate", methods=["POST"])
@login_required
@manager_required
def negotiate(quotation_id: int):
    return jsonify(workflow.negotiate_quotation(quotation_id, user=current_user))


@comparison_bp.route("/quotations/batch-negotiate", methods=["POST"])
@login_required
@manager_required
def batch_negotiate():
    ids = require_int_list(json_body(), "quotationIds")
    return jsonify(workflow.batch_negotiation(ids, user=current_user))


@comparison_bp.route("/quotations/<int:quotation_id>/negotiated-prices", methods=["POST"])
@login_required
@manager_required
def negotiated_prices(quotation_id: int):
    prices = json_body().get("prices")
    if not isinstance(prices, dict):
        raise ValidationError("'prices' must be an object of item id -> price.")
    return jsonify(workflow.record_negotiated_prices(quotation_id, prices, user=current_user))


# ---------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------
@comparison_bp.route("/quotations/<int:quotation_id>/approve", methods=["POST"])
@login_required
@approver_required
def approve(quotation_id: int):
    overrides = json_body().get("approvedPrices") or {}
    if not isinstance(overrides, dict):
        raise ValidationError("'approvedPrices' must be an object of item id -> price.")
    return jsonify(workflow.approve_quotation(quotation_id, overrides, user=current_user))


@comparison_bp.route("/quotations/batch-approve", methods=["POST"])
@login_required
@approver_required
def batch_approve():
    ids = require_int_list(json_body(), "quotationIds")
    return jsonify(workflow.approve_multiple_quotations(ids, user=current_user))
