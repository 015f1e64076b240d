"""
quotemaster/blueprints/quotations/routes.py

Quotation list (filters + pagination), detail, dropdown data and status changes.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import comparison, quotations, workflow
from ...errors import ValidationError
from ...security import manager_required, procurement_required
from ...utils import json_body

quotations_bp = Blueprint("quotations", __name__, url_prefix="/quotations")

LIST_FILTERS = ("period", "region", "supplier_id", "status", "search", "sort", "direction", "page", "limit")


@quotations_bp.route("/")
@login_required
@procurement_required
def list_quotations():
    filters = {key: request.args.get(key) for key in LIST_FILTERS if request.args.get(key)}
    return jsonify(quotations.list_quotations(filters))


@quotations_bp.route("/<int:quotation_id>")
@login_required
@procurement_required
def quotation_detail(quotation_id: int):
    return jsonify(quotations.get_quotation_details(quotation_id))


@quotations_bp.route("/periods")
@login_required
@procurement_required
def periods():
    return jsonify({"periods": comparison.get_available_periods()})


@quotations_bp.route("/regions")
@login_required
@procurement_required
def regions():
    return jsonify({"regions": quotations.get_available_regions()})


@quotations_bp.route("/suppliers")
@login_required
@procurement_required
def suppliers():
    return jsonify({"suppliers": quotations.get_available_suppliers()})


@quotations_bp.route("/<int:quotation_id>/status", methods=["POST"])
@login_required
@manager_required
def update_status(quotation_id: int):
    status = (json_body().get("status") or "").strip()
    if not status:
        raise ValidationError("'status' is required.")
    return jsonify(workflow.update_quotation_status(quotation_id, status, user=current_user))


@quotations_bp.route("/<int:quotation_id>/cancel", methods=["POST"])
@login_required
@manager_required
def cancel(quotation_id: int):
    return jsonify(workflow.cancel_quotation(quotation_id, user=current_user))
