"""
quotemaster/blueprints/price_list/routes.py

Approved price lists per kitchen. Kitchen members see their own team;
procurement roles see every team.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ... import price_list
from ...errors import ValidationError
from ...security import team_access_required
from ...utils import to_json

price_list_bp = Blueprint("price_list", __name__, url_prefix="/price-list")


def _period_arg() -> str:
    period = (request.args.get("period") or "").strip()
    if not period:
        raise ValidationError("'period' is required.")
    return period


@price_list_bp.route("/teams/<int:team_id>")
@login_required
@team_access_required
def team_info(team_id: int):
    data = price_list.get_team_info(team_id)
    data["supplierScopes"] = price_list.get_team_supplier_scopes(team_id)
    return jsonify(to_json(data))


@price_list_bp.route("/teams/<int:team_id>/periods")
@login_required
@team_access_required
def periods(team_id: int):
    return jsonify(to_json({"periods": price_list.get_available_periods_for_team(team_id)}))


@price_list_bp.route("/teams/<int:team_id>/matrix")
@login_required
@team_access_required
def matrix(team_id: int):
    return jsonify(to_json(price_list.get_price_list_matrix(team_id, _period_arg())))


@price_list_bp.route("/teams/<int:team_id>/products/<int:product_id>")
@login_required
@team_access_required
def product_comparison(team_id: int, product_id: int):
    return jsonify(to_json(price_list.get_product_price_comparison(team_id, product_id, _period_arg())))
