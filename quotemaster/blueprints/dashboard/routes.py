"""
quotemaster/blueprints/dashboard/routes.py

Home dashboard: KPI counters scoped to the caller's roles and
approved-price trends (limit clamped to 1..100, optional region).
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import dashboard
from ...utils import parse_optional_int

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


@dashboard_bp.route("/stats")
@login_required
def stats():
    return jsonify(dashboard.get_dashboard_stats(current_user))


@dashboard_bp.route("/price-trends")
@login_required
def price_trends():
    limit = parse_optional_int(request.args.get("limit")) or 20
    limit = max(1, min(limit, 100))
    region = (request.args.get("region") or "").strip() or None
    return jsonify(dashboard.get_price_trends(limit=limit, region=region))
