"""
quotemaster/security.py

Access control helpers for the JSON API.

Key rules:
- The client is never trusted; all permission checks are server-side.
- Procurement staff/managers and admins see comparison and quotation data.
- Negotiation: procurement staff, procurement managers, admins.
- Approval: procurement managers and admins only.
- Kitchen price lists: admins, procurement roles, or members of that team.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
- Decorators assume login_required runs first (place them below it).
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask import jsonify
from flask_login import current_user


def _forbidden(message: str = "You do not have permission for this action."):
    """Consistent JSON 403."""
    return jsonify({"error": message, "code": 403}), 403


def is_procurement() -> bool:
    return bool(current_user.is_authenticated and current_user.can_view_procurement())


def can_view_team(team_id: int) -> bool:
    if not current_user.is_authenticated:
        return False
    if is_procurement():
        return True
    return any(m.team_id == team_id for m in current_user.memberships)


def _role_guard(check: Callable[[], bool], message: str):
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not current_user.is_authenticated or not check():
                return _forbidden(message)
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


procurement_required = _role_guard(
    is_procurement, "Procurement access required."
)

manager_required = _role_guard(
    lambda: current_user.can_negotiate(), "Only procurement staff can negotiate quotations."
)

approver_required = _role_guard(
    lambda: current_user.can_approve(), "Only procurement managers can approve quotations."
)


def team_access_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: the view takes team_id; caller must be allowed to see that team."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not can_view_team(kwargs.get("team_id")):
            return _forbidden("You cannot view this team's price list.")
        return view_func(*args, **kwargs)

    return wrapper
