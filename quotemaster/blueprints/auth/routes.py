"""
Authentication Routes

Provides:
- /auth/login       (JSON: email, password)
- /auth/logout
- /auth/me
- /auth/csrf-token  (token for the X-CSRFToken header)

Rules:
- Only active, non-deleted users may log in.
- Credentials validated via password hash.
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...errors import PermissionDeniedError, ValidationError
from ...models import User
from ...utils import json_body

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required.")

    user = User.query.filter(User.email == email).first()
    if not user or not user.check_password(password):
        return jsonify({"error": "Invalid email or password.", "code": 401}), 401

    if not user.is_active:
        raise PermissionDeniedError("This account is inactive.")

    login_user(user)
    return jsonify({"user": user.to_dict()})


# ============================================================
# LOGOUT / SESSION
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"user": current_user.to_dict()})


@auth_bp.route("/csrf-token")
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()})
