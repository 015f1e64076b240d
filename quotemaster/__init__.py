"""
quotemaster/__init__.py

Flask application factory for QuoteMaster (supplier quotation comparison,
negotiation and approval).

Architecture:
- extensions.py   SQLAlchemy / Migrate / LoginManager / CSRF instances
- models.py       schema
- comparison.py   price comparison matrix
- workflow.py     negotiate -> approve transitions with price history
- price_list.py   approved price lists per kitchen
- dashboard.py    KPIs and price trends
- quotations.py   listing / detail / dropdown data
- blueprints/     thin JSON routes over the modules above

SECURITY:
- Every data endpoint requires login; role checks live in security.py.
- CSRF protects mutating requests; JSON clients send X-CSRFToken from
  /auth/csrf-token.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify

from .errors import register_error_handlers
from .extensions import csrf, db, login_manager, migrate
from .models import ROLE_ADMIN, User
from .utils import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_object: str | type = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    setup_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify({"error": "Authentication required", "code": 401}), 401

    register_error_handlers(app)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.comparison import comparison_bp
    from .blueprints.dashboard import dashboard_bp
    from .blueprints.price_list import price_list_bp
    from .blueprints.quotations import quotations_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(comparison_bp)
    app.register_blueprint(quotations_bp)
    app.register_blueprint(price_list_bp)
    app.register_blueprint(dashboard_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed demo users, suppliers, products and quotations."""
        from .seed import seed_demo_data

        result = seed_demo_data()
        click.echo(f"Demo data seeded ({result['quotations']} new quotations).")

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("password")
    @click.option("--name", default="Administrator", show_default=True)
    def create_admin_command(email: str, password: str, name: str):
        """Create an admin user (or reset its password)."""
        from .seed import create_user

        user = create_user(email=email, name=name, password=password, role=ROLE_ADMIN)
        click.echo(f"Admin {user.email} ready.")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "app": app.config.get("APP_NAME")})

    logger.debug("QuoteMaster app created with %s", config_object)
    return app
