"""Dashboard blueprint package (KPIs and price trends)."""

from .routes import dashboard_bp  # noqa: F401
