"""
quotemaster/blueprints/price_list/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose price_list_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import price_list_bp  # noqa: F401
