"""
Application configuration.
This module defines the configuration settings for the QuoteMaster service, including database connection, secret key,
logging and the tunables of the comparison engine. It uses environment variables for sensitive information and defaults
for development. In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'quotemaster.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for mutating requests (JSON clients read /auth/csrf-token)
    WTF_CSRF_ENABLED = os.environ.get("WTF_CSRF_ENABLED", "1") != "0"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    APP_NAME = "QuoteMaster"

    # Quote line items without an explicit currency fall back to this
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "VND")

    # How many months back the matrix looks for a previously approved period
    PREVIOUS_PERIOD_LOOKBACK_MONTHS = int(os.environ.get("PREVIOUS_PERIOD_LOOKBACK_MONTHS", "12"))

    # Variance (percent) within +/- this band is reported as "stable"
    VARIANCE_STABLE_THRESHOLD = float(os.environ.get("VARIANCE_STABLE_THRESHOLD", "0.5"))


class TestingConfig(Config):
    """In-memory database, CSRF off. Used by the pytest fixtures."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "WARNING"
