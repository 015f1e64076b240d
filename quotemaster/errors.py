"""
quotemaster/errors.py

Domain exceptions and their JSON rendering.

Services raise QuoteMasterError subclasses; they never build HTTP responses.
The app factory wires register_error_handlers() so every error (domain or
werkzeug HTTPException) leaves the service as:

    {"error": "<message>", "code": <status>}

IMPORTANT:
- Handlers roll back the session for 500s so a failed request never leaves a
  half-written transaction behind.
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .extensions import db

logger = logging.getLogger(__name__)


class QuoteMasterError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 400

    def __init__(self, message: str, *, status_code: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.status_code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(QuoteMasterError):
    status_code = 400


class PermissionDeniedError(QuoteMasterError):
    status_code = 403


class NotFoundError(QuoteMasterError):
    status_code = 404


class ConflictError(QuoteMasterError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    """A quotation cannot move from its current status to the requested one."""


def register_error_handlers(app: Flask) -> None:
    """Attach JSON error handlers to the app."""

    @app.errorhandler(QuoteMasterError)
    def _domain_error(exc: QuoteMasterError):
        logger.info("%s: %s", exc.__class__.__name__, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return jsonify({"error": exc.description or exc.name, "code": exc.code}), exc.code

    @app.errorhandler(500)
    def _server_error(exc):
        db.session.rollback()
        logger.exception("Unhandled server error")
        return jsonify({"error": "Internal server error", "code": 500}), 500
