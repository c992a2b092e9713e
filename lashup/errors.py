"""Domain exceptions and their translation into JSON error responses."""
from __future__ import annotations

from typing import Any, Optional

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """Base class for errors raised by the lifecycle managers.

    Each subclass carries the HTTP status it maps to, so services can raise
    without knowing about Flask and the boundary renders one JSON shape.
    """

    status_code = 500
    code = "server_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInput(ApiError):
    status_code = 400
    code = "invalid_payload"


class Unauthorized(ApiError):
    status_code = 401
    code = "unauthorized"


class Forbidden(ApiError):
    status_code = 403
    code = "forbidden"


class NotFound(ApiError):
    status_code = 404
    code = "not_found"


class Conflict(ApiError):
    """Request conflicts with the current state of a record."""

    status_code = 400
    code = "conflict"


class SlotConflict(Conflict):
    code = "slot_conflict"


class InvalidState(Conflict):
    code = "invalid_state"


class TooLate(Conflict):
    code = "too_late"


class PaymentRequired(Conflict):
    code = "payment_required"


class UpstreamFailure(ApiError):
    """An external collaborator (payment provider) failed or was unreachable."""

    status_code = 502
    code = "upstream_failure"


class PaymentInitError(UpstreamFailure):
    code = "payment_init_failed"


def register_error_handlers(app: Flask) -> None:
    from .extensions import db

    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("Unhandled database error", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = (exc.name or "error").lower().replace(" ", "_")
        return jsonify({"error": code, "message": exc.description}), exc.code
