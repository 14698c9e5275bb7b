# Overview: Exception taxonomy shared by services and routes.

"""
Every business failure raised by the service layer is a CommerceError
subclass carrying the HTTP status the API answers with. Routes translate
them with `error_response`; anything else is an unexpected failure and is
logged and answered with 500.
"""

from __future__ import annotations

from flask import jsonify


class CommerceError(Exception):
    """Base class for expected, client-reportable failures."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CommerceError):
    """Malformed or incomplete request."""
    status_code = 400


class EmptyCart(ValidationError):
    """Checkout attempted with no cart lines."""
    status_code = 409


class Unauthorized(CommerceError):
    status_code = 401


class Forbidden(CommerceError):
    status_code = 403


class NotFound(CommerceError):
    status_code = 404


class InvalidTransition(CommerceError):
    """Order status transition not permitted by the transition table."""
    status_code = 409


class StockConflict(CommerceError):
    """Insufficient stock to apply a decrement (or a vanished variant)."""
    status_code = 409


class GatewayUnavailable(CommerceError):
    """Payment processor not configured."""
    status_code = 503


class GatewayError(CommerceError):
    """Payment processor answered with a failure, or could not be reached."""
    status_code = 502


def error_response(exc: CommerceError):
    return jsonify(exc.to_dict()), exc.status_code
