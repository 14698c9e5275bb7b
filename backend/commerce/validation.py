from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from .errors import ValidationError



_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer for a JSON request body:
    - allowed_fields: what clients are allowed to send (security boundary)
    - required_fields: fields that must be present and non-null
    """
    allowed_fields: set[str]
    required_fields: set[str] = field(default_factory=set)


def validate_payload(payload: Any, policy: PayloadPolicy) -> dict:
    """
    Reject non-object bodies, unknown fields and missing required fields.
    Returns the payload restricted to allowed fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(k for k in payload if k not in policy.allowed_fields)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    missing = sorted(f for f in policy.required_fields if payload.get(f) is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return {k: v for k, v in payload.items() if k in policy.allowed_fields}


def coerce_int(value: Any, name: str) -> int:
    """
    Strict integer coercion: rejects floats, booleans, blanks, decimals and
    scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def clean_text(value: Any, name: str, *, min_length: int = 0, max_length: int | None = None) -> str | None:
    """Strip a string field; None passes through. Enforces length bounds."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    text = value.strip()
    if len(text) < min_length:
        raise ValidationError(f"{name} must be at least {min_length} characters")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}")
    return text


def clean_email(value: Any, name: str = "email") -> str:
    text = clean_text(value, name)
    if not text or not _EMAIL_RE.match(text):
        raise ValidationError(f"{name} must be a valid email address")
    return text.lower()


def clean_choice(value: Any, name: str, choices) -> str:
    if value not in choices:
        raise ValidationError(f"{name} must be one of: {', '.join(choices)}")
    return value
