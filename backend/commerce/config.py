# Overview: Environment-driven application configuration.

from __future__ import annotations
import os


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/commerce.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///commerce.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payment gateway (Paystack). Without a secret key, checkout and
    # verification fail with GatewayUnavailable. Without a webhook secret,
    # webhook signatures are not enforced (local development only).
    PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY")
    PAYSTACK_WEBHOOK_SECRET = os.environ.get("PAYSTACK_WEBHOOK_SECRET")
    PAYSTACK_BASE_URL = os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_CALLBACK_URL = os.environ.get("PAYSTACK_CALLBACK_URL")
    PAYSTACK_TIMEOUT_SECONDS = float(os.environ.get("PAYSTACK_TIMEOUT_SECONDS", "10"))

    CHECKOUT_SUCCESS_URL = os.environ.get(
        "CHECKOUT_SUCCESS_URL", "http://localhost:5173/checkout/success"
    )
    CHECKOUT_FAILURE_URL = os.environ.get(
        "CHECKOUT_FAILURE_URL", "http://localhost:5173/checkout/failure"
    )

    # Money is stored in minor units (kobo)
    CURRENCY = os.environ.get("CURRENCY", "NGN")
    SHIPPING_FEE_MINOR = int(os.environ.get("SHIPPING_FEE_MINOR", "2500"))

    # Outbound mail for the notification worker; unset host means log-only
    SMTP_HOST = os.environ.get("SMTP_HOST")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "465"))
    SMTP_USER = os.environ.get("SMTP_USER")
    SMTP_PASS = os.environ.get("SMTP_PASS")
    SMTP_SECURE = _env_bool("SMTP_SECURE", "true")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "Shop with Seye <no-reply@shopwithseye.local>")
    STORE_NAME = os.environ.get("STORE_NAME", "Shop with Seye")

    LOG_DIR = os.environ.get("LOG_DIR")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
