"""Application configuration loaded from environment variables."""
from __future__ import annotations

import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///lashup.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Bearer tokens expire after 7 days
    TOKEN_MAX_AGE = int(os.environ.get("TOKEN_MAX_AGE", 7 * 24 * 3600))

    CORS_ORIGINS = _env_list(
        "CORS_ORIGINS",
        "http://localhost:3000,https://lash-up-and-more-frontend.vercel.app",
    )

    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@lashupandmore.com")

    # smtp | console | memory
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "console")
    MAIL_HOST = os.environ.get("MAIL_HOST", "localhost")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", 465))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_FROM = os.environ.get("MAIL_FROM", "LashUp And More <no-reply@lashupandmore.com>")
    NOTIFICATION_WORKERS = int(os.environ.get("NOTIFICATION_WORKERS", 4))
    NOTIFICATIONS_SYNC = _env_bool("NOTIFICATIONS_SYNC", False)

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd")
    PAYMENT_SUCCESS_URL = os.environ.get(
        "PAYMENT_SUCCESS_URL",
        "http://localhost:3000/checkout/success?reference={reference}",
    )
    PAYMENT_CANCEL_URL = os.environ.get(
        "PAYMENT_CANCEL_URL",
        "http://localhost:3000/checkout/cancelled?reference={reference}",
    )
    SHIPPING_FEE_CENTS = int(os.environ.get("SHIPPING_FEE_CENTS", 1500))


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    MAIL_BACKEND = "memory"
    NOTIFICATIONS_SYNC = True
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    ADMIN_EMAIL = "admin@example.com"
    SHIPPING_FEE_CENTS = 1500
