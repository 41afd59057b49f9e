# backend/cashdesk/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cashdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cashdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Till and reconciliation business constants
    DEFAULT_TILL = os.environ.get("CASHDESK_DEFAULT_TILL", "PRINCIPAL")
    RECONCILIATION_TOLERANCE = os.environ.get("CASHDESK_RECONCILIATION_TOLERANCE", "0.01")
    MOVEMENT_AUTHORIZATION_THRESHOLD = os.environ.get("CASHDESK_AUTHORIZATION_THRESHOLD", "10000")

    # Daily consolidation
    DAILY_REPORT_SHIFT_COUNT = int(os.environ.get("CASHDESK_DAILY_REPORT_SHIFT_COUNT", "3"))
    DAILY_REPORT_TOP_PRODUCTS = 10
    DAILY_REPORT_DIR = os.environ.get("CASHDESK_DAILY_REPORT_DIR")
    MAX_REPORT_RECIPIENTS = 5
    REPORT_DISPATCH_ASYNC = _env_bool("CASHDESK_REPORT_DISPATCH_ASYNC", True)

    # Calendar days are cut in this zone
    BUSINESS_TIMEZONE = os.environ.get("CASHDESK_TIMEZONE", "UTC")

    # Outbound mail (report delivery). No MAIL_SERVER means log-only delivery.
    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_FROM = os.environ.get("MAIL_FROM", "cashdesk@localhost")

    # Background report delivery (Celery worker: celery -A cashdesk.celery_app worker -Q email)
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
