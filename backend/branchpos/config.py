# backend/branchpos/config.py
from __future__ import annotations
import os

from flask import current_app, has_app_context


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file in the working directory unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///branchpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Applied by create_app() to SQLite engines only: concurrent writers wait
    # on the write lock instead of failing immediately
    SQLITE_BUSY_TIMEOUT_SECONDS = _int_env("SQLITE_BUSY_TIMEOUT_SECONDS", 15)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Generated identifiers: <prefix>-<epoch ms>-<random suffix>
    TRANSACTION_NUMBER_PREFIX = os.environ.get("TRANSACTION_NUMBER_PREFIX", "TXN")
    CUSTOMER_CODE_PREFIX = os.environ.get("CUSTOMER_CODE_PREFIX", "CUST")
    IDENTIFIER_RETRY_ATTEMPTS = _int_env("IDENTIFIER_RETRY_ATTEMPTS", 3)

    # One loyalty point per 10.00 of completed sales
    LOYALTY_CENTS_PER_POINT = _int_env("LOYALTY_CENTS_PER_POINT", 1000)

    # Lifetime spend (cents) needed for each membership tier; upgrades only
    MEMBERSHIP_THRESHOLDS_CENTS = {
        "SILVER": 100_000,
        "GOLD": 500_000,
        "PLATINUM": 1_000_000,
    }


def setting(key: str, default=None):
    """Config lookup that also works outside an app context (scripts, plain unit tests)."""
    if has_app_context():
        return current_app.config.get(key, default)
    return getattr(Config, key, default)
