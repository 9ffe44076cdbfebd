# backend/billing/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/billing.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///billing.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Document numbering: <prefix>-<year>-<zero padded sequence>
    BILL_NUMBER_PREFIX = os.environ.get("BILL_NUMBER_PREFIX", "INV")
    PAYMENT_NUMBER_PREFIX = os.environ.get("PAYMENT_NUMBER_PREFIX", "PAY")
    SEQUENCE_PAD = int(os.environ.get("SEQUENCE_PAD", "5"))

    # Whole-operation retry on lock/serialization conflicts
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
