# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Retry policy for lock/version conflicts inside a transaction
    ENGINE_RETRY_ATTEMPTS = int(os.environ.get("ENGINE_RETRY_ATTEMPTS", "3"))
    ENGINE_RETRY_BACKOFF = float(os.environ.get("ENGINE_RETRY_BACKOFF", "0.1"))

    REPORT_TOP_PRODUCTS = int(os.environ.get("REPORT_TOP_PRODUCTS", "10"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
