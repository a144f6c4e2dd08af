# backend/latidos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/latidos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///latidos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Optimistic-concurrency retry loop for financial units of work
    LATIDOS_RETRY_ATTEMPTS = int(os.environ.get("LATIDOS_RETRY_ATTEMPTS", "3"))
    LATIDOS_RETRY_BACKOFF = float(os.environ.get("LATIDOS_RETRY_BACKOFF", "0.1"))

    # When enabled, every mutating finance route requires an operator PIN
    LATIDOS_REQUIRE_SIGNER = os.environ.get("LATIDOS_REQUIRE_SIGNER", "false").lower() == "true"
