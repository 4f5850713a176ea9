# backend/fieldledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fieldledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Reconciliation writes retry on lock contention / stale versions
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.1"))
    # Seconds to wait for a pooled connection before the write is retried
    LEDGER_POOL_TIMEOUT = float(os.environ.get("LEDGER_POOL_TIMEOUT", "10"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Set by the upstream authentication layer; carries the caller's account id
    PRINCIPAL_HEADER = os.environ.get("PRINCIPAL_HEADER", "X-Principal-Id")

    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100
