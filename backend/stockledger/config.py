# backend/stockledger/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Blob storage for invoice / delivery order documents
    FILE_STORAGE_DIR = os.environ.get("FILE_STORAGE_DIR", "instance/files")
    FILE_BASE_URL = os.environ.get("FILE_BASE_URL", "/files")

    # Aggregation engine
    REPORT_CACHE_TTL_SECONDS = int(os.environ.get("REPORT_CACHE_TTL_SECONDS", "300"))
    REPORT_PAGE_SIZE = int(os.environ.get("REPORT_PAGE_SIZE", "500"))

    # Categories with no meaningful physical size (matched after normalization)
    SIZELESS_CATEGORIES = _csv_env("SIZELESS_CATEGORIES", "Others")

    # Store limits: keys per IN (...) lookup, rows per atomic batch
    STORE_WHERE_IN_LIMIT = int(os.environ.get("STORE_WHERE_IN_LIMIT", "10"))
    STORE_MAX_BATCH_WRITES = int(os.environ.get("STORE_MAX_BATCH_WRITES", "500"))

    # run_with_retry tuning
    STORE_RETRY_ATTEMPTS = int(os.environ.get("STORE_RETRY_ATTEMPTS", "3"))
    STORE_RETRY_BACKOFF_SECONDS = float(os.environ.get("STORE_RETRY_BACKOFF_SECONDS", "0.1"))

    DEFAULT_STOCK_IN_LOCATION = os.environ.get("DEFAULT_STOCK_IN_LOCATION", "HQ")
