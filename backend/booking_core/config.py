from __future__ import annotations

"""Application configuration.

Everything is read from the environment once at import time. `.env` is
loaded by `server.py` before this module is imported.
"""

import os


def _env_flag(name: str, default: bool = True) -> bool:
    """Read a boolean-like flag from environment.

    Accepted falsy values: "0", "false", "off", "no" (case-insensitive).
    Anything else (or unset) falls back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


# Application constants
API_PREFIX = "/api"
APP_NAME = "Hotel Booking Core API"
APP_VERSION = "1.0.0"
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

# Search
DEFAULT_SEARCH_RADIUS_KM: float = _env_float("DEFAULT_SEARCH_RADIUS_KM", 10.0)
DEFAULT_PAGE_SIZE: int = _env_int("DEFAULT_PAGE_SIZE", 10)
MAX_PAGE_SIZE: int = _env_int("MAX_PAGE_SIZE", 50)

# Storage
# Multi-document transactions need a replica set; standalone servers fall
# back to the guarded update + compensating rollback path.
MONGO_USE_TRANSACTIONS: bool = _env_flag("MONGO_USE_TRANSACTIONS", default=True)
ENSURE_INDEXES: bool = _env_flag("ENSURE_INDEXES", default=True)
