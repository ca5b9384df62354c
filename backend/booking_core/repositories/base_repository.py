from __future__ import annotations

from typing import Any, Dict

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from booking_core.errors import AppError, Conflict, InternalError


def get_collection(db: AsyncIOMotorDatabase, name: str) -> AsyncIOMotorCollection:
    """Return a Motor collection from the given database.

    This is the only place where repositories should obtain collections.
    """

    return db[name]


def visible(filter_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Scope a filter to rows that are not soft-deleted."""

    f = dict(filter_dict or {})
    f.setdefault("deleted_at", None)
    return f


def translate_write_error(exc: PyMongoError, operation: str) -> AppError:
    """Map a failed write to the caller-facing error class.

    Transient transaction failures (write conflicts, primary step-downs) are
    surfaced as retryable conflicts; anything else is internal.
    """

    if exc.has_error_label("TransientTransactionError") or exc.has_error_label("UnknownTransactionCommitResult"):
        return Conflict(
            "Concurrent update, retry the request",
            {"operation": operation},
            code="transaction_conflict",
            retryable=True,
        )
    return InternalError("Storage failure", {"operation": operation})
