from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_str() -> str:
    """Current UTC calendar day as YYYY-MM-DD (the format dates are stored in)."""
    return now_utc().date().isoformat()


def parse_iso_date(raw: Any) -> Optional[date]:
    """Parse YYYY-MM-DD (a trailing time part is ignored). Returns None when invalid."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip().split("T")[0])
    except ValueError:
        return None


def serialize_doc(doc: Any) -> Any:
    """Recursively convert MongoDB docs into JSON-serializable structures."""
    if doc is None:
        return None

    if isinstance(doc, ObjectId):
        return str(doc)

    if isinstance(doc, datetime):
        return doc.isoformat()

    if isinstance(doc, list):
        return [serialize_doc(x) for x in doc]

    if isinstance(doc, dict):
        out: dict[str, Any] = {}
        for k, v in doc.items():
            if k == "_id":
                out["id"] = serialize_doc(v)
            else:
                out[k] = serialize_doc(v)
        return out

    return doc


def to_object_id(id_str: Any) -> Optional[ObjectId]:
    """ObjectId for a hex string, or None when the value is not a valid id."""
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        return None
