"""In-memory stand-ins for the Mongo repositories.

They share one `Store` and evaluate the same filter documents and pipeline
stages the real repositories send to MongoDB (only the operators the
condition builder emits), so service tests exercise the real query
construction end to end.
"""

from __future__ import annotations

import asyncio
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from booking_core.domain.booking_state_machine import STOCK_HOLDING_STATUSES
from booking_core.domain.pricing import Promotion
from booking_core.utils import to_object_id

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@dataclass
class Store:
    hotels: List[Dict[str, Any]] = field(default_factory=list)
    room_types: List[Dict[str, Any]] = field(default_factory=list)
    promotions: List[Dict[str, Any]] = field(default_factory=list)
    bookings: List[Dict[str, Any]] = field(default_factory=list)

    def add_hotel(self, **fields: Any) -> Dict[str, Any]:
        doc = {
            "_id": ObjectId(),
            "name_zh": "酒店",
            "name_en": "Hotel",
            "owner_id": "merchant-1",
            "address": "1 Main Road",
            "latitude": None,
            "longitude": None,
            "star_rating": 3,
            "facilities": [],
            "tags": [],
            "nearby_attractions": [],
            "images": [],
            "average_rating": 0.0,
            "rating_count": 0,
            "status": "approved",
            "created_at": _BASE_TIME + timedelta(minutes=len(self.hotels)),
            "deleted_at": None,
        }
        doc.update(fields)
        self.hotels.append(doc)
        return doc

    def add_room_type(self, hotel: Dict[str, Any], **fields: Any) -> Dict[str, Any]:
        doc = {
            "_id": ObjectId(),
            "hotel_id": hotel["_id"],
            "name": "Standard",
            "price": 100.0,
            "stock": 5,
            "deleted_at": None,
        }
        doc.update(fields)
        self.room_types.append(doc)
        return doc

    def add_promotion(self, **fields: Any) -> Dict[str, Any]:
        today = date.today()
        doc = {
            "_id": ObjectId(),
            "type": "direct",
            "value": 0.0,
            "start_date": (today - timedelta(days=1)).isoformat(),
            "end_date": (today + timedelta(days=1)).isoformat(),
            "hotel_id": None,
            "room_type_id": None,
            "deleted_at": None,
        }
        doc.update(fields)
        self.promotions.append(doc)
        return doc

    def add_booking(self, room_type: Dict[str, Any], **fields: Any) -> Dict[str, Any]:
        doc = {
            "_id": ObjectId(),
            "user_id": "customer-1",
            "hotel_id": room_type["hotel_id"],
            "room_type_id": room_type["_id"],
            "check_in": "2024-06-01",
            "check_out": "2024-06-03",
            "total_price": 0.0,
            "status": "pending",
            "promotion_id": None,
            "created_at": _BASE_TIME + timedelta(minutes=len(self.bookings)),
            "updated_at": _BASE_TIME,
            "deleted_at": None,
        }
        doc.update(fields)
        self.bookings.append(doc)
        return doc

    def room_type(self, room_type_id: Any) -> Dict[str, Any]:
        return next(rt for rt in self.room_types if rt["_id"] == room_type_id)


# ---------------------------------------------------------------------------
# Filter / pipeline evaluation
# ---------------------------------------------------------------------------


def _values(doc: Dict[str, Any], key: str) -> List[Any]:
    value = doc.get(key)
    if isinstance(value, list):
        return value
    return [value]


def _match_operator(doc: Dict[str, Any], key: str, op: str, arg: Any, options: str) -> bool:
    value = doc.get(key)
    if op == "$regex":
        flags = re.IGNORECASE if "i" in options else 0
        return any(isinstance(v, str) and re.search(arg, v, flags) for v in _values(doc, key))
    if op == "$options":
        return True
    if op == "$in":
        return any(v in arg for v in _values(doc, key))
    if op == "$nin":
        return not any(v in arg for v in _values(doc, key))
    if op == "$ne":
        return value != arg
    if op == "$gt":
        return value is not None and value > arg
    if op == "$gte":
        return value is not None and value >= arg
    if op == "$lt":
        return value is not None and value < arg
    if op == "$lte":
        return value is not None and value <= arg
    if op == "$type":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    raise AssertionError(f"unsupported operator {op}")


def matches(doc: Dict[str, Any], flt: Dict[str, Any], variables: Optional[Dict[str, Any]] = None) -> bool:
    for key, cond in flt.items():
        if key == "$and":
            if not all(matches(doc, sub, variables) for sub in cond):
                return False
        elif key == "$or":
            if not any(matches(doc, sub, variables) for sub in cond):
                return False
        elif key == "$expr":
            if not evaluate(doc, cond, variables):
                return False
        elif isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            options = cond.get("$options", "")
            if not all(_match_operator(doc, key, op, arg, options) for op, arg in cond.items()):
                return False
        elif doc.get(key) != cond:
            return False
    return True


_UNARY = {
    "$cos": math.cos,
    "$sin": math.sin,
    "$acos": math.acos,
    "$degreesToRadians": math.radians,
}


def evaluate(doc: Dict[str, Any], expr: Any, variables: Optional[Dict[str, Any]] = None) -> Any:
    if isinstance(expr, str) and expr.startswith("$$"):
        return (variables or {})[expr[2:]]
    if isinstance(expr, str) and expr.startswith("$"):
        return doc.get(expr[1:])
    if not isinstance(expr, dict):
        return expr
    ((op, arg),) = expr.items()
    if op in _UNARY:
        return _UNARY[op](evaluate(doc, arg, variables))
    args = [evaluate(doc, a, variables) for a in arg]
    if op == "$add":
        return sum(args)
    if op == "$multiply":
        return math.prod(args)
    if op == "$subtract":
        return args[0] - args[1]
    if op == "$min":
        return min(args)
    if op == "$max":
        return max(args)
    if op == "$eq":
        return args[0] == args[1]
    raise AssertionError(f"unsupported expression {op}")


def _sort_key_value(value: Any) -> Tuple[int, Any]:
    # Missing/null sorts before everything else, as in MongoDB.
    return (0, 0) if value is None else (1, value)


def sort_docs(docs: List[Dict[str, Any]], spec: Sequence[Tuple[str, int]]) -> List[Dict[str, Any]]:
    out = list(docs)
    for key, direction in reversed(list(spec)):
        out.sort(key=lambda d: _sort_key_value(d.get(key)), reverse=direction < 0)
    return out


class _Collections:
    def __init__(self, store: Store) -> None:
        self._store = store

    def __getitem__(self, name: str) -> List[Dict[str, Any]]:
        return getattr(self._store, name)


def run_pipeline(store: Store, docs: List[Dict[str, Any]], pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    collections = _Collections(store)
    current = [dict(d) for d in docs]
    for stage in pipeline:
        ((name, arg),) = stage.items()
        if name == "$match":
            current = [d for d in current if matches(d, arg)]
        elif name == "$lookup":
            foreign = collections[arg["from"]]
            out = []
            for d in current:
                variables = {k: evaluate(d, v) for k, v in arg.get("let", {}).items()}
                joined = run_lookup(foreign, arg["pipeline"], variables)
                out.append({**d, arg["as"]: joined})
            current = out
        elif name == "$limit":
            current = current[:arg]
        elif name == "$project":
            excluded = [k for k, v in arg.items() if v == 0]
            if excluded:
                current = [{k: v for k, v in d.items() if k not in excluded} for d in current]
            else:
                current = [{k: v for k, v in d.items() if k in arg} for d in current]
        elif name == "$addFields":
            current = [{**d, **{k: evaluate(d, v) for k, v in arg.items()}} for d in current]
        else:
            raise AssertionError(f"unsupported stage {name}")
    return current


def run_lookup(foreign: List[Dict[str, Any]], pipeline: List[Dict[str, Any]], variables: Dict[str, Any]) -> List[Dict[str, Any]]:
    current = list(foreign)
    for stage in pipeline:
        ((name, arg),) = stage.items()
        if name == "$match":
            current = [d for d in current if matches(d, arg, variables)]
        elif name == "$limit":
            current = current[:arg]
        elif name == "$project":
            current = [{k: v for k, v in d.items() if k in arg} for d in current]
        else:
            raise AssertionError(f"unsupported lookup stage {name}")
    return current


def _visible(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [d for d in docs if d.get("deleted_at") is None]


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class FakeHotelRepository:
    def __init__(self, store: Store) -> None:
        self._store = store

    async def find_hotel_ids(
        self,
        pipeline: List[Dict[str, Any]],
        sort: Dict[str, int],
        *,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        rows = run_pipeline(self._store, self._store.hotels, pipeline)
        rows = sort_docs(rows, list(sort.items()))
        total = len(rows)
        rows = rows[skip:] if limit is None else rows[skip : skip + limit]
        return [{k: v for k, v in r.items() if k in ("_id", "distance")} for r in rows], total

    async def load_hotels_with_relations(self, hotel_ids: Sequence[Any]) -> List[Dict[str, Any]]:
        room_types = await self.list_room_types(hotel_ids)
        by_id = {h["_id"]: h for h in self._store.hotels}
        return [{**by_id[i], "room_types": room_types.get(i, [])} for i in hotel_ids if i in by_id]

    async def list_room_types(self, hotel_ids: Sequence[Any]) -> Dict[Any, List[Dict[str, Any]]]:
        grouped: Dict[Any, List[Dict[str, Any]]] = {i: [] for i in hotel_ids}
        for rt in sorted(_visible(self._store.room_types), key=lambda r: r["_id"]):
            if rt["hotel_id"] in grouped:
                grouped[rt["hotel_id"]].append(dict(rt))
        return grouped

    async def get(self, hotel_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(hotel_id)
        return next((dict(h) for h in _visible(self._store.hotels) if h["_id"] == oid), None)

    async def get_room_type(self, room_type_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(room_type_id)
        return next((dict(r) for r in _visible(self._store.room_types) if r["_id"] == oid), None)

    async def list_owned_hotel_ids(self, owner_id: str) -> List[Any]:
        return [h["_id"] for h in _visible(self._store.hotels) if h.get("owner_id") == owner_id]

    async def find_hotels(
        self, hotel_ids: Sequence[Any], projection: Optional[Dict[str, int]] = None
    ) -> Dict[Any, Dict[str, Any]]:
        return _by_ids(self._store.hotels, hotel_ids, projection)

    async def find_room_types(
        self, room_type_ids: Sequence[Any], projection: Optional[Dict[str, int]] = None
    ) -> Dict[Any, Dict[str, Any]]:
        return _by_ids(self._store.room_types, room_type_ids, projection)


def _by_ids(
    docs: List[Dict[str, Any]], ids: Sequence[Any], projection: Optional[Dict[str, int]]
) -> Dict[Any, Dict[str, Any]]:
    wanted = set(ids)
    out = {}
    for doc in docs:
        if doc["_id"] in wanted:
            out[doc["_id"]] = {k: v for k, v in doc.items() if projection is None or k in projection}
    return out


class FakePromotionRepository:
    def __init__(self, store: Store) -> None:
        self._store = store

    async def list_active(self, today: str, hotel_ids: Optional[Sequence[Any]] = None) -> List[Promotion]:
        out = []
        for doc in sorted(_visible(self._store.promotions), key=lambda p: p["_id"]):
            if not (doc["start_date"] <= today <= doc["end_date"]):
                continue
            if hotel_ids is not None and doc.get("hotel_id") not in [*hotel_ids, None]:
                continue
            out.append(Promotion.from_doc(doc))
        return out

    async def get(self, promotion_id: str) -> Optional[Promotion]:
        oid = to_object_id(promotion_id)
        doc = next((p for p in _visible(self._store.promotions) if p["_id"] == oid), None)
        return Promotion.from_doc(doc) if doc else None


class FakeBookingRepository:
    """Same guarded-write contract as BookingRepository.

    The stock check-and-decrement and the status flips run without an await
    in between, which makes them atomic on the event loop the way a single
    `find_one_and_update` is atomic on the server.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    async def get(self, booking_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(booking_id)
        return next((dict(b) for b in _visible(self._store.bookings) if b["_id"] == oid), None)

    async def list_bookings(
        self,
        *,
        user_id: Optional[str] = None,
        hotel_ids: Optional[Sequence[Any]] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Dict[str, Any]], int]:
        docs = _visible(self._store.bookings)
        if user_id is not None:
            docs = [d for d in docs if d["user_id"] == user_id]
        if hotel_ids is not None:
            docs = [d for d in docs if d["hotel_id"] in list(hotel_ids)]
        if status:
            docs = [d for d in docs if d["status"] == status]
        docs = sort_docs(docs, [("created_at", -1), ("_id", -1)])
        return [dict(d) for d in docs[skip : skip + limit]], len(docs)

    async def unavailable_room_type_ids(self, check_in: date, check_out: date) -> List[Any]:
        ids = {
            b["room_type_id"]
            for b in self._store.bookings
            if b["status"] in STOCK_HOLDING_STATUSES
            and b["check_in"] < check_out.isoformat()
            and b["check_out"] > check_in.isoformat()
        }
        return sorted(ids, key=str)

    async def create_with_stock_hold(self, booking: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        room_type = next(
            (r for r in _visible(self._store.room_types) if r["_id"] == booking["room_type_id"]),
            None,
        )
        if room_type is None or room_type["stock"] <= 0:
            return None
        room_type["stock"] -= 1
        # Let concurrent callers interleave between the hold and the insert.
        await asyncio.sleep(0)
        doc = {**booking, "_id": ObjectId()}
        self._store.bookings.append(doc)
        return dict(doc)

    def _find(self, booking_id: Any) -> Optional[Dict[str, Any]]:
        return next((b for b in self._store.bookings if b["_id"] == booking_id), None)

    async def transition(self, booking_id: Any, *, from_statuses, to_status: str) -> Optional[Dict[str, Any]]:
        doc = self._find(booking_id)
        if doc is None or doc["status"] not in from_statuses:
            return None
        doc["status"] = to_status
        return dict(doc)

    async def cancel_with_restock(self, booking_id: Any, *, from_statuses) -> Optional[Dict[str, Any]]:
        doc = self._find(booking_id)
        if doc is None or doc["status"] not in from_statuses:
            return None
        doc["status"] = "cancelled"
        await asyncio.sleep(0)
        self._store.room_type(doc["room_type_id"])["stock"] += 1
        return dict(doc)

    async def soft_delete(self, booking_id: str) -> bool:
        oid = to_object_id(booking_id)
        doc = next((b for b in _visible(self._store.bookings) if b["_id"] == oid), None)
        if doc is None:
            return False
        doc["deleted_at"] = datetime.now(timezone.utc)
        return True


# ---------------------------------------------------------------------------
# Collections, for driving the real BookingRepository without a server
# ---------------------------------------------------------------------------


def _apply_update(doc: Dict[str, Any], update: Dict[str, Any]) -> None:
    for key, delta in update.get("$inc", {}).items():
        doc[key] = doc.get(key, 0) + delta
    doc.update(update.get("$set", {}))


class FakeCollection:
    """The single-document calls BookingRepository writes through.

    Every call yields to the event loop before touching the documents and
    then reads and writes without awaiting, so concurrent callers interleave
    between calls but each update is atomic, as on the server.
    """

    def __init__(self, docs: List[Dict[str, Any]]) -> None:
        self.docs = docs
        self.fail_inserts = False
        self.fail_updates = False

    def _first(self, flt: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return next((d for d in self.docs if matches(d, flt)), None)

    async def find_one(self, flt: Dict[str, Any], session: Any = None) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        doc = self._first(flt)
        return dict(doc) if doc else None

    async def find_one_and_update(
        self,
        flt: Dict[str, Any],
        update: Dict[str, Any],
        return_document: ReturnDocument = ReturnDocument.BEFORE,
        session: Any = None,
    ) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        doc = self._first(flt)
        if doc is None:
            return None
        before = dict(doc)
        _apply_update(doc, update)
        return dict(doc) if return_document == ReturnDocument.AFTER else before

    async def update_one(self, flt: Dict[str, Any], update: Dict[str, Any], session: Any = None) -> SimpleNamespace:
        await asyncio.sleep(0)
        if self.fail_updates:
            raise PyMongoError("update failed")
        doc = self._first(flt)
        if doc is not None:
            _apply_update(doc, update)
        return SimpleNamespace(matched_count=0 if doc is None else 1)

    async def insert_one(self, doc: Dict[str, Any], session: Any = None) -> SimpleNamespace:
        await asyncio.sleep(0)
        if self.fail_inserts:
            raise PyMongoError("insert failed")
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])


class FakeDatabase:
    def __init__(self, store: Store) -> None:
        self._collections = {
            "bookings": FakeCollection(store.bookings),
            "room_types": FakeCollection(store.room_types),
        }

    def __getitem__(self, name: str) -> FakeCollection:
        return self._collections[name]
