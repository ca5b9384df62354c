from __future__ import annotations

"""Hotel search conditions.

Turns normalized filter rules into a Mongo aggregation pipeline over the
`hotels` collection. Every sub-predicate that is present is AND-ed; an absent
filter contributes nothing. For identical input the pipeline is structurally
identical, so the same stages can be reused for the count and the page.

Predicates on room types (price band, date availability) are "at least one
non-deleted room type matches" lookups.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from booking_core.domain.filters import Band, FilterRules
from booking_core.domain.geo import GeoPoint, distance_expression, has_coordinates_condition

SEARCH_FIELDS = (
    "name_zh",
    "name_en",
    "address",
    "tags",
    "facilities",
    "nearby_attractions",
)

# Word boundary for prefix matching: start of text or a separator.
_WORD_START = r"(?:^|[\s,;:/()\-])"


@dataclass(frozen=True)
class HotelSearchCriteria:
    rules: FilterRules
    keyword: Optional[str] = None
    facilities: Tuple[str, ...] = ()
    origin: Optional[GeoPoint] = None
    # None: no availability window requested.
    unavailable_room_type_ids: Optional[Tuple[Any, ...]] = None


def base_condition() -> Dict[str, Any]:
    return {"deleted_at": None, "status": "approved"}


def keyword_terms(keyword: Optional[str]) -> List[str]:
    if not keyword:
        return []
    return [term for term in keyword.strip().split() if term]


def keyword_condition(keyword: Optional[str]) -> Optional[Dict[str, Any]]:
    """Every whitespace-separated term must prefix-match a word in one of SEARCH_FIELDS."""
    clauses = []
    for term in keyword_terms(keyword):
        pattern = _WORD_START + re.escape(term)
        clauses.append({"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS]})
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def facilities_condition(facilities: Sequence[str]) -> Optional[Dict[str, Any]]:
    wanted = [f.strip() for f in facilities if isinstance(f, str) and f.strip()]
    wanted = list(dict.fromkeys(wanted))
    if not wanted:
        return None
    return {"facilities": {"$in": wanted}}


def band_condition(field: str, band: Optional[Band]) -> Optional[Dict[str, Any]]:
    """`low <= field <= high`; a 0 lower bound and an infinite upper bound are left out."""
    if band is None:
        return None
    low, high = band
    bounds: Dict[str, Any] = {}
    if low > 0:
        bounds["$gte"] = low
    if high != math.inf:
        bounds["$lte"] = high
    if not bounds:
        return None
    return {field: bounds}


def price_room_type_match(band: Band) -> Dict[str, Any]:
    # Base price, not the discounted one.
    match: Dict[str, Any] = {"deleted_at": None}
    price = band_condition("price", band)
    if price:
        match.update(price)
    return match


def available_room_type_match(unavailable_ids: Sequence[Any]) -> Dict[str, Any]:
    match: Dict[str, Any] = {"deleted_at": None}
    if unavailable_ids:
        match["_id"] = {"$nin": list(unavailable_ids)}
    return match


def room_type_exists_stages(alias: str, match: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        {
            "$lookup": {
                "from": "room_types",
                "let": {"hotel_id": "$_id"},
                "pipeline": [
                    {"$match": {"$expr": {"$eq": ["$hotel_id", "$$hotel_id"]}, **match}},
                    {"$limit": 1},
                    {"$project": {"_id": 1}},
                ],
                "as": alias,
            }
        },
        {"$match": {alias: {"$ne": []}}},
        {"$project": {alias: 0}},
    ]


def hotel_match(criteria: HotelSearchCriteria) -> Dict[str, Any]:
    rules = criteria.rules
    clauses: List[Dict[str, Any]] = [base_condition()]
    for clause in (
        keyword_condition(criteria.keyword),
        facilities_condition(criteria.facilities),
        band_condition("star_rating", rules.star_rating),
        band_condition("average_rating", rules.average_rating),
    ):
        if clause is not None:
            clauses.append(clause)
    if criteria.origin is not None:
        clauses.append(has_coordinates_condition())

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def build_hotel_pipeline(criteria: HotelSearchCriteria) -> List[Dict[str, Any]]:
    rules = criteria.rules
    stages: List[Dict[str, Any]] = [{"$match": hotel_match(criteria)}]

    if rules.price is not None:
        stages.extend(room_type_exists_stages("_price_match", price_room_type_match(rules.price)))

    if criteria.unavailable_room_type_ids is not None:
        stages.extend(
            room_type_exists_stages(
                "_available_room_types",
                available_room_type_match(criteria.unavailable_room_type_ids),
            )
        )

    if criteria.origin is not None:
        stages.append({"$addFields": {"distance": distance_expression(criteria.origin)}})
        distance = band_condition("distance", rules.distance)
        if distance is not None:
            stages.append({"$match": distance})

    return stages
