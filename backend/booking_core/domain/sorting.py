from __future__ import annotations

import math
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def sort_spec(sort_by: Optional[str], reversed: bool, has_geo: bool) -> Dict[str, int]:
    """Mongo `$sort` document for one sort key; `_id` desc breaks ties.

    `price` is not pushed down (it needs discounted prices). Its candidates
    come back in insertion order (`_id` asc) and are re-sorted stably after
    pricing, so equal prices keep insertion order.
    """

    if sort_by == "price":
        return {"_id": 1}
    if sort_by == "distance" and has_geo:
        field, direction = "distance", -1 if reversed else 1
    elif sort_by == "rating":
        field, direction = "average_rating", 1 if reversed else -1
    elif sort_by == "createdAt":
        field, direction = "created_at", 1 if reversed else -1
    elif has_geo:
        field, direction = "distance", 1
    else:
        field, direction = "created_at", -1
    return {field: direction, "_id": -1}


def requires_priced_sort(sort_by: Optional[str]) -> bool:
    return sort_by == "price"


def sort_by_price(items: Sequence[T], price_of: Callable[[T], float], reversed: bool = False) -> List[T]:
    """Stable sort on the cheapest discounted price.

    Equal prices keep their incoming order. Items without any price (no
    room types) go last in either direction.
    """

    priced = [item for item in items if price_of(item) != math.inf]
    unpriced = [item for item in items if price_of(item) == math.inf]
    return sorted(priced, key=price_of, reverse=reversed) + unpriced


def page_slice(items: Sequence[Any], page: int, limit: int) -> List[Any]:
    offset = (page - 1) * limit
    return list(items[offset : offset + limit])
