from __future__ import annotations

"""Search filter normalization.

Callers may send the flat legacy parameters (`radius`, `checkIn`/`checkOut`,
`priceMin`/`priceMax`, `starRating`) and/or the structured `rules` object with
range pairs. Both shapes are folded into one `FilterRules` here, once, at the
boundary. A `rules` entry always wins over the legacy parameter for the same
concern.

Normalization never fails: values with an unusable shape are dropped.
"""

import json
import math
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Mapping, Optional, Tuple

from booking_core.utils import parse_iso_date

SORT_KEYS = ("distance", "price", "rating", "createdAt")

Band = Tuple[float, float]
DateWindow = Tuple[date, date]


@dataclass(frozen=True)
class FilterRules:
    distance: Optional[Band] = None
    check_date: Optional[DateWindow] = None
    price: Optional[Band] = None
    star_rating: Optional[Band] = None
    average_rating: Optional[Band] = None


@dataclass(frozen=True)
class NormalizedSearch:
    rules: FilterRules
    sort_by: Optional[str] = None
    reversed: bool = False


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def _band(value: Any) -> Optional[Band]:
    """[min, max] pair; a missing bound becomes 0 / +inf."""
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return None
    low_raw, high_raw = value
    low = _number(low_raw)
    high = _number(high_raw)
    if low is None and low_raw is not None:
        return None
    if high is None and high_raw is not None:
        return None
    return (0.0 if low is None else low, math.inf if high is None else high)


def _window(check_in: Any, check_out: Any) -> Optional[DateWindow]:
    start = parse_iso_date(check_in)
    end = parse_iso_date(check_out)
    if start is None or end is None or end <= start:
        return None
    return (start, end)


def _window_pair(value: Any) -> Optional[DateWindow]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return None
    return _window(value[0], value[1])


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def parse_rules(raw: Any) -> Mapping[str, Any]:
    """Accept the structured rules as a mapping or a JSON-encoded object."""
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except ValueError:
            return {}
        if isinstance(decoded, Mapping):
            return decoded
    return {}


def normalize_search_params(params: Mapping[str, Any]) -> NormalizedSearch:
    rules_in = parse_rules(params.get("rules"))

    distance = _band(rules_in.get("distance"))
    if distance is None:
        radius = _number(params.get("radius"))
        if radius is not None:
            distance = (0.0, radius)

    check_date = _window_pair(rules_in.get("checkDate"))
    if check_date is None:
        check_date = _window(params.get("checkIn"), params.get("checkOut"))

    price = _band(rules_in.get("price"))
    if price is None:
        price_min = _number(params.get("priceMin"))
        price_max = _number(params.get("priceMax"))
        if price_min is not None or price_max is not None:
            price = (
                0.0 if price_min is None else price_min,
                math.inf if price_max is None else price_max,
            )

    star_rating = _band(rules_in.get("starRating"))
    if star_rating is None:
        star = _number(params.get("starRating"))
        if star is not None:
            star_rating = (star, star)

    # "avarageRating" is the spelling existing clients send.
    average_rating = _band(rules_in.get("avarageRating", rules_in.get("averageRating")))

    sort_by = params.get("sortBy")
    if sort_by not in SORT_KEYS:
        sort_by = None

    return NormalizedSearch(
        rules=FilterRules(
            distance=distance,
            check_date=check_date,
            price=price,
            star_rating=star_rating,
            average_rating=average_rating,
        ),
        sort_by=sort_by,
        reversed=_flag(params.get("reversed", False)),
    )


def with_default_radius(rules: FilterRules, radius_km: float) -> FilterRules:
    """Geo searches without an explicit band are bounded by the default radius."""
    if rules.distance is not None:
        return rules
    return replace(rules, distance=(0.0, radius_km))
