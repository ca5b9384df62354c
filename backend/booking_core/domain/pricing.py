from __future__ import annotations

"""Discount pricing.

A room type's discounted price is its base price folded through every active
promotion whose scope covers it. Promotions have no priority field, so the
fold runs in ascending promotion id order to keep the result stable across
storage engines. The result is floored at zero; the base price is never
touched. Nothing here is cached: activity depends on the calendar day.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

PROMOTION_TYPES = ("direct", "percentage", "spend_and_save")


@dataclass(frozen=True)
class Promotion:
    id: Any
    type: str
    value: float
    start_date: str
    end_date: str
    hotel_id: Any = None
    room_type_id: Any = None
    deleted: bool = False

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Promotion":
        promo_type = str(doc.get("type") or "direct")
        if promo_type not in PROMOTION_TYPES:
            promo_type = "direct"
        return cls(
            id=doc.get("_id"),
            type=promo_type,
            value=float(doc.get("value") or 0.0),
            start_date=str(doc.get("start_date") or ""),
            end_date=str(doc.get("end_date") or ""),
            hotel_id=doc.get("hotel_id"),
            room_type_id=doc.get("room_type_id"),
            deleted=doc.get("deleted_at") is not None,
        )

    def is_active(self, today: str) -> bool:
        """Not deleted and `start_date <= today <= end_date` (YYYY-MM-DD strings)."""
        if self.deleted:
            return False
        return self.start_date <= today <= self.end_date

    def applies_to(self, hotel_id: Any, room_type_id: Any) -> bool:
        """Room-type scoped, hotel scoped or global (both scopes empty)."""
        if self.room_type_id is not None and str(self.room_type_id) != str(room_type_id):
            return False
        if self.hotel_id is not None and str(self.hotel_id) != str(hotel_id):
            return False
        return True


def apply_promotion(price: float, promotion: Promotion) -> float:
    if promotion.type == "percentage":
        # value is a multiplier: 0.85 means 15% off
        return price * promotion.value
    # spend_and_save has no minimum-spend threshold and behaves like direct
    return price - promotion.value


def discounted_price(base_price: float, promotions: Iterable[Promotion]) -> float:
    price = float(base_price)
    for promotion in promotions:
        price = apply_promotion(price, promotion)
    return max(0.0, price)


def promotions_for_room_type(
    promotions: Iterable[Promotion],
    *,
    hotel_id: Any,
    room_type_id: Any,
    today: str,
) -> List[Promotion]:
    matching = [p for p in promotions if p.is_active(today) and p.applies_to(hotel_id, room_type_id)]
    return sorted(matching, key=lambda p: str(p.id))


def annotate_room_types(
    room_types: Sequence[Mapping[str, Any]],
    promotions: Sequence[Promotion],
    today: str,
) -> List[dict]:
    """Copies of `room_types`, each with a derived `discounted_price`."""
    out: List[dict] = []
    for room_type in room_types:
        applicable = promotions_for_room_type(
            promotions,
            hotel_id=room_type.get("hotel_id"),
            room_type_id=room_type.get("_id"),
            today=today,
        )
        annotated = dict(room_type)
        annotated["discounted_price"] = discounted_price(float(room_type.get("price") or 0.0), applicable)
        out.append(annotated)
    return out


def min_discounted_price(room_types: Sequence[Mapping[str, Any]]) -> float:
    """Cheapest discounted price of a hotel; +inf when it has no room types."""
    prices = [
        float(rt["discounted_price"])
        for rt in room_types
        if rt.get("discounted_price") is not None and not math.isnan(float(rt["discounted_price"]))
    ]
    return min(prices) if prices else math.inf


def nightly_rate(base_price: float, promotion: Optional[Promotion]) -> float:
    """Per-night rate charged at booking time: base price, optionally reduced by one chosen promotion."""
    if promotion is None:
        return float(base_price)
    return discounted_price(base_price, [promotion])
