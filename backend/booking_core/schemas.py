from __future__ import annotations

import dataclasses
from datetime import date
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from booking_core import config
from booking_core.utils import serialize_doc

BookingStatusName = Literal["pending", "confirmed", "cancelled", "completed"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _drop_none(data: Any) -> Any:
    """Stored rows may carry explicit nulls; let field defaults apply instead."""
    if isinstance(data, dict):
        return {k: _drop_none(v) for k, v in data.items() if v is not None}
    if isinstance(data, list):
        return [_drop_none(v) for v in data]
    return data


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class HotelSearchIn(CamelModel):
    """Body of POST /api/hotels/search.

    Carries both the flat legacy parameters and the structured `rules`;
    reconciliation happens in the filter normalizer, so `rules` and `sortBy`
    are accepted loosely here.
    """

    keyword: Optional[str] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    star_rating: Optional[int] = None
    facilities: list[str] = Field(default_factory=list)
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    user_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    user_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    radius: Optional[float] = Field(default=None, ge=0.1, le=100)
    sort_by: Optional[str] = None
    reversed: bool = False
    rules: Union[dict[str, Any], str, None] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE)

    def filter_params(self) -> dict[str, Any]:
        """Flat parameter bag in the shape the normalizer reads."""
        return {
            "checkIn": self.check_in,
            "checkOut": self.check_out,
            "starRating": self.star_rating,
            "priceMin": self.price_min,
            "priceMax": self.price_max,
            "radius": self.radius,
            "sortBy": self.sort_by,
            "reversed": self.reversed,
            "rules": self.rules,
        }


class RoomTypeOut(CamelModel):
    id: str
    hotel_id: str
    name: str = ""
    price: float
    stock: int = 0
    capacity: Optional[int] = None
    description: Optional[str] = None
    discounted_price: Optional[float] = None


class PromotionOut(CamelModel):
    id: str
    hotel_id: Optional[str] = None
    room_type_id: Optional[str] = None
    type: str
    value: float
    start_date: str
    end_date: str


class HotelOut(CamelModel):
    id: str
    name_zh: str = ""
    name_en: Optional[str] = None
    owner_id: Optional[str] = None
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    star_rating: int = 0
    opening_date: Optional[str] = None
    nearby_attractions: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    facilities: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    average_rating: float = 0.0
    rating_count: int = 0
    status: str
    status_description: Optional[str] = None
    created_at: Optional[str] = None
    room_types: list[RoomTypeOut] = Field(default_factory=list)
    promotions: list[PromotionOut] = Field(default_factory=list)
    distance: Optional[float] = None

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "HotelOut":
        raw = dict(doc)
        raw["promotions"] = [
            dataclasses.asdict(p) if dataclasses.is_dataclass(p) else p for p in raw.get("promotions") or []
        ]
        return cls.model_validate(_drop_none(serialize_doc(raw)))

    def to_response(self) -> dict[str, Any]:
        out = self.model_dump(mode="json", by_alias=True)
        # distance is only part of geo search responses
        if self.distance is None:
            out.pop("distance", None)
        return out


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class BookingCreateIn(CamelModel):
    hotel_id: str = Field(min_length=1)
    room_type_id: str = Field(min_length=1)
    check_in: date
    check_out: date
    promotion_id: Optional[str] = None


class BookingHotelOut(CamelModel):
    """Hotel attached to a booking. Listings load only id, nameZh and address."""

    id: str
    name_zh: str = ""
    name_en: Optional[str] = None
    address: str = ""
    owner_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    star_rating: Optional[int] = None
    images: Optional[list[str]] = None
    status: Optional[str] = None


class BookingRoomTypeOut(CamelModel):
    id: str
    name: str = ""
    price: float = 0.0
    stock: Optional[int] = None
    capacity: Optional[int] = None
    description: Optional[str] = None


class BookingOut(CamelModel):
    id: str
    user_id: str
    hotel_id: str
    room_type_id: str
    check_in: str
    check_out: str
    total_price: float
    status: BookingStatusName
    promotion_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    hotel: Optional[BookingHotelOut] = None
    room_type: Optional[BookingRoomTypeOut] = None
    promotion: Optional[PromotionOut] = None

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "BookingOut":
        raw = dict(doc)
        if dataclasses.is_dataclass(raw.get("promotion")):
            raw["promotion"] = dataclasses.asdict(raw["promotion"])
        return cls.model_validate(_drop_none(serialize_doc(raw)))


class BookingListOut(CamelModel):
    bookings: list[BookingOut]
    total: int
    page: int


class DeletedOut(BaseModel):
    message: Literal["Deleted"] = "Deleted"
