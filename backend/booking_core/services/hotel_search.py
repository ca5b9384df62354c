from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from booking_core import config
from booking_core.domain.conditions import HotelSearchCriteria, build_hotel_pipeline
from booking_core.domain.filters import normalize_search_params, with_default_radius
from booking_core.domain.geo import GeoPoint
from booking_core.domain.pricing import Promotion, annotate_room_types, min_discounted_price
from booking_core.domain.sorting import page_slice, requires_priced_sort, sort_by_price, sort_spec
from booking_core.errors import NotFound
from booking_core.repositories.booking_repository import BookingRepository
from booking_core.repositories.hotel_repository import HotelRepository
from booking_core.repositories.promotion_repository import PromotionRepository
from booking_core.services.availability import resolve_unavailable_room_types
from booking_core.utils import today_str

logger = logging.getLogger(__name__)


class HotelSearchService:
    """Search and detail reads for approved hotels.

    Flow: normalize filters -> resolve booked-out room types -> build the
    pipeline -> fetch one page of ids (or every id when sorting by price) ->
    hydrate -> price room types -> re-sort by price when asked.
    """

    def __init__(
        self,
        hotels: HotelRepository,
        promotions: PromotionRepository,
        bookings: BookingRepository,
        *,
        default_radius_km: Optional[float] = None,
    ) -> None:
        self._hotels = hotels
        self._promotions = promotions
        self._bookings = bookings
        self._default_radius_km = (
            config.DEFAULT_SEARCH_RADIUS_KM if default_radius_km is None else default_radius_km
        )

    async def search(
        self,
        params: Mapping[str, Any],
        *,
        keyword: Optional[str] = None,
        facilities: Sequence[str] = (),
        user_lat: Optional[float] = None,
        user_lng: Optional[float] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        normalized = normalize_search_params(params)
        rules = normalized.rules

        origin = None
        if user_lat is not None and user_lng is not None:
            origin = GeoPoint(lat=float(user_lat), lng=float(user_lng))
            rules = with_default_radius(rules, self._default_radius_km)

        unavailable = await resolve_unavailable_room_types(self._bookings, rules)
        criteria = HotelSearchCriteria(
            rules=rules,
            keyword=keyword,
            facilities=tuple(facilities),
            origin=origin,
            unavailable_room_type_ids=unavailable,
        )
        pipeline = build_hotel_pipeline(criteria)
        sort = sort_spec(normalized.sort_by, normalized.reversed, has_geo=origin is not None)
        today = today_str()

        if requires_priced_sort(normalized.sort_by):
            rows, total = await self._hotels.find_hotel_ids(pipeline, sort)
            rows = await self._sort_rows_by_price(rows, today, normalized.reversed)
            page_rows = page_slice(rows, page, limit)
        else:
            page_rows, total = await self._hotels.find_hotel_ids(pipeline, sort, skip=(page - 1) * limit, limit=limit)

        logger.debug(
            "hotel search: total=%d page=%d sort=%s geo=%s", total, page, normalized.sort_by, origin is not None
        )

        if not page_rows:
            return {"hotels": [], "total": total, "page": page}

        hotel_ids = [row["_id"] for row in page_rows]
        distances = {row["_id"]: row.get("distance") for row in page_rows}
        hotels = await self._hotels.load_hotels_with_relations(hotel_ids)
        promotions = await self._promotions.list_active(today, hotel_ids)

        out: List[Dict[str, Any]] = []
        for hotel in hotels:
            priced = self._with_pricing(hotel, promotions, today)
            if origin is not None and distances.get(hotel["_id"]) is not None:
                priced["distance"] = distances[hotel["_id"]]
            out.append(priced)
        return {"hotels": out, "total": total, "page": page}

    async def get_detail(self, hotel_id: str) -> Dict[str, Any]:
        hotel = await self._hotels.get(hotel_id)
        if hotel is None:
            raise NotFound("Hotel not found", {"hotel_id": hotel_id}, code="hotel_not_found")

        loaded = await self._hotels.load_hotels_with_relations([hotel["_id"]])
        today = today_str()
        promotions = await self._promotions.list_active(today, [hotel["_id"]])
        return self._with_pricing(loaded[0], promotions, today)

    async def _sort_rows_by_price(
        self, rows: List[Dict[str, Any]], today: str, reversed: bool
    ) -> List[Dict[str, Any]]:
        hotel_ids = [row["_id"] for row in rows]
        room_types = await self._hotels.list_room_types(hotel_ids)
        promotions = await self._promotions.list_active(today, hotel_ids)
        min_prices = {
            hotel_id: min_discounted_price(annotate_room_types(room_types.get(hotel_id, []), promotions, today))
            for hotel_id in hotel_ids
        }
        return sort_by_price(rows, lambda row: min_prices[row["_id"]], reversed=reversed)

    @staticmethod
    def _with_pricing(hotel: Dict[str, Any], promotions: List[Promotion], today: str) -> Dict[str, Any]:
        out = dict(hotel)
        out["room_types"] = annotate_room_types(hotel.get("room_types") or [], promotions, today)
        out["promotions"] = [
            p for p in promotions if p.hotel_id is not None and str(p.hotel_id) == str(hotel["_id"])
        ]
        return out
