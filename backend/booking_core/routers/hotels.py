from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query

from booking_core import config
from booking_core.deps import get_hotel_search_service
from booking_core.domain.filters import parse_rules
from booking_core.errors import ValidationFailed
from booking_core.schemas import HotelOut, HotelSearchIn
from booking_core.services.hotel_search import HotelSearchService

router = APIRouter(prefix="/api/hotels", tags=["hotels"])


def _render(result: dict[str, Any]) -> dict[str, Any]:
    return {
        "hotels": [HotelOut.from_doc(h).to_response() for h in result["hotels"]],
        "total": result["total"],
        "page": result["page"],
    }


async def _run_search(service: HotelSearchService, payload: HotelSearchIn) -> dict[str, Any]:
    if (payload.user_lat is None) != (payload.user_lng is None):
        raise ValidationFailed("userLat and userLng must be given together", code="invalid_location")
    result = await service.search(
        payload.filter_params(),
        keyword=payload.keyword,
        facilities=payload.facilities,
        user_lat=payload.user_lat,
        user_lng=payload.user_lng,
        page=payload.page,
        limit=payload.limit,
    )
    return _render(result)


@router.get("")
async def list_hotels(
    keyword: Optional[str] = None,
    check_in: Optional[str] = Query(default=None, alias="checkIn"),
    check_out: Optional[str] = Query(default=None, alias="checkOut"),
    star_rating: Optional[int] = Query(default=None, alias="starRating"),
    facilities: Optional[List[str]] = Query(default=None),
    price_min: Optional[float] = Query(default=None, alias="priceMin"),
    price_max: Optional[float] = Query(default=None, alias="priceMax"),
    user_lat: Optional[float] = Query(default=None, alias="userLat", ge=-90, le=90),
    user_lng: Optional[float] = Query(default=None, alias="userLng", ge=-180, le=180),
    radius: Optional[float] = Query(default=None, ge=0.1, le=100),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    reversed: bool = False,
    rules: Optional[str] = Query(default=None, description="JSON-encoded filter rules"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    service: HotelSearchService = Depends(get_hotel_search_service),
):
    """Query-string variant of the search; `rules` arrives as a JSON string."""
    payload = HotelSearchIn(
        keyword=keyword,
        check_in=check_in,
        check_out=check_out,
        star_rating=star_rating,
        facilities=facilities or [],
        price_min=price_min,
        price_max=price_max,
        user_lat=user_lat,
        user_lng=user_lng,
        radius=radius,
        sort_by=sort_by,
        reversed=reversed,
        rules=dict(parse_rules(rules)) or None,
        page=page,
        limit=limit,
    )
    return await _run_search(service, payload)


@router.post("/search")
async def search_hotels(payload: HotelSearchIn, service: HotelSearchService = Depends(get_hotel_search_service)):
    return await _run_search(service, payload)


@router.get("/{hotel_id}")
async def get_hotel(hotel_id: str, service: HotelSearchService = Depends(get_hotel_search_service)):
    hotel = await service.get_detail(hotel_id)
    return HotelOut.from_doc(hotel).to_response()
