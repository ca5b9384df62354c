from __future__ import annotations

import logging

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


async def ensure_hotel_indexes(db):
    async def _safe_create(collection, *args, **kwargs):
        try:
            await collection.create_index(*args, **kwargs)
        except PyMongoError as exc:
            logger.warning("index %s on %s not created: %s", kwargs.get("name"), collection.name, exc)

    # hotels: visibility filter + default sort
    await _safe_create(
        db.hotels,
        [("status", ASCENDING), ("deleted_at", ASCENDING), ("created_at", DESCENDING)],
        name="hotels_visible_by_created",
    )
    await _safe_create(
        db.hotels,
        [("owner_id", ASCENDING), ("deleted_at", ASCENDING)],
        name="hotels_by_owner",
    )
    await _safe_create(db.hotels, [("star_rating", ASCENDING)], name="hotels_by_star")
    await _safe_create(db.hotels, [("facilities", ASCENDING)], name="hotels_by_facility")

    # room_types: hydration and price/availability lookups
    await _safe_create(
        db.room_types,
        [("hotel_id", ASCENDING), ("deleted_at", ASCENDING), ("price", ASCENDING)],
        name="room_types_by_hotel_price",
    )

    # promotions: active-window reads
    await _safe_create(
        db.promotions,
        [("hotel_id", ASCENDING), ("start_date", ASCENDING), ("end_date", ASCENDING)],
        name="promotions_by_hotel_window",
    )

    # bookings: overlap scan and per-user / per-hotel listings
    await _safe_create(
        db.bookings,
        [("room_type_id", ASCENDING), ("status", ASCENDING), ("check_in", ASCENDING), ("check_out", ASCENDING)],
        name="bookings_overlap",
    )
    await _safe_create(
        db.bookings,
        [("user_id", ASCENDING), ("created_at", DESCENDING)],
        name="bookings_by_user",
    )
    await _safe_create(
        db.bookings,
        [("hotel_id", ASCENDING), ("created_at", DESCENDING)],
        name="bookings_by_hotel",
    )
