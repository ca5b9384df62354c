from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from booking_core.auth import Identity
from booking_core.domain.booking_state_machine import (
    BookingStateTransitionError,
    sources_for,
    validate_transition,
)
from booking_core.domain.pricing import Promotion, nightly_rate
from booking_core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from booking_core.repositories.booking_repository import BookingRepository
from booking_core.repositories.hotel_repository import HotelRepository
from booking_core.repositories.promotion_repository import PromotionRepository
from booking_core.utils import now_utc, to_object_id, today_str

logger = logging.getLogger(__name__)

# Listings carry a short hotel and room type; a single read carries them in full.
_HOTEL_SUMMARY = {"_id": 1, "name_zh": 1, "address": 1}
_ROOM_TYPE_SUMMARY = {"_id": 1, "name": 1, "price": 1}


class BookingService:
    """Booking lifecycle: create, confirm, cancel, soft-delete and reads.

    Validation and lookups happen before any write. The writes themselves
    (stock hold + insert, cancel + restock, status change) are single guarded
    repository operations; losing a race there surfaces as a Conflict.
    """

    def __init__(
        self,
        bookings: BookingRepository,
        hotels: HotelRepository,
        promotions: PromotionRepository,
    ) -> None:
        self._bookings = bookings
        self._hotels = hotels
        self._promotions = promotions

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        identity: Identity,
        *,
        hotel_id: str,
        room_type_id: str,
        check_in: date,
        check_out: date,
        promotion_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        nights = (check_out - check_in).days
        if nights < 1:
            raise ValidationFailed(
                "checkOut must be after checkIn",
                {"check_in": check_in.isoformat(), "check_out": check_out.isoformat()},
                code="invalid_stay_dates",
            )

        room_type = await self._hotels.get_room_type(room_type_id)
        if room_type is None:
            raise NotFound("Room type not found", {"room_type_id": room_type_id}, code="room_type_not_found")

        if str(room_type.get("hotel_id")) != str(hotel_id):
            raise ValidationFailed(
                "Room type does not belong to hotel",
                {"hotel_id": hotel_id, "room_type_id": room_type_id},
                code="room_type_hotel_mismatch",
            )

        hotel = await self._hotels.get(hotel_id)
        if hotel is None or hotel.get("status") != "approved":
            raise NotFound("Hotel not found", {"hotel_id": hotel_id}, code="hotel_not_found")

        if int(room_type.get("stock") or 0) <= 0:
            raise Conflict("Room type is sold out", {"room_type_id": room_type_id}, code="stock_exhausted")

        promotion = None
        if promotion_id:
            promotion = await self._applicable_promotion(promotion_id, hotel["_id"], room_type["_id"])

        rate = nightly_rate(float(room_type.get("price") or 0.0), promotion)
        now = now_utc()
        doc: Dict[str, Any] = {
            "user_id": identity.id,
            "hotel_id": hotel["_id"],
            "room_type_id": room_type["_id"],
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
            "total_price": round(rate * nights, 2),
            "status": "pending",
            "promotion_id": promotion.id if promotion else None,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
        }

        created = await self._bookings.create_with_stock_hold(doc)
        if created is None:
            logger.info("stock exhausted for room_type %s (user %s)", room_type_id, identity.id)
            raise Conflict("Room type is sold out", {"room_type_id": room_type_id}, code="stock_exhausted")

        logger.info(
            "booking %s created: room_type=%s nights=%d total=%.2f",
            created["_id"],
            room_type_id,
            nights,
            created["total_price"],
        )
        return created

    async def _applicable_promotion(self, promotion_id: str, hotel_id: Any, room_type_id: Any) -> Promotion:
        promotion = await self._promotions.get(promotion_id)
        if promotion is None:
            raise NotFound("Promotion not found", {"promotion_id": promotion_id}, code="promotion_not_found")
        if not promotion.is_active(today_str()) or not promotion.applies_to(hotel_id, room_type_id):
            raise ValidationFailed(
                "Promotion is not applicable to this room type today",
                {"promotion_id": promotion_id},
                code="promotion_not_applicable",
            )
        return promotion

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def confirm(self, identity: Identity, booking_id: str) -> Dict[str, Any]:
        booking = await self._get_visible(booking_id)
        await self._ensure_can_manage(identity, booking, allow_customer=False)
        self._ensure_transition(booking, "confirmed")

        updated = await self._bookings.transition(
            booking["_id"], from_statuses=sources_for("confirmed"), to_status="confirmed"
        )
        if updated is None:
            raise Conflict(
                "Booking changed concurrently",
                {"booking_id": booking_id},
                code="booking_state_changed",
                retryable=True,
            )
        logger.info("booking %s confirmed by %s:%s", booking_id, identity.role, identity.id)
        return updated

    async def cancel(self, identity: Identity, booking_id: str) -> Dict[str, Any]:
        booking = await self._get_visible(booking_id)
        await self._ensure_can_manage(identity, booking, allow_customer=True)
        self._ensure_transition(booking, "cancelled")

        updated = await self._bookings.cancel_with_restock(booking["_id"], from_statuses=sources_for("cancelled"))
        if updated is None:
            # Someone else moved it first; that caller did the restock.
            raise Conflict(
                "Booking is already cancelled or completed",
                {"booking_id": booking_id},
                code="invalid_state_transition",
            )
        logger.info(
            "booking %s cancelled by %s:%s, room_type %s restocked",
            booking_id,
            identity.role,
            identity.id,
            booking["room_type_id"],
        )
        return updated

    async def delete(self, identity: Identity, booking_id: str) -> None:
        if not identity.is_admin:
            raise Forbidden("Only admins can delete bookings")
        if not await self._bookings.soft_delete(booking_id):
            raise NotFound("Booking not found", {"booking_id": booking_id}, code="booking_not_found")
        logger.info("booking %s soft-deleted by admin %s", booking_id, identity.id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, identity: Identity, booking_id: str) -> Dict[str, Any]:
        booking = await self._get_visible(booking_id)
        await self._ensure_can_manage(identity, booking, allow_customer=True)
        return await self._with_details(booking)

    async def list_for_customer(
        self, identity: Identity, *, status: Optional[str], page: int, limit: int
    ) -> Dict[str, Any]:
        docs, total = await self._bookings.list_bookings(
            user_id=identity.id, status=status, skip=(page - 1) * limit, limit=limit
        )
        return {"bookings": await self._with_summaries(docs), "total": total, "page": page}

    async def list_for_merchant(
        self,
        identity: Identity,
        *,
        hotel_id: Optional[str],
        status: Optional[str],
        page: int,
        limit: int,
    ) -> Dict[str, Any]:
        owned = await self._hotels.list_owned_hotel_ids(identity.id)
        if hotel_id:
            wanted = to_object_id(hotel_id)
            owned = [h for h in owned if h == wanted]
        if not owned:
            return {"bookings": [], "total": 0, "page": page}
        docs, total = await self._bookings.list_bookings(
            hotel_ids=owned, status=status, skip=(page - 1) * limit, limit=limit
        )
        return {"bookings": await self._with_summaries(docs), "total": total, "page": page}

    async def list_for_admin(
        self, *, hotel_id: Optional[str], status: Optional[str], page: int, limit: int
    ) -> Dict[str, Any]:
        hotel_ids = None
        if hotel_id:
            oid = to_object_id(hotel_id)
            if oid is None:
                return {"bookings": [], "total": 0, "page": page}
            hotel_ids = [oid]
        docs, total = await self._bookings.list_bookings(
            hotel_ids=hotel_ids, status=status, skip=(page - 1) * limit, limit=limit
        )
        return {"bookings": await self._with_summaries(docs), "total": total, "page": page}

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    async def _with_details(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        hotels = await self._hotels.find_hotels([booking["hotel_id"]])
        room_types = await self._hotels.find_room_types([booking["room_type_id"]])
        out = dict(booking)
        out["hotel"] = hotels.get(booking["hotel_id"])
        out["room_type"] = room_types.get(booking["room_type_id"])
        out["promotion"] = None
        if booking.get("promotion_id") is not None:
            out["promotion"] = await self._promotions.get(str(booking["promotion_id"]))
        return out

    async def _with_summaries(self, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not docs:
            return []
        hotels = await self._hotels.find_hotels([d["hotel_id"] for d in docs], _HOTEL_SUMMARY)
        room_types = await self._hotels.find_room_types([d["room_type_id"] for d in docs], _ROOM_TYPE_SUMMARY)
        return [
            {**d, "hotel": hotels.get(d["hotel_id"]), "room_type": room_types.get(d["room_type_id"])} for d in docs
        ]

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    async def _get_visible(self, booking_id: str) -> Dict[str, Any]:
        booking = await self._bookings.get(booking_id)
        if booking is None:
            raise NotFound("Booking not found", {"booking_id": booking_id}, code="booking_not_found")
        return booking

    async def _ensure_can_manage(self, identity: Identity, booking: Dict[str, Any], *, allow_customer: bool) -> None:
        if identity.is_admin:
            return
        if identity.role == "customer":
            if allow_customer and booking.get("user_id") == identity.id:
                return
            raise Forbidden("Booking belongs to another customer", {"booking_id": str(booking["_id"])})
        if identity.role == "merchant":
            hotel = await self._hotels.get(str(booking["hotel_id"]))
            if hotel is not None and hotel.get("owner_id") == identity.id:
                return
            raise Forbidden("Booking belongs to a hotel you do not own", {"booking_id": str(booking["_id"])})
        raise Forbidden()

    @staticmethod
    def _ensure_transition(booking: Dict[str, Any], target: str) -> None:
        current = str(booking.get("status") or "")
        try:
            validate_transition(current, target)
        except BookingStateTransitionError as exc:
            raise Conflict(
                str(exc),
                {"booking_id": str(booking["_id"]), "status": current, "target": target},
                code="invalid_state_transition",
            ) from exc
