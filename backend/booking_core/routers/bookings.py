from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from booking_core import config
from booking_core.auth import Identity, get_current_identity, require_roles
from booking_core.deps import get_booking_service
from booking_core.schemas import BookingCreateIn, BookingListOut, BookingOut, BookingStatusName, DeletedOut
from booking_core.services.booking_service import BookingService

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


def _list_out(result: dict) -> BookingListOut:
    return BookingListOut(
        bookings=[BookingOut.from_doc(b) for b in result["bookings"]],
        total=result["total"],
        page=result["page"],
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=BookingOut)
async def create_booking(
    payload: BookingCreateIn,
    identity: Identity = Depends(require_roles(["customer"])),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.create(
        identity,
        hotel_id=payload.hotel_id,
        room_type_id=payload.room_type_id,
        check_in=payload.check_in,
        check_out=payload.check_out,
        promotion_id=payload.promotion_id,
    )
    return BookingOut.from_doc(booking)


@router.get("", response_model=BookingListOut)
async def list_my_bookings(
    status_filter: Optional[BookingStatusName] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    identity: Identity = Depends(require_roles(["customer"])),
    service: BookingService = Depends(get_booking_service),
):
    result = await service.list_for_customer(identity, status=status_filter, page=page, limit=limit)
    return _list_out(result)


# Registered before /{booking_id} so the literal paths win.
@router.get("/merchant", response_model=BookingListOut)
async def list_merchant_bookings(
    hotel_id: Optional[str] = Query(default=None, alias="hotelId"),
    status_filter: Optional[BookingStatusName] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    identity: Identity = Depends(require_roles(["merchant"])),
    service: BookingService = Depends(get_booking_service),
):
    result = await service.list_for_merchant(identity, hotel_id=hotel_id, status=status_filter, page=page, limit=limit)
    return _list_out(result)


@router.get("/admin", response_model=BookingListOut, dependencies=[Depends(require_roles(["admin"]))])
async def list_all_bookings(
    hotel_id: Optional[str] = Query(default=None, alias="hotelId"),
    status_filter: Optional[BookingStatusName] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    service: BookingService = Depends(get_booking_service),
):
    result = await service.list_for_admin(hotel_id=hotel_id, status=status_filter, page=page, limit=limit)
    return _list_out(result)


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: str,
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
):
    return BookingOut.from_doc(await service.get(identity, booking_id))


@router.put("/{booking_id}/confirm", response_model=BookingOut)
async def confirm_booking(
    booking_id: str,
    identity: Identity = Depends(require_roles(["merchant", "admin"])),
    service: BookingService = Depends(get_booking_service),
):
    return BookingOut.from_doc(await service.confirm(identity, booking_id))


@router.put("/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(
    booking_id: str,
    identity: Identity = Depends(require_roles(["customer", "merchant", "admin"])),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a pending or confirmed booking and give its unit back."""
    return BookingOut.from_doc(await service.cancel(identity, booking_id))


@router.delete("/{booking_id}", response_model=DeletedOut)
async def delete_booking(
    booking_id: str,
    identity: Identity = Depends(require_roles(["admin"])),
    service: BookingService = Depends(get_booking_service),
):
    await service.delete(identity, booking_id)
    return DeletedOut()
