from __future__ import annotations

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from booking_core.db import get_db
from booking_core.repositories.booking_repository import BookingRepository
from booking_core.repositories.hotel_repository import HotelRepository
from booking_core.repositories.promotion_repository import PromotionRepository
from booking_core.services.booking_service import BookingService
from booking_core.services.hotel_search import HotelSearchService


async def get_hotel_repository(db: AsyncIOMotorDatabase = Depends(get_db)) -> HotelRepository:
    return HotelRepository(db)


async def get_promotion_repository(db: AsyncIOMotorDatabase = Depends(get_db)) -> PromotionRepository:
    return PromotionRepository(db)


async def get_booking_repository(db: AsyncIOMotorDatabase = Depends(get_db)) -> BookingRepository:
    return BookingRepository(db)


async def get_hotel_search_service(
    hotels: HotelRepository = Depends(get_hotel_repository),
    promotions: PromotionRepository = Depends(get_promotion_repository),
    bookings: BookingRepository = Depends(get_booking_repository),
) -> HotelSearchService:
    return HotelSearchService(hotels, promotions, bookings)


async def get_booking_service(
    bookings: BookingRepository = Depends(get_booking_repository),
    hotels: HotelRepository = Depends(get_hotel_repository),
    promotions: PromotionRepository = Depends(get_promotion_repository),
) -> BookingService:
    return BookingService(bookings, hotels, promotions)
