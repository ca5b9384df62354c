from __future__ import annotations

from typing import Any, List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase

from booking_core.domain.pricing import Promotion
from booking_core.repositories.base_repository import get_collection, visible
from booking_core.utils import to_object_id


class PromotionRepository:
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db
        self._col = get_collection(db, "promotions")

    async def list_active(self, today: str, hotel_ids: Optional[Sequence[Any]] = None) -> List[Promotion]:
        """Promotions whose window contains `today`, optionally narrowed to
        the given hotels (global promotions are always included)."""

        flt = visible(
            {
                "start_date": {"$lte": today},
                "end_date": {"$gte": today},
            }
        )
        if hotel_ids is not None:
            flt["hotel_id"] = {"$in": [*hotel_ids, None]}
        docs = await self._col.find(flt).sort("_id", 1).to_list(length=None)
        return [Promotion.from_doc(doc) for doc in docs]

    async def get(self, promotion_id: str) -> Optional[Promotion]:
        oid = to_object_id(promotion_id)
        if oid is None:
            return None
        doc = await self._col.find_one(visible({"_id": oid}))
        return Promotion.from_doc(doc) if doc else None
