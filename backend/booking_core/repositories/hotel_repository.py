from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from booking_core.repositories.base_repository import get_collection, visible
from booking_core.utils import to_object_id


class HotelRepository:
    """Read access to hotels and their room types.

    Hotels and room types are owned by the hotel management service; the core
    only reads them, except for the guarded stock counter handled by
    BookingRepository.
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db
        self._hotels = get_collection(db, "hotels")
        self._room_types = get_collection(db, "room_types")

    async def find_hotel_ids(
        self,
        pipeline: List[Dict[str, Any]],
        sort: Dict[str, int],
        *,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Run the search pipeline; returns ([{_id, distance?}], total matching)."""

        rows_stages: List[Dict[str, Any]] = [{"$sort": sort}]
        if skip:
            rows_stages.append({"$skip": skip})
        if limit is not None:
            rows_stages.append({"$limit": limit})
        rows_stages.append({"$project": {"_id": 1, "distance": 1}})

        facet = {
            "$facet": {
                "rows": rows_stages,
                "total": [{"$count": "n"}],
            }
        }
        cursor = self._hotels.aggregate([*pipeline, facet])
        result = await cursor.to_list(length=1)
        if not result:
            return [], 0
        doc = result[0]
        total = int(doc["total"][0]["n"]) if doc.get("total") else 0
        return list(doc.get("rows") or []), total

    async def load_hotels_with_relations(self, hotel_ids: Sequence[Any]) -> List[Dict[str, Any]]:
        """Hotels with their non-deleted room types, in the order of `hotel_ids`."""

        if not hotel_ids:
            return []
        docs = await self._hotels.find({"_id": {"$in": list(hotel_ids)}}).to_list(length=len(hotel_ids))
        room_types = await self.list_room_types(hotel_ids)

        by_id = {doc["_id"]: doc for doc in docs}
        out: List[Dict[str, Any]] = []
        for hotel_id in hotel_ids:
            doc = by_id.get(hotel_id)
            if doc is None:
                continue
            hotel = dict(doc)
            hotel["room_types"] = room_types.get(hotel_id, [])
            out.append(hotel)
        return out

    async def list_room_types(self, hotel_ids: Sequence[Any]) -> Dict[Any, List[Dict[str, Any]]]:
        grouped: Dict[Any, List[Dict[str, Any]]] = {hotel_id: [] for hotel_id in hotel_ids}
        if not hotel_ids:
            return grouped
        cursor = self._room_types.find(visible({"hotel_id": {"$in": list(hotel_ids)}})).sort("_id", 1)
        async for doc in cursor:
            grouped.setdefault(doc["hotel_id"], []).append(doc)
        return grouped

    async def get(self, hotel_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(hotel_id)
        if oid is None:
            return None
        return await self._hotels.find_one(visible({"_id": oid}))

    async def get_room_type(self, room_type_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(room_type_id)
        if oid is None:
            return None
        return await self._room_types.find_one(visible({"_id": oid}))

    async def list_owned_hotel_ids(self, owner_id: str) -> List[Any]:
        cursor = self._hotels.find(visible({"owner_id": owner_id}), {"_id": 1})
        return [doc["_id"] async for doc in cursor]

    async def find_hotels(
        self, hotel_ids: Sequence[Any], projection: Optional[Dict[str, int]] = None
    ) -> Dict[Any, Dict[str, Any]]:
        """Hotels keyed by `_id`, soft-deleted ones included (bookings keep pointing at them)."""

        return await self._find_by_ids(self._hotels, hotel_ids, projection)

    async def find_room_types(
        self, room_type_ids: Sequence[Any], projection: Optional[Dict[str, int]] = None
    ) -> Dict[Any, Dict[str, Any]]:
        return await self._find_by_ids(self._room_types, room_type_ids, projection)

    @staticmethod
    async def _find_by_ids(col, ids: Sequence[Any], projection: Optional[Dict[str, int]]) -> Dict[Any, Dict[str, Any]]:
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return {}
        cursor = col.find({"_id": {"$in": wanted}}, projection)
        return {doc["_id"]: doc async for doc in cursor}
