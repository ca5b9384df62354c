from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from booking_core import config
from booking_core.domain.booking_state_machine import STOCK_HOLDING_STATUSES
from booking_core.repositories.base_repository import get_collection, translate_write_error, visible
from booking_core.utils import now_utc, to_object_id

logger = logging.getLogger(__name__)


def overlap_filter(check_in: date, check_out: date) -> Dict[str, Any]:
    """Stock-holding bookings whose [check_in, check_out) overlaps the window.

    Soft-deleted bookings still hold their unit, so they are not excluded.
    """

    return {
        "status": {"$in": sorted(STOCK_HOLDING_STATUSES)},
        "check_in": {"$lt": check_out.isoformat()},
        "check_out": {"$gt": check_in.isoformat()},
    }


class BookingRepository:
    """Bookings plus the stock counter they hold.

    Stock moves only through guarded single-document updates
    (`stock > 0` for a hold, current status for a release), so two writers
    can never both win. With transactions enabled the stock update and the
    booking write commit together; without them a failed second write is
    compensated before the error propagates.
    """

    def __init__(self, db: AsyncIOMotorDatabase, *, use_transactions: Optional[bool] = None) -> None:
        self._db = db
        self._col = get_collection(db, "bookings")
        self._room_types = get_collection(db, "room_types")
        self._use_transactions = config.MONGO_USE_TRANSACTIONS if use_transactions is None else use_transactions

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, booking_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(booking_id)
        if oid is None:
            return None
        return await self._col.find_one(visible({"_id": oid}))

    async def list_bookings(
        self,
        *,
        user_id: Optional[str] = None,
        hotel_ids: Optional[Iterable[Any]] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Dict[str, Any]], int]:
        flt: Dict[str, Any] = visible({})
        if user_id is not None:
            flt["user_id"] = user_id
        if hotel_ids is not None:
            flt["hotel_id"] = {"$in": list(hotel_ids)}
        if status:
            flt["status"] = status

        total = await self._col.count_documents(flt)
        cursor = self._col.find(flt).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return docs, total

    async def unavailable_room_type_ids(self, check_in: date, check_out: date) -> List[Any]:
        ids = await self._col.distinct("room_type_id", overlap_filter(check_in, check_out))
        return sorted(ids, key=str)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_with_stock_hold(self, booking: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Take one stock unit of the booking's room type and insert the booking.

        Returns the inserted document, or None when no unit was left.
        """

        try:
            if self._use_transactions:
                async with await self._db.client.start_session() as session:
                    async with session.start_transaction():
                        return await self._hold_and_insert(booking, session=session)
            return await self._hold_and_insert_compensating(booking)
        except PyMongoError as exc:
            logger.warning("booking create failed for room_type %s: %s", booking.get("room_type_id"), exc)
            raise translate_write_error(exc, "create_booking") from exc

    async def _take_unit(self, room_type_id: Any, session: Optional[AsyncIOMotorClientSession] = None) -> bool:
        doc = await self._room_types.find_one_and_update(
            {"_id": room_type_id, "deleted_at": None, "stock": {"$gt": 0}},
            {"$inc": {"stock": -1}, "$set": {"updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return doc is not None

    async def _return_unit(self, room_type_id: Any, session: Optional[AsyncIOMotorClientSession] = None) -> None:
        await self._room_types.update_one(
            {"_id": room_type_id},
            {"$inc": {"stock": 1}, "$set": {"updated_at": now_utc()}},
            session=session,
        )

    async def _hold_and_insert(
        self, booking: Dict[str, Any], session: AsyncIOMotorClientSession
    ) -> Optional[Dict[str, Any]]:
        if not await self._take_unit(booking["room_type_id"], session=session):
            return None
        doc = dict(booking)
        res = await self._col.insert_one(doc, session=session)
        doc["_id"] = res.inserted_id
        return doc

    async def _hold_and_insert_compensating(self, booking: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        room_type_id = booking["room_type_id"]
        if not await self._take_unit(room_type_id):
            return None
        doc = dict(booking)
        try:
            res = await self._col.insert_one(doc)
        except PyMongoError:
            await self._return_unit(room_type_id)
            raise
        doc["_id"] = res.inserted_id
        return doc

    async def transition(
        self,
        booking_id: Any,
        *,
        from_statuses: Iterable[str],
        to_status: str,
    ) -> Optional[Dict[str, Any]]:
        """Status change without stock effect, guarded on the current status.

        Returns the updated booking, or None when it was no longer in one of
        `from_statuses`.
        """

        try:
            return await self._col.find_one_and_update(
                {"_id": booking_id, "status": {"$in": sorted(from_statuses)}},
                {"$set": {"status": to_status, "updated_at": now_utc()}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise translate_write_error(exc, "transition_booking") from exc

    async def cancel_with_restock(
        self,
        booking_id: Any,
        *,
        from_statuses: Iterable[str],
    ) -> Optional[Dict[str, Any]]:
        """Move the booking to `cancelled` and give its stock unit back.

        The status flip is the guard: only the caller that actually moved the
        booking out of `from_statuses` restocks. Returns None otherwise.
        """

        try:
            if self._use_transactions:
                async with await self._db.client.start_session() as session:
                    async with session.start_transaction():
                        return await self._cancel_and_restock(booking_id, from_statuses, session=session)
            return await self._cancel_and_restock_compensating(booking_id, from_statuses)
        except PyMongoError as exc:
            logger.warning("booking cancel failed for %s: %s", booking_id, exc)
            raise translate_write_error(exc, "cancel_booking") from exc

    async def _flip_to_cancelled(
        self,
        booking_id: Any,
        from_statuses: Iterable[str],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Optional[Dict[str, Any]]:
        return await self._col.find_one_and_update(
            {"_id": booking_id, "status": {"$in": sorted(from_statuses)}},
            {"$set": {"status": "cancelled", "updated_at": now_utc()}},
            return_document=ReturnDocument.BEFORE,
            session=session,
        )

    async def _cancel_and_restock(
        self,
        booking_id: Any,
        from_statuses: Iterable[str],
        session: AsyncIOMotorClientSession,
    ) -> Optional[Dict[str, Any]]:
        before = await self._flip_to_cancelled(booking_id, from_statuses, session=session)
        if before is None:
            return None
        await self._return_unit(before["room_type_id"], session=session)
        return await self._col.find_one({"_id": booking_id}, session=session)

    async def _cancel_and_restock_compensating(
        self,
        booking_id: Any,
        from_statuses: Iterable[str],
    ) -> Optional[Dict[str, Any]]:
        before = await self._flip_to_cancelled(booking_id, from_statuses)
        if before is None:
            return None
        try:
            await self._return_unit(before["room_type_id"])
        except PyMongoError:
            await self._col.update_one(
                {"_id": booking_id, "status": "cancelled"},
                {"$set": {"status": before["status"], "updated_at": now_utc()}},
            )
            raise
        return await self._col.find_one({"_id": booking_id})

    async def soft_delete(self, booking_id: str) -> bool:
        oid = to_object_id(booking_id)
        if oid is None:
            return False
        now = now_utc()
        res = await self._col.update_one(visible({"_id": oid}), {"$set": {"deleted_at": now, "updated_at": now}})
        return res.matched_count == 1
