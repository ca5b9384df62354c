from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from pymongo.errors import PyMongoError

from booking_core import config
from booking_core.db import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health() -> dict[str, Any]:
    """Health check with database ping"""
    db = await get_db()
    ok = False
    try:
        await db.command("ping")
        ok = True
    except PyMongoError as exc:
        logger.warning("health ping failed: %s", exc)
    return {"ok": ok, "service": "booking-core", "version": config.APP_VERSION}
