from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent

# Load .env before booking_core.config reads the environment
env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from booking_core import config
from booking_core.db import close_mongo, connect_mongo, get_db
from booking_core.exception_handlers import register_exception_handlers
from booking_core.indexes.hotel_indexes import ensure_hotel_indexes
from booking_core.middleware.correlation_id import CorrelationIdMiddleware
from booking_core.middleware.structured_logging_middleware import StructuredLoggingMiddleware
from booking_core.routers.bookings import router as bookings_router
from booking_core.routers.health import router as health_router
from booking_core.routers.hotels import router as hotels_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("booking-core")

app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION)

# Added in reverse: correlation id runs first so the access log can read it.
app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-Id"],
)

register_exception_handlers(app)

# Routers (/api prefix is on each router)
app.include_router(health_router)
app.include_router(hotels_router)
app.include_router(bookings_router)


@app.get("/health")
async def deployment_health() -> dict[str, Any]:
    """Simple health check for deployment platforms"""
    return {"ok": True, "service": "booking-core", "status": "healthy"}


@app.on_event("startup")
async def _startup() -> None:
    await connect_mongo()
    if config.ENSURE_INDEXES:
        await ensure_hotel_indexes(await get_db())
    logger.info("Startup complete (transactions=%s)", config.MONGO_USE_TRANSACTIONS)


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_mongo()
    logger.info("Shutdown complete")
