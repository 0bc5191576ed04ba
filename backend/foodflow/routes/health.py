"""
FoodFlow Backend: Health Check Route
=====================================

What:  Liveness/readiness document for load balancers and monitoring.

Status levels:
    healthy    database and Gemini reachable
    degraded   database reachable, recognition unavailable; likes and
               notifications keep working
    unhealthy  database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from foodflow import __version__
from foodflow.database import engine
from foodflow.schemas.common import HealthResponse
from foodflow.services.gemini_service import CircuitBreaker, gemini_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_started_at = time.monotonic()


async def probe_database() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health probe: database unreachable: %s", e)
        return "disconnected"
    return "connected"


async def probe_gemini() -> str:
    # An open breaker already answers the question without a network call
    if gemini_service.circuit_breaker.state == CircuitBreaker.OPEN:
        return "circuit_open"
    if await gemini_service.health_check():
        return "available"
    return "unavailable"


def overall_status(database: str, gemini: str) -> str:
    if database != "connected":
        return "unhealthy"
    if gemini != "available":
        return "degraded"
    return "healthy"


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check() -> HealthResponse:
    database = await probe_database()
    gemini = await probe_gemini()
    return HealthResponse(
        status=overall_status(database, gemini),
        version=__version__,
        database=database,
        gemini=gemini,
        uptime_seconds=round(time.monotonic() - _started_at, 2),
    )
