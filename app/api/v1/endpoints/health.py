"""Health check endpoints."""

import time
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging_config import get_logger
from app.db.session import get_db

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "healthy", "environment": settings.APP_ENV}


@router.get("/db")
async def database_health(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """Database health check with query latency."""
    try:
        start_time = time.perf_counter()
        result = await db.execute(text("SELECT 1"))
        result.scalar_one()
        query_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "database": "disconnected", "error": type(e).__name__}

    return {"status": "healthy", "database": "connected", "query_time_ms": query_time_ms}
