"""System health endpoint."""

import logging
import time
from typing import Optional

import asyncpg
import psutil
from fastapi import APIRouter
from pydantic import BaseModel

from database import get_pool

logger = logging.getLogger(__name__)

STARTED_AT = time.time()

# Create router
router = APIRouter(
    prefix="/system",
    tags=["System"]
)

class SystemHealth(BaseModel):
    """Model for system health data."""
    status: str
    uptime: float
    cpu_usage: float
    memory_usage: float
    disk_usage: float
    database_status: str
    schema_version: Optional[int] = None

@router.get("/health", response_model=SystemHealth)
async def get_system_health():
    """Get system health status; degraded when the database is unreachable."""
    cpu_percent = psutil.cpu_percent()
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage('/')

    db_status = "connected"
    schema_version = None
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            schema_version = await conn.fetchval('SELECT max(version) FROM schema_version')
    except (asyncpg.PostgresError, OSError, RuntimeError) as e:
        logger.error(f"Health check could not reach the database: {e}")
        db_status = "unavailable"

    return SystemHealth(
        status="healthy" if db_status == "connected" and cpu_percent < 80 else "degraded",
        uptime=time.time() - STARTED_AT,
        cpu_usage=cpu_percent,
        memory_usage=memory.percent,
        disk_usage=disk.percent,
        database_status=db_status,
        schema_version=schema_version
    )

# Export the router
__all__ = ['router']
