"""Health & Readiness Probes.

Invariants:
    - GET /health/ answers 200 whenever the process is serving (liveness)
    - GET /health/ready answers 503 while the SQL backend cannot reach its database

Design Decisions:
    - The in-memory backend has nothing external to wait on and is always ready
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from campus.config import Settings, get_settings
from campus.infrastructure import database

router = APIRouter(prefix="/api/v1/health", tags=["health"])

SERVICE = {"service": "campus-api", "version": "1.0.0"}


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    return {"status": "healthy", **SERVICE}


@router.get("/ready")
async def readiness_check(settings: Settings = Depends(get_settings)):
    if settings.store_backend == "memory":
        return {"status": "ready", "checks": {"store": "memory"}}

    manager = database.db_manager
    if manager is not None and await manager.health_check():
        return {"status": "ready", "checks": {"database": "healthy"}}
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "reason": "database_unavailable"},
    )
