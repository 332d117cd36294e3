# This project was developed with assistance from AI tools.
"""Liveness and readiness checks."""

from db import DatabaseService, get_db_service
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.config import settings

router = APIRouter()


@router.get("/")
async def health() -> dict[str, str]:
    return {"status": "ok", "app": settings.APP_NAME}


@router.get("/ready")
async def ready(db_service: DatabaseService = Depends(get_db_service)):
    """Readiness: the database answers ``SELECT 1``."""
    if await db_service.health_check():
        return {"status": "ready", "database": "ok"}
    return JSONResponse(status_code=503, content={"status": "unavailable", "database": "error"})
