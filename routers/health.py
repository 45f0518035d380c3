# routers/health.py

from typing import Optional

from fastapi import APIRouter, Depends, Response

from core.backend import Backend
from core.config import settings
from core.logging_config import logger
from core.supabase_client import get_backend, ping_supabase

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)

# Statuses that mean the database cannot serve requests
UNHEALTHY = {"error", "not_configured"}


# -----------------------------------------------------
# GET /health/db
# Reads one row from each table this service owns.
# No auth; answers 503 when the database is unusable.
# -----------------------------------------------------
@router.get("/db", summary="Supabase / DB health check")
async def health_db(response: Response, backend: Optional[Backend] = Depends(get_backend)):
    try:
        report = await ping_supabase(backend)
    except Exception as e:
        logger.error(f"DB health check failed: {e}")
        report = {"service": "Supabase", "status": "error", "error": str(e)}

    if report.get("status") in UNHEALTHY:
        response.status_code = 503
    return report


# -----------------------------------------------------
# GET /health/app
# -----------------------------------------------------
@router.get("/app", summary="App health check")
async def health_app():
    return {
        "service": settings.PROJECT_NAME,
        "environment": settings.ENV,
        "status": "ok",
    }
