"""Health check router."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.config import VERSION

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Return health status with a real DB connectivity check."""
    pool = getattr(request.app.state, "pool", None)
    db_ok = False
    if pool is not None:
        try:
            await pool.fetchval("SELECT 1")
            db_ok = True
        except Exception:
            db_ok = False

    if db_ok:
        return {"status": "ok", "db": "connected"}
    return JSONResponse(
        {"status": "degraded", "db": "unreachable"},
        status_code=503,
    )


@router.get("/health/version")
async def health_version() -> dict:
    """Return the application version."""
    return {"version": VERSION}
