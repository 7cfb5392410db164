"""Health and readiness endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from pld.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    from pld.api.routes.compliance import get_engine
    from pld.main import get_uptime

    return {
        "status": "healthy",
        "version": settings.app_version,
        "uptime_seconds": get_uptime(),
        "catalog_version": get_engine().catalog.version,
    }


@router.get("/ready")
async def ready() -> JSONResponse:
    db_ok = True
    if settings.operation_store == "sql":
        from pld.db.database import check_db

        db_ok = await check_db()

    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={
            "status": "ready" if db_ok else "degraded",
            "operation_store": settings.operation_store,
            "database": db_ok,
        },
    )
