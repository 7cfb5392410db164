"""FastAPI application entry point for the PLD compliance engine."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pld.api.middleware.error_handler import global_exception_handler
from pld.api.middleware.logging import StructuredLoggingMiddleware
from pld.api.routes.compliance import build_engine, configure_engine
from pld.api.routes.compliance import router as pld_router
from pld.api.routes.health import router as health_router
from pld.config import settings
from pld.domains.compliance.errors import ComplianceEngineError
from pld.shared.logging import setup_logging

logger = structlog.get_logger()

# Track app start time for uptime calculation
APP_START_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown logic."""
    global APP_START_TIME
    APP_START_TIME = time.time()
    setup_logging(settings.log_level)

    logger.info(
        "pld_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        operation_store=settings.operation_store,
        debug=settings.debug,
    )

    if settings.operation_store == "sql":
        from pld.db.database import async_session_factory, engine, init_db
        from pld.db.store import SqlOperationStore

        await init_db()
        configure_engine(build_engine(SqlOperationStore(async_session_factory)))
    else:
        configure_engine(build_engine())

    yield

    if settings.operation_store == "sql":
        await engine.dispose()
    logger.info("pld_shutting_down")


app = FastAPI(
    title="PLD Compliance Engine",
    description="Risk scoring and threshold accumulation for LFPIORPI actividades vulnerables",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Structured logging middleware
app.add_middleware(StructuredLoggingMiddleware)

# Domain and lookup errors are answered by the exception middleware; the
# Exception handler is the last-resort 500
for exc_class in (ComplianceEngineError, ValueError, LookupError, Exception):
    app.add_exception_handler(exc_class, global_exception_handler)

# Register routers
app.include_router(health_router)
app.include_router(pld_router)


def get_uptime() -> int:
    """Get application uptime in seconds."""
    if APP_START_TIME == 0.0:
        return 0
    return int(time.time() - APP_START_TIME)
