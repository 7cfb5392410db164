"""Global exception handling."""

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from pld.domains.compliance.errors import ConflictError, InvalidTransitionError, TierConfigError

logger = structlog.get_logger()


def _error(status_code: int, error: str, message: str, request_id: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "request_id": request_id, **extra},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")

    if isinstance(exc, InvalidTransitionError):
        logger.warning("transition_rejected", request_id=request_id, error=str(exc))
        return _error(
            409,
            "invalid_transition",
            str(exc),
            request_id,
            current_status=exc.current_status,
            action=exc.action,
        )

    if isinstance(exc, ConflictError):
        logger.warning("version_conflict", request_id=request_id, error=str(exc))
        return _error(
            409,
            "conflict",
            str(exc),
            request_id,
            expected_version=exc.expected_version,
            actual_version=exc.actual_version,
        )

    if isinstance(exc, TierConfigError):
        logger.error("catalog_error", request_id=request_id, error=str(exc))
        return _error(500, "catalog_error", str(exc), request_id)

    if isinstance(exc, ValueError):
        logger.warning("bad_request", request_id=request_id, error=str(exc))
        return _error(400, "bad_request", str(exc), request_id)

    if isinstance(exc, LookupError):
        logger.warning("not_found", request_id=request_id, error=str(exc))
        return _error(404, "not_found", str(exc), request_id)

    logger.exception("unhandled_exception", request_id=request_id, error=str(exc))
    return _error(500, "internal_server_error", "An unexpected error occurred", request_id)
