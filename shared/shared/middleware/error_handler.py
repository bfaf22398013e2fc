import logging
from collections.abc import Awaitable, Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import DBAPIError

from shared.database.retry import StoreUnavailableError, is_transient_store_error

logger = logging.getLogger(__name__)


def _envelope(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {"code": code, "message": message},
            "request_id": getattr(request.state, "request_id", None),
        },
    )


def _is_store_outage(exc: Exception) -> bool:
    if isinstance(exc, StoreUnavailableError):
        return True
    return isinstance(exc, DBAPIError) and is_transient_store_error(exc)


async def error_envelope_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    try:
        return await call_next(request)
    except StarletteHTTPException as exc:
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return _envelope(request, exc.status_code, "http_error", detail)
    except Exception as exc:
        if not _is_store_outage(exc):
            logger.exception("Unhandled exception")
            return _envelope(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "internal_error",
                "An unexpected error occurred",
            )
        logger.error("Database unavailable for %s %s", request.method, request.url.path)
        return _envelope(
            request,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "store_unavailable",
            "The database is temporarily unavailable",
        )
