"""Global error handlers returning consistent JSON error bodies."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from berse.exceptions import BerseError, InvalidPointAmountError, UnknownBadgeError, UserNotFoundError

logger = structlog.get_logger()

_DOMAIN_STATUS: dict[type[BerseError], int] = {
    UserNotFoundError: 404,
    UnknownBadgeError: 404,
    InvalidPointAmountError: 400,
}


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(BerseError)
    async def domain_exception_handler(_request: Request, exc: BerseError) -> JSONResponse:
        """Map service errors to 4xx responses."""
        return JSONResponse(
            status_code=_DOMAIN_STATUS.get(type(exc), 400),
            content={"detail": str(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
