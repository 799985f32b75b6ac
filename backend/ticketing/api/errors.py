"""
Maps domain errors to HTTP responses.

Error body: {"detail": "<human readable>", "error": "<code>"}.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ticketing.core.exceptions import BookingSystemError, InternalError, ValidationError
from ticketing.core.logging import get_logger

logger = get_logger(__name__)


async def booking_system_error_handler(request: Request, exc: BookingSystemError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_error", error=exc.code, detail=exc.message)
    else:
        logger.info("request_rejected", error=exc.code, detail=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    )
    logger.info("request_invalid", detail=problems)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": problems or "Invalid request", "error": ValidationError.code},
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("database_error", error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error": InternalError.code},
    )


EXCEPTION_HANDLERS = {
    BookingSystemError: booking_system_error_handler,
    RequestValidationError: validation_error_handler,
    SQLAlchemyError: database_error_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
