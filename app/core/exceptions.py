import logging

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.request_context import request_id_ctx_var

logger = logging.getLogger(__name__)


class BookingDomainError(Exception):
    """Base class for errors the booking core reports synchronously to its caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "domain_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BookingDomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFound(BookingDomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class SlotUnavailable(BookingDomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "SLOT_UNAVAILABLE"


class BookingConflict(SlotUnavailable):
    code = "BOOKING_CONFLICT"


class CapacityExceeded(BookingDomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "CAPACITY_EXCEEDED"


class InvalidState(BookingDomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_STATE"


class ConcurrentModification(BookingDomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONCURRENT_MODIFICATION"


class ConfigurationError(RuntimeError):
    pass


def _error_payload(code: str, message: str, detail):
    return {
        "error": {
            "code": code,
            "message": message,
            "detail": detail,
        },
        "detail": detail,
        "request_id": request_id_ctx_var.get(),
    }


async def domain_exception_handler(_: Request, exc: BookingDomainError) -> JSONResponse:
    logger.info("domain_error code=%s message=%s", exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(code=exc.code, message=exc.message, detail=exc.message),
    )


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(
            code=f"http_{exc.status_code}",
            message=str(exc.detail),
            detail=exc.detail,
        ),
        headers=exc.headers,
    )


async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_payload(
            code="validation_error",
            message="Request validation failed",
            detail=jsonable_encoder(exc.errors()),
        ),
    )
