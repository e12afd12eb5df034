from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.core.exceptions import AppException
from app.schemas.response import ErrorResponse, ErrorDetail
from app.utils.time import utcnow
import logging
import uuid

logger = logging.getLogger(__name__)

ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_SERVER_ERROR",
    503: "SERVICE_UNAVAILABLE",
}

# Request locations that carry no meaning for the client.
_LOCATION_PREFIXES = {"body", "query", "path", "header"}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error_response(request: Request, request_id: str, code: str, message: str, details=None) -> dict:
    error_response = ErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details),
        timestamp=utcnow().isoformat(),
        path=request.url.path,
        request_id=request_id
    )
    return jsonable_encoder(error_response)


def _field_errors(exc: RequestValidationError) -> list:
    """Flatten pydantic errors into the same {field, message} pairs services raise."""
    field_errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in _LOCATION_PREFIXES:
            loc = loc[1:]
        field_errors.append({"field": ".".join(loc) or "request", "message": str(error.get("msg", ""))})
    return field_errors


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _request_id(request)
    field_errors = _field_errors(exc)
    logger.warning("Validation error on %s: %s", request.url.path, field_errors, extra={"request_id": request_id})
    return JSONResponse(
        status_code=422,
        content=_error_response(
            request, request_id, "VALIDATION_ERROR", "Request validation failed", {"validation_errors": field_errors}
        ),
    )


async def global_exception_handler(request: Request, exc: Exception):
    request_id = _request_id(request)

    if isinstance(exc, AppException):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("%s (%s): %s", exc.code, exc.status_code, exc.detail, extra={"request_id": request_id})
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_response(request, request_id, exc.code, exc.detail, exc.details),
        )

    if isinstance(exc, StarletteHTTPException):
        logger.warning("HTTP %s: %s", exc.status_code, exc.detail, extra={"request_id": request_id})
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_response(request, request_id, ERROR_CODES.get(exc.status_code, f"HTTP_{exc.status_code}"), message),
            headers=getattr(exc, "headers", None),
        )

    logger.error("Unhandled exception: %s", exc, exc_info=True, extra={"request_id": request_id})
    return JSONResponse(
        status_code=500,
        content=_error_response(
            request, request_id, "INTERNAL_SERVER_ERROR", "An unexpected error occurred",
            {"error_type": type(exc).__name__},
        ),
    )
