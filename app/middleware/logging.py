import logging
import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging import request_id_ctx

logger = logging.getLogger(__name__)

QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs method, path, status and latency.

    The id is echoed back in ``X-Request-ID`` and copied onto every log record
    emitted while the request is handled, so attempt and grading logs can be
    traced back to the call that produced them.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)

        method, path = request.method, request.url.path
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("%s %s failed after %.1f ms", method, path, _elapsed_ms(started))
            raise
        finally:
            request_id_ctx.reset(token)

        duration_ms = _elapsed_ms(started)
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        elif path in QUIET_PATHS:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(
            level,
            "%s %s -> %s (%.1f ms)", method, path, response.status_code, duration_ms,
            extra={"request_id": request_id, "status_code": response.status_code, "duration_ms": duration_ms},
        )

        response.headers["X-Request-ID"] = request_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
