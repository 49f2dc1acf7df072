"""HTTP middleware: request ids and one access-log line per request."""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

__all__ = ["REQUEST_ID_HEADER", "RequestLoggingMiddleware"]

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs it once it completes.

    The id comes from the ``X-Request-ID`` header when the client sends one
    and is echoed back on the response.
    """

    def __init__(self, app: ASGIApp, logger: logging.Logger) -> None:
        super().__init__(app)
        self._logger = logger

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        self._logger.info(
            "request completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "remote_addr": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent"),
                "request_id": request_id,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - start) * 1000, 3),
            },
        )
        return response
