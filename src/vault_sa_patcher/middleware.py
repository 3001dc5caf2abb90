"""HTTP middleware for the probe server."""

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_ID_HEADER = "X-Request-ID"

access_logger = logging.getLogger("vault_sa_patcher.access")

# ContextVar so the correlation ID is available to the logging filter below.
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ``X-Request-ID`` and write one access log line.

    A client supplied ``X-Request-ID`` is preserved, otherwise a new UUID4 is
    generated.  The line carries method, remote address, path, duration and
    status code.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = cid
        token = correlation_id_var.set(cid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            access_logger.info(
                "New request method=%s remote_addr=%s url=%s time=%.2fms status=%s",
                request.method,
                request.client.host if request.client else "-",
                request.url.path,
                (time.perf_counter() - start) * 1000,
                response.status_code,
            )
            return response
        finally:
            correlation_id_var.reset(token)


class CorrelationIDFilter(logging.Filter):
    """Logging filter that injects ``correlation_id`` into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()  # type: ignore[attr-defined]
        return True
