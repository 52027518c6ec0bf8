"""Request logging middleware.

Every response carries an ``X-Request-ID`` header. A well-formed id sent by
the caller (e.g. the dashboard frontend or a proxy) is reused so one id can
be followed across hops; otherwise a fresh ``req_<hex>`` id is minted. The id
is stored on ``request.state`` so handlers can echo it in ApiResponse.

Health probes log at DEBUG, 5xx responses at WARNING, everything else at INFO:
    INFO [GET] /api/v1/transactions 200 12ms req_a1b2c3d4e5f6
"""

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("fd.request")

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/health"})

_INBOUND_ID = re.compile(r"^[A-Za-z0-9_.-]{8,64}$")


def resolve_request_id(inbound: str | None) -> str:
    if inbound and _INBOUND_ID.match(inbound):
        return inbound
    return f"req_{uuid.uuid4().hex[:12]}"


def _level_for(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.WARNING
    if path in QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        path = request.url.path
        logger.log(
            _level_for(path, response.status_code),
            "[%s] %s %d %.0fms %s",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
