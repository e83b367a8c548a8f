"""
Correlation id for every board request.

The id is echoed in X-Request-ID, bound to the logging context and stamped
on each audit row the request produces, so it also ends up in CSV exports
and in the actor backfill that follows project creation.
"""

import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.config import get_settings
from src.logging_config import actor_id_var, get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Width of audit_logs.correlation_id
MAX_REQUEST_ID_LENGTH = 64
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:\-]+$")


def normalize_request_id(incoming: Optional[str]) -> str:
    """
    Accept a caller's trace id when it is safe to store, else mint one.

    Over-long ids are truncated to the audit column width; ids with
    whitespace, quotes or other separators are replaced.
    """
    if incoming:
        candidate = incoming.strip()[:MAX_REQUEST_ID_LENGTH]
        if _REQUEST_ID_PATTERN.match(candidate):
            return candidate
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind the correlation id for the request and report slow board calls."""

    def __init__(self, app, slow_request_ms: Optional[float] = None):
        super().__init__(app)
        if slow_request_ms is None:
            slow_request_ms = get_settings().slow_request_ms
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        request_token = request_id_var.set(request_id)
        # Filled in by get_current_user once the bearer token is verified
        actor_token = actor_id_var.set(None)
        try:
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            response.headers[REQUEST_ID_HEADER] = request_id
            if duration_ms > self.slow_request_ms:
                logger.warning(
                    "Slow board request",
                    extra={
                        "path": request.url.path,
                        "method": request.method,
                        "status_code": response.status_code,
                        "duration_ms": round(duration_ms, 1),
                    },
                )
            return response
        finally:
            actor_id_var.reset(actor_token)
            request_id_var.reset(request_token)
