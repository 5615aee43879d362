"""
Request Context — per-request run id middleware

• Each HTTP request runs under its own run id, so every log record a
  route emits (including the batch it starts) can be traced back to it
• An inbound X-Request-ID is honoured when REQUEST_CONTEXT_TRUST_INCOMING
  is on; otherwise a fresh id is minted
• The id and the handling time are echoed as response headers
"""

from __future__ import annotations

import os
import time
import typing as t

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from observability.logging_utils import current_run_id, new_run_id, set_run_id

REQ_ID_HEADER_IN = os.getenv("REQUEST_ID_HEADER_IN", "X-Request-ID")
REQ_ID_HEADER_OUT = os.getenv("REQUEST_ID_HEADER_OUT", "X-Request-ID")

TRUST_INCOMING_IDS = os.getenv("REQUEST_CONTEXT_TRUST_INCOMING", "true").lower() == "true"
INCLUDE_TIMING_HEADERS = os.getenv("REQUEST_CONTEXT_TIMING_HEADERS", "true").lower() == "true"

_MAX_ID_LEN = 64


def _sanitize_header(value: t.Optional[str]) -> t.Optional[str]:
    if not value:
        return None
    v = value.strip()[:_MAX_ID_LEN]
    return v if v.isprintable() and v else None


def _bind_request_id(header_value: t.Optional[str]) -> str:
    sanitized = _sanitize_header(header_value)
    if TRUST_INCOMING_IDS and sanitized:
        set_run_id(sanitized)
        return sanitized
    return new_run_id()


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        previous = current_run_id()
        req_id = _bind_request_id(request.headers.get(REQ_ID_HEADER_IN))
        request.state.request_id = req_id
        start_ts = time.time()

        try:
            response = await call_next(request)
        finally:
            set_run_id(previous)

        response.headers[REQ_ID_HEADER_OUT] = req_id
        if INCLUDE_TIMING_HEADERS:
            dur_ms = max((time.time() - start_ts) * 1000.0, 0.0)
            response.headers["Server-Timing"] = f"app;dur={dur_ms:.2f}"
            response.headers["X-Process-Time"] = f"{dur_ms:.2f}ms"

        return response
