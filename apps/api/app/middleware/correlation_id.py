from __future__ import annotations

import re
import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.context import reset_correlation_id, set_correlation_id

_MAX_CORRELATION_ID_LENGTH = 128
_CORRELATION_ID_RE = re.compile(r"^[A-Za-z0-9._:\-]+$")


def resolve_correlation_id(raw: str | None) -> str:
    """Use the caller's id when it is safe to echo into logs and headers, otherwise mint one."""
    candidate = (raw or "").strip()
    if candidate and len(candidate) <= _MAX_CORRELATION_ID_LENGTH and _CORRELATION_ID_RE.match(candidate):
        return candidate
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = resolve_correlation_id(
            request.headers.get("x-correlation-id") or request.headers.get("x-request-id")
        )
        request.state.correlation_id = correlation_id
        token = set_correlation_id(correlation_id)
        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)

        response.headers["x-correlation-id"] = correlation_id
        return response
