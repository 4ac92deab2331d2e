"""
Request context middleware for audit logging.

WHAT: Captures the request id, client IP and user agent of every request
and exposes them to services through a ContextVar.

WHY: Audit entries for force edits and payment overrides must record
where the action came from, but services never see the Request object.

HOW: The middleware sets the ContextVar for the duration of the request;
AuditService reads it with get_request_context().
"""

import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped data for audit logging.

    Fields:
    - request_id: Correlates log lines and the X-Request-ID response header
    - ip_address: Client IP, proxy headers considered
    - user_agent: Client's User-Agent, if sent
    - path / method: What was called
    """

    request_id: str
    ip_address: str
    user_agent: Optional[str]
    path: str
    method: str


_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Context of the request being served, None outside a request
    (background jobs, tests calling services directly).
    """
    return _request_context.get()


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address.

    Checks X-Real-IP, then the first X-Forwarded-For entry, then the
    socket peer.

    Security Note:
        These headers can be spoofed unless a trusted proxy overwrites them.
    """
    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip:
        return x_real_ip.strip()

    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _request_id(request: Request) -> str:
    """Reuse a well-formed upstream request id, otherwise mint one."""
    incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if incoming and len(incoming) <= 64 and incoming.replace("-", "").isalnum():
        return incoming
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures and stores request context.

    Example:
        ctx = get_request_context()
        if ctx:
            logger.info(f"Request {ctx.request_id} from {ctx.ip_address}")
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        context = RequestContext(
            request_id=_request_id(request),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = context.request_id
            logger.info(
                f"{context.method} {context.path} -> {response.status_code}",
                extra={
                    "request_id": context.request_id,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                },
            )
            return response
        finally:
            _request_context.reset(token)
